"""
JSON utilities for cleaning and leniently parsing LLM responses.
"""

import ast
import json
import re
from typing import Any, List, Tuple

_UNQUOTED_KEY = re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)')
_TRAILING_COMMA = re.compile(r',(\s*[}\]])')
_PY_LITERALS = ((re.compile(r'\bTrue\b'), 'true'), (re.compile(r'\bFalse\b'), 'false'), (re.compile(r'\bNone\b'), 'null'))


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def _split_strings(text: str) -> List[Tuple[bool, str]]:
    """Split text into (is_string, chunk) pieces, rewriting single-quoted strings as double-quoted."""
    pieces = []
    buf = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch not in ('"', "'"):
            buf.append(ch)
            i += 1
            continue

        if buf:
            pieces.append((False, ''.join(buf)))
            buf = []

        quote = ch
        out = ['"']
        i += 1
        while i < len(text):
            c = text[i]
            if c == '\\' and i + 1 < len(text):
                nxt = text[i + 1]
                # \' is not a valid JSON escape
                out.append(nxt if nxt == "'" else c + nxt)
                i += 2
                continue
            if c == quote:
                i += 1
                break
            if c == '"' and quote == "'":
                out.append('\\"')
            else:
                out.append(c)
            i += 1
        out.append('"')
        pieces.append((True, ''.join(out)))

    if buf:
        pieces.append((False, ''.join(buf)))
    return pieces


def repair_json(text: str) -> str:
    """Rewrite common LLM JSON artifacts into strict JSON.

    Handles single-quoted strings, unquoted object keys, trailing commas and
    Python literals (True/False/None). Content inside strings is left untouched.

    Args:
        text: JSON-like text

    Returns:
        Repaired text (not guaranteed to be valid JSON)
    """
    repaired = []
    for is_string, chunk in _split_strings(text):
        if not is_string:
            chunk = _UNQUOTED_KEY.sub(r'\1"\2"\3', chunk)
            chunk = _TRAILING_COMMA.sub(r'\1', chunk)
            for pattern, replacement in _PY_LITERALS:
                chunk = pattern.sub(replacement, chunk)
        repaired.append(chunk)
    return ''.join(repaired)


def _outermost_block(text: str) -> str:
    starts = [pos for pos in (text.find('{'), text.find('[')) if pos >= 0]
    if not starts:
        return ''
    start = min(starts)
    end = text.rfind('}' if text[start] == '{' else ']')
    return text[start:end + 1] if end > start else ''


def parse_json_lenient(text: str) -> Any:
    """Parse JSON produced by an LLM, repairing common artifacts.

    Args:
        text: Raw text, possibly wrapped in code fences or surrounded by prose

    Returns:
        Parsed JSON value

    Raises:
        ValueError: If the text cannot be recovered as JSON
    """
    if not isinstance(text, str):
        raise ValueError(f'Expected str, got {type(text).__name__}')

    cleaned = clean_json_response(text)
    if not cleaned:
        raise ValueError('Empty JSON text')

    candidates = [cleaned]
    block = _outermost_block(cleaned)
    if block and block != cleaned:
        candidates.append(block)

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, RecursionError):
            pass
        try:
            return json.loads(repair_json(candidate))
        except (json.JSONDecodeError, RecursionError):
            pass
        try:
            return ast.literal_eval(candidate)
        except (ValueError, SyntaxError, MemoryError, RecursionError, TypeError):
            pass

    raise ValueError(f'Unable to parse JSON: {cleaned[:80]!r}')
