"""
Sanitization of conversation-analysis output.

LLM output is untrusted: arrays arrive as strings, objects arrive as
stringified JSON with single quotes, numbers arrive as words. ``sanitize``
coerces everything into one strict shape and never raises. A field that
cannot be recovered falls back to its empty default; it never aborts the
rest of the result.
"""

import math
from typing import Any, Dict, List, Optional

from ..utils.json_utils import parse_json_lenient
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_TRUE_STRINGS = ('true', 'yes', 'y', '1')


def _parse_text(value: str) -> Any:
    """Parse stringified JSON, returning None when it is not recoverable."""
    try:
        return parse_json_lenient(value)
    except (ValueError, RecursionError):
        return None


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    """First present value among alternative key spellings."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _as_str(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ''
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return ''


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(value, (int, float)):
        return value == 1
    return False


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _as_int(value: Any, default: int = 0, minimum: int = 0) -> int:
    number = _as_float(value)
    if number is None:
        return default
    return max(int(number), minimum)


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip().startswith('{'):
        parsed = _parse_text(value)
        if isinstance(parsed, dict):
            return parsed
    return {}


def _element_to_str(item: Any) -> str:
    if isinstance(item, dict):
        return ', '.join(_as_str(v) for v in item.values() if _as_str(v))
    return _as_str(item)


def _as_str_list(value: Any) -> List[str]:
    """Coerce a value that must be a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith('['):
            parsed = _parse_text(text)
            value = parsed if isinstance(parsed, list) else []
        else:
            return [text]
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return [str(value)]
    elif not isinstance(value, list):
        return []

    items = []
    for item in value:
        text = _element_to_str(item)
        if text:
            items.append(text)
    return items


def _as_object_list(value: Any) -> List[Any]:
    """Coerce a value that must be a list of objects; elements are returned unnormalized."""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text[0] in '[{':
            parsed = _parse_text(text)
            if parsed is None:
                return []
            value = parsed
        else:
            return [text]
    if isinstance(value, dict):
        return [value]
    if not isinstance(value, list):
        return []

    items = []
    for item in value:
        if isinstance(item, str) and item.strip().startswith('{'):
            parsed = _parse_text(item)
            item = parsed if isinstance(parsed, dict) else None
        if item is not None:
            items.append(item)
    return items


def _summary(value: Any) -> Dict[str, str]:
    if isinstance(value, str) and not value.strip().startswith('{'):
        return {'short': value.strip(), 'extended': ''}
    data = _as_dict(value)
    return {'short': _as_str(data.get('short')), 'extended': _as_str(data.get('extended'))}


def _metadata(value: Any) -> Dict[str, Any]:
    data = _as_dict(value)
    return {
        'title': _as_str(data.get('title')),
        'summary': _summary(data.get('summary')),
        'duration_minutes': _as_int(_pick(data, 'duration_minutes', 'duration')),
        'tags': _as_str_list(data.get('tags')),
        'detected_speakers': _as_int(data.get('detected_speakers')),
    }


def _important_dates(value: Any) -> List[Dict[str, str]]:
    dates = []
    for item in _as_object_list(value):
        if not isinstance(item, dict):
            continue
        date = _as_str(item.get('date'))
        if not date:
            continue
        dates.append({'date': date, 'description': _as_str(item.get('description')), 'type': _as_str(item.get('type')) or 'other'})
    return dates


def _common_topics(value: Any) -> List[Dict[str, Any]]:
    topics = []
    for item in _as_object_list(value):
        if isinstance(item, dict):
            topic = _as_str(_pick(item, 'topic', 'name'))
            frequency = _as_int(item.get('frequency'), default=1, minimum=1)
        else:
            topic = _as_str(item)
            frequency = 1
        if topic:
            topics.append({'topic': topic, 'frequency': frequency})
    return topics


def _relationship(value: Any) -> Dict[str, str]:
    if isinstance(value, str) and not value.strip().startswith('{'):
        return {'type': value.strip(), 'subtype': '', 'source': ''}
    data = _as_dict(value)
    return {'type': _as_str(data.get('type')), 'subtype': _as_str(data.get('subtype')), 'source': _as_str(data.get('source'))}


def _communication(value: Any) -> Dict[str, str]:
    if isinstance(value, str) and not value.strip().startswith('{'):
        return {'frequency': value.strip()}
    data = _as_dict(value)
    return {'frequency': _as_str(data.get('frequency'))}


def _sentiment(value: Any) -> Dict[str, Any]:
    data = _as_dict(value)
    return {
        'closenessScore': _as_float(_pick(data, 'closenessScore', 'closeness_score', 'closeness')),
        'tone': _as_str(data.get('tone')),
    }


def _key_info(value: Any) -> Dict[str, Any]:
    data = _as_dict(value)
    favorites = _as_dict(data.get('favorites'))
    work_info = _as_dict(_pick(data, 'work_info', 'workInfo'))
    personal_info = _as_dict(_pick(data, 'personal_info', 'personalInfo'))
    return {
        'hobbies': _as_str_list(data.get('hobbies')),
        'interests': _as_str_list(data.get('interests')),
        'favorites': {
            'movies': _as_str_list(favorites.get('movies')),
            'music': _as_str_list(favorites.get('music')),
            'books': _as_str_list(favorites.get('books')),
            'food': _as_str_list(favorites.get('food')),
        },
        'travel': _as_str_list(data.get('travel')),
        'work_info': {
            'company': _as_str(work_info.get('company')),
            'position': _as_str(work_info.get('position')),
            'industry': _as_str(work_info.get('industry')),
        },
        'personal_info': {
            'relatives': _as_str_list(personal_info.get('relatives')),
            'pets': _as_str_list(personal_info.get('pets')),
            'birthdate': _as_str(personal_info.get('birthdate')),
            'location': _as_str_list(personal_info.get('location')),
        },
    }


def _profile(value: Any) -> Dict[str, Any]:
    data = _as_dict(value)
    return {
        'relationship': _relationship(data.get('relationship')),
        'communication': _communication(data.get('communication')),
        'sentiment': _sentiment(data.get('sentiment')),
        'summary': _as_str(data.get('summary')),
        'key_info': _key_info(_pick(data, 'key_info', 'keyInfo')),
        'common_topics': _common_topics(_pick(data, 'common_topics', 'commonTopics')),
        'important_dates': _important_dates(_pick(data, 'important_dates', 'importantDates')),
    }


def _speakers(value: Any) -> List[Dict[str, Any]]:
    speakers = []
    for item in _as_object_list(value):
        data = item if isinstance(item, dict) else {'name': item}
        speakers.append({
            'speaker_label': _as_str(_pick(data, 'speaker_label', 'label', 'speaker')),
            'name': _as_str(data.get('name')),
            'is_user': _as_bool(data.get('is_user')),
            'profile': _profile(data.get('profile')),
        })
    return speakers


def _action_items(value: Any) -> List[Dict[str, str]]:
    items = []
    for item in _as_object_list(value):
        data = item if isinstance(item, dict) else {'description': item}
        items.append({
            'description': _as_str(data.get('description')),
            'assigned_to': _as_str(_pick(data, 'assigned_to', 'assignedTo')),
            'from_speaker': _as_str(_pick(data, 'from_speaker', 'speaker')),
            'extracted_from': _as_str(_pick(data, 'extracted_from', 'extractedFrom')),
        })
    return items


def _obligations(value: Any) -> List[Dict[str, str]]:
    items = []
    for item in _as_object_list(value):
        data = item if isinstance(item, dict) else {'title': item}
        items.append({
            'title': _as_str(data.get('title')),
            'from': _as_str(_pick(data, 'from', 'from_speaker')),
            'due_date_text': _as_str(_pick(data, 'due_date_text', 'dueDateText', 'due_date')),
            'dueDate': _as_str(_pick(data, 'dueDate', 'due_date_iso')),
            'priority': _as_str(data.get('priority')),
            'category': _as_str(data.get('category')),
            'extracted_from': _as_str(_pick(data, 'extracted_from', 'extractedFrom')),
        })
    return items


def _pending_followups(value: Any) -> List[Dict[str, str]]:
    items = []
    for item in _as_object_list(value):
        data = item if isinstance(item, dict) else {'description': item}
        items.append({
            'person': _as_str(_pick(data, 'person', 'name')),
            'description': _as_str(_pick(data, 'description', 'context')),
            'priority': _as_str(data.get('priority')),
            'extracted_from': _as_str(_pick(data, 'extracted_from', 'extractedFrom')),
        })
    return items


def _suggested_followups(value: Any) -> List[Dict[str, str]]:
    items = []
    for item in _as_object_list(value):
        data = item if isinstance(item, dict) else {'person': item}
        items.append({
            'person': _as_str(_pick(data, 'person', 'name')),
            'reason': _as_str(data.get('reason')),
            'priority': _as_str(data.get('priority')),
        })
    return items


def _network_connections(value: Any) -> List[Dict[str, Any]]:
    items = []
    for item in _as_object_list(value):
        if not isinstance(item, dict):
            continue
        items.append({
            'person1': _as_str(item.get('person1')),
            'person2': _as_str(item.get('person2')),
            'relationship_type': _as_str(_pick(item, 'relationship_type', 'relationshipType')),
            'strength': _as_float(item.get('strength')),
        })
    return items


def empty_result() -> Dict[str, Any]:
    """The default analysis shape used when nothing can be recovered."""
    return _build({})


def _build(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'conversation_metadata': _metadata(data.get('conversation_metadata')),
        'speakers': _speakers(data.get('speakers')),
        'action_items': _action_items(data.get('action_items')),
        'tasks': _obligations(data.get('tasks')),
        'reminders': _obligations(data.get('reminders')),
        'pending_followups': _pending_followups(data.get('pending_followups')),
        'suggested_followups': _suggested_followups(data.get('suggested_followups')),
        'network_connections': _network_connections(data.get('network_connections')),
    }


def sanitize(raw: Any) -> Dict[str, Any]:
    """Normalize raw analysis output into the strict internal shape.

    Idempotent: ``sanitize(sanitize(x)) == sanitize(x)``.

    Args:
        raw: Analysis result as a dict, a JSON string, or anything else

    Returns:
        Sanitized analysis dict; the empty default shape when raw is unusable
    """
    try:
        if isinstance(raw, str):
            parsed = _parse_text(raw)
            raw = parsed if isinstance(parsed, dict) else {}
        if not isinstance(raw, dict):
            logger.warning(f'Analysis result is {type(raw).__name__}, using empty result')
            raw = {}
        return _build(raw)
    except Exception as e:
        logger.error(f'Unexpected error sanitizing analysis result: {e}')
        return empty_result()
