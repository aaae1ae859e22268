import pytest

from convointel.utils.json_utils import clean_json_response, parse_json_lenient, repair_json


def test_clean_json_response_strips_code_fences() -> None:
    assert clean_json_response('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_json_response('```\n[1]\n```') == '[1]'
    assert clean_json_response('  {"a": 1}  ') == '{"a": 1}'


def test_repair_json_leaves_string_content_alone() -> None:
    repaired = repair_json("{name: 'It is True', flag: True, items: [1, 2,],}")

    assert repaired == '{"name": "It is True", "flag": true, "items": [1, 2]}'


def test_parse_strict_json() -> None:
    assert parse_json_lenient('{"a": [1, 2]}') == {'a': [1, 2]}


def test_parse_single_quotes_and_trailing_commas() -> None:
    assert parse_json_lenient("{'hobbies': ['tennis', 'chess',],}") == {'hobbies': ['tennis', 'chess']}


def test_parse_apostrophes_inside_double_quotes() -> None:
    assert parse_json_lenient('{"quote": "let\'s meet"}') == {'quote': "let's meet"}


def test_parse_python_literals() -> None:
    assert parse_json_lenient("{'is_user': True, 'score': None}") == {'is_user': True, 'score': None}


def test_parse_json_surrounded_by_prose() -> None:
    assert parse_json_lenient('Here is the result:\n{"title": "Sync"}\nHope that helps.') == {'title': 'Sync'}


def test_parse_failure_raises_value_error() -> None:
    with pytest.raises(ValueError):
        parse_json_lenient('{"unterminated": ')
    with pytest.raises(ValueError):
        parse_json_lenient('')
    with pytest.raises(ValueError):
        parse_json_lenient(None)


def test_parse_too_deeply_nested_raises_value_error() -> None:
    with pytest.raises(ValueError):
        parse_json_lenient('[' * 100000)
