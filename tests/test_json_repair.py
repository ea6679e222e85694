from travelrag.utils.json_repair import (
    extract_balanced,
    parse_json_response,
    repair_truncated_json,
    sanitize_json_text,
    strip_code_fences,
)


def test_truncated_array_keeps_complete_elements():
    assert parse_json_response('[{"a":1},{"a":2,', []) == [{"a": 1}]


def test_truncated_items_object_is_reclosed():
    text = '{"items": [{"placeName": "Gyeongbokgung"}, {"placeName": "Gwang'
    assert parse_json_response(text) == {"items": [{"placeName": "Gyeongbokgung"}]}


def test_fenced_response():
    text = 'Here you go:\n```json\n{"items": [{"placeName": "A"}]}\n```\nEnjoy!'
    assert parse_json_response(text) == {"items": [{"placeName": "A"}]}


def test_unterminated_fence():
    assert strip_code_fences('```json\n[1, 2]') == "[1, 2]"
    assert parse_json_response('```json\n[1, 2]', []) == [1, 2]


def test_brackets_inside_strings_are_ignored():
    text = 'prefix {"reason": "open [ and { inside", "n": 1} suffix'
    assert extract_balanced(text, "{") == '{"reason": "open [ and { inside", "n": 1}'


def test_control_characters_and_bad_escapes_are_sanitized():
    raw = '{"reason": "line\x01 one \\q"}'
    assert sanitize_json_text(raw) == '{"reason": "line one q"}'
    assert parse_json_response(raw) == {"reason": "line one q"}


def test_first_container_wins_without_list_default():
    assert parse_json_response('[{"a": 1}, {"a": 2}]') == [{"a": 1}, {"a": 2}]


def test_list_default_wraps_single_object():
    assert parse_json_response('{"id": "1", "category": "visa"}', []) == [{"id": "1", "category": "visa"}]


def test_unrecoverable_returns_default():
    assert parse_json_response("no json here", {"fallback": True}) == {"fallback": True}
    assert parse_json_response("", None) is None
    assert parse_json_response('{"a": ', []) == []


def test_repair_returns_none_for_complete_text():
    assert repair_truncated_json('{"a": 1}') is None


def test_bracketed_prose_before_object_falls_through():
    text = 'Plan below [see notes]: {"items": [{"placeName": "A"}]}'
    assert parse_json_response(text, None) == {"items": [{"placeName": "A"}]}


def test_escaped_backslash_pairs_survive_sanitizing():
    raw = '{"path": "a\\\\q", "bad": "b\\q"}'
    assert sanitize_json_text(raw) == '{"path": "a\\\\q", "bad": "bq"}'
    assert parse_json_response(raw) == {"path": "a\\q", "bad": "bq"}
