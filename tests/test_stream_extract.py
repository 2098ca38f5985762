import json

from parsing.stream_extract import extract_field, extract_field_state


def test_partial_value_is_returned_while_open():
    buffer = '{"narrativeBlock": {"id": "b1", "text": "The gate gro'
    assert extract_field_state(buffer) == ("The gate gro", False)


def test_closed_value_reports_complete():
    buffer = '{"narrativeBlock": {"text": "Done."}, "choices": ['
    assert extract_field_state(buffer) == ("Done.", True)


def test_missing_field_yields_empty_string():
    assert extract_field_state('{"narrativeBlock": {"id": "b1"') == ("", False)
    assert extract_field("") == ""


def test_growing_buffer_is_monotonic_and_converges():
    expected = 'He said "hi"\nthen \u00e9 left \U0001F5E1 \\ end'
    document = json.dumps(
        {"narrativeBlock": {"id": "b1", "type": "story", "text": expected}, "choices": []}
    )
    previous = ""
    for size in range(1, len(document) + 1):
        value = extract_field(document[:size])
        assert value.startswith(previous)
        previous = value
    assert previous == expected
    assert extract_field_state(document) == (expected, True)


def test_partial_escape_is_held_back():
    assert extract_field('{"text": "line\\') == "line"
    assert extract_field('{"text": "caf\\u00') == "caf"
    assert extract_field('{"text": "caf\\u00e9') == "caf\u00e9"


def test_escaped_backslash_before_closing_quote():
    buffer = '{"text": "C:\\\\", "x": 1}'
    assert extract_field_state(buffer) == ("C:\\", True)


def test_last_occurrence_wins():
    buffer = '{"narrativeBlock": {"text": "story"}, "choices": [{"text": "Run'
    assert extract_field_state(buffer) == ("Run", False)


def test_custom_field_name():
    buffer = '{"content": "hello", "text": "ignored"}'
    assert extract_field(buffer, "content") == "hello"


def test_raw_newlines_are_tolerated():
    assert extract_field('{"text": "one\ntwo') == "one\ntwo"


def test_undecodable_escapes_fall_back_to_common_replacements():
    buffer = r'{"text": "bad \q and \"quoted\" \n'
    assert extract_field(buffer) == 'bad \\q and "quoted" \n'
