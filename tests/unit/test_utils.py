import pytest

from appgw.utils import digest, dump_json, parse_bool, parse_duration, parse_flag, parse_yaml


@pytest.mark.parametrize("value,expected", [
    ("true", True), ("Yes", True), ("enabled", True), ("1", True), (True, True),
    ("false", False), ("OFF", False), ("disabled", False), (False, False),
    ("maybe", None), ("", None), (None, None),
])
def test_parse_flag(value, expected):
    assert parse_flag(value) is expected


def test_parse_bool():
    assert parse_bool("t")
    assert not parse_bool("maybe")
    assert not parse_bool(None)


@pytest.mark.parametrize("value,seconds", [
    (30, 30.0), ("30", 30.0), ("2.5", 2.5), ("15s", 15.0), ("1m30s", 90.0), ("500ms", 0.5),
])
def test_parse_duration(value, seconds):
    assert parse_duration(value) == seconds


@pytest.mark.parametrize("value", [ "", "soon", True ])
def test_parse_duration_invalid(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_digest():
    assert digest("a", "b") == digest("a", "b")
    assert digest("a", "b") != digest("ab")
    assert len(digest("a")) == 8
    assert len(digest("a", length=12)) == 12


def test_dump_json_sorted():
    assert dump_json({ "b": 1, "a": { "d": 2, "c": 3 } }) == '{"a":{"c":3,"d":2},"b":1}'


def test_parse_yaml_multi():
    assert parse_yaml("---\na: 1\n---\nb: 2\n") == [ { "a": 1 }, { "b": 2 } ]
