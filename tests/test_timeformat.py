"""Tests for time formatting and loop-bound parsing."""

import pytest

from visualpiano.analysis.timeformat import format_time, parse_time_input


@pytest.mark.parametrize("text, canonical", [
    ("1:05", "1:05"),
    ("65", "1:05"),
    ("0:00", "0:00"),
    ("0:5", "0:05"),
    ("1:00:00", "60:00"),
])
def test_parse_then_format_gives_canonical_form(text, canonical):
    assert format_time(parse_time_input(text)) == canonical


@pytest.mark.parametrize("text", ["abc", "-5", "1:2:3:4", "", "   ", "1:", ":30", "1:-2", "nan", "inf"])
def test_parse_rejects_invalid_input(text):
    assert parse_time_input(text) is None


def test_parse_accepts_fractions_and_whitespace():
    assert parse_time_input(" 2:30.5 ") == pytest.approx(150.5)
    assert parse_time_input("1:02:03") == 3723
    assert parse_time_input(None) is None


def test_format_time_clamps_bad_values():
    assert format_time(-3) == "0:00"
    assert format_time(float("nan")) == "0:00"
    assert format_time(59.99) == "0:59"
    assert format_time(125) == "2:05"
