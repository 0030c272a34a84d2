import pytest

from autoclipper_core.utils.timecode import format_timestamp, match_line_timestamp, parse_timestamp


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0:00"), (5.9, "0:05"), (65, "1:05"), (3599, "59:59"), (3600, "1:00:00"), (3725, "1:02:05")],
)
def test_format_timestamp(seconds, expected):
    assert format_timestamp(seconds) == expected


def test_format_timestamp_negative_is_zero():
    assert format_timestamp(-3) == "0:00"


def test_parse_timestamp():
    assert parse_timestamp("1:05") == 65
    assert parse_timestamp("[1:02:05]") == 3725
    assert parse_timestamp("0:10.5") == 10.5
    assert parse_timestamp("hello") is None
    assert parse_timestamp("") is None


def test_parse_inverts_format():
    for seconds in (0, 59, 61, 3600, 7322):
        assert parse_timestamp(format_timestamp(seconds)) == seconds


def test_match_line_timestamp():
    assert match_line_timestamp("[0:30] hello") == 30
    assert match_line_timestamp("[1:00:01] Host: hi") == 3601
    assert match_line_timestamp("no timestamp [0:30]") is None
