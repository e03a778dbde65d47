import pytest

from propsearch.utils.coerce import parse_money, to_float, to_int, to_str


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,200", 1200.0),
        (" 3.5 ", 3.5),
        (2, 2.0),
        ("nan", None),
        ("N/A", None),
        ("--", None),
        ("", None),
        (None, None),
        (True, None),
        (float("inf"), None),
        ("abc", None),
    ],
)
def test_to_float(raw, expected):
    assert to_float(raw) == expected


def test_to_int_truncates_and_rejects_placeholders():
    assert to_int("1,500.9") == 1500
    assert to_int("null") is None
    assert to_int(float("nan")) is None


def test_to_str_strips_and_maps_none():
    assert to_str("  Austin ") == "Austin"
    assert to_str(None) == ""


def test_parse_money_rejects_non_finite_numbers():
    assert parse_money(float("nan")) is None
    assert parse_money(float("inf")) is None
    assert parse_money(1999.6) == 2000
