import pytest

import amounts


@pytest.mark.parametrize(
    "text,expected",
    [
        ("0", "0"),
        ("1000", "1000"),
        ("007", "7"),
        ("  42 ", "42"),
        # larger than uint64 and uint256 max
        ("18446744073709551616", "18446744073709551616"),
        (str(2**256 - 1), str(2**256 - 1)),
        (str(2**300), str(2**300)),
    ],
)
def test_parse_roundtrip_is_canonical(text, expected):
    assert amounts.to_decimal_string(amounts.parse(text)) == expected


@pytest.mark.parametrize("bad", ["not-a-number", "", "-5", "+5", "1_000", "1.5", "0x10", "١٢", None, 12])
def test_parse_malformed_is_zero(bad):
    assert amounts.parse(bad) == 0


def test_parse_malformed_is_logged(caplog):
    with caplog.at_level("WARNING", logger="netflow_indexer.amounts"):
        amounts.parse("garbage")
    assert "Unparsable amount" in caplog.text


def test_add_has_no_ceiling():
    big = 2**256 - 1
    assert amounts.add(big, big) == 2 * big


def test_saturating_sub_floors_at_zero():
    assert amounts.saturating_sub(10, 3) == 7
    assert amounts.saturating_sub(3, 3) == 0
    assert amounts.saturating_sub(500, 1000) == 0


def test_to_decimal_string_rejects_negative():
    with pytest.raises(ValueError):
        amounts.to_decimal_string(-1)
