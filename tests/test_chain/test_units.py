"""Tests for raw <-> decimal unit conversion and address normalization."""

from decimal import Decimal

import pytest

from src.chain.units import (
    MAX_UINT256,
    dec,
    format_units,
    is_address,
    normalize_address,
    parse_units,
    to_plain,
)
from src.errors import InvalidAddressError


class TestFormatUnits:
    def test_usdc_amount(self) -> None:
        assert format_units(1_500_000, 6) == Decimal("1.5")

    def test_zero_decimals(self) -> None:
        assert format_units(42, 0) == Decimal(42)

    def test_negative_decimals_rejected(self) -> None:
        with pytest.raises(ValueError):
            format_units(1, -1)


class TestParseUnits:
    def test_whole_tokens(self) -> None:
        assert parse_units("2", 18) == 2 * 10**18

    def test_truncates_extra_digits(self) -> None:
        assert parse_units("1.2345678", 6) == 1_234_567

    def test_accepts_decimal(self) -> None:
        assert parse_units(Decimal("0.000001"), 6) == 1


class TestRoundTrip:
    @pytest.mark.parametrize("decimals", [0, 6, 18, 77])
    def test_max_uint256_survives(self, decimals: int) -> None:
        formatted = to_plain(format_units(MAX_UINT256, decimals))
        assert parse_units(formatted, decimals) == MAX_UINT256

    def test_one_wei(self) -> None:
        assert parse_units(to_plain(format_units(1, 18)), 18) == 1


class TestToPlain:
    def test_no_exponent(self) -> None:
        assert to_plain(Decimal("1E-18")) == "0.000000000000000001"

    def test_strips_trailing_zeros(self) -> None:
        assert to_plain(Decimal("12.5000")) == "12.5"
        assert to_plain(Decimal("100")) == "100"

    def test_zero(self) -> None:
        assert to_plain(Decimal("0.000")) == "0"

    def test_dec_reads_empty_as_zero(self) -> None:
        assert dec(None) == 0
        assert dec("") == 0
        assert dec("3.25") == Decimal("3.25")


class TestAddresses:
    def test_checksums(self) -> None:
        lower = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
        assert normalize_address(lower) == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

    def test_strips_whitespace(self) -> None:
        assert normalize_address(" 0x1111111111111111111111111111111111111111 ") == (
            "0x1111111111111111111111111111111111111111"
        )

    @pytest.mark.parametrize("bad", [None, "", "0x123", "1111111111111111111111111111111111111111", "0xZZ11111111111111111111111111111111111111"])
    def test_rejects_malformed(self, bad) -> None:
        with pytest.raises(InvalidAddressError):
            normalize_address(bad)

    def test_is_address(self) -> None:
        assert is_address("0x1111111111111111111111111111111111111111")
        assert not is_address("0x11")
        assert not is_address(None)
