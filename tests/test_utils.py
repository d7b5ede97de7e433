"""Tests for utility functions."""

from decimal import Decimal

import pytest
from hexbytes import HexBytes

from chain_settle.exceptions import ValidationError
from chain_settle.utils import (
    covers,
    from_base_units,
    is_dust,
    quantize_down,
    to_base_units,
    to_decimal,
    to_hex_hash,
)


class TestBaseUnitConversion:
    """Test human amount <-> base unit conversion."""

    def test_to_base_units_decimal(self):
        assert to_base_units(Decimal("150"), 6) == 150_000_000

    def test_to_base_units_float_uses_repr(self):
        """0.1 must not pick up binary float artefacts."""
        assert to_base_units(0.1, 18) == 10**17

    def test_to_base_units_truncates(self):
        assert to_base_units(Decimal("1.2345679"), 6) == 1_234_567

    def test_to_base_units_negative_raises_error(self):
        with pytest.raises(ValidationError):
            to_base_units(-1, 6)

    def test_from_base_units(self):
        assert from_base_units(1_500_000, 6) == Decimal("1.5")

    def test_quantize_down(self):
        assert quantize_down(Decimal("0.1234567"), 6) == Decimal("0.123456")


class TestDecimalCoercion:
    def test_string_input(self):
        assert to_decimal("0.0004") == Decimal("0.0004")

    def test_invalid_input(self):
        with pytest.raises(ValidationError) as excinfo:
            to_decimal("abc", field="amount")
        assert excinfo.value.field == "amount"

    def test_non_finite_input(self):
        with pytest.raises(ValidationError):
            to_decimal("NaN")


class TestTolerance:
    def test_covers_within_tolerance(self):
        assert covers(Decimal("149.9999995"), Decimal("150"))

    def test_covers_rejects_real_shortfall(self):
        assert not covers(Decimal("149.99"), Decimal("150"))

    def test_covers_custom_tolerance(self):
        assert covers(Decimal("149.99"), Decimal("150"), Decimal("0.01"))

    def test_is_dust(self):
        assert is_dust(Decimal("0.0000005"))
        assert not is_dust(Decimal("0.0004"))


def test_to_hex_hash_normalises_inputs() -> None:
    assert to_hex_hash("ab" * 32) == "0x" + "ab" * 32
    assert to_hex_hash("0x" + "cd" * 32) == "0x" + "cd" * 32
    assert to_hex_hash(HexBytes("0x" + "ef" * 32)) == "0x" + "ef" * 32
