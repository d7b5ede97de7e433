"""Utility functions for amount handling and transaction hashes."""

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

from hexbytes import HexBytes

from .exceptions import ValidationError

DEFAULT_TOLERANCE = Decimal("0.000001")


def to_decimal(value: float | int | str | Decimal, field: str = "amount") -> Decimal:
    """Coerce user input into a Decimal without float artefacts."""
    if isinstance(value, Decimal):
        quantity = value
    else:
        try:
            quantity = Decimal(str(value))
        except (ValueError, InvalidOperation) as exc:
            raise ValidationError(
                f"Invalid {field}", field=field, value=value, details={"error": str(exc)}
            ) from exc

    if not quantity.is_finite():
        raise ValidationError(f"Invalid {field}", field=field, value=value)
    return quantity


def to_base_units(amount: float | int | str | Decimal, decimals: int) -> int:
    """Convert a human amount into integer base units, truncating extra precision."""
    quantity = to_decimal(amount)
    if quantity < 0:
        raise ValidationError("Amount cannot be negative", field="amount", value=amount)

    scaled = quantity.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(units: int, decimals: int) -> Decimal:
    """Convert integer base units into a human Decimal amount."""
    return Decimal(int(units)).scaleb(-decimals)


def quantize_down(amount: Decimal, decimals: int) -> Decimal:
    """Truncate an amount to the precision the token can represent."""
    return from_base_units(to_base_units(amount, decimals), decimals)


def covers(available: Decimal, required: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    """Return True when ``available`` meets ``required`` within tolerance."""
    return available >= required - tolerance


def is_dust(amount: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    return amount <= tolerance


def to_hex_hash(tx_hash: Any) -> str:
    """Normalise a transaction hash returned by web3 into a 0x-prefixed string."""
    if isinstance(tx_hash, str):
        return tx_hash if tx_hash.startswith("0x") else f"0x{tx_hash}"
    return HexBytes(tx_hash).to_0x_hex()
