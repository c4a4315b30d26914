"""Scaled-integer arithmetic for reward accounting.

All amounts are plain ints. Ratios (boost multipliers, reward per boosted
unit) carry a fixed scale of 1e18. Every division floors, so any rounding
error stays inside the program and is never paid out.
"""

from decimal import Decimal
from typing import Union

SCALE = 10**18

# Width of the settlement word, kept to reject rates that could not be
# represented by an on-chain deployment of the same ledger.
MAX_UINT256 = 2**256 - 1


def to_fixed(value: Union[Decimal, int, str]) -> int:
    """
    Convert a decimal ratio to its scaled integer form (rounding down).

    Args:
        value: Ratio such as Decimal("0.4") or "1.0"

    Returns:
        Scaled integer, e.g. 0.4 -> 400000000000000000
    """
    scaled = Decimal(str(value)) * SCALE
    if scaled < 0:
        raise ValueError(f"Fixed-point value must be non-negative, got {value}")
    return int(scaled)


def from_fixed(value: int) -> Decimal:
    """Convert a scaled integer back to a Decimal ratio."""
    return Decimal(value) / SCALE


def mul_fixed(amount: int, ratio: int) -> int:
    """amount * ratio / SCALE, rounded down."""
    return amount * ratio // SCALE


def mul_div(a: int, b: int, denominator: int) -> int:
    """a * b / denominator, rounded down."""
    if denominator <= 0:
        raise ZeroDivisionError("mul_div denominator must be positive")
    return a * b // denominator
