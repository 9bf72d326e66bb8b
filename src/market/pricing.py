"""Bonding curve pricing.

The curve prices unit ``n`` (zero-based) at ``n``. Buying ``quantity`` units
when ``supply`` are outstanding costs the sum of the price levels
``supply, supply + 1, ..., supply + quantity - 1``; selling ``quantity`` units
is priced over the same levels ending at the current supply.
"""

from __future__ import annotations

from typing import Final

from src.market.errors import ArithmeticOverflow

U64_MAX: Final[int] = 2**64 - 1


def ensure_u64(value: int) -> int:
    """Return ``value`` unchanged if it fits the unsigned 64-bit value range."""
    if value < 0:
        raise ValueError(f"Amount must be non-negative, got {value}")
    if value > U64_MAX:
        raise ArithmeticOverflow(value, U64_MAX)
    return value


def price(supply: int, quantity: int) -> int:
    """Cost of moving a subject from ``supply`` to ``supply + quantity`` shares.

    Closed form of ``sum(supply + i for i in range(quantity))``. The first unit
    of a fresh subject (``supply == 0``) is free without any special casing.

    Raises:
        ValueError: If supply or quantity is negative
        ArithmeticOverflow: If the result exceeds ``U64_MAX``
    """
    if supply < 0 or quantity < 0:
        raise ValueError(f"supply and quantity must be non-negative (got {supply}, {quantity})")
    total = quantity * supply + quantity * (quantity - 1) // 2
    return ensure_u64(total)
