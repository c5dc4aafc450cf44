"""
Core types for topup.

Re-exports from kungfu/combinators + shared aliases.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Never

from kungfu import Result, Ok, Error, Option, Some, Nothing, LazyCoroResult

from combinators import LCR, NoError

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

type Pure[T] = Lazy[T, Never]
"""Lazy computation that cannot fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════

CENT = Decimal("0.01")


def to_money(value: Decimal | float | int | str) -> Decimal:
    """Normalize a price to two decimal places."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "Option",
    "Some",
    "Nothing",
    "LazyCoroResult",
    # Re-exports from combinators
    "LCR",
    "NoError",
    # Aliases
    "Lazy",
    "Pure",
    # Money
    "CENT",
    "to_money",
)
