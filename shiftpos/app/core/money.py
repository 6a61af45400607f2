"""Fixed-point money helpers.

Amounts are stored and computed as integers in minor units (1/100 of the
major unit).  Conversion to and from ``Decimal`` happens only at the API
boundary.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

MINOR_UNITS = 100
BASIS_POINTS = 10_000

Q = Decimal("0.01")


def to_minor(value: Decimal | int | str) -> int:
    amount = Decimal(str(value)) * MINOR_UNITS
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor(value: int) -> Decimal:
    return (Decimal(value) / MINOR_UNITS).quantize(Q)


def to_basis_points(percent: Decimal | int | str) -> int:
    """``Decimal("12.5")`` percent -> 1250 basis points."""
    bps = Decimal(str(percent)) * 100
    return int(bps.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_basis_points(bps: int) -> Decimal:
    return (Decimal(bps) / 100).quantize(Q)


def apply_basis_points(amount: int, bps: int) -> int:
    """``amount * bps / 10000`` rounded half-up, in integer arithmetic."""
    return (amount * bps * 2 + BASIS_POINTS) // (BASIS_POINTS * 2)


def allocate(total: int, weights: list[int]) -> list[int]:
    """Split *total* across *weights* proportionally (largest remainder).

    The parts always sum to *total*.  Ties on the remainder go to the
    earlier weight.
    """
    weight_sum = sum(weights)
    if total == 0 or weight_sum == 0:
        return [0] * len(weights)
    parts = [total * w // weight_sum for w in weights]
    remainders = [total * w % weight_sum for w in weights]
    leftover = total - sum(parts)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        parts[i] += 1
    return parts


def prorate(amount: int, part: int, whole: int) -> int:
    """``floor(amount * part / whole)``; zero when *whole* is zero."""
    if whole <= 0:
        return 0
    return amount * part // whole
