"""Revenue splitting across co-assignees."""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Protocol

from fieldgate.config import settings

ZERO = Decimal("0")


class HasRevenue(Protocol):
    expected_revenue: Decimal | None
    assignee_ids: Iterable[str]


@dataclass(frozen=True)
class RevenueSplit:
    """Per-assignee shares; ``residual`` is what quantization removed."""

    shares: dict[str, Decimal] = field(default_factory=dict)
    residual: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return sum(self.shares.values(), ZERO)


def split_amount(
    amount: Decimal | None,
    assignee_ids: Iterable[str],
    minor_unit: Decimal | None = None,
) -> RevenueSplit:
    """
    Split ``amount`` equally in whole minor units.

    Each assignee receives ``floor(units / k)`` units and the leftover units go
    one each to the first assignees in ascending id order, so the shares
    always add up to the quantized amount.
    """
    unit = minor_unit if minor_unit is not None else settings.revenue_minor_unit
    workers = sorted(set(assignee_ids))

    if amount is None:
        return RevenueSplit(shares={w: ZERO for w in workers})

    quantized = amount.quantize(unit, rounding=ROUND_DOWN)
    residual = amount - quantized
    if not workers:
        return RevenueSplit(shares={}, residual=amount)

    units = int(quantized / unit)
    base, leftover = divmod(units, len(workers))
    shares = {
        worker: (base + (1 if index < leftover else 0)) * unit
        for index, worker in enumerate(workers)
    }
    return RevenueSplit(shares=shares, residual=residual)


def revenue_split(task: HasRevenue, minor_unit: Decimal | None = None) -> RevenueSplit:
    """Split a task's expected revenue across all of its assignees."""
    return split_amount(task.expected_revenue, task.assignee_ids, minor_unit)


def is_whole_minor_units(amount: Decimal, minor_unit: Decimal | None = None) -> bool:
    """True when ``amount`` is an exact multiple of the minor unit."""
    unit = minor_unit if minor_unit is not None else settings.revenue_minor_unit
    return amount % unit == 0
