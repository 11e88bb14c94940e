"""Query filter vocabulary for offer listings."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


class CashbackPercentageFilter(str, Enum):
    UNDER_5 = "UNDER_5"
    BETWEEN_5_10 = "BETWEEN_5_10"
    ABOVE_10 = "ABOVE_10"


# Bounds are optional on either side; a row matches when its tier range overlaps.
PERCENTAGE_FILTER_RANGES: dict[CashbackPercentageFilter, tuple[Decimal | None, Decimal | None]] = {
    CashbackPercentageFilter.UNDER_5: (None, Decimal("5")),
    CashbackPercentageFilter.BETWEEN_5_10: (Decimal("5"), Decimal("10")),
    CashbackPercentageFilter.ABOVE_10: (Decimal("10"), None),
}


def percentage_bounds(value: CashbackPercentageFilter | str) -> tuple[Decimal | None, Decimal | None]:
    return PERCENTAGE_FILTER_RANGES[CashbackPercentageFilter(value)]


__all__ = ["CashbackPercentageFilter", "PERCENTAGE_FILTER_RANGES", "percentage_bounds"]
