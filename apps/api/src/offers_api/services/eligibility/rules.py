"""Pure eligibility rules evaluated against fully loaded offer entities.

Nothing here touches the database. The functions accept ORM instances or any
object exposing the same attributes, which keeps them trivially testable.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Sequence

from offers_api.models.merchant import MerchantStatusEnum, ReviewStatusEnum


@dataclass(frozen=True, slots=True)
class PercentageRange:
    minimum: Decimal
    maximum: Decimal


@dataclass(frozen=True, slots=True)
class ValidityWindow:
    valid_from: dt.datetime
    valid_until: dt.datetime | None


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def ensure_utc(value: dt.datetime | None) -> dt.datetime | None:
    """Treat naive timestamps (SQLite round-trips) as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def is_approved(record: Any) -> bool:
    status = getattr(record, "review_status", None)
    return status == ReviewStatusEnum.APPROVED or status == ReviewStatusEnum.APPROVED.value


def is_live(record: Any) -> bool:
    """Active, approved and not soft-deleted."""

    return bool(getattr(record, "is_active", False)) and getattr(record, "deleted_at", None) is None and is_approved(record)


def is_merchant_active(merchant: Any) -> bool:
    if merchant is None:
        return False
    status = getattr(merchant, "status", None)
    return status == MerchantStatusEnum.ACTIVE or status == MerchantStatusEnum.ACTIVE.value


def live_records(records: Iterable[Any] | None) -> list[Any]:
    return [record for record in records or () if is_live(record)]


def has_budget_remaining(used: Any, total: Any) -> bool:
    return _as_decimal(used) < _as_decimal(total)


def has_points_budget_remaining(used: Any, limit: Any) -> bool:
    # An unset (or zero) limit means the program is uncapped.
    if not limit:
        return True
    return _as_decimal(used) < _as_decimal(limit)


def calculate_percentage_range(tiers: Sequence[Any]) -> PercentageRange | None:
    if not tiers:
        return None
    percentages = [_as_decimal(tier.cashback_percentage) for tier in tiers]
    return PercentageRange(minimum=min(percentages), maximum=max(percentages))


def is_cashback_config_eligible(config: Any) -> bool:
    return (
        is_live(config)
        and is_merchant_active(config.merchant)
        and len(live_records(config.tiers)) > 0
        and has_budget_remaining(config.used_cashback_budget, config.net_cashback_budget)
    )


def is_exclusive_offer_eligible(offer: Any, now: dt.datetime | None = None) -> bool:
    reference = ensure_utc(now) or utcnow()
    start_date = ensure_utc(offer.start_date)
    end_date = ensure_utc(offer.end_date)
    if start_date is None or end_date is None:
        return False
    return (
        is_live(offer)
        and is_merchant_active(offer.merchant)
        and start_date <= reference <= end_date
        and has_budget_remaining(offer.used_offer_budget, offer.net_offer_budget)
    )


def is_loyalty_program_eligible(program: Any) -> bool:
    return (
        is_live(program)
        and is_merchant_active(program.merchant)
        and len(live_records(program.tiers)) > 0
        and len(live_records(program.rewards)) > 0
        and has_points_budget_remaining(program.points_used_in_period, program.points_issued_limit)
    )


__all__ = [
    "PercentageRange",
    "ValidityWindow",
    "calculate_percentage_range",
    "ensure_utc",
    "has_budget_remaining",
    "has_points_budget_remaining",
    "is_approved",
    "is_cashback_config_eligible",
    "is_exclusive_offer_eligible",
    "is_live",
    "is_loyalty_program_eligible",
    "is_merchant_active",
    "live_records",
    "utcnow",
]
