"""Unit tests for the pure eligibility rules."""

import datetime as dt
from decimal import Decimal
from types import SimpleNamespace

from offers_api.models.merchant import MerchantStatusEnum, ReviewStatusEnum
from offers_api.services.eligibility import rules

NOW = dt.datetime(2025, 6, 1, 12, 0, tzinfo=dt.timezone.utc)


def _live(**fields):
    base = {"is_active": True, "deleted_at": None, "review_status": ReviewStatusEnum.APPROVED}
    base.update(fields)
    return SimpleNamespace(**base)


def _merchant(status=MerchantStatusEnum.ACTIVE):
    return SimpleNamespace(status=status)


def _cashback(**overrides):
    fields = {
        "merchant": _merchant(),
        "tiers": [_live(cashback_percentage=Decimal("4"))],
        "used_cashback_budget": Decimal("10"),
        "net_cashback_budget": Decimal("100"),
    }
    fields.update(overrides)
    return _live(**fields)


def test_cashback_requires_live_tiers_budget_and_active_merchant() -> None:
    assert rules.is_cashback_config_eligible(_cashback())
    assert not rules.is_cashback_config_eligible(_cashback(tiers=[_live(cashback_percentage=1, is_active=False)]))
    assert not rules.is_cashback_config_eligible(_cashback(used_cashback_budget=Decimal("100")))
    assert not rules.is_cashback_config_eligible(_cashback(merchant=_merchant(MerchantStatusEnum.SUSPENDED)))
    assert not rules.is_cashback_config_eligible(_cashback(review_status=ReviewStatusEnum.PENDING))
    assert not rules.is_cashback_config_eligible(_cashback(deleted_at=NOW))


def test_exclusive_offer_window_is_inclusive_and_naive_dates_are_utc() -> None:
    offer = _live(
        merchant=_merchant(),
        start_date=NOW.replace(tzinfo=None),
        end_date=NOW + dt.timedelta(days=1),
        used_offer_budget=0,
        net_offer_budget=50,
    )

    assert rules.is_exclusive_offer_eligible(offer, NOW)
    assert rules.is_exclusive_offer_eligible(offer, NOW + dt.timedelta(days=1))
    assert not rules.is_exclusive_offer_eligible(offer, NOW - dt.timedelta(seconds=1))
    assert not rules.is_exclusive_offer_eligible(offer, NOW + dt.timedelta(days=2))


def test_exclusive_offer_without_dates_is_ineligible() -> None:
    offer = _live(merchant=_merchant(), start_date=None, end_date=NOW, used_offer_budget=0, net_offer_budget=5)

    assert not rules.is_exclusive_offer_eligible(offer, NOW)


def test_zero_budget_is_exhausted() -> None:
    assert not rules.has_budget_remaining(Decimal("0"), Decimal("0"))
    assert rules.has_budget_remaining(None, "0.01")


def test_loyalty_points_limit_unset_or_zero_means_uncapped() -> None:
    assert rules.has_points_budget_remaining(Decimal("1000000"), None)
    assert rules.has_points_budget_remaining(Decimal("5"), Decimal("0"))
    assert not rules.has_points_budget_remaining(Decimal("10"), Decimal("10"))


def test_loyalty_program_needs_tiers_and_rewards() -> None:
    program = _live(
        merchant=_merchant(),
        tiers=[_live()],
        rewards=[_live()],
        points_used_in_period=0,
        points_issued_limit=None,
    )
    assert rules.is_loyalty_program_eligible(program)

    program.rewards = [_live(review_status=ReviewStatusEnum.REJECTED)]
    assert not rules.is_loyalty_program_eligible(program)


def test_percentage_range_spans_tiers() -> None:
    tiers = [SimpleNamespace(cashback_percentage=value) for value in ("7.5", "2", "12")]

    result = rules.calculate_percentage_range(tiers)

    assert result == rules.PercentageRange(minimum=Decimal("2"), maximum=Decimal("12"))
    assert rules.calculate_percentage_range([]) is None


def test_merchant_missing_is_inactive() -> None:
    assert not rules.is_merchant_active(None)
    assert rules.is_merchant_active(SimpleNamespace(status="Active"))
