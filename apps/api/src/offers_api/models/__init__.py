"""SQLAlchemy models package."""

from .customer_type import CustomerType, CustomerTypeEnum  # noqa: F401
from .eligibility import (  # noqa: F401
    EligibilityComputationLog,
    EligibilityComputationQueue,
    EligibilityEntityTypeEnum,
    NON_TERMINAL_QUEUE_STATUSES,
    OfferTypeEnum,
    QueueStatusEnum,
    UserOfferEligibility,
)
from .loyalty import LoyaltyProgram, LoyaltyProgramTier, MerchantLoyaltyReward  # noqa: F401
from .merchant import Merchant, MerchantStatusEnum, Outlet, ReviewStatusEnum  # noqa: F401
from .offer_cache import OfferListCache  # noqa: F401
from .offers import CashbackConfiguration, CashbackConfigurationTier, ExclusiveOffer  # noqa: F401

__all__ = [
    "CashbackConfiguration",
    "CashbackConfigurationTier",
    "CustomerType",
    "CustomerTypeEnum",
    "EligibilityComputationLog",
    "EligibilityComputationQueue",
    "EligibilityEntityTypeEnum",
    "ExclusiveOffer",
    "LoyaltyProgram",
    "LoyaltyProgramTier",
    "Merchant",
    "MerchantLoyaltyReward",
    "MerchantStatusEnum",
    "NON_TERMINAL_QUEUE_STATUSES",
    "OfferListCache",
    "OfferTypeEnum",
    "Outlet",
    "QueueStatusEnum",
    "ReviewStatusEnum",
    "UserOfferEligibility",
]
