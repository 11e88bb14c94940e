"""Materialized eligibility rows plus the recompute queue and audit log."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from offers_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OfferTypeEnum(str, Enum):
    CASHBACK = "CASHBACK"
    EXCLUSIVE = "EXCLUSIVE"
    LOYALTY = "LOYALTY"


class EligibilityEntityTypeEnum(str, Enum):
    """Recompute targets dispatched through the queue."""

    CASHBACK_CONFIG = "CASHBACK_CONFIG"
    EXCLUSIVE_OFFER = "EXCLUSIVE_OFFER"
    LOYALTY_PROGRAM = "LOYALTY_PROGRAM"


class QueueStatusEnum(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


NON_TERMINAL_QUEUE_STATUSES = (QueueStatusEnum.PENDING, QueueStatusEnum.PROCESSING)


class UserOfferEligibility(Base):
    """Precomputed fact: ``user_id`` may see ``offer_id`` at ``outlet_id``.

    Rows are replaced wholesale per offer by the materializer; the scheduler
    only flips ``is_active``/``has_budget_remaining`` in place.
    """

    __tablename__ = "user_offer_eligibility"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "outlet_id",
            "offer_type",
            "offer_id",
            name="uq_user_offer_eligibility_key",
        ),
        Index("ix_user_offer_eligibility_offer", "offer_type", "offer_id"),
        Index("ix_user_offer_eligibility_user_merchant", "user_id", "merchant_id"),
        Index("ix_user_offer_eligibility_read", "user_id", "is_active", "has_budget_remaining"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False)
    outlet_id = Column(UUID(as_uuid=True), nullable=False)
    offer_type = Column(
        SqlEnum(
            OfferTypeEnum,
            name="offer_type_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    offer_id = Column(UUID(as_uuid=True), nullable=False)
    merchant_id = Column(UUID(as_uuid=True), nullable=False)
    merchant_name = Column(String(255), nullable=True)
    merchant_category = Column(String(64), nullable=True)
    outlet_name = Column(String(255), nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    has_budget_remaining = Column(Boolean, nullable=False, default=True, server_default="true")
    min_percentage = Column(Numeric(5, 2), nullable=True)
    max_percentage = Column(Numeric(5, 2), nullable=True)
    computed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class EligibilityComputationQueue(Base):
    """Durable record of a recompute request and its dispatch lifecycle."""

    __tablename__ = "eligibility_computation_queue"
    __table_args__ = (
        Index("ix_eligibility_queue_entity", "entity_type", "entity_id", "status"),
        Index("ix_eligibility_queue_drain", "status", "priority", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    entity_type = Column(
        SqlEnum(
            EligibilityEntityTypeEnum,
            name="eligibility_entity_type_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    entity_id = Column(UUID(as_uuid=True), nullable=False)
    reason = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, default=50, server_default="50")
    status = Column(
        SqlEnum(
            QueueStatusEnum,
            name="queue_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=QueueStatusEnum.PENDING,
        server_default=QueueStatusEnum.PENDING.value,
    )
    attempts = Column(Integer, nullable=False, default=0, server_default="0")
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
    # Drain order tie-break; set client-side so SQLite keeps sub-second precision.
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class EligibilityComputationLog(Base):
    __tablename__ = "eligibility_computation_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False)
    operation = Column(String(32), nullable=False)
    records_affected = Column(Integer, nullable=False, default=0)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


__all__ = [
    "EligibilityComputationLog",
    "EligibilityComputationQueue",
    "EligibilityEntityTypeEnum",
    "NON_TERMINAL_QUEUE_STATUSES",
    "OfferTypeEnum",
    "QueueStatusEnum",
    "UserOfferEligibility",
]
