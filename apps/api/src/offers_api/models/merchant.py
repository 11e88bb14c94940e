"""Merchant, outlet and review-status models shared by every offer type."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, ForeignKey, String, Table, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offers_api.db.base import Base


class MerchantStatusEnum(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"


class ReviewStatusEnum(str, Enum):
    """Approval state of a merchant-authored record."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


def review_status_column() -> Column:
    return Column(
        SqlEnum(
            ReviewStatusEnum,
            name="review_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ReviewStatusEnum.PENDING,
        server_default=ReviewStatusEnum.PENDING.value,
    )


cashback_configuration_outlets = Table(
    "cashback_configuration_outlets",
    Base.metadata,
    Column(
        "cashback_configuration_id",
        UUID(as_uuid=True),
        ForeignKey("cashback_configurations.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("outlet_id", UUID(as_uuid=True), ForeignKey("outlets.id", ondelete="CASCADE"), primary_key=True),
)


exclusive_offer_outlets = Table(
    "exclusive_offer_outlets",
    Base.metadata,
    Column(
        "exclusive_offer_id",
        UUID(as_uuid=True),
        ForeignKey("exclusive_offers.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("outlet_id", UUID(as_uuid=True), ForeignKey("outlets.id", ondelete="CASCADE"), primary_key=True),
)


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    business_name = Column(String(255), nullable=False)
    category = Column(String(64), nullable=True, index=True)
    status = Column(
        SqlEnum(
            MerchantStatusEnum,
            name="merchant_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=MerchantStatusEnum.ACTIVE,
        server_default=MerchantStatusEnum.ACTIVE.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    outlets = relationship("Outlet", back_populates="merchant", cascade="all, delete-orphan")
    cashback_configurations = relationship("CashbackConfiguration", back_populates="merchant")
    exclusive_offers = relationship("ExclusiveOffer", back_populates="merchant")
    loyalty_program = relationship("LoyaltyProgram", back_populates="merchant", uselist=False)


class Outlet(Base):
    """Physical or virtual point of sale belonging to a merchant."""

    __tablename__ = "outlets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    review_status = review_status_column()
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    merchant = relationship("Merchant", back_populates="outlets")
    cashback_configurations = relationship(
        "CashbackConfiguration",
        secondary=cashback_configuration_outlets,
        back_populates="outlets",
    )
    exclusive_offers = relationship(
        "ExclusiveOffer",
        secondary=exclusive_offer_outlets,
        back_populates="outlets",
    )


__all__ = [
    "Merchant",
    "MerchantStatusEnum",
    "Outlet",
    "ReviewStatusEnum",
    "cashback_configuration_outlets",
    "exclusive_offer_outlets",
    "review_status_column",
]
