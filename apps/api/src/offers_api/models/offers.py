"""Cashback configuration and exclusive offer models."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offers_api.db.base import Base
from offers_api.models.merchant import (
    cashback_configuration_outlets,
    exclusive_offer_outlets,
    review_status_column,
)


class CashbackConfiguration(Base):
    """Tiered cashback campaign run by a merchant across selected outlets."""

    __tablename__ = "cashback_configurations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    review_status = review_status_column()
    eligible_customer_types = Column(JSON, nullable=False, default=list)
    net_cashback_budget = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    used_cashback_budget = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    eligibility_computed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    merchant = relationship("Merchant", back_populates="cashback_configurations")
    outlets = relationship(
        "Outlet",
        secondary=cashback_configuration_outlets,
        back_populates="cashback_configurations",
    )
    tiers = relationship(
        "CashbackConfigurationTier",
        back_populates="configuration",
        cascade="all, delete-orphan",
        order_by="CashbackConfigurationTier.cashback_percentage",
    )


class CashbackConfigurationTier(Base):
    __tablename__ = "cashback_configuration_tiers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    cashback_configuration_id = Column(
        UUID(as_uuid=True),
        ForeignKey("cashback_configurations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    cashback_percentage = Column(Numeric(5, 2), nullable=False)
    min_spend = Column(Numeric(14, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    review_status = review_status_column()
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    configuration = relationship("CashbackConfiguration", back_populates="tiers")


class ExclusiveOffer(Base):
    """Time-boxed merchant offer; start and end dates are mandatory."""

    __tablename__ = "exclusive_offers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    review_status = review_status_column()
    eligible_customer_types = Column(JSON, nullable=False, default=list)
    net_offer_budget = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    used_offer_budget = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    eligibility_computed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    merchant = relationship("Merchant", back_populates="exclusive_offers")
    outlets = relationship(
        "Outlet",
        secondary=exclusive_offer_outlets,
        back_populates="exclusive_offers",
    )


__all__ = ["CashbackConfiguration", "CashbackConfigurationTier", "ExclusiveOffer"]
