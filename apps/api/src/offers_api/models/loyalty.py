"""Merchant loyalty program models."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offers_api.db.base import Base
from offers_api.models.customer_type import CustomerTypeEnum
from offers_api.models.merchant import review_status_column


class LoyaltyProgram(Base):
    """Points program; a merchant runs at most one."""

    __tablename__ = "loyalty_programs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("merchants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    review_status = review_status_column()
    points_issued_limit = Column(Numeric(14, 2), nullable=True)
    points_used_in_period = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    eligibility_computed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    merchant = relationship("Merchant", back_populates="loyalty_program")
    tiers = relationship(
        "LoyaltyProgramTier",
        back_populates="program",
        cascade="all, delete-orphan",
        order_by=lambda: [LoyaltyProgramTier.position, LoyaltyProgramTier.created_at],
    )
    rewards = relationship(
        "MerchantLoyaltyReward",
        back_populates="program",
        cascade="all, delete-orphan",
    )


class LoyaltyProgramTier(Base):
    """Tier unlocked for users at or above ``min_customer_type``."""

    __tablename__ = "loyalty_program_tiers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    loyalty_program_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loyalty_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    position = Column(Integer, nullable=False, default=0, server_default="0")
    min_customer_type = Column(
        SqlEnum(
            CustomerTypeEnum,
            name="customer_type_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    points_multiplier = Column(Numeric(6, 2), nullable=False, default=1, server_default="1")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    review_status = review_status_column()
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    program = relationship("LoyaltyProgram", back_populates="tiers")


class MerchantLoyaltyReward(Base):
    __tablename__ = "merchant_loyalty_rewards"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    loyalty_program_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loyalty_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    points_cost = Column(Numeric(14, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    review_status = review_status_column()
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    program = relationship("LoyaltyProgram", back_populates="rewards")


__all__ = ["LoyaltyProgram", "LoyaltyProgramTier", "MerchantLoyaltyReward"]
