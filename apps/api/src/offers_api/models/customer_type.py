from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from offers_api.db.base import Base


class CustomerTypeEnum(str, Enum):
    """Depth of a user's relationship with a merchant, shallowest first."""

    NON_CUSTOMER = "NonCustomer"
    NEW = "New"
    INFREQUENT = "Infrequent"
    OCCASIONAL = "Occasional"
    REGULAR = "Regular"
    VIP = "Vip"


class CustomerType(Base):
    """Relationship row owned by the merchant-customer system; read-only here."""

    __tablename__ = "customer_types"
    __table_args__ = (
        UniqueConstraint("user_id", "merchant_id", name="uq_customer_types_user_merchant"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(
        SqlEnum(
            CustomerTypeEnum,
            name="customer_type_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = ["CustomerType", "CustomerTypeEnum"]
