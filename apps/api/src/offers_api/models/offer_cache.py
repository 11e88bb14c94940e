"""Persistent cache for per-user offer listings."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, JSON, String, func

from offers_api.db.base import Base


class OfferListCache(Base):
    """Cache-aside entry; ``user_id`` is kept as a reverse index for invalidation."""

    # meta: cache-layer: persistent
    __tablename__ = "offer_list_cache"

    cache_key = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = ["OfferListCache"]
