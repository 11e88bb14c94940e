"""Cache-aside storage for per-user offer listings."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from offers_api.db.dialect import dialect_insert
from offers_api.models.offer_cache import OfferListCache
from offers_api.services.eligibility.rules import ensure_utc, utcnow


def build_cache_key(user_id: str, query: Mapping[str, Any]) -> str:
    """Stable digest of the user plus every query parameter."""

    material = json.dumps({"user_id": user_id, **query}, sort_keys=True, default=str)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class OfferListCacheService:
    """Stores serialized listings keyed by query, indexed by user for invalidation.

    The service never commits; callers own the transaction boundary.
    """

    def __init__(self, session: AsyncSession, *, ttl_seconds: int = 300) -> None:
        self._session = session
        self._ttl = timedelta(seconds=ttl_seconds)

    async def get(self, cache_key: str, *, now: datetime | None = None) -> dict[str, Any] | None:
        entry = await self._session.get(OfferListCache, cache_key)
        if entry is None:
            return None
        reference = now or utcnow()
        if ensure_utc(entry.expires_at) <= reference:
            await self._session.delete(entry)
            await self._session.flush()
            return None
        return dict(entry.payload)

    async def set(self, cache_key: str, user_id: str, payload: Mapping[str, Any], *, now: datetime | None = None) -> None:
        if self._ttl.total_seconds() <= 0:
            return
        expires_at = (now or utcnow()) + self._ttl
        body = dict(payload)
        stmt = (
            dialect_insert(self._session, OfferListCache)
            .values(cache_key=cache_key, user_id=user_id, payload=body, expires_at=expires_at)
            .on_conflict_do_update(
                index_elements=[OfferListCache.cache_key],
                set_={"payload": body, "expires_at": expires_at, "user_id": user_id},
            )
        )
        await self._session.execute(stmt)

    async def invalidate_user(self, user_id: str) -> int:
        return await self.invalidate_users([user_id])

    async def invalidate_users(self, user_ids: Iterable[str]) -> int:
        unique_ids = sorted({user_id for user_id in user_ids if user_id})
        if not unique_ids:
            return 0
        removed = 0
        # Keep IN lists bounded for large fan-outs.
        for start in range(0, len(unique_ids), 500):
            chunk = unique_ids[start : start + 500]
            result = await self._session.execute(delete(OfferListCache).where(OfferListCache.user_id.in_(chunk)))
            removed += result.rowcount or 0
        if removed:
            logger.debug("Invalidated cached offer listings", users=len(unique_ids), entries=removed)
        return removed

    async def purge_expired(self, *, now: datetime | None = None) -> int:
        result = await self._session.execute(
            delete(OfferListCache).where(OfferListCache.expires_at <= (now or utcnow()))
        )
        return result.rowcount or 0

    async def count_for_user(self, user_id: str) -> int:
        result = await self._session.execute(select(OfferListCache.cache_key).where(OfferListCache.user_id == user_id))
        return len(result.scalars().all())


__all__ = ["OfferListCacheService", "build_cache_key"]
