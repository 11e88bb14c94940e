"""Explicit runtime options handed to eligibility components."""

from __future__ import annotations

from dataclasses import dataclass

from offers_api.core.settings import Settings, settings as default_settings


@dataclass(frozen=True, slots=True)
class EligibilityOptions:
    """Toggles and tunables for the materializer, queue, scheduler and cache.

    Built once from :class:`Settings` at startup and passed to constructors so
    components never consult ambient flags.
    """

    enable_background_jobs: bool = True
    enable_query_cache: bool = True
    batch_size: int = 1000
    queue_drain_limit: int = 50
    processing_timeout_minutes: int = 30
    max_attempts: int = 3
    retry_backoff_seconds: float = 2.0
    offer_list_cache_ttl_seconds: int = 300
    queue_retention_days: int = 7
    computation_log_retention_days: int = 30
    inactive_eligibility_retention_days: int = 90
    stale_eligibility_days: int = 7
    stale_recompute_limit: int = 100

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "EligibilityOptions":
        config = source or default_settings
        return cls(
            enable_background_jobs=config.enable_background_jobs,
            enable_query_cache=config.enable_query_cache,
            batch_size=max(config.eligibility_batch_size, 1),
            queue_drain_limit=max(config.eligibility_queue_drain_limit, 1),
            processing_timeout_minutes=max(config.eligibility_processing_timeout_minutes, 1),
            max_attempts=max(config.eligibility_max_attempts, 1),
            retry_backoff_seconds=max(config.eligibility_retry_backoff_seconds, 0.0),
            offer_list_cache_ttl_seconds=max(config.offer_list_cache_ttl_seconds, 0),
            queue_retention_days=config.queue_retention_days,
            computation_log_retention_days=config.computation_log_retention_days,
            inactive_eligibility_retention_days=config.inactive_eligibility_retention_days,
            stale_eligibility_days=config.stale_eligibility_days,
            stale_recompute_limit=max(config.stale_recompute_limit, 1),
        )


__all__ = ["EligibilityOptions"]
