from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./offers.db"
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None
    celery_default_queue: str = "offers-default"

    # Internal API security
    internal_api_key: str = ""

    # Feature toggles
    enable_background_jobs: bool = True
    enable_query_cache: bool = True

    # Eligibility materialization
    eligibility_batch_size: int = 1000
    eligibility_queue_drain_limit: int = 50
    eligibility_processing_timeout_minutes: int = 30
    eligibility_max_attempts: int = 3
    eligibility_retry_backoff_seconds: float = 2.0
    eligibility_task_queue: str = "eligibility-computation"

    # In-process worker pool (used when no Celery broker is configured)
    eligibility_worker_enabled: bool = True
    eligibility_worker_concurrency: int = Field(default=4, ge=1)

    # Read path cache
    offer_list_cache_ttl_seconds: int = 300

    # Retention windows
    queue_retention_days: int = 7
    computation_log_retention_days: int = 30
    inactive_eligibility_retention_days: int = 90

    # Periodic recomputation
    stale_eligibility_days: int = 7
    stale_recompute_limit: int = 100

    # Scheduler
    eligibility_scheduler_enabled: bool = True
    eligibility_job_schedule_path: str = "config/eligibility_schedule.toml"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
