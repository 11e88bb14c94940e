from pathlib import Path

import pytest

from offers_api.core.options import EligibilityOptions
from offers_api.observability.scheduler import get_scheduler_store
from offers_api.scheduling.config import JobDefinition, load_job_definitions
from offers_api.scheduling.runner import EligibilityJobScheduler

SCHEDULE_PATH = Path(__file__).resolve().parents[3] / "config" / "eligibility_schedule.toml"

_calls: list[dict] = []
_attempts = {"count": 0}


async def flaky_job(*, session_factory, dispatcher=None, options=None, label="x"):
    _attempts["count"] += 1
    if _attempts["count"] < 2:
        raise RuntimeError("boom")
    _calls.append({"label": label, "options": options})
    return {"processed": 1}


async def reporting_job(*, session_factory, dispatcher=None, options=None):
    return {"expired": 0, "error": "database unavailable"}


def sync_job(*, session_factory, dispatcher=None, options=None):
    return {}


def _job(task: str, **overrides) -> JobDefinition:
    fields = {
        "id": "job-alpha",
        "task": task,
        "cron": "* * * * *",
        "kwargs": {},
        "max_attempts": 3,
        "base_backoff_seconds": 0.0,
        "backoff_multiplier": 1.0,
        "max_backoff_seconds": 0.0,
    }
    fields.update(overrides)
    return JobDefinition(**fields)


def test_repository_schedule_registers_every_maintenance_job() -> None:
    config = load_job_definitions(SCHEDULE_PATH)

    assert config.timezone == "UTC"
    assert {job.id for job in config.jobs} == {
        "expire_outdated",
        "budget_sweep",
        "activate_new_offers",
        "queue_drain",
        "cleanup",
        "stale_recompute",
    }
    for job in config.jobs:
        assert EligibilityJobScheduler._resolve_callable(job)


def test_loader_skips_malformed_entries(tmp_path: Path) -> None:
    path = tmp_path / "schedule.toml"
    path.write_text(
        """
timezone = "Europe/Berlin"

[jobs.good]
task = "offers_api.jobs.eligibility.drain_eligibility_queue"
cron = "*/2 * * * *"
max_attempts = 0
kwargs = { limit = 10 }

[jobs.no_cron]
task = "offers_api.jobs.eligibility.drain_eligibility_queue"
"""
    )

    config = load_job_definitions(path)

    assert config.timezone == "Europe/Berlin"
    assert len(config.jobs) == 1
    assert config.jobs[0].id == "good"
    assert config.jobs[0].max_attempts == 1
    assert config.jobs[0].kwargs == {"limit": 10}


def test_loader_requires_existing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_job_definitions(tmp_path / "missing.toml")


@pytest.mark.asyncio
async def test_runner_retries_and_records_metrics(tmp_path: Path) -> None:
    _calls.clear()
    _attempts["count"] = 0
    options = EligibilityOptions(batch_size=10)
    scheduler = EligibilityJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml", options=options)

    runner = scheduler.build_runner(_job(f"{__name__}.flaky_job", kwargs={"label": "sweep"}))
    result = await runner()

    assert result == {"processed": 1}
    assert _calls == [{"label": "sweep", "options": options}]
    snapshot = get_scheduler_store().snapshot()
    assert snapshot.totals["runs"] == 1
    assert snapshot.totals["success"] == 1
    assert snapshot.totals["attempt_failures"] == 1
    assert snapshot.totals["retries"] == 1
    assert snapshot.jobs["job-alpha"]["last_result"] == {"processed": 1}


@pytest.mark.asyncio
async def test_runner_treats_error_summary_as_failure(tmp_path: Path) -> None:
    scheduler = EligibilityJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")

    runner = scheduler.build_runner(_job(f"{__name__}.reporting_job", max_attempts=2))
    assert await runner() is None

    snapshot = get_scheduler_store().snapshot()
    assert snapshot.totals["run_failures"] == 1
    assert snapshot.totals["attempt_failures"] == 2
    assert snapshot.jobs["job-alpha"]["last_error"] == "database unavailable"


def test_runner_rejects_sync_callables(tmp_path: Path) -> None:
    scheduler = EligibilityJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")

    with pytest.raises(TypeError):
        scheduler.build_runner(_job(f"{__name__}.sync_job"))


@pytest.mark.asyncio
async def test_scheduler_start_registers_enabled_jobs(tmp_path: Path) -> None:
    path = tmp_path / "schedule.toml"
    path.write_text(
        f"""
[jobs.enabled]
task = "{__name__}.reporting_job"
cron = "0 * * * *"

[jobs.disabled]
task = "{__name__}.reporting_job"
cron = "0 * * * *"
enabled = false
"""
    )
    scheduler = EligibilityJobScheduler(session_factory=lambda: None, config_path=path)

    scheduler.start()
    try:
        health = scheduler.health()
        assert health["running"] is True
        assert health["configured_jobs"] == 2
    finally:
        await scheduler.stop()

    assert scheduler.is_running is False
