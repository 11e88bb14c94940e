from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from offers_api.core.options import EligibilityOptions
from offers_api.core.settings import settings
from offers_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import EligibilityJobScheduler
from .services.eligibility.dispatch import CeleryEligibilityDispatcher, EligibilityDispatcher
from .workers import EligibilityWorkerPool


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


def _resolve_schedule_path() -> Path:
    schedule_path = Path(settings.eligibility_job_schedule_path)
    if schedule_path.is_absolute():
        return schedule_path
    # apps/api/src/offers_api/app.py -> repository root
    return Path(__file__).resolve().parents[4] / schedule_path


@asynccontextmanager
async def lifespan(app: FastAPI):
    options = EligibilityOptions.from_settings()
    worker_pool: EligibilityWorkerPool | None = None
    dispatcher: EligibilityDispatcher | None = None

    if settings.eligibility_worker_enabled and settings.celery_broker_url:
        dispatcher = CeleryEligibilityDispatcher(queue=settings.eligibility_task_queue)
        logger.info("Eligibility Celery dispatch enabled", queue=settings.eligibility_task_queue)
    elif settings.eligibility_worker_enabled:
        worker_pool = EligibilityWorkerPool(
            _session_factory,
            concurrency=settings.eligibility_worker_concurrency,
            options=options,
        )
        worker_pool.start()
        dispatcher = worker_pool
        logger.info(
            "Eligibility worker pool enabled (in-process)",
            concurrency=settings.eligibility_worker_concurrency,
        )
    else:
        logger.info(
            "Eligibility worker disabled",
            reason="eligibility_worker_enabled is false",
        )

    schedule_path = _resolve_schedule_path()
    job_scheduler = EligibilityJobScheduler(
        session_factory=_session_factory,
        config_path=schedule_path,
        dispatcher=dispatcher,
        options=options,
    )

    app.state.eligibility_options = options
    app.state.eligibility_dispatcher = dispatcher
    app.state.eligibility_worker_pool = worker_pool
    app.state.eligibility_scheduler = job_scheduler

    scheduler_enabled = settings.eligibility_scheduler_enabled and options.enable_background_jobs
    if scheduler_enabled:
        try:
            job_scheduler.start()
        except FileNotFoundError as exc:
            logger.exception("Eligibility job scheduler failed to start", error=str(exc))
        else:
            logger.info("Eligibility job scheduler enabled", schedule_path=str(schedule_path))
    else:
        logger.info(
            "Eligibility job scheduler disabled",
            reason="eligibility_scheduler_enabled or enable_background_jobs is false",
        )

    try:
        yield
    finally:
        if job_scheduler.is_running:
            await job_scheduler.stop()
        if worker_pool and worker_pool.is_running:
            await worker_pool.stop()


def create_app() -> FastAPI:
    """Application factory for the offers eligibility service."""
    configure_logging(
        service_name="offers-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Offers API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="offers-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
