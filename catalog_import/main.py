"""
FastAPI application entry point.

``create_app`` wires the import services together and stores them on
``app.state``; the module-level ``app`` uses the settings from the
environment. Tests call ``create_app`` with their own engine and settings.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, settings
from .core.logging_config import configure_logging
from .api.routers import imports, jobs
from .db.models import SqlRecordStore
from .db.session import build_engine, check_connection
from .domain.imports.executor import ImportDispatcher, ImportExecutor
from .domain.imports.models import EmptyFilePolicy
from .domain.imports.progress import ProgressReporter
from .domain.imports.registry import JobRegistry
from .domain.imports.retry import RetryCoordinator
from .domain.imports.table_schemas import build_default_validators
from .domain.imports.validators import ValidatorRegistry

logger = logging.getLogger(__name__)

PURGE_INTERVAL_SECONDS = 60 * 60


async def _purge_expired_jobs(registry: JobRegistry, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        registry.purge_expired()


def create_app(
    app_settings: Optional[Settings] = None,
    *,
    engine=None,
    validators: Optional[ValidatorRegistry] = None,
) -> FastAPI:
    """Build the API with its own registry, dispatcher and record store."""
    config = app_settings or settings
    configure_logging(config.log_level)

    registry = JobRegistry(retention_hours=config.job_retention_hours)
    validator_registry = validators or build_default_validators()
    store = SqlRecordStore(engine or build_engine(config.database_url))
    executor = ImportExecutor(
        registry,
        validator_registry,
        store,
        progress_every_rows=config.progress_update_interval_rows,
        progress_every_seconds=config.progress_update_interval_seconds,
        empty_file_policy=EmptyFilePolicy(config.empty_file_policy),
    )
    dispatcher = ImportDispatcher(
        registry,
        executor,
        max_concurrent_jobs=config.max_concurrent_jobs,
        csv_chunk_size=config.csv_chunk_size,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Check the database and create storage on startup; drain workers and wake long-polls on shutdown."""
        if check_connection(store.engine):
            store.create_tables()
        logger.info(
            "Import service ready: tables=%s workers=%d",
            ", ".join(validator_registry.tables()),
            config.max_concurrent_jobs,
        )
        purge_task = asyncio.create_task(_purge_expired_jobs(registry, PURGE_INTERVAL_SECONDS))

        yield  # Application runs here

        purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await purge_task
        registry.close()
        dispatcher.shutdown(wait=True)

    app = FastAPI(
        title="Catalog Import API",
        version="1.0.0",
        description="Bulk CSV/Excel imports into the master-data tables with progress tracking and per-row retry",
        lifespan=lifespan,
    )

    app.state.registry = registry
    app.state.validators = validator_registry
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.progress = ProgressReporter(registry)
    app.state.retry = RetryCoordinator(validator_registry, store)
    app.state.upload_max_bytes = config.upload_max_file_size_mb * 1024 * 1024

    allowed_origins = [origin.strip() for origin in config.allowed_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(jobs.router)
    app.include_router(imports.router)

    @app.get("/health")
    async def health_check():
        """Liveness check."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "service": "catalog-import-api",
            "jobs_tracked": len(registry),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("catalog_import.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
