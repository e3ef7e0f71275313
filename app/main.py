from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, HTTPException, status

from app.config import get_store_settings


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Runs before any store connection is opened and raises RuntimeError
    listing every problem so the operator can fix them in one restart.
    The in-memory backend needs no configuration.
    """

    from db.config import find_database_url, load_env_files

    load_env_files()

    errors: list[str] = []

    backend_raw = os.getenv("SCAN_STORE_BACKEND", "sql").strip().lower()
    if backend_raw not in {"sql", "memory"}:
        errors.append(
            f"SCAN_STORE_BACKEND='{backend_raw}' is not valid. Allowed values: ['memory', 'sql']."
        )
    elif backend_raw == "sql" and find_database_url() is None:
        errors.append(
            "No database URL configured. Set DATABASE_URL, or LOCAL_DATABASE_URL / "
            "CLOUD_DATABASE_URL, or use SCAN_STORE_BACKEND=memory."
        )

    executor_raw = os.getenv("SCAN_IMPORT_EXECUTOR", "bulk").strip().lower()
    if executor_raw not in {"bulk", "chunked"}:
        errors.append(
            f"SCAN_IMPORT_EXECUTOR='{executor_raw}' is not valid. Allowed values: ['bulk', 'chunked']."
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_schema() -> None:
    """
    Abort startup when the document table is missing. Does NOT auto-migrate.
    """

    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Confirm the document store is reachable on boot; release pooled connections on exit."""
    from app.services.scan_import_service import get_scan_import_service

    logger = logging.getLogger(__name__)
    settings = get_store_settings()
    get_scan_import_service().store.ping()
    logger.info("Document store reachable backend=%s", settings.backend)
    if settings.backend == "sql":
        _check_schema()
        logger.info("Database schema validated")
    try:
        yield
    finally:
        if settings.backend == "sql":
            from db.session import dispose_engine

            dispose_engine()
            logger.info("Database engine disposed")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Scanstore Import API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import scan_import_router
    from app.services.scan_import_service import get_scan_import_service
    from store.base import StoreUnavailableError

    application.include_router(scan_import_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        try:
            get_scan_import_service().store.ping()
        except StoreUnavailableError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Document store unavailable.",
            ) from exc
        return {"status": "ok", "store_backend": get_store_settings().backend}

    return application


app = create_app()
