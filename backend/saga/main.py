"""
Heimursaga API — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   `create_app()` assembles middleware, exception handlers and routers;
       `lifespan()` wires event listeners, Sentry and the scheduler.
Who:   uvicorn (`uvicorn saga.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                     FastAPI App                          │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐ ┌────────────┐  │
    │  │ Rate Limit │→│ Req ID   │→│ Logging │→│ GZip, CORS │  │
    │  └────────────┘ └──────────┘ └─────────┘ └────────────┘  │
    │                                                          │
    │  Routers: health, auth, explorers, user, entries,        │
    │           comments, expeditions, flags, messages,        │
    │           sponsor, payouts, stripe, upload, search,      │
    │           admin                                          │
    │                                                          │
    │  In-process: event listeners, APScheduler jobs           │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate configuration (fatal only when ENVIRONMENT=production)
    3. Initialise Sentry when SENTRY_DSN is set
    4. Create the storage directory
    5. Register event listeners, start the scheduler

    Shutdown:
    1. Stop the scheduler
    2. Wait for in-flight event listeners
    3. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from saga import __version__
from saga.config import settings
from saga.database import dispose_engine
from saga.exceptions import register_exception_handlers
from saga.listeners import register_event_listeners
from saga.middleware.logging import RequestLoggingMiddleware
from saga.middleware.rate_limit import RateLimitMiddleware
from saga.middleware.request_id import RequestIDMiddleware
from saga.routes import (
    admin,
    auth,
    comments,
    entries,
    expeditions,
    explorers,
    flags,
    health,
    messages,
    payouts,
    search,
    sponsor,
    stripe,
    upload,
    user,
)
from saga.scheduler import shutdown_scheduler, start_scheduler
from saga.services.event_service import event_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════


def setup_logging() -> None:
    """
    Configure the root logger once for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Request ids are added by the access logger, not the format string.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def setup_sentry() -> None:
    if not settings.sentry_dsn:
        logger.info("Sentry disabled (SENTRY_DSN not set)")
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"heimursaga-api@{__version__}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
    )
    logger.info("Sentry initialised for environment %s", settings.environment)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Heimursaga API %s starting up (%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        if settings.is_production:
            logger.critical("Configuration error: %s", e)
            raise
        logger.warning("%s", e)

    setup_sentry()

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    register_event_listeners()
    if settings.scheduler_enabled:
        start_scheduler()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Heimursaga API shutting down...")
    shutdown_scheduler()
    await event_service.drain()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════


def create_app() -> FastAPI:
    """Assemble middleware, exception handlers and routers."""
    app = FastAPI(
        title="Heimursaga API",
        description=(
            "Journaling and sponsorship platform for explorers: entries, expeditions, "
            "follows, Explorer Pro subscriptions and Stripe-backed sponsorships."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware ────────────────────────────────────────────────────────
    # Executes in reverse order of addition: RateLimit runs first, CORS last.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    # ── Routers ───────────────────────────────────────────────────────────
    for module in (
        health,
        auth,
        explorers,
        user,
        entries,
        comments,
        expeditions,
        flags,
        messages,
        sponsor,
        payouts,
        stripe,
        upload,
        search,
        admin,
    ):
        app.include_router(module.router)

    return app


app = create_app()
