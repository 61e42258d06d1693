"""
Request Tracker: FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() wires settings, the process-wide
       Dispatcher, middleware, exception handlers and routes.
Who:   Called by uvicorn (uvicorn tracker.main:app) and by the tests.

Lifecycle:
    Startup:
    1. Configure logging
    2. Report whether event delivery is enabled

    Shutdown:
    1. Wait for in-flight background deliveries
    2. Close the collector HTTP client
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tracker import __version__
from tracker.config import Settings, settings as default_settings
from tracker.middleware.request_id import RequestIDMiddleware, request_id_var
from tracker.middleware.tracking import RequestTrackingMiddleware
from tracker.routes import health
from tracker.services.dispatcher import Dispatcher, create_dispatcher

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once, at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # The collector client logs every request at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings
    dispatcher: Dispatcher = app.state.dispatcher

    setup_logging(app_settings.log_level)
    logger.info(
        "Request tracker starting up (version %s) on %s:%d",
        __version__,
        app_settings.backend_host,
        app_settings.backend_port,
    )
    if dispatcher.enabled:
        logger.info("Event delivery enabled for project %s", dispatcher.project_id)
    else:
        logger.warning(
            "Event delivery disabled: KEEN_PROJECT_ID and KEEN_WRITE_KEY "
            "(or KEEN_MASTER_KEY) are not set"
        )

    yield

    logger.info("Request tracker shutting down (%d pending deliveries)", dispatcher.pending)
    await dispatcher.aclose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Delivery faults never reach this layer (the Dispatcher absorbs them).
    The catch-all only keeps stack traces out of application responses.
    """

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    dispatcher: Optional[Dispatcher] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use; defaults to the module singleton.
        dispatcher:   Pre-built Dispatcher (tests inject one with a fake
                      transport); defaults to create_dispatcher(settings).
    """
    app_settings = app_settings or default_settings
    dispatcher = dispatcher or create_dispatcher(app_settings)

    app = FastAPI(
        title="Request Tracker",
        description="Buffers per-request analytics events and delivers them to an event collector.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.dispatcher = dispatcher

    # Middleware executes in REVERSE order of addition:
    # RequestID → RequestTracking → CORS → route
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(
        RequestTrackingMiddleware,
        dispatcher=dispatcher,
        policy=app_settings.tracking_policy(),
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)

    return app


app = create_app()
