"""
FastAPI Application Factory & Configuration.

This module builds the HTTP surface around a :class:`StateEngine`:
1.  **Lifecycle**: the lifespan starts the engine (loads persisted state) and
    closes it on shutdown (drains mutations, flushes storage).
2.  **Middleware**: CORS for local frontends and developer tools.
3.  **Exception Handling**: engine errors map to structured JSON responses.
4.  **Routing**: health probe plus the state router.

Design Pattern
--------------
We use an **Application Factory** pattern (`create_app`), so tests can inject
an engine wired to in-memory storage and a fake dispatcher.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowstate import __version__
from flowstate.api.routers import state
from flowstate.api.schemas import HealthInfo
from flowstate.core.engine import StateEngine
from flowstate.core.errors import RemoteCallError, StateEngineError, StateValidationError
from flowstate.core.settings import get_logger

logger = get_logger(__name__)


def create_app(engine: StateEngine | None = None) -> FastAPI:
    """
    Construct and configure the FlowState FastAPI application.

    Parameters
    ----------
    engine:
        Engine to serve. When omitted, one is built from the global settings
        when the application starts.

    Returns
    -------
    FastAPI
        The configured ASGI application ready to be served by Uvicorn.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        served = engine if engine is not None else StateEngine()
        await served.start()
        app.state.engine = served
        logger.info("State engine started (%d pending actions)", len(served.queue.pending))
        try:
            yield
        finally:
            await served.aclose()
            logger.info("State engine closed")

    app = FastAPI(
        title="FlowState API",
        description="Inspection and control surface for the application-state engine",
        version=__version__,
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Exception Handlers
    # -----------------------------------------------------------------------
    @app.exception_handler(StateValidationError)
    async def validation_error_handler(request: Request, exc: StateValidationError) -> JSONResponse:
        """Rejected mutations -> 422 with the offending field."""
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid State", "field": exc.field, "detail": exc.message},
        )

    @app.exception_handler(RemoteCallError)
    async def remote_error_handler(request: Request, exc: RemoteCallError) -> JSONResponse:
        """Remote confirmation failed (state already rolled back) -> 502."""
        return JSONResponse(
            status_code=502,
            content={"error": "Remote Call Failed", "detail": str(exc)},
        )

    @app.exception_handler(StateEngineError)
    async def engine_error_handler(request: Request, exc: StateEngineError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "detail": str(exc)},
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    app.include_router(state.router)

    @app.get("/health", response_model=HealthInfo, tags=["System"])
    async def health_check(request: Request) -> HealthInfo:
        """Simple liveness probe."""
        served: StateEngine = request.app.state.engine
        return HealthInfo(environment=served.settings.environment, version=__version__)

    return app


__all__ = ["create_app"]
