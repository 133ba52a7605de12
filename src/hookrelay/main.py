# src/hookrelay/main.py
"""Main entry point for the Hook Relay application."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from hookrelay.api.realtime import router as realtime_router
from hookrelay.api.v1 import admin_router, auth_router, channels_router, guilds_router
from hookrelay.core.errors import RelayError
from hookrelay.core.logs import configure_logging
from hookrelay.core.settings import settings
from hookrelay.db.session import create_tables
from hookrelay.services.runtime import RelayRuntime


def create_app(runtime: RelayRuntime | None = None, *, init_db: bool = True) -> FastAPI:
    """Build the application around a relay runtime.

    Args:
        runtime: Pre-built runtime (tests inject one with fake upstreams).
        init_db: Create missing tables on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        if init_db:
            create_tables()
        relay: RelayRuntime = app.state.runtime
        await relay.start()
        try:
            yield
        finally:
            await relay.close()

    app = FastAPI(
        title=settings.app_name,
        description="Relays chat channels to browser clients through per-user webhooks",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.runtime = runtime or RelayRuntime()

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add GZip middleware for compression
    app.add_middleware(GZipMiddleware)

    @app.exception_handler(RelayError)
    async def relay_error_handler(_request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_ack()})

    # Include API routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(guilds_router, prefix="/api")
    app.include_router(channels_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    app.include_router(realtime_router)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint with relay counters."""
        relay: RelayRuntime = app.state.runtime
        return {"status": "ok", **relay.stats()}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("hookrelay.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
