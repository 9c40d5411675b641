"""
PiShield v1 - Main Application
FastAPI backend with REST endpoints and a WebSocket live-update channel
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pishield.api import actions_router, alerts_router, auth_router, dashboard_router, devices_router
from pishield.config import settings
from pishield.db import RowStore
from pishield.detectors.simulator import DetectionSimulator
from pishield.realtime import BroadcastService, ClientRegistry
from pishield.realtime.server import router as ws_router
from pishield.schemas import HealthResponse
from pishield.security import SupabaseAuthClient
from pishield.stats import StatAggregator

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def validation_message(exc: RequestValidationError) -> str:
    """Condense pydantic errors into one client-facing sentence."""
    errors = exc.errors()
    missing = [str(e["loc"][-1]) for e in errors if e.get("type") == "missing"]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"

    if not errors:
        return "Invalid request"
    first = errors[0]
    message = str(first.get("msg", "Invalid request"))
    # Custom validators already phrase a complete message
    if first.get("type") == "value_error":
        return message.removeprefix("Value error, ")
    loc = first.get("loc") or ()
    if loc and loc[-1] != "body":
        return f"{loc[-1]}: {message}"
    return message


def create_app(
    store: Optional[Any] = None,
    auth: Optional[Any] = None,
    simulator_enabled: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application. ``store`` and ``auth`` default to the Supabase
    Postgres row store and Supabase Auth client built from settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        logger.info("=" * 50)
        logger.info("PiShield v1 Starting...")
        logger.info("=" * 50)

        row_store = store if store is not None else RowStore.from_url(settings.database_url)
        auth_client = auth if auth is not None else SupabaseAuthClient()
        broadcaster = BroadcastService(ClientRegistry())
        aggregator = StatAggregator(row_store)
        simulator = DetectionSimulator(row_store, aggregator, broadcaster)

        app.state.store = row_store
        app.state.auth = auth_client
        app.state.broadcaster = broadcaster
        app.state.aggregator = aggregator
        app.state.simulator = simulator

        run_simulator = settings.simulation_enabled if simulator_enabled is None else simulator_enabled
        if settings.is_production:
            # TODO: hook a real detection source in here
            logger.info("Production mode: detection simulation disabled")
        elif run_simulator:
            logger.info("Starting simulated detection system")
            simulator.start(settings.simulation_interval_seconds)
        else:
            logger.info("Detection simulation disabled (SIMULATION_ENABLED=false)")

        logger.info(f"Backend running on {settings.backend_host}:{settings.backend_port}")
        logger.info("=" * 50)

        yield

        # Shutdown
        logger.info("PiShield v1 Shutting down...")
        simulator.stop()
        broadcaster.close()
        if store is None:
            await row_store.close()
        if auth is None:
            await auth_client.close()

    app = FastAPI(
        title="PiShield v1",
        description="Security alert monitoring with live dashboard updates",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(auth_router)
    app.include_router(alerts_router)
    app.include_router(dashboard_router)
    app.include_router(actions_router)
    app.include_router(devices_router)
    app.include_router(ws_router)

    @app.get("/health", response_model=HealthResponse, tags=["system"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render HTTP errors as {"error": message}."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Validation failures are client errors (400), rejected before any side effect."""
        return JSONResponse(status_code=400, content={"error": validation_message(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pishield.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
    )
