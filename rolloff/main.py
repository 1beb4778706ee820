"""
rolloff/main.py
Application entry point

Wires the event bus, participant registry, gateway and rolloff manager
onto a FastAPI app.
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rolloff.config.settings import RolloffSettings, get_settings
from rolloff.exceptions import RolloffException
from rolloff.realtime.connection_manager import ConnectionManager
from rolloff.realtime.gateway import ContestRequestGateway
from rolloff.realtime.in_memory_adapter import InMemoryAdapter
from rolloff.routes import router
from rolloff.services.rolloff_manager import RolloffManager

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[RolloffSettings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Explicit settings (defaults to the environment)
    Returns:
        FastAPI app with the engine on app.state
    """
    settings = settings or get_settings()

    adapter = InMemoryAdapter()
    connections = ConnectionManager()
    gateway = ContestRequestGateway(
        connections,
        adapter,
        broadcast_timeout=settings.broadcast_timeout,
    )
    manager = RolloffManager(gateway, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Rolloff engine ready (die={settings.rolloff_die}, timeout={settings.rolloff_timeout}s, "
            f"auto={settings.auto_rolloff})"
        )
        yield
        logger.info("Shutting down rolloff engine...")
        await manager.dispose()
        await adapter.close()

    app = FastAPI(
        title="Rolloff API",
        description="Tie-break coordinator for ranked entrants",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.adapter = adapter
    app.state.connections = connections
    app.state.gateway = gateway
    app.state.manager = manager

    @app.exception_handler(RolloffException)
    async def rolloff_exception_handler(request: Request, exc: RolloffException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": type(exc).__name__,
                "message": exc.message,
            }
        )

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))

    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_level="info"
    )
