"""
Relay Gateway - Main FastAPI Application

A WebSocket gateway that bridges lightweight clients to a pub/sub broker and
relays peer-connection signaling between them.

Key Features:
- WebSocket control protocol (subscribe/unsubscribe/publish/debug_log)
- Room-scoped signaling relay (JSON and legacy pipe-delimited frames)
- Adapter pattern for broker flexibility (NATS, In-Memory)
- Retained values delivered to late subscribers
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import router
from .core.config import settings
from .services.gateway import Gateway

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup (connect to the broker) and shutdown (close sockets,
    disconnect).
    """
    gateway = Gateway.from_settings(settings)
    app.state.gateway = gateway
    await gateway.start()

    yield

    await gateway.stop()


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Relay Gateway",
    description="WebSocket pub/sub bridge and signaling relay",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/", tags=["Info"])
async def root() -> Dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "docs": "/docs",
    }


# =============================================================================
# Error Handlers
# =============================================================================


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


def run() -> None:
    """Run the gateway with uvicorn."""
    import uvicorn
    uvicorn.run(app, host=settings.service_host, port=settings.service_port)


if __name__ == "__main__":
    run()
