"""FastAPI gateway setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clipchain import __version__
from clipchain.config import GatewayConfig, settings
from clipchain.services.providers import VideoProvider, get_provider
from clipchain.api.routes import router

logger = logging.getLogger(__name__)


def create_app(
    provider: Optional[VideoProvider] = None,
    gateway: Optional[GatewayConfig] = None,
) -> FastAPI:
    """Build the gateway application.

    Args:
        provider: Provider to serve; chosen from settings at startup when None.
        gateway: Gateway configuration; defaults to settings.gateway.
    """
    gateway = gateway or settings.gateway

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Startup:
            - Resolve the provider (Kling or simulation)

        Shutdown:
            - Close provider HTTP clients
        """
        logger.info("Starting clipchain gateway...")
        if app.state.provider is None:
            app.state.provider = get_provider()
        logger.info(
            "Gateway ready (mode=%s, api key %s)",
            app.state.provider.name,
            "required" if app.state.api_key else "not required",
        )

        yield

        logger.info("Shutting down clipchain gateway...")
        await app.state.provider.close()
        logger.info("Gateway shutdown complete")

    app = FastAPI(
        title="Clip Chain Gateway",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.provider = provider
    app.state.api_key = gateway.api_key

    # Native clients do not need CORS; X-API-Key is the access control
    app.add_middleware(
        CORSMiddleware,
        allow_origins=gateway.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key"],
    )

    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler to prevent stack traces in API responses."""
        logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal error",
                "detail": str(exc),
            }
        )

    return app


app = create_app()
