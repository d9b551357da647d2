"""
FastAPI Bank Relay Application Factory
======================================

This is the main entry point for the relay service that sits between
internal clients and the upstream banking APIs.

Architecture:
    Internal clients → Bank Relay (this service) → mTLS → Banco Inter / Sicoob

Routers:
    - /inter/*      : Banco Inter routes (shared secret required)
    - /sicoob/*     : Sicoob routes, production or sandbox (shared secret required)
    - /health       : Credential presence check (no authentication)

Environment Variables:
    - PROXY_SECRET: Shared secret expected in the X-Proxy-Secret header (required)
    - INTER_CERTIFICATE_BASE64 / INTER_KEY_BASE64: Inter client identity
    - SICOOB_CERTIFICATE_BASE64 / SICOOB_KEY_BASE64: Sicoob client identity
    - UPSTREAM_TIMEOUT_SECONDS: Upstream round-trip timeout (default: 30)
    - PORT: Listen port (default: 3000)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn bank_relay.app.main:create_app --factory --reload --port 3000

    Production:
        uvicorn bank_relay.app.main:create_app --factory --host 0.0.0.0 --port 3000 --workers 4

    Directly:
        python -m bank_relay.app.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .auth import SharedSecretAuthenticator
from .config import Settings, get_settings, validate_configuration
from .credentials import CredentialStore
from .errors import AuthenticationError, ConfigurationError, NetworkError, UpstreamTimeoutError
from .forwarding import MTLSExecutor
from .models import HealthResponse
from .proxy import inter_router, sicoob_router

SERVICE_NAME = "bank-relay"
SERVICE_VERSION = "1.0.0"


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


class RelayState:
    """
    Explicit application state container.

    Built once by the factory and reached by routes through
    ``request.app.state.relay``. Nothing in it is mutated while serving.
    """
    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        authenticator: SharedSecretAuthenticator,
        executor: MTLSExecutor,
    ):
        self.settings = settings
        self.store = store
        self.authenticator = authenticator
        self.executor = executor


def build_state(settings: Settings, executor: Optional[MTLSExecutor] = None) -> RelayState:
    store = executor.store if executor is not None else CredentialStore.from_settings(settings)
    authenticator = SharedSecretAuthenticator(
        settings.PROXY_SECRET.get_secret_value(),
        header_name=settings.PROXY_SECRET_HEADER,
    )
    return RelayState(
        settings=settings,
        store=store,
        authenticator=authenticator,
        executor=executor or MTLSExecutor.from_settings(store, settings),
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Log credential presence per bank (never the values)
        - Log configuration warnings and errors
    """
    state: RelayState = app.state.relay
    settings = state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("bank_relay.main")

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")
    for error in report["errors"]:
        logger.error(f"Configuration error [error_kind=configuration]: {error}", extra={"error_kind": "configuration"})

    logger.info(
        f"Bank relay started, credential presence: {state.store.presence()}",
        extra={
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "credentials": state.store.presence(),
        }
    )

    yield

    logger.info("Bank relay shutdown complete")


def _error_detail(settings: Settings, exc: NetworkError, fallback: str) -> str:
    if settings.EXPOSE_UPSTREAM_ERRORS and exc.message:
        return exc.message
    return fallback


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    executor: Optional[MTLSExecutor] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Explicit relay state (settings, credentials, authenticator, executor)
        - CORS middleware
        - Bank routers
        - Exception handlers

    Args:
        settings: Settings to use (loaded from the environment when omitted)
        executor: Executor to use (tests pass one with a mock transport)

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Bank Relay",
        description="mTLS relay to the Banco Inter and Sicoob APIs",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.relay = build_state(settings, executor)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(inter_router)
    app.include_router(sicoob_router)

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check(request: Request) -> Dict[str, Any]:
        """
        Report whether each bank's certificate and key are configured.

        Unauthenticated. Reports presence only and never decodes credentials.
        """
        return {
            "status": "ok",
            "credentials": request.app.state.relay.store.presence(),
        }

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "inter": "/inter",
                "sicoob": "/sicoob",
            }
        }

    @app.exception_handler(AuthenticationError)
    async def authentication_exception_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    @app.exception_handler(ConfigurationError)
    async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger = logging.getLogger("bank_relay.main")
        logger.error(
            f"Configuration error [error_kind=configuration] for {exc.bank or 'relay'} on {request.method} {request.url.path}: {exc.message}",
            extra={
                "error_kind": "configuration",
                "bank": exc.bank,
                "path": request.url.path,
                "method": request.method,
            }
        )
        return JSONResponse(
            status_code=500,
            content={"error": "configuration_error", "message": exc.message},
        )

    @app.exception_handler(NetworkError)
    async def network_exception_handler(request: Request, exc: NetworkError) -> JSONResponse:
        if isinstance(exc, UpstreamTimeoutError):
            return JSONResponse(
                status_code=504,
                content={"error": _error_detail(settings, exc, "upstream_timeout")},
            )
        return JSONResponse(
            status_code=502,
            content={"error": _error_detail(settings, exc, "upstream_unreachable")},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("bank_relay.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            }
        )

    return app


if __name__ == "__main__":
    """
    Direct execution entry point: python -m bank_relay.app.main
    """
    settings = get_settings()

    uvicorn.run(
        "bank_relay.app.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
