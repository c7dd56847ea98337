"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from api import table_service
from api.routes import table
from api.websocket import router as ws_router
from config import config
from core.errors import (
    EmptyDeckError,
    IllegalActionError,
    InsufficientBalanceError,
    PersistenceFailure,
    TableError,
)

logging.basicConfig(
    level=config.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger("blackjack.api")

# Initialize rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    enabled=config.rate_limit.enabled,
    default_limits=[f"{config.rate_limit.requests_per_minute}/minute"],
)


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )


def _table_error_handler(request: Request, exc: TableError) -> JSONResponse:
    """Map game errors to HTTP responses."""
    if isinstance(exc, PersistenceFailure):
        status_code = 503
    elif isinstance(exc, IllegalActionError):
        status_code = 409
    elif isinstance(exc, InsufficientBalanceError):
        status_code = 400
    elif isinstance(exc, EmptyDeckError):
        status_code = 500
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    service = await table_service.get_table_service()
    LOGGER.info("Serving table %s", service.table.id)
    yield
    await service.stop()


app = FastAPI(
    title="Blackjack Table",
    description="Shared multiplayer blackjack table API",
    version="0.1.0",
    lifespan=lifespan,
)

# Add rate limiter to app state and exception handlers
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(TableError, _table_error_handler)

# CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors.allowed_origins,
    allow_credentials=config.cors.allow_credentials,
    allow_methods=config.cors.allow_methods,
    allow_headers=config.cors.allow_headers,
)


@app.get("/api/health")
@limiter.limit(f"{config.rate_limit.requests_per_minute}/minute")
async def health_check(request: Request) -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(table.router, prefix="/api/table", tags=["table"])
app.include_router(ws_router, prefix="/ws", tags=["websocket"])
