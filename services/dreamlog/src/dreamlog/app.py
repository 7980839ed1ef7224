"""FastAPI application for the Dream Log service."""

from __future__ import annotations

import math
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from common.config import settings
from common.logging import configure_logging, get_logger

from . import __version__
from .dependencies import get_gateway, get_persistence, get_tracker
from .errors import BudgetExceededError, DreamLogError, ErrorReason
from .gateway import ModelGateway
from .metrics import router as metrics_router
from .middleware.rate_budget import GeneralBudgetMiddleware
from .persistence import PersistenceRouter
from .routes import dreams_router, generation_router

configure_logging(settings.log_level)
LOGGER = get_logger(__name__)

STATUS_BY_REASON: Dict[ErrorReason, int] = {
    ErrorReason.INVALID_INPUT: 400,
    ErrorReason.NOT_FOUND: 404,
    ErrorReason.BUDGET_EXCEEDED: 429,
    ErrorReason.NOT_CONFIGURED: 503,
    ErrorReason.TIMEOUT: 504,
    ErrorReason.UPSTREAM_ERROR: 502,
    ErrorReason.TRANSCRIPTION_FAILED: 502,
    ErrorReason.REMOTE_WRITE_FAILED: 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    LOGGER.info("Dream Log service starting", environment=settings.environment, version=__version__)
    yield
    if get_gateway.cache_info().currsize:
        await get_gateway().close()
    LOGGER.info("Dream Log service stopped")


app = FastAPI(title="Dream Log", version=__version__, lifespan=lifespan)
app.state.tracker = get_tracker()

app.add_middleware(GeneralBudgetMiddleware, trusted_proxies=settings.trusted_proxies)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(generation_router)
app.include_router(dreams_router)
app.include_router(metrics_router)


@app.exception_handler(DreamLogError)
async def dreamlog_error_handler(request: Request, exc: DreamLogError) -> JSONResponse:
    status_code = STATUS_BY_REASON.get(exc.reason, 500)
    headers = {}
    if isinstance(exc, BudgetExceededError):
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    log = LOGGER.warning if status_code < 500 else LOGGER.error
    log("Request failed", path=request.url.path, reason=exc.reason.value, error=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in errors
    )
    return JSONResponse(
        status_code=400,
        content={"error": ErrorReason.INVALID_INPUT.value, "message": message or "Invalid request"},
    )


@app.get("/healthz")
async def health() -> dict[str, str]:
    """Basic health check for load balancer."""
    return {"status": "ok"}


@app.get("/api/health")
async def health_detailed(
    gateway: ModelGateway = Depends(get_gateway),
    persistence: PersistenceRouter = Depends(get_persistence),
) -> Dict[str, Any]:
    """Report which external dependencies are configured."""
    return {
        "status": "ok",
        "service": settings.service_name,
        "version": __version__,
        "providerConfigured": gateway.is_configured,
        "remoteStoreConfigured": persistence.remote_configured,
    }


__all__ = ["app", "STATUS_BY_REASON"]
