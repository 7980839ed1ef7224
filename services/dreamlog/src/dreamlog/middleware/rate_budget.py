"""Middleware enforcing the general per-client request budget on API routes."""

from __future__ import annotations

import math
from typing import Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from common.logging import bind_context, clear_context

from ..errors import BudgetExceededError
from ..metrics import BUDGET_REJECTIONS
from ..rate_budget import Capability, RateBudgetTracker
from ..session import client_key

API_PREFIX = "/api/"


class GeneralBudgetMiddleware(BaseHTTPMiddleware):
    """Reads the shared tracker from ``app.state.tracker``."""

    def __init__(self, app, trusted_proxies: Iterable[str] = ()) -> None:
        super().__init__(app)
        self._trusted_proxies = tuple(trusted_proxies)

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not request.url.path.startswith(API_PREFIX) or request.method == "OPTIONS":
            return await call_next(request)

        key = client_key(request, self._trusted_proxies)
        clear_context()
        bind_context(path=request.url.path, method=request.method, client=key)
        tracker: RateBudgetTracker = request.app.state.tracker
        if not tracker.admit(Capability.GENERAL, key):
            BUDGET_REJECTIONS.labels(capability=Capability.GENERAL.value).inc()
            exc = BudgetExceededError(Capability.GENERAL.value, tracker.retry_after(Capability.GENERAL, key))
            return JSONResponse(
                status_code=429,
                content=exc.to_dict(),
                headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
            )
        return await call_next(request)


__all__ = ["GeneralBudgetMiddleware"]
