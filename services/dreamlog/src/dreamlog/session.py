"""Resolve the caller's session from request headers.

The auth layer in front of this service owns identity; all we do is read
what it forwarded. No bearer token means a guest.
"""

from __future__ import annotations

from typing import Iterable, Optional

from fastapi import Depends, Request

from common.config import Settings, get_settings

from .models import SessionContext

AUTHORIZATION_HEADER = "Authorization"
GUEST_HEADER = "X-Guest-Mode"
DEVICE_HEADER = "X-Device-Id"
USER_HEADER = "X-User-Id"


def _bearer_token(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def session_from_headers(headers) -> SessionContext:
    token = _bearer_token(headers.get(AUTHORIZATION_HEADER))
    guest_flag = (headers.get(GUEST_HEADER) or "").lower() == "true"
    return SessionContext(
        identity=token,
        is_guest=guest_flag or token is None,
        user_id=headers.get(USER_HEADER) or None,
        device_id=headers.get(DEVICE_HEADER) or "default",
    )


async def get_session(request: Request) -> SessionContext:
    return session_from_headers(request.headers)


def client_key(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Key rate budgets by the calling address.

    ``X-Forwarded-For`` is only read when the socket peer is a trusted proxy,
    and then the right-most hop that is not itself trusted wins.
    """
    trusted = set(trusted_proxies)
    peer = request.client.host if request.client and request.client.host else None
    if peer is None:
        return "anonymous"
    if peer not in trusted:
        return peer

    forwarded = request.headers.get("X-Forwarded-For", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


async def get_client_key(request: Request, settings: Settings = Depends(get_settings)) -> str:
    return client_key(request, settings.trusted_proxies)


__all__ = ["session_from_headers", "get_session", "client_key", "get_client_key"]
