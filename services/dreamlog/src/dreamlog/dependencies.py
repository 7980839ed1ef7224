"""Dream Log service dependencies.

Lazily builds one instance of each long-lived component per process:
- rate budget tracker (shared by the middleware and the orchestrator)
- model gateway (OpenAI SDK client)
- generation orchestrator
- persistence router (remote store for accounts, local files for guests)

Tests swap any of these through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from common.config import Settings, get_settings
from common.logging import get_logger

from .gateway import ModelGateway
from .orchestrator import GenerationOrchestrator
from .persistence import LocalRecordStore, PersistenceRouter, RemoteRecordStore
from .rate_budget import RateBudgetTracker

LOGGER = get_logger(__name__)


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def get_tracker() -> RateBudgetTracker:
    return RateBudgetTracker.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_gateway() -> ModelGateway:
    gateway = ModelGateway.from_settings(get_settings())
    if not gateway.is_configured:
        LOGGER.warning("Model provider key missing; generation calls will fail with not_configured")
    return gateway


@lru_cache(maxsize=1)
def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator(get_gateway(), get_tracker())


@lru_cache(maxsize=1)
def get_persistence() -> PersistenceRouter:
    settings = get_settings()
    remote = RemoteRecordStore(
        settings.remote_store_url,
        timeout=settings.remote_store_timeout_seconds,
    )
    if not remote.is_configured:
        LOGGER.warning("Remote dream store URL missing; authenticated saves will fail")
    local = LocalRecordStore(settings.local_store_dir)
    LOGGER.info("Persistence initialized", local_store_dir=settings.local_store_dir)
    return PersistenceRouter(remote, local)


__all__ = [
    "get_app_settings",
    "get_tracker",
    "get_gateway",
    "get_orchestrator",
    "get_persistence",
]
