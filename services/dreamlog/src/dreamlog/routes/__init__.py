"""HTTP routers for the Dream Log service."""

from .dreams import router as dreams_router
from .generation import router as generation_router

__all__ = ["dreams_router", "generation_router"]
