"""
Per-capability rate budgets keyed by client.

Each capability owns an independent fixed window: the first admission opens a
window, admissions are counted until the limit is hit, and the counter resets
once the window has elapsed. This is abuse mitigation, not billing-grade
metering, so counters live in memory and vanish on restart.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Tuple

from common.config import Settings
from common.logging import get_logger

LOGGER = get_logger(__name__)


class Capability(str, Enum):
    GENERAL = "general"
    STORY = "story"
    IMAGE = "image"
    ANALYSIS = "analysis"
    SPEECH = "speech"
    TRANSCRIPTION = "transcription"


@dataclass(frozen=True)
class Budget:
    limit: int
    window_seconds: float


DEFAULT_BUDGETS: Dict[Capability, Budget] = {
    Capability.GENERAL: Budget(limit=100, window_seconds=15 * 60),
    Capability.STORY: Budget(limit=5, window_seconds=60),
    Capability.IMAGE: Budget(limit=3, window_seconds=60),
    Capability.ANALYSIS: Budget(limit=5, window_seconds=60),
    Capability.SPEECH: Budget(limit=10, window_seconds=60),
    Capability.TRANSCRIPTION: Budget(limit=10, window_seconds=60),
}


@dataclass
class _Window:
    opened_at: float
    count: int = 0


class RateBudgetTracker:
    """Admit or reject calls per ``(capability, client_key)``."""

    def __init__(
        self,
        budgets: Optional[Mapping[Capability, Budget]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._budgets: Dict[Capability, Budget] = {**DEFAULT_BUDGETS, **(budgets or {})}
        self._clock = clock
        self._windows: Dict[Tuple[Capability, str], _Window] = {}
        self._lock = threading.Lock()
        self._sweep_interval = min(budget.window_seconds for budget in self._budgets.values())
        self._last_sweep = clock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateBudgetTracker":
        budgets = {
            capability: Budget(
                limit=getattr(settings, f"rate_{capability.value}_limit"),
                window_seconds=getattr(settings, f"rate_{capability.value}_window_seconds"),
            )
            for capability in Capability
        }
        return cls(budgets=budgets)

    def budget(self, capability: Capability) -> Budget:
        return self._budgets[Capability(capability)]

    def admit(self, capability: Capability, client_key: str) -> bool:
        """Count one call; return False once the window's limit is reached."""
        capability = Capability(capability)
        budget = self._budgets[capability]
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._evict_expired(now)
            window = self._current_window(capability, client_key, now)
            if window.count >= budget.limit:
                LOGGER.info(
                    "Rate budget exceeded",
                    capability=capability.value,
                    client=client_key,
                    limit=budget.limit,
                )
                return False
            window.count += 1
            return True

    def retry_after(self, capability: Capability, client_key: str) -> float:
        """Seconds until the client's window for ``capability`` resets (0 if open)."""
        capability = Capability(capability)
        budget = self._budgets[capability]
        now = self._clock()
        with self._lock:
            window = self._windows.get((capability, client_key))
            if window is None or now - window.opened_at >= budget.window_seconds:
                return 0.0
            if window.count < budget.limit:
                return 0.0
            return max(0.0, budget.window_seconds - (now - window.opened_at))

    def remaining(self, capability: Capability, client_key: str) -> int:
        capability = Capability(capability)
        budget = self._budgets[capability]
        with self._lock:
            window = self._windows.get((capability, client_key))
            if window is None or self._clock() - window.opened_at >= budget.window_seconds:
                return budget.limit
            return max(0, budget.limit - window.count)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    @property
    def tracked_windows(self) -> int:
        with self._lock:
            return len(self._windows)

    def _evict_expired(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.opened_at >= self._budgets[key[0]].window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now

    def _current_window(self, capability: Capability, client_key: str, now: float) -> _Window:
        key = (capability, client_key)
        window = self._windows.get(key)
        if window is None or now - window.opened_at >= self._budgets[capability].window_seconds:
            window = _Window(opened_at=now)
            self._windows[key] = window
        return window


__all__ = ["Capability", "Budget", "DEFAULT_BUDGETS", "RateBudgetTracker"]
