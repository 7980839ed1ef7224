"""Error taxonomy shared by the generation pipeline and persistence layer."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorReason(str, Enum):
    """Stable reason codes surfaced to callers."""

    INVALID_INPUT = "invalid_input"
    NOT_CONFIGURED = "not_configured"
    UPSTREAM_ERROR = "upstream_error"
    TIMEOUT = "timeout"
    BUDGET_EXCEEDED = "budget_exceeded"
    TRANSCRIPTION_FAILED = "transcription_failed"
    REMOTE_WRITE_FAILED = "remote_write_failed"
    NOT_FOUND = "not_found"


class DreamLogError(Exception):
    """Base class for every error carrying a reason code."""

    reason: ErrorReason = ErrorReason.UPSTREAM_ERROR

    def __init__(self, message: str, reason: Optional[ErrorReason] = None) -> None:
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason

    def to_dict(self) -> dict:
        return {"error": self.reason.value, "message": self.message}


class InvalidSubmissionError(DreamLogError):
    reason = ErrorReason.INVALID_INPUT


class ModelGatewayError(DreamLogError):
    """A model provider call failed; ``reason`` tells operators why."""

    def __init__(self, message: str, reason: ErrorReason = ErrorReason.UPSTREAM_ERROR) -> None:
        super().__init__(message, reason)


class BudgetExceededError(DreamLogError):
    reason = ErrorReason.BUDGET_EXCEEDED

    def __init__(self, capability: str, retry_after: float) -> None:
        super().__init__(f"{capability} rate budget exceeded, retry in {retry_after:.0f}s")
        self.capability = capability
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["capability"] = self.capability
        payload["retryAfterSeconds"] = round(self.retry_after, 1)
        return payload


class TranscriptionFailedError(DreamLogError):
    """Fatal to an orchestration run: there is no text to work with."""

    reason = ErrorReason.TRANSCRIPTION_FAILED

    def __init__(self, message: str, cause_reason: ErrorReason) -> None:
        super().__init__(message)
        self.cause_reason = cause_reason

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["cause"] = self.cause_reason.value
        return payload


class PersistenceError(DreamLogError):
    pass


class RecordNotFoundError(PersistenceError):
    reason = ErrorReason.NOT_FOUND

    def __init__(self, dream_id: str) -> None:
        super().__init__(f"Dream {dream_id} not found")
        self.dream_id = dream_id


class RemoteWriteFailedError(PersistenceError):
    """A remote save/update failed for an authenticated session."""

    reason = ErrorReason.REMOTE_WRITE_FAILED


class RemoteStoreError(PersistenceError):
    reason = ErrorReason.UPSTREAM_ERROR


__all__ = [
    "ErrorReason",
    "DreamLogError",
    "InvalidSubmissionError",
    "ModelGatewayError",
    "BudgetExceededError",
    "TranscriptionFailedError",
    "PersistenceError",
    "RecordNotFoundError",
    "RemoteWriteFailedError",
    "RemoteStoreError",
]
