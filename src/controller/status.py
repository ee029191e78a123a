from __future__ import annotations

import logging
from typing import List, Protocol, Tuple

logger = logging.getLogger(__name__)

REASON_INIT = "ReconcileInit"
REASON_COMPLETED = "ReconcileCompleted"
REASON_FAILED = "ReconcileFailed"

MESSAGE_INIT = "Initializing DSCInitialization resource"
MESSAGE_COMPLETED = "Reconcile completed successfully"


class StatusPublisher(Protocol):
    def publish(self, phase: str, reason: str, message: str) -> None:
        ...


class LoggingStatusPublisher:
    """Default publisher: writes each status transition to the log."""

    def publish(self, phase: str, reason: str, message: str) -> None:
        logger.info("Status phase=%s reason=%s: %s", phase, reason, message)


class RecordingStatusPublisher:
    """Keeps every published status in memory (simulation and tests)."""

    def __init__(self) -> None:
        self.history: List[Tuple[str, str, str]] = []

    def publish(self, phase: str, reason: str, message: str) -> None:
        self.history.append((phase, reason, message))

    @property
    def last(self) -> Tuple[str, str, str]:
        return self.history[-1]


__all__ = [
    "LoggingStatusPublisher",
    "MESSAGE_COMPLETED",
    "MESSAGE_INIT",
    "REASON_COMPLETED",
    "REASON_FAILED",
    "REASON_INIT",
    "RecordingStatusPublisher",
    "StatusPublisher",
]
