"""Error taxonomy shared by every pipeline stage."""

from __future__ import annotations

import threading
from typing import Optional


class BootstrapError(Exception):
    """Base class for pipeline failures.

    ``stage`` names the pipeline step that failed and ``resource`` carries a
    ``Kind/namespace/name`` reference when the failure concerns one object.
    """

    default_stage = "pipeline"

    def __init__(self, message: str, *, stage: Optional[str] = None, resource: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.resource = resource

    def __str__(self) -> str:
        if self.resource:
            return f"{self.stage}: {self.resource}: {self.message}"
        return f"{self.stage}: {self.message}"


class FetchError(BootstrapError):
    """Raised when the manifest archive cannot be retrieved."""

    default_stage = "fetch"


class ExtractError(BootstrapError):
    """Raised for corrupt archives or entries escaping the destination."""

    default_stage = "extract"


class RenderError(BootstrapError):
    """Raised when an overlay root is missing or kustomize fails."""

    default_stage = "render"


class StoreError(BootstrapError):
    """Raised for cluster API failures."""

    default_stage = "store"


class NotFoundError(StoreError):
    pass


class AlreadyExistsError(StoreError):
    pass


class ConflictError(StoreError):
    """The update carried a stale resourceVersion."""


class CancelledError(BootstrapError):
    default_stage = "cancelled"


def raise_if_cancelled(cancel: Optional[threading.Event], stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise CancelledError("reconcile cancelled by caller", stage=stage)


__all__ = [
    "raise_if_cancelled",
    "AlreadyExistsError",
    "BootstrapError",
    "CancelledError",
    "ConflictError",
    "ExtractError",
    "FetchError",
    "NotFoundError",
    "RenderError",
    "StoreError",
]
