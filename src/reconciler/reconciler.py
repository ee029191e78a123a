from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from src.common.errors import AlreadyExistsError, NotFoundError, StoreError, raise_if_cancelled
from src.common.resources import RenderedResource
from src.store.base import ClusterStore

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass
class ApplyReport:
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.created) + len(self.updated) + len(self.unchanged)

    def record(self, action: str, reference: str) -> None:
        getattr(self, action).append(reference)


class ResourceReconciler:
    """Idempotent get-then-create-or-update of rendered objects.

    The live ``resourceVersion`` is copied onto the rendered object before an
    update so the replace is not rejected as stale. Errors other than the
    create/exists race propagate to the caller untouched.
    """

    def __init__(self, store: ClusterStore, *, cancel: Optional[threading.Event] = None) -> None:
        self.store = store
        self._cancel = cancel

    def apply(self, resource: RenderedResource) -> str:
        try:
            return self._apply(resource)
        except StoreError as exc:
            exc.stage = "apply"
            exc.resource = exc.resource or resource.reference
            raise

    def _apply(self, resource: RenderedResource) -> str:
        desired = resource.to_dict()
        try:
            live = self.store.get(resource.kind, resource.namespace, resource.name, resource.api_version)
        except NotFoundError:
            logger.info("Creating %s", resource.reference)
            try:
                self.store.create(desired)
            except AlreadyExistsError:
                logger.info("%s was created concurrently; leaving it for the next pass", resource.reference)
                return UNCHANGED
            return CREATED

        live_version = (live.get("metadata") or {}).get("resourceVersion")
        if live_version:
            desired.setdefault("metadata", {})["resourceVersion"] = live_version
        logger.info("Updating %s", resource.reference)
        self.store.update(desired)
        return UPDATED

    def apply_all(self, resources: Iterable[RenderedResource], report: Optional[ApplyReport] = None) -> ApplyReport:
        """Apply sequentially in the given order, stopping at the first failure."""

        report = report if report is not None else ApplyReport()
        for resource in resources:
            raise_if_cancelled(self._cancel, "apply")
            report.record(self.apply(resource), resource.reference)
        return report


__all__ = ["ApplyReport", "ResourceReconciler", "CREATED", "UPDATED", "UNCHANGED"]
