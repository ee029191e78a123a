from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, Optional

from src.common.errors import AlreadyExistsError, NotFoundError, StoreError, raise_if_cancelled
from src.common.resources import format_reference
from src.common.settings import DEFAULT_ANYUID_CLUSTER_ROLE
from src.store.base import ClusterStore

from .objects import desired_namespace, desired_network_policy, desired_role_binding

logger = logging.getLogger(__name__)


class NamespaceBootstrapper:
    """Create a generated namespace with its NetworkPolicy and RoleBinding.

    Each object is created only when the namespace-qualified lookup reports
    NotFound; existing objects are left alone so the owner reference is
    written exactly once.
    """

    def __init__(
        self,
        store: ClusterStore,
        owner: Dict[str, Any],
        *,
        cluster_role: str = DEFAULT_ANYUID_CLUSTER_ROLE,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.store = store
        self.owner = owner
        self.cluster_role = cluster_role
        self._cancel = cancel

    def ensure(self, name: str) -> None:
        raise_if_cancelled(self._cancel, "namespace")
        try:
            self._ensure_object(desired_namespace(name))
            self._ensure_object(desired_network_policy(name))
            self._ensure_object(desired_role_binding(name, self.cluster_role))
        except StoreError as exc:
            exc.stage = "namespace"
            raise

    def _ensure_object(self, desired: Dict[str, Any]) -> bool:
        kind = desired["kind"]
        metadata = desired["metadata"]
        namespace = metadata.get("namespace")
        name = metadata["name"]
        reference = format_reference(kind, namespace, name)
        try:
            self.store.get(kind, namespace, name, desired["apiVersion"])
            return False
        except NotFoundError:
            pass

        obj = copy.deepcopy(desired)
        obj["metadata"]["ownerReferences"] = [copy.deepcopy(self.owner)]
        logger.info("Creating %s", reference)
        try:
            self.store.create(obj)
        except AlreadyExistsError:
            logger.info("%s already exists", reference)
            return False
        return True


__all__ = ["NamespaceBootstrapper"]
