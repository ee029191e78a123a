from __future__ import annotations

import copy
import itertools
import threading
import uuid
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from src.common.errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from src.common.resources import DEFAULT_SCOPES, format_reference

Key = Tuple[str, str, str]


class InMemoryStore:
    """Cluster store kept in a dict, used for ``--simulate`` runs and tests.

    Mirrors the API server closely enough for the pipeline: objects get a
    ``uid`` and a monotonically increasing ``resourceVersion``, updates with a
    stale version are rejected, and every call is recorded in ``operations``.
    """

    def __init__(self, cluster_scoped_resources: Iterable[Tuple[str, str]] = ()) -> None:
        self._cluster_resources = frozenset(cluster_scoped_resources)
        self._scopes = DEFAULT_SCOPES.with_cluster_resources(self._cluster_resources)
        self._objects: Dict[Key, Dict[str, Any]] = {}
        self._versions = itertools.count(1)
        self._lock = threading.Lock()
        self.operations: List[Tuple[str, str]] = []

    def _key(self, kind: str, namespace: Optional[str], name: str, api_version: Optional[str] = None) -> Key:
        scoped = namespace if (namespace and self._scopes.is_namespaced(kind, api_version)) else ""
        return (kind, scoped, name)

    def _key_for(self, obj: Dict[str, Any]) -> Key:
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict) or not metadata.get("name"):
            raise StoreError("object is missing metadata.name")
        kind = obj.get("kind")
        if not kind:
            raise StoreError("object is missing kind", resource=metadata.get("name"))
        return self._key(kind, metadata.get("namespace"), metadata["name"], obj.get("apiVersion"))

    def get(self, kind: str, namespace: Optional[str], name: str, api_version: Optional[str] = None) -> Dict[str, Any]:
        key = self._key(kind, namespace, name, api_version)
        with self._lock:
            self.operations.append(("get", format_reference(*key)))
            try:
                return copy.deepcopy(self._objects[key])
            except KeyError:
                raise NotFoundError(f'{kind} "{name}" not found', resource=format_reference(*key)) from None

    def create(self, obj: Dict[str, Any]) -> None:
        key = self._key_for(obj)
        with self._lock:
            self.operations.append(("create", format_reference(*key)))
            if key in self._objects:
                raise AlreadyExistsError(f'{key[0]} "{key[2]}" already exists', resource=format_reference(*key))
            stored = copy.deepcopy(obj)
            metadata = stored["metadata"]
            metadata.pop("resourceVersion", None)
            metadata["uid"] = str(uuid.uuid4())
            metadata["resourceVersion"] = str(next(self._versions))
            self._objects[key] = stored

    def update(self, obj: Dict[str, Any]) -> None:
        key = self._key_for(obj)
        with self._lock:
            self.operations.append(("update", format_reference(*key)))
            live = self._objects.get(key)
            if live is None:
                raise NotFoundError(f'{key[0]} "{key[2]}" not found', resource=format_reference(*key))
            requested = obj["metadata"].get("resourceVersion")
            if requested and requested != live["metadata"]["resourceVersion"]:
                raise ConflictError(
                    "the object has been modified; please apply your changes to the latest version",
                    resource=format_reference(*key),
                )
            stored = copy.deepcopy(obj)
            stored["metadata"]["uid"] = live["metadata"]["uid"]
            stored["metadata"]["resourceVersion"] = str(next(self._versions))
            self._objects[key] = stored

    def cluster_scoped_resources(self) -> FrozenSet[Tuple[str, str]]:
        return self._cluster_resources

    def objects(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(obj) for (k, _, _), obj in self._objects.items() if kind is None or k == kind]

    def count(self, verb: str) -> int:
        return sum(1 for op, _ in self.operations if op == verb)


__all__ = ["InMemoryStore"]
