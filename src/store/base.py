from __future__ import annotations

from typing import Any, Dict, FrozenSet, Optional, Protocol, Tuple


class ClusterStore(Protocol):
    """Minimal cluster API used by the pipeline.

    ``get`` raises ``NotFoundError`` and ``create`` raises
    ``AlreadyExistsError``; every other failure is a ``StoreError``.
    """

    def get(self, kind: str, namespace: Optional[str], name: str, api_version: Optional[str] = None) -> Dict[str, Any]:
        ...

    def create(self, obj: Dict[str, Any]) -> None:
        ...

    def update(self, obj: Dict[str, Any]) -> None:
        ...

    def cluster_scoped_resources(self) -> FrozenSet[Tuple[str, str]]:
        """``(group, kind)`` pairs the API server serves without a namespace."""
        ...


def object_identity(obj: Dict[str, Any]) -> tuple:
    metadata = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}
    return (
        obj.get("apiVersion"),
        obj.get("kind"),
        metadata.get("namespace"),
        metadata.get("name"),
    )


__all__ = ["ClusterStore", "object_identity"]
