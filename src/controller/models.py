from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.bootstrapper.objects import owner_reference
from src.common.errors import BootstrapError

DEFAULT_API_VERSION = "dscinitialization.opendatahub.io/v1alpha1"
DEFAULT_KIND = "DSCInitialization"

PHASE_PROGRESSING = "Progressing"
PHASE_READY = "Ready"

_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


class InitializationSpec(BaseModel):
    """Immutable input for one reconcile call."""

    model_config = ConfigDict(frozen=True)

    name: str = "default"
    uid: str = ""
    api_version: str = DEFAULT_API_VERSION
    kind: str = DEFAULT_KIND
    namespaces: Tuple[str, ...] = Field(default_factory=tuple)
    manifests_uri: str = ""
    managed: bool = False
    applications_namespace: Optional[str] = None

    @field_validator("manifests_uri", mode="before")
    @classmethod
    def _empty_uri(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("namespaces")
    @classmethod
    def _validate_namespaces(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        seen = set()
        for namespace in value:
            if len(namespace) > 63 or not _DNS_LABEL.match(namespace):
                raise ValueError(f"invalid namespace name: {namespace!r}")
            if namespace in seen:
                raise ValueError(f"duplicate namespace: {namespace!r}")
            seen.add(namespace)
        return value

    @field_validator("applications_namespace")
    @classmethod
    def _validate_applications_namespace(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _DNS_LABEL.match(value):
            raise ValueError(f"invalid applications namespace: {value!r}")
        return value

    @property
    def target_namespace(self) -> Optional[str]:
        if self.applications_namespace:
            return self.applications_namespace
        return self.namespaces[0] if self.namespaces else None

    def owner_reference(self) -> Dict[str, Any]:
        return owner_reference(self.api_version, self.kind, self.name, self.uid)

    @classmethod
    def from_resource(cls, document: Dict[str, Any]) -> "InitializationSpec":
        """Build the spec from an initialization resource as stored in the cluster."""

        if not isinstance(document, dict):
            raise ValueError("initialization resource must be a mapping")
        metadata = document.get("metadata") or {}
        spec = document.get("spec") or {}
        values: Dict[str, Any] = {
            "name": metadata.get("name") or "default",
            "uid": metadata.get("uid") or "",
            "namespaces": tuple(spec.get("namespaces") or ()),
            "manifests_uri": spec.get("manifestsUri") or "",
            "managed": bool(spec.get("managed", False)),
            "applications_namespace": spec.get("applicationsNamespace"),
        }
        if document.get("apiVersion"):
            values["api_version"] = document["apiVersion"]
        if document.get("kind"):
            values["kind"] = document["kind"]
        return cls(**values)


@dataclass
class ReconcileOutcome:
    ok: bool
    phase: str
    message: str
    stage: Optional[str] = None
    error: Optional[BootstrapError] = None
    namespaces: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def reason(self) -> Optional[str]:
        return None if self.ok else self.message

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ok": self.ok,
            "phase": self.phase,
            "message": self.message,
            "namespaces": list(self.namespaces),
            "created": list(self.created),
            "updated": list(self.updated),
            "unchanged": list(self.unchanged),
        }
        if self.stage is not None:
            data["stage"] = self.stage
        if self.error is not None:
            data["error"] = type(self.error).__name__
        return data


__all__ = [
    "DEFAULT_API_VERSION",
    "DEFAULT_KIND",
    "InitializationSpec",
    "PHASE_PROGRESSING",
    "PHASE_READY",
    "ReconcileOutcome",
]
