from __future__ import annotations

import json
import logging
import subprocess
import threading
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from src.common.errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from src.common.process import run_command
from src.common.resources import api_group, format_reference, is_namespaced

from .base import object_identity

logger = logging.getLogger(__name__)


def resource_argument(kind: str, api_version: Optional[str]) -> str:
    """Fully qualify ``kind`` for kubectl, e.g. ``Deployment.v1.apps``."""

    if not api_version or "/" not in api_version:
        return kind
    group, version = api_version.split("/", 1)
    return f"{kind}.{version}.{group}"


def parse_api_resources(output: str) -> FrozenSet[Tuple[str, str]]:
    """``(group, kind)`` pairs from ``kubectl api-resources --no-headers`` output.

    Columns are NAME [SHORTNAMES] APIVERSION NAMESPACED KIND; the short
    names column may be blank, so fields are read from the right.
    """

    resources = set()
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 4 or fields[-2] != "false":
            continue
        resources.add((api_group(fields[-3]), fields[-1]))
    return frozenset(resources)


class KubectlStore:
    """Cluster store backed by the ``kubectl`` binary."""

    def __init__(
        self,
        kubectl_cmd: str = "kubectl",
        *,
        timeout_seconds: Optional[float] = None,
        extra_args: Sequence[str] = (),
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.kubectl_cmd = kubectl_cmd
        self.timeout_seconds = timeout_seconds
        self.extra_args = list(extra_args)
        self.cancel = cancel

    def get(self, kind: str, namespace: Optional[str], name: str, api_version: Optional[str] = None) -> Dict[str, Any]:
        args = ["get", resource_argument(kind, api_version), name, "-o", "json"]
        if namespace and is_namespaced(kind, api_version):
            args.extend(["-n", namespace])
        reference = format_reference(kind, namespace, name)
        stdout = self._run(args, reference=reference)
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise StoreError(f"kubectl returned invalid JSON: {exc}", resource=reference) from exc
        if not isinstance(payload, dict):
            raise StoreError("kubectl returned a non-object payload", resource=reference)
        return payload

    def create(self, obj: Dict[str, Any]) -> None:
        self._run(["create", "-f", "-"], input_data=json.dumps(obj), reference=self._reference(obj))

    def update(self, obj: Dict[str, Any]) -> None:
        self._run(["replace", "-f", "-"], input_data=json.dumps(obj), reference=self._reference(obj))

    def cluster_scoped_resources(self) -> FrozenSet[Tuple[str, str]]:
        stdout = self._run(["api-resources", "--namespaced=false", "--no-headers"], reference="api-resources")
        return parse_api_resources(stdout)

    @staticmethod
    def _reference(obj: Dict[str, Any]) -> str:
        _, kind, namespace, name = object_identity(obj)
        return format_reference(kind, namespace, name)

    def _run(self, args: List[str], *, input_data: Optional[str] = None, reference: str) -> str:
        command = [self.kubectl_cmd, *self.extra_args, *args]
        logger.debug("Running %s", " ".join(command))
        try:
            proc = run_command(
                command,
                input_data=input_data,
                timeout=self.timeout_seconds,
                cancel=self.cancel,
                stage="store",
            )
        except FileNotFoundError as exc:
            raise StoreError("kubectl executable not found", resource=reference) from exc
        except subprocess.TimeoutExpired as exc:
            raise StoreError(f"kubectl {args[0]} timed out after {self.timeout_seconds}s", resource=reference) from exc
        if proc.returncode == 0:
            return proc.stdout
        detail = (proc.stderr or proc.stdout or "").strip() or f"exit status {proc.returncode}"
        raise classify_kubectl_error(detail, reference)


def classify_kubectl_error(detail: str, reference: str) -> StoreError:
    if "NotFound" in detail:
        return NotFoundError(detail, resource=reference)
    if "AlreadyExists" in detail:
        return AlreadyExistsError(detail, resource=reference)
    if "(Conflict)" in detail or "the object has been modified" in detail:
        return ConflictError(detail, resource=reference)
    return StoreError(detail, resource=reference)


__all__ = ["KubectlStore", "classify_kubectl_error", "parse_api_resources", "resource_argument"]
