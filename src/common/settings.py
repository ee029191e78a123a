from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

DEFAULT_MANIFEST_ROOT = Path("/opt/manifests/odh-manifests")
DEFAULT_FALLBACK_ARCHIVE = Path("/opt/manifests/odh-manifests.tar.gz")
DEFAULT_MANAGED_CONFIGS_PATH = "osd-configs"
DEFAULT_MANAGED_NAMESPACE = "redhat-ods-applications"
DEFAULT_ANYUID_CLUSTER_ROLE = "system:openshift:scc:anyuid"


@dataclass(frozen=True)
class Settings:
    manifest_root: Path = DEFAULT_MANIFEST_ROOT
    fallback_archive: Path = DEFAULT_FALLBACK_ARCHIVE
    kubectl_cmd: str = "kubectl"
    kustomize_cmd: str = "kustomize"
    http_timeout_seconds: float = 60.0
    command_timeout_seconds: float = 120.0
    chunk_size: int = 64 * 1024
    role_binding_cluster_role: str = DEFAULT_ANYUID_CLUSTER_ROLE
    managed_configs_path: str = DEFAULT_MANAGED_CONFIGS_PATH
    managed_namespace: str = DEFAULT_MANAGED_NAMESPACE

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""

        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            manifest_root=Path(env.get("BOOTSTRAP_MANIFEST_ROOT", str(defaults.manifest_root))),
            fallback_archive=Path(env.get("BOOTSTRAP_FALLBACK_ARCHIVE", str(defaults.fallback_archive))),
            kubectl_cmd=env.get("BOOTSTRAP_KUBECTL", defaults.kubectl_cmd),
            kustomize_cmd=env.get("BOOTSTRAP_KUSTOMIZE", defaults.kustomize_cmd),
            http_timeout_seconds=float(env.get("BOOTSTRAP_HTTP_TIMEOUT", defaults.http_timeout_seconds)),
            command_timeout_seconds=float(env.get("BOOTSTRAP_COMMAND_TIMEOUT", defaults.command_timeout_seconds)),
            chunk_size=int(env.get("BOOTSTRAP_CHUNK_SIZE", defaults.chunk_size)),
            role_binding_cluster_role=env.get("BOOTSTRAP_ROLEBINDING_CLUSTER_ROLE", defaults.role_binding_cluster_role),
            managed_configs_path=env.get("BOOTSTRAP_MANAGED_CONFIGS_PATH", defaults.managed_configs_path),
            managed_namespace=env.get("BOOTSTRAP_MANAGED_NAMESPACE", defaults.managed_namespace),
        )


__all__ = ["Settings"]
