"""Structured manifest documents passed between renderer and reconciler."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

# Built-in kinds the API server stores without a namespace.
CLUSTER_SCOPED_KINDS = frozenset(
    {
        "APIService",
        "CertificateSigningRequest",
        "ClusterRole",
        "ClusterRoleBinding",
        "ClusterTrustBundle",
        "ComponentStatus",
        "CSIDriver",
        "CSINode",
        "CustomResourceDefinition",
        "FlowSchema",
        "IngressClass",
        "IPAddress",
        "MutatingAdmissionPolicy",
        "MutatingAdmissionPolicyBinding",
        "MutatingWebhookConfiguration",
        "Namespace",
        "Node",
        "PersistentVolume",
        "PodSecurityPolicy",
        "PriorityClass",
        "PriorityLevelConfiguration",
        "RuntimeClass",
        "ServiceCIDR",
        "StorageClass",
        "ValidatingAdmissionPolicy",
        "ValidatingAdmissionPolicyBinding",
        "ValidatingWebhookConfiguration",
        "VolumeAttachment",
    }
)

# (group, kind) pairs for add-on APIs whose kind names are not unique across groups.
CLUSTER_SCOPED_RESOURCES = frozenset(
    {
        ("cert-manager.io", "ClusterIssuer"),
        ("config.openshift.io", "APIServer"),
        ("config.openshift.io", "Authentication"),
        ("config.openshift.io", "Build"),
        ("config.openshift.io", "ClusterOperator"),
        ("config.openshift.io", "ClusterVersion"),
        ("config.openshift.io", "Console"),
        ("config.openshift.io", "DNS"),
        ("config.openshift.io", "FeatureGate"),
        ("config.openshift.io", "Image"),
        ("config.openshift.io", "Infrastructure"),
        ("config.openshift.io", "Ingress"),
        ("config.openshift.io", "Network"),
        ("config.openshift.io", "OAuth"),
        ("config.openshift.io", "OperatorHub"),
        ("config.openshift.io", "Project"),
        ("config.openshift.io", "Proxy"),
        ("config.openshift.io", "Scheduler"),
        ("console.openshift.io", "ConsoleCLIDownload"),
        ("console.openshift.io", "ConsoleExternalLogLink"),
        ("console.openshift.io", "ConsoleLink"),
        ("console.openshift.io", "ConsoleNotification"),
        ("console.openshift.io", "ConsolePlugin"),
        ("console.openshift.io", "ConsoleQuickStart"),
        ("console.openshift.io", "ConsoleYAMLSample"),
        ("oauth.openshift.io", "OAuthClient"),
        ("project.openshift.io", "Project"),
        ("security.openshift.io", "SecurityContextConstraints"),
        ("user.openshift.io", "Group"),
        ("user.openshift.io", "Identity"),
        ("user.openshift.io", "User"),
    }
)


def api_group(api_version: Optional[str]) -> str:
    """``apps/v1`` -> ``apps``; the core group is the empty string."""

    if not api_version or "/" not in api_version:
        return ""
    return api_version.split("/", 1)[0]


@dataclass(frozen=True)
class ResourceScopes:
    """Answers whether a kind lives inside a namespace.

    ``cluster_kinds`` matches on kind alone and holds built-in kinds;
    ``cluster_resources`` matches on ``(group, kind)`` and is extended from
    API discovery and from CustomResourceDefinitions in a render.
    """

    cluster_kinds: FrozenSet[str] = CLUSTER_SCOPED_KINDS
    cluster_resources: FrozenSet[Tuple[str, str]] = CLUSTER_SCOPED_RESOURCES

    def is_namespaced(self, kind: Optional[str], api_version: Optional[str] = None) -> bool:
        if not kind:
            return False
        if kind in self.cluster_kinds:
            return False
        if api_version is None:
            return True
        return (api_group(api_version), kind) not in self.cluster_resources

    def with_cluster_resources(self, resources: Iterable[Tuple[str, str]]) -> "ResourceScopes":
        return replace(self, cluster_resources=self.cluster_resources | frozenset(resources))

    def with_definitions(self, documents: Iterable[Dict[str, Any]]) -> "ResourceScopes":
        """Add the cluster-scoped kinds declared by CustomResourceDefinitions in ``documents``."""

        found = []
        for document in documents:
            if document.get("kind") != "CustomResourceDefinition":
                continue
            spec = document.get("spec")
            if not isinstance(spec, dict) or spec.get("scope") != "Cluster":
                continue
            names = spec.get("names")
            if isinstance(names, dict) and names.get("kind"):
                found.append((str(spec.get("group") or ""), str(names["kind"])))
        return self.with_cluster_resources(found) if found else self


DEFAULT_SCOPES = ResourceScopes()


def is_namespaced(kind: Optional[str], api_version: Optional[str] = None) -> bool:
    return DEFAULT_SCOPES.is_namespaced(kind, api_version)


def format_reference(kind: Optional[str], namespace: Optional[str], name: Optional[str]) -> str:
    parts = [part for part in (kind, namespace, name) if part]
    return "/".join(parts)


@dataclass(frozen=True)
class RenderedResource:
    """One rendered Kubernetes object.

    The underlying mapping is private; ``to_dict`` hands out deep copies so
    consumers cannot mutate what the renderer produced.
    """

    _manifest: Dict[str, Any] = field(repr=False)

    @classmethod
    def from_dict(cls, manifest: Dict[str, Any]) -> "RenderedResource":
        if not isinstance(manifest, dict):
            raise TypeError("manifest must be a mapping")
        return cls(copy.deepcopy(manifest))

    @property
    def kind(self) -> str:
        return str(self._manifest.get("kind") or "")

    @property
    def api_version(self) -> str:
        return str(self._manifest.get("apiVersion") or "")

    @property
    def metadata(self) -> Dict[str, Any]:
        metadata = self._manifest.get("metadata")
        return copy.deepcopy(metadata) if isinstance(metadata, dict) else {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or "")

    @property
    def namespace(self) -> Optional[str]:
        namespace = self.metadata.get("namespace")
        return namespace if isinstance(namespace, str) and namespace else None

    @property
    def reference(self) -> str:
        return format_reference(self.kind, self.namespace, self.name)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._manifest)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RenderedResource):
            return NotImplemented
        return self._manifest == other._manifest

    def __hash__(self) -> int:
        return hash(self.reference)


__all__ = [
    "CLUSTER_SCOPED_KINDS",
    "CLUSTER_SCOPED_RESOURCES",
    "DEFAULT_SCOPES",
    "RenderedResource",
    "ResourceScopes",
    "api_group",
    "format_reference",
    "is_namespaced",
]
