"""Namespace override applied to every rendered object."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import jsonpatch

from src.common.errors import RenderError
from src.common.resources import DEFAULT_SCOPES, ResourceScopes

_BINDING_KINDS = {"RoleBinding", "ClusterRoleBinding"}
_WEBHOOK_KINDS = {"MutatingWebhookConfiguration", "ValidatingWebhookConfiguration"}


def namespace_patch(
    manifest: Dict[str, Any],
    namespace: str,
    scopes: Optional[ResourceScopes] = None,
) -> List[Dict[str, Any]]:
    """Build the RFC 6902 operations that move ``manifest`` into ``namespace``.

    Namespaced objects always get ``metadata.namespace`` set, whatever the
    overlay declared. ServiceAccount subjects of role bindings follow the
    object, and webhook service references are rewritten only where present.
    Cluster-scoped kinds are recognised through ``scopes``.
    """

    ops: List[Dict[str, Any]] = []
    kind = manifest.get("kind")
    scopes = scopes or DEFAULT_SCOPES

    if scopes.is_namespaced(kind, str(manifest.get("apiVersion") or "")):
        if isinstance(manifest.get("metadata"), dict):
            ops.append({"op": "add", "path": "/metadata/namespace", "value": namespace})
        else:
            ops.append({"op": "add", "path": "/metadata", "value": {"namespace": namespace}})

    if kind in _BINDING_KINDS:
        subjects = manifest.get("subjects")
        if isinstance(subjects, list):
            for idx, subject in enumerate(subjects):
                if isinstance(subject, dict) and subject.get("kind") == "ServiceAccount":
                    ops.append({"op": "add", "path": f"/subjects/{idx}/namespace", "value": namespace})

    if kind in _WEBHOOK_KINDS:
        webhooks = manifest.get("webhooks")
        if isinstance(webhooks, list):
            for idx, webhook in enumerate(webhooks):
                service = _dig(webhook, "clientConfig", "service")
                if isinstance(service, dict) and "namespace" in service:
                    ops.append(
                        {
                            "op": "replace",
                            "path": f"/webhooks/{idx}/clientConfig/service/namespace",
                            "value": namespace,
                        }
                    )

    if kind == "CustomResourceDefinition":
        service = _dig(manifest, "spec", "conversion", "webhook", "clientConfig", "service")
        if isinstance(service, dict) and "namespace" in service:
            ops.append(
                {
                    "op": "replace",
                    "path": "/spec/conversion/webhook/clientConfig/service/namespace",
                    "value": namespace,
                }
            )

    return ops


def apply_namespace(
    manifest: Dict[str, Any],
    namespace: str,
    scopes: Optional[ResourceScopes] = None,
) -> Dict[str, Any]:
    if not namespace:
        raise RenderError("target namespace is required")
    ops = namespace_patch(manifest, namespace, scopes)
    if not ops:
        return manifest
    try:
        return jsonpatch.apply_patch(manifest, ops, in_place=False)
    except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException) as exc:
        raise RenderError(f"namespace transform failed: {exc}") from exc


def _dig(value: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


__all__ = ["apply_namespace", "namespace_patch"]
