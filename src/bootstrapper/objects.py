"""Canonical shapes of the objects created for every generated namespace."""

from __future__ import annotations

from typing import Any, Dict

GENERATED_NAMESPACE_LABEL = "opendatahub.io/generated-namespace"
POD_SECURITY_ENFORCE_LABEL = "pod-security.kubernetes.io/enforce"
RBAC_API_GROUP = "rbac.authorization.k8s.io"


def owner_reference(api_version: str, kind: str, name: str, uid: str) -> Dict[str, Any]:
    return {
        "apiVersion": api_version,
        "kind": kind,
        "name": name,
        "uid": uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def desired_namespace(name: str) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": name,
            "labels": {
                GENERATED_NAMESPACE_LABEL: "true",
                POD_SECURITY_ENFORCE_LABEL: "baseline",
            },
        },
    }


def desired_network_policy(name: str) -> Dict[str, Any]:
    # Ingress is allowed only from namespaces this pipeline generated.
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {"name": name, "namespace": name},
        "spec": {
            "podSelector": {},
            "ingress": [
                {
                    "from": [
                        {
                            "namespaceSelector": {
                                "matchLabels": {GENERATED_NAMESPACE_LABEL: "true"},
                            }
                        }
                    ]
                }
            ],
            "policyTypes": ["Ingress"],
        },
    }


def desired_role_binding(name: str, cluster_role: str) -> Dict[str, Any]:
    return {
        "apiVersion": f"{RBAC_API_GROUP}/v1",
        "kind": "RoleBinding",
        "metadata": {"name": name, "namespace": name},
        "subjects": [
            {
                "kind": "Group",
                "apiGroup": RBAC_API_GROUP,
                "name": f"system:serviceaccounts:{name}",
            }
        ],
        "roleRef": {
            "apiGroup": RBAC_API_GROUP,
            "kind": "ClusterRole",
            "name": cluster_role,
        },
    }


__all__ = [
    "GENERATED_NAMESPACE_LABEL",
    "POD_SECURITY_ENFORCE_LABEL",
    "desired_namespace",
    "desired_network_policy",
    "desired_role_binding",
    "owner_reference",
]
