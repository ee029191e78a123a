"""Cluster store backends used by the reconciler and bootstrapper."""

from .base import ClusterStore
from .kubectl import KubectlStore
from .memory import InMemoryStore

__all__ = ["ClusterStore", "InMemoryStore", "KubectlStore"]
