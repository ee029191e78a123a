"""Bootstrapper package for generated namespaces and their baseline policy."""

from .bootstrapper import NamespaceBootstrapper
from .objects import GENERATED_NAMESPACE_LABEL, owner_reference

__all__ = ["GENERATED_NAMESPACE_LABEL", "NamespaceBootstrapper", "owner_reference"]
