"""Controller package exposing the reconcile entry point."""

from .models import InitializationSpec, ReconcileOutcome
from .pipeline import InitializationReconciler, reconcile

__all__ = ["InitializationReconciler", "InitializationSpec", "ReconcileOutcome", "reconcile"]
