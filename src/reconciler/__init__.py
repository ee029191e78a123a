"""Reconciler package applying rendered resources to the cluster."""

from .reconciler import ApplyReport, ResourceReconciler

__all__ = ["ApplyReport", "ResourceReconciler"]
