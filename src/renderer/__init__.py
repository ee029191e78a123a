"""Renderer package for building kustomize overlays into resource lists."""

from .engine import KustomizeEngine
from .renderer import OverlayRenderer, resolve_overlay_root

__all__ = ["KustomizeEngine", "OverlayRenderer", "resolve_overlay_root"]
