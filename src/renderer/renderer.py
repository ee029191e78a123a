from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol

import yaml

from src.common.errors import RenderError
from src.common.resources import DEFAULT_SCOPES, RenderedResource, ResourceScopes

from .engine import KustomizeEngine
from .namespace import apply_namespace

logger = logging.getLogger(__name__)

KUSTOMIZATION_FILENAMES = ("kustomization.yaml", "kustomization.yml", "Kustomization")
DEFAULT_OVERLAY = "default"


class OverlayEngine(Protocol):
    def build(self, overlay_root: Path) -> str:
        ...


def is_overlay_root(path: Path) -> bool:
    return path.is_dir() and any((path / name).is_file() for name in KUSTOMIZATION_FILENAMES)


def resolve_overlay_root(manifest_path: Path) -> Path:
    """Use ``manifest_path`` itself when it holds a kustomization, else its ``default`` overlay."""

    manifest_path = Path(manifest_path)
    if is_overlay_root(manifest_path):
        return manifest_path
    default_overlay = manifest_path / DEFAULT_OVERLAY
    if is_overlay_root(default_overlay):
        return default_overlay
    raise RenderError(
        f"no kustomization found in {manifest_path} or {default_overlay}",
        resource=str(manifest_path),
    )


class OverlayRenderer:
    def __init__(self, engine: Optional[OverlayEngine] = None, scopes: Optional[ResourceScopes] = None) -> None:
        self.engine = engine or KustomizeEngine()
        self.scopes = scopes or DEFAULT_SCOPES

    def render(
        self,
        manifest_path: Path,
        namespace: str,
        scopes: Optional[ResourceScopes] = None,
    ) -> List[RenderedResource]:
        overlay_root = resolve_overlay_root(manifest_path)
        output = self.engine.build(overlay_root)
        documents = self._load_documents(output, overlay_root)
        # CRDs in the same build decide the scope of their own custom resources.
        scopes = (scopes or self.scopes).with_definitions(documents)
        resources = [RenderedResource.from_dict(apply_namespace(doc, namespace, scopes)) for doc in documents]
        logger.info("Rendered %d resource(s) from %s into namespace %s", len(resources), overlay_root, namespace)
        return resources

    @staticmethod
    def _load_documents(raw_output: str, overlay_root: Path) -> List[dict]:
        try:
            documents: List[Any] = list(yaml.safe_load_all(raw_output))
        except yaml.YAMLError as exc:
            raise RenderError(f"kustomize produced invalid YAML: {exc}", resource=str(overlay_root)) from exc
        rendered: List[dict] = []
        for document in documents:
            if document is None:
                continue
            if not isinstance(document, dict) or not document.get("kind"):
                raise RenderError("rendered document is not a Kubernetes object", resource=str(overlay_root))
            rendered.append(document)
        return rendered


__all__ = [
    "DEFAULT_OVERLAY",
    "KUSTOMIZATION_FILENAMES",
    "OverlayEngine",
    "OverlayRenderer",
    "is_overlay_root",
    "resolve_overlay_root",
]
