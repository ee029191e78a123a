"""Shared fixtures: tarball builder and a directory-walking stand-in for kustomize."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import yaml

from src.common.errors import RenderError
from src.renderer.renderer import KUSTOMIZATION_FILENAMES

Entry = Tuple[str, Optional[str]]


def make_archive(entries: Iterable[Entry]) -> bytes:
    """Build a .tar.gz in memory; a ``None`` body marks a directory entry."""

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, body in entries:
            info = tarfile.TarInfo(name=name)
            if body is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
                continue
            data = body.encode("utf-8")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


CONFIGMAP_YAML = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: demo-config
  namespace: upstream
data:
  greeting: hello
"""

DEFAULT_KUSTOMIZATION = """\
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
namespace: upstream
resources:
  - configmap.yaml
"""


def component_bundle(component: str = "demo") -> bytes:
    return make_archive(
        [
            ("odh-manifests", None),
            (f"odh-manifests/{component}", None),
            (f"odh-manifests/{component}/default", None),
            (f"odh-manifests/{component}/default/kustomization.yaml", DEFAULT_KUSTOMIZATION),
            (f"odh-manifests/{component}/default/configmap.yaml", CONFIGMAP_YAML),
        ]
    )


class DirectoryEngine:
    """Resolves ``resources`` and ``namespace`` from kustomization files.

    Enough of kustomize's behaviour for the pipeline tests: files are loaded
    in declaration order, directories recurse into their own kustomization,
    and a missing reference fails the way kustomize does.
    """

    def __init__(self) -> None:
        self.builds: List[Path] = []

    def build(self, overlay_root: Path) -> str:
        self.builds.append(Path(overlay_root))
        return yaml.safe_dump_all(self._load(Path(overlay_root)), sort_keys=False)

    def _load(self, root: Path) -> List[dict]:
        kustomization_file = next(
            (root / name for name in KUSTOMIZATION_FILENAMES if (root / name).is_file()),
            None,
        )
        if kustomization_file is None:
            raise RenderError(f"unable to find one of {KUSTOMIZATION_FILENAMES} in {root}")
        kustomization = yaml.safe_load(kustomization_file.read_text(encoding="utf-8")) or {}
        documents: List[dict] = []
        for ref in kustomization.get("resources") or []:
            target = root / ref
            if target.is_dir():
                documents.extend(self._load(target))
            elif target.is_file():
                documents.extend(
                    doc for doc in yaml.safe_load_all(target.read_text(encoding="utf-8")) if doc
                )
            else:
                raise RenderError(f"accumulating resources: {target} does not exist")
        namespace = kustomization.get("namespace")
        if namespace:
            for document in documents:
                document.setdefault("metadata", {})["namespace"] = namespace
        return documents


def write_tree(root: Path, files: dict) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
