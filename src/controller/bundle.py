"""Manifest cache layout: one directory per manifest source."""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import BinaryIO, List, Optional

from src.common.errors import ExtractError
from src.extractor.extractor import ArchiveExtractor
from src.renderer.renderer import DEFAULT_OVERLAY, is_overlay_root

logger = logging.getLogger(__name__)


def bundle_directory(manifest_root: Path, uri: str, fallback_archive: Path) -> Path:
    source = uri or f"file://{Path(fallback_archive).resolve()}"
    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]
    return Path(manifest_root) / digest


def install_bundle(stream: BinaryIO, target: Path, extractor: ArchiveExtractor) -> Path:
    """Extract into a staging directory, then swap it in place of ``target``.

    A failed extraction leaves the previous bundle untouched. When two
    invocations for the same source race, whichever rename lands first is
    kept and the other staging tree is discarded. Filesystem failures on the
    cache itself surface as ``ExtractError``.
    """

    target = Path(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{target.name}-staging-", dir=target.parent))
    except OSError as exc:
        raise ExtractError(f"failed to prepare manifest cache {target.parent}: {exc}") from exc
    try:
        extractor.extract(stream, staging)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    retired: Optional[Path] = None
    if target.exists():
        retired = target.with_name(f".{target.name}-retired-{uuid.uuid4().hex[:8]}")
        try:
            os.replace(target, retired)
        except FileNotFoundError:
            retired = None
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise ExtractError(f"failed to retire previous manifests in {target}: {exc}") from exc
    try:
        os.replace(staging, target)
    except OSError as exc:
        shutil.rmtree(staging, ignore_errors=True)
        if not target.is_dir():
            raise ExtractError(f"failed to install manifests into {target}: {exc}") from exc
        logger.info("Concurrent fetch already installed %s", target)
    finally:
        if retired is not None:
            shutil.rmtree(retired, ignore_errors=True)
    return target


def _visible_dirs(path: Path) -> List[Path]:
    return sorted(child for child in path.iterdir() if child.is_dir() and not child.name.startswith("."))


def _is_component(path: Path) -> bool:
    return is_overlay_root(path) or is_overlay_root(path / DEFAULT_OVERLAY)


def content_root(bundle_root: Path) -> Path:
    """Bundle root, or the single wrapper directory the archive put everything under."""

    children = _visible_dirs(bundle_root)
    if any(_is_component(child) for child in children):
        return bundle_root
    if len(children) == 1:
        return children[0]
    return bundle_root


def discover_components(bundle_root: Path, exclude: tuple = ()) -> List[Path]:
    root = content_root(bundle_root)
    return [child for child in _visible_dirs(root) if child.name not in exclude and _is_component(child)]


__all__ = ["bundle_directory", "content_root", "discover_components", "install_bundle"]
