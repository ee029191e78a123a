from __future__ import annotations

import logging
import os
import shutil
import tarfile
import threading
import zlib
from pathlib import Path
from typing import BinaryIO, Optional

from src.common.errors import ExtractError, raise_if_cancelled

logger = logging.getLogger(__name__)


class ArchiveExtractor:
    """Unpack a gzip-compressed tar stream onto a manifest root.

    The archive is read sequentially (``r|gz``) so it never has to be
    seekable or fully buffered. The first member is the wrapper/marker entry
    produced by the bundle tooling and is skipped. Extraction is not
    transactional: a failure part way leaves whatever was already written.
    """

    def __init__(self, chunk_size: int = 64 * 1024, *, cancel: Optional[threading.Event] = None) -> None:
        self.chunk_size = chunk_size
        self._cancel = cancel

    def extract(self, stream: BinaryIO, destination_root: Path) -> int:
        root = Path(os.path.realpath(destination_root))
        root.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            with tarfile.open(fileobj=stream, mode="r|gz") as archive:
                for index, member in enumerate(archive):
                    raise_if_cancelled(self._cancel, "extract")
                    target = self._resolve_target(root, member.name)
                    if index == 0:
                        continue
                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                    elif member.isreg():
                        self._write_member(archive, member, target)
                        written += 1
                    else:
                        logger.debug("Skipping unsupported archive entry %s", member.name)
        except (tarfile.TarError, EOFError, zlib.error) as exc:
            raise ExtractError(f"corrupt or truncated archive: {exc}") from exc
        except OSError as exc:
            raise ExtractError(f"failed to extract archive into {root}: {exc}") from exc
        logger.info("Extracted %d file(s) into %s", written, root)
        return written

    def _write_member(self, archive: tarfile.TarFile, member: tarfile.TarInfo, target: Path) -> None:
        source = archive.extractfile(member)
        if source is None:
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        with source, target.open("wb") as handle:
            shutil.copyfileobj(source, handle, self.chunk_size)

    @staticmethod
    def _resolve_target(root: Path, entry_name: str) -> Path:
        target = Path(os.path.realpath(root / entry_name))
        if target != root and root not in target.parents:
            raise ExtractError(
                f"archive entry escapes destination root: {entry_name}",
                resource=entry_name,
            )
        return target


__all__ = ["ArchiveExtractor"]
