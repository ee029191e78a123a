from __future__ import annotations

import shlex
import subprocess
import threading
from pathlib import Path
from typing import List, Optional

from src.common.errors import RenderError
from src.common.process import run_command


class KustomizeEngine:
    """Build an overlay directory with the kustomize CLI.

    ``command`` may be a bare ``kustomize`` (``build`` is appended) or a
    full prefix such as ``kubectl kustomize``. A running build is killed
    when ``cancel`` is set.
    """

    def __init__(
        self,
        command: str = "kustomize",
        timeout_seconds: Optional[float] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.command = command
        self.timeout_seconds = timeout_seconds
        self.cancel = cancel

    def build_command(self, overlay_root: Path) -> List[str]:
        parts = shlex.split(self.command)
        if len(parts) == 1:
            parts.append("build")
        return [*parts, str(overlay_root)]

    def build(self, overlay_root: Path) -> str:
        command = self.build_command(overlay_root)
        try:
            completed = run_command(
                command,
                timeout=self.timeout_seconds,
                cancel=self.cancel,
                stage="render",
            )
        except FileNotFoundError as exc:
            raise RenderError(f"Required binary not found: {command[0]}", resource=str(overlay_root)) from exc
        except subprocess.TimeoutExpired as exc:
            raise RenderError(
                f"kustomize timed out after {self.timeout_seconds}s", resource=str(overlay_root)
            ) from exc
        if completed.returncode != 0:
            stderr = completed.stderr.strip() if completed.stderr else ""
            stdout = completed.stdout.strip() if completed.stdout else ""
            raise RenderError(
                f"error during resmap resources: {stderr or stdout or f'exit status {completed.returncode}'}",
                resource=str(overlay_root),
            )
        return completed.stdout


__all__ = ["KustomizeEngine"]
