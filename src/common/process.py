"""Subprocess runner that honours the pipeline's cancellation token."""

from __future__ import annotations

import subprocess
import threading
import time
from typing import Optional, Sequence

from .errors import raise_if_cancelled

POLL_INTERVAL_SECONDS = 0.1


def run_command(
    command: Sequence[str],
    *,
    input_data: Optional[str] = None,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    stage: str = "pipeline",
    poll_interval: float = POLL_INTERVAL_SECONDS,
) -> subprocess.CompletedProcess:
    """Run ``command`` like ``subprocess.run(capture_output=True, text=True)``.

    The child is polled every ``poll_interval`` seconds and killed as soon as
    ``cancel`` is set, raising ``CancelledError`` for ``stage``. A child that
    outlives ``timeout`` is killed and ``subprocess.TimeoutExpired`` raised.
    ``FileNotFoundError`` from a missing binary propagates unchanged.
    """

    raise_if_cancelled(cancel, stage)
    deadline = None if timeout is None else time.monotonic() + timeout
    proc = subprocess.Popen(
        list(command),
        stdin=subprocess.PIPE if input_data is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    pending = input_data
    with proc:
        try:
            while True:
                wait = poll_interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise subprocess.TimeoutExpired(list(command), timeout)
                    wait = min(wait, remaining)
                try:
                    stdout, stderr = proc.communicate(pending, timeout=wait)
                    break
                except subprocess.TimeoutExpired:
                    # communicate() keeps the input it was first given.
                    pending = None
                raise_if_cancelled(cancel, stage)
        except BaseException:
            proc.kill()
            proc.communicate()
            raise
    return subprocess.CompletedProcess(list(command), proc.returncode, stdout, stderr)


__all__ = ["POLL_INTERVAL_SECONDS", "run_command"]
