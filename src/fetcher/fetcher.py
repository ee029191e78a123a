from __future__ import annotations

import contextlib
import logging
import threading
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional

import httpx

from src.common.errors import FetchError, raise_if_cancelled
from src.common.process import POLL_INTERVAL_SECONDS
from src.common.settings import Settings

logger = logging.getLogger(__name__)


class _ChunkStream:
    """Read-only binary file object over an iterator of byte chunks.

    ``tarfile`` in stream mode only ever calls ``read``; the buffer never
    holds more than one chunk beyond what the caller asked for.
    """

    def __init__(self, chunks: Iterator[bytes], cancel: Optional[threading.Event] = None) -> None:
        self._chunks = chunks
        self._buffer = b""
        self._cancel = cancel
        self._exhausted = False

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        while not self._exhausted and (size < 0 or len(self._buffer) < size):
            raise_if_cancelled(self._cancel, "fetch")
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                break
            except (httpx.HTTPError, httpx.StreamError) as exc:
                raise_if_cancelled(self._cancel, "fetch")
                raise FetchError(f"error downloading manifests: {exc}") from exc
            self._buffer += chunk
        if size < 0:
            data, self._buffer = self._buffer, b""
        else:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        self._exhausted = True
        self._buffer = b""


class _CancellableFile:
    def __init__(self, handle: BinaryIO, cancel: Optional[threading.Event]) -> None:
        self._handle = handle
        self._cancel = cancel

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        raise_if_cancelled(self._cancel, "fetch")
        return self._handle.read(size)

    def close(self) -> None:
        self._handle.close()


class _CancelWatcher:
    """Calls ``on_cancel`` from a helper thread once ``cancel`` is set.

    Closing the response is the only way to wake a read blocked inside the
    HTTP client, so the token is polled here rather than between chunks.
    """

    def __init__(
        self,
        cancel: Optional[threading.Event],
        on_cancel: Callable[[], None],
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._cancel = cancel
        self._on_cancel = on_cancel
        self._poll_interval = poll_interval
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._watch, name="fetch-cancel-watcher", daemon=True)

    def __enter__(self) -> "_CancelWatcher":
        if self._cancel is not None:
            self._thread.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._done.set()
        if self._thread.is_alive():
            self._thread.join()

    def _watch(self) -> None:
        while not self._done.is_set():
            if self._cancel.wait(self._poll_interval):
                if not self._done.is_set():
                    logger.info("Cancellation requested, closing manifest download")
                    self._on_cancel()
                return


class ArchiveFetcher:
    """Open the manifest bundle either from a URI or the local fallback archive."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.Client] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.settings = settings or Settings()
        self._client = client
        self._cancel = cancel

    @contextlib.contextmanager
    def fetch(self, uri: Optional[str] = None) -> Iterator[BinaryIO]:
        raise_if_cancelled(self._cancel, "fetch")
        if uri:
            with self._open_remote(uri) as stream:
                yield stream
        else:
            with self._open_local(self.settings.fallback_archive) as stream:
                yield stream

    @contextlib.contextmanager
    def _open_remote(self, uri: str) -> Iterator[BinaryIO]:
        logger.info("Downloading manifests from %s", uri)
        owns_client = self._client is None
        client = self._client or httpx.Client(
            timeout=self.settings.http_timeout_seconds,
            follow_redirects=True,
        )
        try:
            with client.stream("GET", uri) as response:
                if not response.is_success:
                    raise FetchError(
                        f"error downloading manifests: {response.status_code} HTTP status"
                    )
                with _CancelWatcher(self._cancel, response.close):
                    yield _ChunkStream(
                        response.iter_bytes(chunk_size=self.settings.chunk_size),
                        cancel=self._cancel,
                    )
        except httpx.HTTPError as exc:
            raise FetchError(f"error downloading manifests: {exc}") from exc
        finally:
            if owns_client:
                client.close()

    @contextlib.contextmanager
    def _open_local(self, path: Path) -> Iterator[BinaryIO]:
        logger.info("Using local manifest archive %s", path)
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise FetchError(f"cannot open fallback archive {path}: {exc}") from exc
        stream = _CancellableFile(handle, self._cancel)
        try:
            yield stream
        finally:
            stream.close()


__all__ = ["ArchiveFetcher"]
