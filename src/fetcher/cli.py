from __future__ import annotations

import shutil
from pathlib import Path
from typing import Optional

import typer

from src.common.errors import FetchError
from src.common.settings import Settings

from .fetcher import ArchiveFetcher


def fetch(
    out: Path = typer.Option(Path("data/manifests.tar.gz"), "--out", "-o", help="Where to write the archive."),
    uri: Optional[str] = typer.Option(None, "--uri", "-u", help="Manifest archive URI (defaults to the local fallback)."),
    fallback_archive: Optional[Path] = typer.Option(None, help="Override the local fallback archive path."),
    timeout: Optional[float] = typer.Option(None, help="HTTP timeout in seconds."),
) -> None:
    settings = Settings.from_env().with_overrides(
        fallback_archive=fallback_archive,
        http_timeout_seconds=timeout,
    )
    out.parent.mkdir(parents=True, exist_ok=True)
    try:
        with ArchiveFetcher(settings).fetch(uri) as stream, out.open("wb") as handle:
            shutil.copyfileobj(stream, handle, settings.chunk_size)
    except FetchError as exc:
        typer.echo(f"Fetch failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Fetched manifests -> {out.resolve()}")


if __name__ == "__main__":  # pragma: no cover
    typer.run(fetch)
