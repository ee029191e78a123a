from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
import yaml

from src.common.errors import RenderError
from src.common.settings import Settings

from .engine import KustomizeEngine
from .renderer import OverlayRenderer

app = typer.Typer(help="Render a kustomize overlay into a target namespace.")


@app.command()
def render(
    manifest_path: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True),
    namespace: str = typer.Option(..., "--namespace", "-n", help="Namespace forced onto namespaced objects."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write YAML here instead of stdout."),
    kustomize_cmd: Optional[str] = typer.Option(None, help="kustomize command (e.g. 'kubectl kustomize')."),
) -> None:
    settings = Settings.from_env().with_overrides(kustomize_cmd=kustomize_cmd)
    renderer = OverlayRenderer(
        KustomizeEngine(settings.kustomize_cmd, timeout_seconds=settings.command_timeout_seconds)
    )
    try:
        resources = renderer.render(manifest_path, namespace)
    except RenderError as exc:
        typer.echo(f"Render failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    rendered = yaml.safe_dump_all(
        [resource.to_dict() for resource in resources],
        sort_keys=False,
        explicit_start=len(resources) > 1,
    )
    if out is None:
        typer.echo(rendered, nl=False)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(rendered, encoding="utf-8")
    typer.echo(f"Rendered {len(resources)} resource(s) to {out.resolve()}")


if __name__ == "__main__":  # pragma: no cover
    app()
