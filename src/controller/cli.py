from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from src.common.settings import Settings
from src.store.kubectl import KubectlStore
from src.store.memory import InMemoryStore

from .models import InitializationSpec
from .pipeline import reconcile as run_reconcile

app = typer.Typer(help="Bootstrap generated namespaces and deploy the manifest bundle.")


def load_spec(path: Path) -> InitializationSpec:
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Initialization file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise typer.BadParameter(f"Initialization file is not valid YAML: {exc}") from exc
    try:
        return InitializationSpec.from_resource(document)
    except (ValidationError, ValueError) as exc:
        raise typer.BadParameter(f"Invalid initialization resource {path}: {exc}") from exc


@app.command()
def reconcile(
    spec_path: Path = typer.Option(
        Path("config/dscinitialization.yaml"),
        "--spec",
        "-s",
        help="Initialization resource YAML.",
    ),
    simulate: bool = typer.Option(
        False,
        "--simulate",
        help="Apply against an in-memory store instead of the cluster.",
    ),
    kubectl_cmd: Optional[str] = typer.Option(None, help="kubectl binary used to talk to the cluster."),
    kustomize_cmd: Optional[str] = typer.Option(None, help="kustomize command (e.g. 'kubectl kustomize')."),
    manifest_root: Optional[Path] = typer.Option(None, help="Directory holding extracted manifest bundles."),
    fallback_archive: Optional[Path] = typer.Option(None, help="Archive used when the spec has no manifestsUri."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Also write the outcome JSON here."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(levelname)s: %(message)s")
    settings = Settings.from_env().with_overrides(
        kubectl_cmd=kubectl_cmd,
        kustomize_cmd=kustomize_cmd,
        manifest_root=manifest_root,
        fallback_archive=fallback_archive,
    )
    spec = load_spec(spec_path)
    if simulate:
        store = InMemoryStore()
    else:
        store = KubectlStore(settings.kubectl_cmd, timeout_seconds=settings.command_timeout_seconds)

    outcome = run_reconcile(spec, store, settings=settings)
    rendered = json.dumps(outcome.to_dict(), indent=2)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(rendered, encoding="utf-8")
    typer.echo(rendered)
    if not outcome.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
