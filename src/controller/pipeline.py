"""Driver-facing entry point: ``reconcile(spec, store) -> ReconcileOutcome``.

The core owns no scheduling. The driver decides when to call ``reconcile``
and retries by calling it again; every step below is idempotent, so a
repeated or overlapping invocation converges on the same cluster state.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional

from src.bootstrapper.bootstrapper import NamespaceBootstrapper
from src.common.errors import BootstrapError, ExtractError, RenderError, StoreError, raise_if_cancelled
from src.common.resources import DEFAULT_SCOPES, RenderedResource, ResourceScopes
from src.common.settings import Settings
from src.extractor.extractor import ArchiveExtractor
from src.fetcher.fetcher import ArchiveFetcher
from src.reconciler.reconciler import ApplyReport, ResourceReconciler
from src.renderer.engine import KustomizeEngine
from src.renderer.renderer import OverlayRenderer
from src.store.base import ClusterStore

from .bundle import bundle_directory, content_root, discover_components, install_bundle
from .models import PHASE_PROGRESSING, PHASE_READY, InitializationSpec, ReconcileOutcome
from .status import (
    MESSAGE_COMPLETED,
    MESSAGE_INIT,
    REASON_COMPLETED,
    REASON_FAILED,
    REASON_INIT,
    LoggingStatusPublisher,
    StatusPublisher,
)

logger = logging.getLogger(__name__)


class InitializationReconciler:
    def __init__(
        self,
        store: ClusterStore,
        *,
        settings: Optional[Settings] = None,
        publisher: Optional[StatusPublisher] = None,
        fetcher: Optional[ArchiveFetcher] = None,
        extractor: Optional[ArchiveExtractor] = None,
        renderer: Optional[OverlayRenderer] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.publisher = publisher or LoggingStatusPublisher()
        self.cancel = cancel
        self.fetcher = fetcher or ArchiveFetcher(self.settings, cancel=cancel)
        self.extractor = extractor or ArchiveExtractor(self.settings.chunk_size, cancel=cancel)
        self.renderer = renderer or OverlayRenderer(
            KustomizeEngine(
                self.settings.kustomize_cmd,
                timeout_seconds=self.settings.command_timeout_seconds,
                cancel=cancel,
            )
        )
        self.applier = ResourceReconciler(store, cancel=cancel)

    def reconcile(self, spec: InitializationSpec) -> ReconcileOutcome:
        logger.info("Reconciling %s %s", spec.kind, spec.name)
        report = ApplyReport()
        ensured: List[str] = []
        try:
            self._publish(PHASE_PROGRESSING, REASON_INIT, MESSAGE_INIT)

            bootstrapper = NamespaceBootstrapper(
                self.store,
                spec.owner_reference(),
                cluster_role=self.settings.role_binding_cluster_role,
                cancel=self.cancel,
            )
            for namespace in spec.namespaces:
                bootstrapper.ensure(namespace)
                ensured.append(namespace)

            bundle_root = self.download_manifests(spec.manifests_uri)
            scopes = self.resource_scopes()
            self.deploy_components(bundle_root, spec, report, scopes)
            if spec.managed:
                managed_path = self._content_root(bundle_root) / self.settings.managed_configs_path
                self.deploy_manifests(managed_path, self.settings.managed_namespace, report, scopes)

            raise_if_cancelled(self.cancel, "status")
            self._publish(PHASE_READY, REASON_COMPLETED, MESSAGE_COMPLETED)
        except BootstrapError as exc:
            logger.error("Reconcile of %s failed at %s: %s", spec.name, exc.stage, exc)
            self._publish_failure(str(exc))
            return ReconcileOutcome(
                ok=False,
                phase=PHASE_PROGRESSING,
                message=str(exc),
                stage=exc.stage,
                error=exc,
                namespaces=ensured,
                created=report.created,
                updated=report.updated,
                unchanged=report.unchanged,
            )

        logger.info("Reconcile of %s completed: %d resource(s) applied", spec.name, report.total)
        return ReconcileOutcome(
            ok=True,
            phase=PHASE_READY,
            message=MESSAGE_COMPLETED,
            namespaces=ensured,
            created=report.created,
            updated=report.updated,
            unchanged=report.unchanged,
        )

    def download_manifests(self, uri: str) -> Path:
        target = bundle_directory(self.settings.manifest_root, uri, self.settings.fallback_archive)
        with self.fetcher.fetch(uri) as stream:
            try:
                return install_bundle(stream, target, self.extractor)
            except OSError as exc:
                raise ExtractError(f"failed to prepare manifest cache {target}: {exc}") from exc

    def resource_scopes(self) -> ResourceScopes:
        """Built-in scope table extended with what the cluster reports."""

        try:
            discovered = self.store.cluster_scoped_resources()
        except StoreError as exc:
            logger.warning("API discovery failed, using built-in resource scopes: %s", exc)
            return DEFAULT_SCOPES
        return DEFAULT_SCOPES.with_cluster_resources(discovered)

    def deploy_components(
        self,
        bundle_root: Path,
        spec: InitializationSpec,
        report: ApplyReport,
        scopes: Optional[ResourceScopes] = None,
    ) -> None:
        exclude = (self.settings.managed_configs_path,)
        try:
            components = discover_components(bundle_root, exclude=exclude)
        except OSError as exc:
            raise RenderError(f"cannot list manifest components in {bundle_root}: {exc}") from exc
        if components and not spec.target_namespace:
            raise RenderError("no target namespace for manifest components", stage="render")
        for component in components:
            self.deploy_manifests(component, spec.target_namespace, report, scopes)

    def deploy_manifests(
        self,
        manifest_path: Path,
        namespace: str,
        report: ApplyReport,
        scopes: Optional[ResourceScopes] = None,
    ) -> List[RenderedResource]:
        raise_if_cancelled(self.cancel, "render")
        resources = self.renderer.render(manifest_path, namespace, scopes=scopes)
        self.applier.apply_all(resources, report)
        return resources

    @staticmethod
    def _content_root(bundle_root: Path) -> Path:
        try:
            return content_root(bundle_root)
        except OSError as exc:
            raise RenderError(f"cannot read manifest bundle {bundle_root}: {exc}") from exc

    def _publish(self, phase: str, reason: str, message: str) -> None:
        try:
            self.publisher.publish(phase, reason, message)
        except BootstrapError:
            raise
        except Exception as exc:
            raise StoreError(f"failed to update status: {exc}", stage="status") from exc

    def _publish_failure(self, message: str) -> None:
        try:
            self.publisher.publish(PHASE_PROGRESSING, REASON_FAILED, message)
        except Exception:
            logger.exception("Failed to publish failure status")


def reconcile(spec: InitializationSpec, store: ClusterStore, **kwargs) -> ReconcileOutcome:
    return InitializationReconciler(store, **kwargs).reconcile(spec)


__all__ = ["InitializationReconciler", "reconcile"]
