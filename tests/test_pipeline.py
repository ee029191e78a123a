import io
import shlex
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path

import httpx

from src.common.errors import CancelledError, ExtractError, FetchError, NotFoundError, RenderError, StoreError
from src.common.settings import Settings
from src.controller.bundle import bundle_directory, discover_components, install_bundle
from src.controller.models import PHASE_PROGRESSING, PHASE_READY, InitializationSpec
from src.controller.pipeline import reconcile
from src.controller.status import RecordingStatusPublisher
from src.extractor.extractor import ArchiveExtractor
from src.fetcher.fetcher import ArchiveFetcher
from src.renderer.renderer import OverlayRenderer
from src.store.memory import InMemoryStore
from tests.support import CONFIGMAP_YAML, DirectoryEngine, component_bundle, make_archive

ROLE_YAML = """\
apiVersion: rbac.authorization.k8s.io/v1
kind: Role
metadata:
  name: managed-reader
rules: []
"""

DASHBOARD_YAML = """\
apiVersion: example.io/v1
kind: Dashboard
metadata:
  name: main
"""


class DiscoveryFailingStore(InMemoryStore):
    def cluster_scoped_resources(self):
        raise StoreError("error: unable to retrieve the complete list of server APIs")


class LaggingReadStore(InMemoryStore):
    """ConfigMaps created elsewhere are not visible to reads yet."""

    def get(self, kind, namespace, name, api_version=None):
        if kind == "ConfigMap":
            raise NotFoundError(f'configmaps "{name}" not found')
        return super().get(kind, namespace, name, api_version)


class FailingReadyPublisher(RecordingStatusPublisher):
    def publish(self, phase, reason, message):
        super().publish(phase, reason, message)
        if phase == PHASE_READY:
            raise RuntimeError("status subresource unavailable")


class ReconcilePipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)
        self.archive = self.base / "odh-manifests.tar.gz"
        self.settings = Settings(
            manifest_root=self.base / "cache",
            fallback_archive=self.archive,
            managed_namespace="managed-apps",
        )
        self.store = InMemoryStore()
        self.publisher = RecordingStatusPublisher()
        self.engine = DirectoryEngine()

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _reconcile(self, spec: InitializationSpec, **kwargs):
        kwargs.setdefault("settings", self.settings)
        kwargs.setdefault("publisher", self.publisher)
        kwargs.setdefault("renderer", OverlayRenderer(self.engine))
        return reconcile(spec, self.store, **kwargs)

    def test_end_to_end_with_local_fallback_archive(self) -> None:
        self.archive.write_bytes(component_bundle())
        spec = InitializationSpec(name="default", uid="uid-1", namespaces=["ns1", "ns2"], manifests_uri="")

        outcome = self._reconcile(spec)

        self.assertTrue(outcome.ok, outcome.message)
        self.assertEqual(outcome.phase, PHASE_READY)
        self.assertEqual(outcome.namespaces, ["ns1", "ns2"])
        for namespace in ("ns1", "ns2"):
            self.store.get("Namespace", None, namespace)
            self.store.get("NetworkPolicy", namespace, namespace)
            self.store.get("RoleBinding", namespace, namespace)
        configmaps = self.store.objects("ConfigMap")
        self.assertEqual(len(configmaps), 1)
        self.assertEqual(configmaps[0]["metadata"]["namespace"], "ns1")
        self.assertEqual(outcome.created[-1], "ConfigMap/ns1/demo-config")
        self.assertEqual(self.publisher.history[0][0], PHASE_PROGRESSING)
        self.assertEqual(self.publisher.last[0], PHASE_READY)

        extracted = bundle_directory(self.settings.manifest_root, "", self.archive)
        self.assertTrue((extracted / "odh-manifests" / "demo" / "default" / "configmap.yaml").is_file())

    def test_second_invocation_updates_without_duplicates(self) -> None:
        self.archive.write_bytes(component_bundle())
        spec = InitializationSpec(name="default", uid="uid-1", namespaces=["ns1", "ns2"])

        self.assertTrue(self._reconcile(spec).ok)
        second = self._reconcile(spec)

        self.assertTrue(second.ok)
        self.assertEqual(second.created, [])
        self.assertEqual(second.updated, ["ConfigMap/ns1/demo-config"])
        self.assertEqual(len(self.store.objects("Namespace")), 2)
        self.assertEqual(len(self.store.objects("ConfigMap")), 1)
        for namespace in self.store.objects("Namespace"):
            self.assertEqual(len(namespace["metadata"]["ownerReferences"]), 1)

    def test_http_404_fails_after_namespace_bootstrap_only(self) -> None:
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        fetcher = ArchiveFetcher(self.settings, client=client)
        spec = InitializationSpec(
            name="default",
            namespaces=["ns1", "ns2"],
            manifests_uri="https://example.test/odh-manifests.tar.gz",
        )

        outcome = self._reconcile(spec, fetcher=fetcher)

        self.assertFalse(outcome.ok)
        self.assertIsInstance(outcome.error, FetchError)
        self.assertEqual(outcome.stage, "fetch")
        self.assertEqual(outcome.phase, PHASE_PROGRESSING)
        # Namespace bootstrap ran before the fetch stage and stays in place.
        self.assertEqual(self.store.count("create"), 6)
        self.assertEqual(self.store.count("update"), 0)
        self.assertEqual(len(self.store.objects("Namespace")), 2)
        self.assertEqual(self.store.objects("ConfigMap"), [])
        self.assertEqual(self.engine.builds, [])
        self.assertFalse(self.settings.manifest_root.exists() and any(self.settings.manifest_root.iterdir()))

    def test_missing_overlay_surfaces_render_error(self) -> None:
        self.archive.write_bytes(
            make_archive(
                [
                    ("odh-manifests", None),
                    ("odh-manifests/demo/default/kustomization.yaml", "resources:\n  - missing.yaml\n"),
                ]
            )
        )
        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]))
        self.assertFalse(outcome.ok)
        self.assertIsInstance(outcome.error, RenderError)
        self.assertEqual(self.publisher.last[0], PHASE_PROGRESSING)

    def test_managed_mode_deploys_managed_overlay(self) -> None:
        self.archive.write_bytes(
            make_archive(
                [
                    ("odh-manifests", None),
                    ("odh-manifests/demo/default/kustomization.yaml", "resources:\n  - configmap.yaml\n"),
                    ("odh-manifests/demo/default/configmap.yaml", CONFIGMAP_YAML),
                    ("odh-manifests/osd-configs/kustomization.yaml", "resources:\n  - role.yaml\n"),
                    ("odh-manifests/osd-configs/role.yaml", ROLE_YAML),
                ]
            )
        )
        spec = InitializationSpec(namespaces=["ns1"], managed=True)

        outcome = self._reconcile(spec)

        self.assertTrue(outcome.ok, outcome.message)
        roles = self.store.objects("Role")
        self.assertEqual([r["metadata"]["namespace"] for r in roles], ["managed-apps"])
        self.assertEqual(self.store.objects("ConfigMap")[0]["metadata"]["namespace"], "ns1")

    def test_unmanaged_mode_skips_managed_overlay(self) -> None:
        self.archive.write_bytes(
            make_archive(
                [
                    ("odh-manifests", None),
                    ("odh-manifests/osd-configs/kustomization.yaml", "resources:\n  - role.yaml\n"),
                    ("odh-manifests/osd-configs/role.yaml", ROLE_YAML),
                ]
            )
        )
        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]))
        self.assertTrue(outcome.ok)
        self.assertEqual(self.store.objects("Role"), [])

    def test_applications_namespace_overrides_first_namespace(self) -> None:
        self.archive.write_bytes(component_bundle())
        spec = InitializationSpec(namespaces=["ns1", "ns2"], applications_namespace="ns2")
        self.assertTrue(self._reconcile(spec).ok)
        self.assertEqual(self.store.objects("ConfigMap")[0]["metadata"]["namespace"], "ns2")

    def test_cancellation_stops_before_mutations(self) -> None:
        cancel = threading.Event()
        cancel.set()
        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]), cancel=cancel)
        self.assertFalse(outcome.ok)
        self.assertIsInstance(outcome.error, CancelledError)
        self.assertEqual(self.store.count("create"), 0)

    def test_final_status_failure_fails_outcome(self) -> None:
        self.archive.write_bytes(component_bundle())
        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]), publisher=FailingReadyPublisher())
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.stage, "status")
        self.assertEqual(len(self.store.objects("ConfigMap")), 1)

    def test_unwritable_manifest_cache_is_extract_failure(self) -> None:
        self.archive.write_bytes(component_bundle())
        blocker = self.base / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        settings = Settings(manifest_root=blocker / "cache", fallback_archive=self.archive)

        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]), settings=settings)

        self.assertFalse(outcome.ok)
        self.assertIsInstance(outcome.error, ExtractError)
        self.assertEqual(outcome.stage, "extract")
        self.assertIn("manifest cache", outcome.message)
        self.assertEqual(outcome.namespaces, ["ns1"])
        self.assertEqual(self.publisher.last[0], PHASE_PROGRESSING)

    def test_cancel_during_slow_render_returns_promptly(self) -> None:
        self.archive.write_bytes(component_bundle())
        slow = f"{shlex.quote(sys.executable)} -c 'import time; time.sleep(30)'"
        settings = Settings(
            manifest_root=self.base / "cache",
            fallback_archive=self.archive,
            kustomize_cmd=slow,
            command_timeout_seconds=60,
        )
        cancel = threading.Event()
        timer = threading.Timer(0.5, cancel.set)
        timer.start()
        started = time.monotonic()
        try:
            outcome = self._reconcile(
                InitializationSpec(namespaces=["ns1"]),
                settings=settings,
                renderer=None,
                cancel=cancel,
            )
        finally:
            timer.cancel()

        self.assertLess(time.monotonic() - started, 5)
        self.assertFalse(outcome.ok)
        self.assertIsInstance(outcome.error, CancelledError)
        self.assertEqual(self.store.objects("ConfigMap"), [])

    def test_discovered_cluster_kinds_are_not_namespaced(self) -> None:
        self.store = InMemoryStore(cluster_scoped_resources={("example.io", "Dashboard")})
        self.archive.write_bytes(
            make_archive(
                [
                    ("odh-manifests", None),
                    ("odh-manifests/dash/default/kustomization.yaml", "resources:\n  - dashboard.yaml\n"),
                    ("odh-manifests/dash/default/dashboard.yaml", DASHBOARD_YAML),
                ]
            )
        )

        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]))

        self.assertTrue(outcome.ok, outcome.message)
        self.assertEqual(outcome.created[-1], "Dashboard/main")
        self.assertNotIn("namespace", self.store.objects("Dashboard")[0]["metadata"])

    def test_discovery_failure_falls_back_to_builtin_scopes(self) -> None:
        self.store = DiscoveryFailingStore()
        self.archive.write_bytes(component_bundle())
        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]))
        self.assertTrue(outcome.ok, outcome.message)
        self.assertEqual(len(self.store.objects("ConfigMap")), 1)

    def test_create_race_is_reported_as_unchanged(self) -> None:
        self.store = LaggingReadStore()
        self.store.create(
            {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "demo-config", "namespace": "ns1"}}
        )
        self.archive.write_bytes(component_bundle())

        outcome = self._reconcile(InitializationSpec(namespaces=["ns1"]))

        self.assertTrue(outcome.ok, outcome.message)
        self.assertEqual(outcome.unchanged, ["ConfigMap/ns1/demo-config"])
        self.assertNotIn("ConfigMap/ns1/demo-config", outcome.created)
        self.assertEqual(outcome.to_dict()["unchanged"], ["ConfigMap/ns1/demo-config"])


class BundleCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_bundle_directory_is_keyed_by_source(self) -> None:
        root = self.base / "cache"
        first = bundle_directory(root, "https://example.test/a.tar.gz", self.base / "local.tar.gz")
        second = bundle_directory(root, "https://example.test/b.tar.gz", self.base / "local.tar.gz")
        local = bundle_directory(root, "", self.base / "local.tar.gz")
        self.assertEqual(len({first, second, local}), 3)
        self.assertEqual(first, bundle_directory(root, "https://example.test/a.tar.gz", self.base / "x"))
        self.assertEqual(first.parent, root)

    def test_failed_extraction_keeps_previous_bundle(self) -> None:
        target = self.base / "cache" / "bundle"
        extractor = ArchiveExtractor()
        install_bundle(io.BytesIO(component_bundle()), target, extractor)
        with self.assertRaises(ExtractError):
            install_bundle(io.BytesIO(b"garbage"), target, extractor)
        self.assertTrue((target / "odh-manifests" / "demo" / "default" / "kustomization.yaml").is_file())
        self.assertEqual([p.name for p in target.parent.iterdir()], ["bundle"])

    def test_new_bundle_replaces_old_contents(self) -> None:
        target = self.base / "cache" / "bundle"
        extractor = ArchiveExtractor()
        install_bundle(io.BytesIO(component_bundle("old")), target, extractor)
        install_bundle(io.BytesIO(component_bundle("new")), target, extractor)
        self.assertEqual([p.name for p in discover_components(target)], ["new"])
        self.assertEqual([p.name for p in target.parent.iterdir()], ["bundle"])


if __name__ == "__main__":
    unittest.main()
