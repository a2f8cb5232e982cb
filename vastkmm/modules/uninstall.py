"""VAST NFS KMM removal.

Removes builds, the Module object and the supporting resources. Finalizers
are cleared first so nothing hangs on a half-deleted build. Every step
tolerates the resource already being gone.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from kubernetes.client.rest import ApiException

from .cluster import KMM_GROUP, KMM_PLURAL, KMM_VERSION, ClusterClient
from .errors import ClusterAccessError
from .models import UnloadResult
from .unload import GracefulUnloadSequencer

logger = logging.getLogger("vastkmm.uninstall")

BUILD_GROUP, BUILD_VERSION, BUILD_PLURAL = 'build.openshift.io', 'v1', 'builds'
IMAGESTREAM_GROUP, IMAGESTREAM_VERSION, IMAGESTREAM_PLURAL = 'image.openshift.io', 'v1', 'imagestreams'
BUILD_POD_SELECTOR = 'openshift.io/build.name'
APP_SELECTOR = 'app.kubernetes.io/name=vastnfs-kmm'


@dataclass
class UninstallReport:
    builds_deleted: List[str] = field(default_factory=list)
    module_deleted: bool = False
    imagestream_deleted: bool = False
    unload_results: Dict[str, UnloadResult] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


class Uninstaller:
    """Removes VAST NFS KMM from a namespace."""

    def __init__(self, cluster: ClusterClient, sequencer: Optional[GracefulUnloadSequencer] = None):
        self.cluster = cluster
        self.sequencer = sequencer

    def _step(self, report: UninstallReport, description: str, func, *args):
        logger.info(description)
        try:
            return func(*args)
        except ApiException as e:
            if e.status == 404:
                return None
            warning = f"{description.rstrip('.')} failed: {e.reason}"
            logger.warning(f"⚠️  {warning}")
            report.warnings.append(warning)
            return None
        except ClusterAccessError as e:
            warning = f"{description.rstrip('.')} failed: {e}"
            logger.warning(f"⚠️  {warning}")
            report.warnings.append(warning)
            return None

    def run(self, namespace: str, module_name: str = 'vastnfs', unload_first: bool = False) -> UninstallReport:
        report = UninstallReport()
        logger.info(f"Uninstalling VAST NFS KMM from namespace {namespace}...")

        if unload_first and self.sequencer is not None:
            nodes = [node.name for node in self.cluster.list_nodes()]
            report.unload_results = self.sequencer.unload_all(nodes)
            for node, result in report.unload_results.items():
                report.warnings.extend(f"{node}: {w}" for w in result.warnings)

        builds = self._step(
            report, "Stopping any active builds...",
            self.cluster.list_custom_objects, BUILD_GROUP, BUILD_VERSION, BUILD_PLURAL, namespace,
        ) or []
        for build in builds:
            self._step(
                report, f"Patching build finalizers for {build}...",
                self.cluster.clear_finalizers, BUILD_GROUP, BUILD_VERSION, BUILD_PLURAL, namespace, build,
            )
            if self._step(
                report, f"Force deleting build {build}...",
                self.cluster.delete_custom_object, BUILD_GROUP, BUILD_VERSION, BUILD_PLURAL, namespace, build,
            ):
                report.builds_deleted.append(build)

        self._step(report, "Cleaning up build pods...",
                   self.cluster.delete_labelled_pods, namespace, BUILD_POD_SELECTOR)

        self._step(
            report, "Deleting Module (force removing finalizers first)...",
            self.cluster.clear_finalizers, KMM_GROUP, KMM_VERSION, KMM_PLURAL, namespace, module_name,
        )
        report.module_deleted = bool(self._step(
            report, f"Deleting module {module_name}...",
            self.cluster.delete_custom_object, KMM_GROUP, KMM_VERSION, KMM_PLURAL, namespace, module_name,
        ))

        self._step(report, "Deleting cluster roles and bindings...",
                   self.cluster.delete_labelled_rbac, APP_SELECTOR)
        self._step(report, "Deleting service accounts and config maps...",
                   self.cluster.delete_labelled_config, namespace, APP_SELECTOR)

        report.imagestream_deleted = bool(self._step(
            report, "Cleaning up any remaining ImageStreams...",
            self.cluster.delete_custom_object,
            IMAGESTREAM_GROUP, IMAGESTREAM_VERSION, IMAGESTREAM_PLURAL, namespace, module_name,
        ))

        logger.info("✅ Uninstall complete")
        return report
