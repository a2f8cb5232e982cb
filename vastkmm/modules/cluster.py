"""Cluster access for the module lifecycle orchestrator.

Pods, nodes, secrets and custom objects go through the kubernetes client.
Node inspection and manifest apply shell out to the cluster CLI (``oc`` by
default): node debug pods have no API equivalent, and apply must accept any
rendered manifest as an opaque document.
"""
import base64
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .utils import run_command
from ..utils.kube import load_kubeconfig
from .errors import ApplyFailure, ClusterAccessError, CommandError
from .models import Node, WorkerStatus

logger = logging.getLogger("vastkmm.cluster")

KMM_GROUP = "kmm.sigs.x-k8s.io"
KMM_VERSION = "v1beta1"
KMM_PLURAL = "modules"


@dataclass
class ExecResult:
    """Combined stdout/stderr and exit status of a node command."""
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class PodLogStream:
    """A following log stream for one pod that can be closed from another thread."""

    def __init__(self, response):
        self._response = response
        self._closed = False

    def lines(self) -> Iterator[str]:
        buffer = b''
        for chunk in self._response.stream(decode_content=False):
            if self._closed:
                return
            buffer += chunk
            while b'\n' in buffer:
                line, buffer = buffer.split(b'\n', 1)
                yield line.decode('utf-8', errors='replace')
        if buffer and not self._closed:
            yield buffer.decode('utf-8', errors='replace')

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._response.close()
            self._response.release_conn()
        except Exception as e:  # the reader thread may be mid-read
            logger.debug(f"Error closing log stream: {e}")


class ClusterClient:
    """Thin adapter over the cluster API and CLI."""

    def __init__(
        self,
        oc_binary: str = 'oc',
        kubeconfig: Optional[str] = None,
        exec_timeout: int = 180,
        apply_timeout: int = 300,
        core_api=None,
        custom_api=None,
        rbac_api=None,
    ):
        self.oc_binary = oc_binary
        self.kubeconfig = kubeconfig
        self.exec_timeout = exec_timeout
        self.apply_timeout = apply_timeout
        if core_api is None or custom_api is None or rbac_api is None:
            try:
                source = load_kubeconfig(kubeconfig)
            except (FileNotFoundError, config.ConfigException) as e:
                raise ClusterAccessError(f"Could not load cluster credentials: {e}") from e
            logger.debug(f"Loaded kubeconfig from {source}")
        self.core = core_api or client.CoreV1Api()
        self.custom = custom_api or client.CustomObjectsApi()
        self.rbac = rbac_api or client.RbacAuthorizationV1Api()

    def _oc(self, *args: str) -> List[str]:
        cmd = [self.oc_binary]
        if self.kubeconfig:
            cmd += ['--kubeconfig', self.kubeconfig]
        return cmd + list(args)

    # Nodes

    def list_nodes(self) -> List[Node]:
        """Enumerate cluster nodes, fresh on every call."""
        try:
            items = self.core.list_node().items
        except ApiException as e:
            raise ClusterAccessError(f"Failed to list nodes: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to list nodes: {e}") from e
        return [Node(name=item.metadata.name) for item in items]

    def exec_on_node(self, node: str, script: str, timeout: Optional[int] = None) -> ExecResult:
        """Run a bash script on the node host through a debug pod.

        Raises:
            CommandError: if the debug pod cannot be started or times out.
        """
        cmd = self._oc('debug', f'node/{node}', '--', 'chroot', '/host', 'bash', '-c', script)
        result = run_command(cmd, check=False, timeout=timeout or self.exec_timeout)
        return ExecResult(result.returncode, result.stdout or '')

    # Apply

    def apply_manifest(self, manifest: str) -> str:
        """Apply a rendered manifest document. Failure is never retried."""
        fd, path = tempfile.mkstemp(prefix='vastnfs-install-', suffix='.yaml')
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(manifest)
            result = run_command(self._oc('apply', '-f', path), timeout=self.apply_timeout)
        except CommandError as e:
            raise ApplyFailure(e.output.strip() or str(e)) from e
        finally:
            os.unlink(path)
        return result.stdout or ''

    # Namespaces and secrets

    def ensure_namespace(self, namespace: str) -> bool:
        """Create the namespace if missing. Returns True if it was created."""
        try:
            self.core.read_namespace(namespace)
            logger.info(f"Namespace {namespace} already exists")
            return False
        except ApiException as e:
            if e.status != 404:
                raise ClusterAccessError(f"Failed to read namespace {namespace}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to read namespace {namespace}: {e}") from e
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace))
        try:
            self.core.create_namespace(body)
        except ApiException as e:
            raise ClusterAccessError(f"Failed to create namespace {namespace}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to create namespace {namespace}: {e}") from e
        logger.info(f"Created namespace: {namespace}")
        return True

    def _read_secret(self, name: str, namespace: str):
        try:
            return self.core.read_namespaced_secret(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise ClusterAccessError(f"Failed to read secret {name}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to read secret {name}: {e}") from e

    def secret_exists(self, name: str, namespace: str) -> bool:
        return self._read_secret(name, namespace) is not None

    def read_secret_key(self, name: str, namespace: str, key: str) -> Optional[bytes]:
        secret = self._read_secret(name, namespace)
        if secret is None or not secret.data or key not in secret.data:
            return None
        return base64.b64decode(secret.data[key])

    def create_secret_from_file(
        self, name: str, namespace: str, key: str, path: str, overwrite: bool = False
    ) -> bool:
        """Create a generic secret holding one file. Returns True if created."""
        if self.secret_exists(name, namespace):
            if not overwrite:
                logger.warning(f"Secret {name} already exists, skipping creation")
                return False
            logger.warning(f"Secret {name} already exists, overwriting...")
            try:
                self.core.delete_namespaced_secret(name, namespace)
            except ApiException as e:
                raise ClusterAccessError(f"Failed to delete secret {name}: {e.reason}") from e
            except Exception as e:
                raise ClusterAccessError(f"Failed to delete secret {name}: {e}") from e

        with open(path, 'rb') as f:
            data = base64.b64encode(f.read()).decode()
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            type='Opaque',
            data={key: data},
        )
        try:
            self.core.create_namespaced_secret(namespace, body)
        except ApiException as e:
            raise ClusterAccessError(f"Failed to create secret {name}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to create secret {name}: {e}") from e
        logger.info(f"Created secret: {name}")
        return True

    # Worker pods

    @staticmethod
    def _worker_status(pod) -> WorkerStatus:
        statuses = (pod.status.container_statuses or []) if pod.status else []
        return WorkerStatus(
            name=pod.metadata.name,
            phase=(pod.status.phase or '') if pod.status else '',
            container_ready=any(s.ready for s in statuses),
        )

    def list_pods(self, namespace: str) -> List[WorkerStatus]:
        try:
            pods = self.core.list_namespaced_pod(namespace).items
        except ApiException as e:
            raise ClusterAccessError(f"Failed to list pods in {namespace}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to list pods in {namespace}: {e}") from e
        return [self._worker_status(pod) for pod in pods]

    def get_pod(self, name: str, namespace: str) -> Optional[WorkerStatus]:
        """Current status of a pod, or None if it no longer exists."""
        try:
            return self._worker_status(self.core.read_namespaced_pod(name, namespace))
        except ApiException as e:
            if e.status == 404:
                return None
            raise ClusterAccessError(f"Failed to read pod {name}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to read pod {name}: {e}") from e

    def fetch_logs(self, name: str, namespace: str, tail_lines: int = 1) -> Optional[str]:
        """Best-effort log fetch. None when the pod has no readable logs yet."""
        try:
            return self.core.read_namespaced_pod_log(name, namespace, tail_lines=tail_lines)
        except Exception as e:
            logger.debug(f"Could not fetch logs for {name}: {e}")
            return None

    def follow_logs(self, name: str, namespace: str, tail_lines: int = 50) -> PodLogStream:
        response = self.core.read_namespaced_pod_log(
            name, namespace, follow=True, tail_lines=tail_lines, _preload_content=False
        )
        return PodLogStream(response)

    # KMM Module and other custom objects

    def get_module(self, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        try:
            return self.custom.get_namespaced_custom_object(
                group=KMM_GROUP, version=KMM_VERSION, namespace=namespace,
                plural=KMM_PLURAL, name=name,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise ClusterAccessError(f"Failed to read module {name}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to read module {name}: {e}") from e

    def get_module_status(self, name: str, namespace: str) -> Dict[str, Any]:
        module = self.get_module(name, namespace) or {}
        return module.get('status', {}).get('moduleLoader', {}) or {}

    def list_custom_objects(self, group: str, version: str, plural: str, namespace: str) -> List[str]:
        try:
            result = self.custom.list_namespaced_custom_object(
                group=group, version=version, namespace=namespace, plural=plural
            )
        except ApiException as e:
            if e.status == 404:
                return []
            raise ClusterAccessError(f"Failed to list {plural}: {e.reason}") from e
        except Exception as e:
            raise ClusterAccessError(f"Failed to list {plural}: {e}") from e
        return [item['metadata']['name'] for item in result.get('items', [])]

    def clear_finalizers(self, group: str, version: str, plural: str, namespace: str, name: str) -> bool:
        try:
            self.custom.patch_namespaced_custom_object(
                group=group, version=version, namespace=namespace, plural=plural, name=name,
                body={'metadata': {'finalizers': []}},
            )
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def delete_custom_object(self, group: str, version: str, plural: str, namespace: str, name: str) -> bool:
        try:
            self.custom.delete_namespaced_custom_object(
                group=group, version=version, namespace=namespace, plural=plural, name=name,
                grace_period_seconds=0,
            )
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def delete_labelled_pods(self, namespace: str, label_selector: str) -> None:
        """Force delete pods matching a label selector."""
        self.core.delete_collection_namespaced_pod(
            namespace, label_selector=label_selector, grace_period_seconds=0
        )

    def delete_labelled_config(self, namespace: str, label_selector: str) -> None:
        self.core.delete_collection_namespaced_service_account(namespace, label_selector=label_selector)
        self.core.delete_collection_namespaced_config_map(namespace, label_selector=label_selector)

    def delete_labelled_rbac(self, label_selector: str) -> None:
        self.rbac.delete_collection_cluster_role(label_selector=label_selector)
        self.rbac.delete_collection_cluster_role_binding(label_selector=label_selector)
