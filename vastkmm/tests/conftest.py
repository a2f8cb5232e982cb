import threading
from typing import Callable, Dict, List, Optional, Union

import pytest

from vastkmm.modules.cluster import ExecResult
from vastkmm.modules.errors import ClusterAccessError
from vastkmm.modules.models import Node, WorkerStatus
from vastkmm.modules.probe import DONE_SENTINEL, PROBE_SCRIPT
from vastkmm.modules.settings import set_settings
from vastkmm.modules.unload import DONE_MARKER, NOT_LOADED_MARKER, expected_steps


def probe_output(version=None, git_version=None, base=None, noise=True) -> str:
    lines = []
    if noise:
        lines.append("Starting pod/worker-1-debug-abcde ...")
        lines.append("To use host binaries, run `chroot /host`")
    if version:
        lines.append(f"nfs_bundle_version={version}")
    if git_version:
        lines.append(f"nfs_bundle_git_version={git_version}")
    if base:
        lines.append(f"nfs_bundle_base_git_version={base}")
    lines.append(DONE_SENTINEL)
    if noise:
        lines.append("Removing debug pod ...")
    return '\n'.join(lines) + '\n'


def unload_output(failed: Optional[Dict[str, str]] = None) -> str:
    failed = failed or {}
    lines = ["Starting pod/node-debug ..."]
    for step in expected_steps():
        if step in failed:
            lines.append(f"@@step {step} fail {failed[step]}")
        else:
            lines.append(f"@@step {step} ok")
    lines.append(DONE_MARKER)
    return '\n'.join(lines) + '\n'


NOT_LOADED_OUTPUT = f"Starting pod/node-debug ...\n{NOT_LOADED_MARKER}\n"

Response = Union[ExecResult, Exception, Callable[[], ExecResult]]


class FakeClock:
    """Deterministic clock; sleeping advances time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeLogStream:
    def __init__(self, lines=(), error: Optional[Exception] = None, block: Optional[threading.Event] = None):
        self._lines = list(lines)
        self._error = error
        self._block = block
        self.closed = False

    def lines(self):
        for line in self._lines:
            yield line
        if self._block is not None:
            # Simulate a live stream that only ends when closed
            while not self.closed:
                self._block.wait(0.01)
            return
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


class FakeCluster:
    """In-memory stand-in for ClusterClient."""

    def __init__(self, nodes: Optional[List[str]] = None):
        self.nodes = list(nodes or [])
        self.nodes_error: Optional[Exception] = None
        self.probe_responses: Dict[str, Response] = {}
        self.unload_responses: Dict[str, Response] = {}
        self.exec_calls: List[tuple] = []
        self.applied: List[str] = []
        self.apply_error: Optional[Exception] = None
        self.namespaces: List[str] = []
        self.secrets: Dict[tuple, Dict[str, bytes]] = {}
        self.pod_polls: List[List[WorkerStatus]] = []
        self.pods: Dict[str, List[Optional[WorkerStatus]]] = {}
        self.logs: Dict[str, Optional[str]] = {}
        self.streams: Dict[str, List] = {}
        self.follow_calls: List[str] = []
        self.modules: Dict[str, dict] = {}
        self.custom_objects: Dict[tuple, List[str]] = {}
        self.deleted: List[tuple] = []
        self.calls: List[str] = []
        self._lock = threading.Lock()

    # Nodes

    def list_nodes(self):
        self.calls.append('list_nodes')
        if self.nodes_error:
            raise self.nodes_error
        return [Node(name=n) for n in self.nodes]

    def exec_on_node(self, node, script, timeout=None):
        with self._lock:
            self.exec_calls.append((node, 'probe' if script == PROBE_SCRIPT else 'unload'))
        responses = self.probe_responses if script == PROBE_SCRIPT else self.unload_responses
        response = responses.get(node)
        if response is None:
            output = probe_output() if script == PROBE_SCRIPT else NOT_LOADED_OUTPUT
            return ExecResult(0, output)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response

    def set_loaded(self, node, version):
        self.probe_responses[node] = ExecResult(0, probe_output(version=version))

    def probe_calls(self):
        return [node for node, kind in self.exec_calls if kind == 'probe']

    def unload_calls(self):
        return [node for node, kind in self.exec_calls if kind == 'unload']

    # Apply and secrets

    def apply_manifest(self, manifest):
        self.calls.append('apply')
        if self.apply_error:
            raise self.apply_error
        self.applied.append(manifest)
        return "module.kmm.sigs.x-k8s.io/vastnfs configured"

    def ensure_namespace(self, namespace):
        self.calls.append('ensure_namespace')
        self.namespaces.append(namespace)
        return True

    def secret_exists(self, name, namespace):
        self.calls.append('secret_exists')
        return (namespace, name) in self.secrets

    def read_secret_key(self, name, namespace, key):
        return self.secrets.get((namespace, name), {}).get(key)

    def create_secret_from_file(self, name, namespace, key, path, overwrite=False):
        self.calls.append(f'create_secret:{name}')
        if (namespace, name) in self.secrets and not overwrite:
            return False
        with open(path, 'rb') as f:
            self.secrets[(namespace, name)] = {key: f.read()}
        return True

    # Pods and logs

    def list_pods(self, namespace):
        if self.pod_polls:
            pods = self.pod_polls.pop(0) if len(self.pod_polls) > 1 else self.pod_polls[0]
            return list(pods)
        return []

    def get_pod(self, name, namespace):
        states = self.pods.get(name)
        if not states:
            return None
        return states.pop(0) if len(states) > 1 else states[0]

    def fetch_logs(self, name, namespace, tail_lines=1):
        return self.logs.get(name)

    def follow_logs(self, name, namespace, tail_lines=50):
        with self._lock:
            self.follow_calls.append(name)
            streams = self.streams.get(name, [])
            item = streams.pop(0) if len(streams) > 1 else (streams[0] if streams else None)
        if item is None:
            raise ClusterAccessError(f"pod {name} not found")
        if isinstance(item, Exception):
            raise item
        return item

    # KMM objects

    def get_module(self, name, namespace):
        return self.modules.get(name)

    def get_module_status(self, name, namespace):
        module = self.modules.get(name) or {}
        return module.get('status', {}).get('moduleLoader', {}) or {}

    def list_custom_objects(self, group, version, plural, namespace):
        return list(self.custom_objects.get(plural, []))

    def clear_finalizers(self, group, version, plural, namespace, name):
        self.deleted.append(('finalizers', plural, name))
        return name in self.custom_objects.get(plural, []) or (plural == 'modules' and name in self.modules)

    def delete_custom_object(self, group, version, plural, namespace, name):
        if plural == 'modules':
            if name not in self.modules:
                return False
            del self.modules[name]
        elif name in self.custom_objects.get(plural, []):
            self.custom_objects[plural].remove(name)
        else:
            return False
        self.deleted.append(('delete', plural, name))
        return True

    def delete_labelled_pods(self, namespace, label_selector):
        self.deleted.append(('pods', label_selector))

    def delete_labelled_config(self, namespace, label_selector):
        self.deleted.append(('config', label_selector))

    def delete_labelled_rbac(self, label_selector):
        self.deleted.append(('rbac', label_selector))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cluster():
    return FakeCluster(nodes=['worker-a', 'worker-b', 'worker-c'])


@pytest.fixture(autouse=True)
def reset_settings():
    set_settings(None)
    yield
    set_settings(None)
