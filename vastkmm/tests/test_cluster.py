import base64
import os
import subprocess
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError, ProtocolError

from conftest import probe_output
from vastkmm.modules import cluster as cluster_module
from vastkmm.modules.cluster import ClusterClient, ExecResult, PodLogStream
from vastkmm.modules.errors import ApplyFailure, ClusterAccessError, CommandError
from vastkmm.modules.models import DeploymentPhase, DeploymentRequest, WaitOutcome, WorkerStatus
from vastkmm.modules.reconcile import DeploymentReconciler
from vastkmm.utils import kube


class FakeResponse:
    """urllib3-style streaming response."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.closed = False
        self.released = False

    def stream(self, decode_content=False):
        for chunk in self.chunks:
            yield chunk

    def close(self):
        self.closed = True

    def release_conn(self):
        self.released = True


@pytest.fixture
def core():
    return MagicMock()


@pytest.fixture
def api(core):
    return ClusterClient(core_api=core, custom_api=MagicMock(), rbac_api=MagicMock())


def make_pod(name, phase):
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name),
        status=client.V1PodStatus(phase=phase),
    )


# Log streams

def test_log_stream_rejoins_split_lines():
    response = FakeResponse([b"Building vast", b"nfs 4.0.36\nSign", b"ing modules\n"])
    assert list(PodLogStream(response).lines()) == ["Building vastnfs 4.0.36", "Signing modules"]


def test_log_stream_flushes_last_partial_line():
    response = FakeResponse([b"first\nsecond without newline"])
    assert list(PodLogStream(response).lines()) == ["first", "second without newline"]


def test_log_stream_close_stops_reading():
    response = FakeResponse([b"one\n", b"two\n", b"three\n"])
    stream = PodLogStream(response)
    seen = []
    for line in stream.lines():
        seen.append(line)
        stream.close()
    assert seen == ["one"]
    assert response.closed and response.released


def test_follow_logs_requests_streaming_response(api, core):
    core.read_namespaced_pod_log.return_value = FakeResponse([b"hello\n"])
    stream = api.follow_logs('vastnfs-worker-1', 'vastnfs-kmm', tail_lines=50)
    assert list(stream.lines()) == ["hello"]
    core.read_namespaced_pod_log.assert_called_once_with(
        'vastnfs-worker-1', 'vastnfs-kmm', follow=True, tail_lines=50, _preload_content=False
    )


# Apply

def test_apply_manifest_removes_temp_file(api, monkeypatch):
    seen = {}

    def fake_run(cmd, **kwargs):
        path = cmd[-1]
        seen['path'] = path
        with open(path) as f:
            seen['content'] = f.read()
        return subprocess.CompletedProcess(cmd, 0, stdout="module.kmm.sigs.x-k8s.io/vastnfs created\n")

    monkeypatch.setattr(cluster_module, 'run_command', fake_run)
    output = api.apply_manifest("kind: Module\n")
    assert output == "module.kmm.sigs.x-k8s.io/vastnfs created\n"
    assert seen['content'] == "kind: Module\n"
    assert not os.path.exists(seen['path'])


def test_apply_failure_carries_cli_output(api, monkeypatch):
    seen = {}

    def fake_run(cmd, **kwargs):
        seen['path'] = cmd[-1]
        raise CommandError(cmd, 1, output='error: unable to recognize "install.yaml": no matches for kind "Module"\n')

    monkeypatch.setattr(cluster_module, 'run_command', fake_run)
    with pytest.raises(ApplyFailure) as exc:
        api.apply_manifest("kind: Module\n")
    assert str(exc.value) == 'error: unable to recognize "install.yaml": no matches for kind "Module"'
    assert not os.path.exists(seen['path'])


# Pods, secrets and namespaces

def test_get_pod_not_found_is_none(api, core):
    core.read_namespaced_pod.side_effect = ApiException(status=404, reason="Not Found")
    assert api.get_pod('vastnfs-worker-1', 'vastnfs-kmm') is None


def test_get_pod_maps_status(api, core):
    core.read_namespaced_pod.return_value = make_pod('vastnfs-worker-1', 'Running')
    assert api.get_pod('vastnfs-worker-1', 'vastnfs-kmm') == WorkerStatus('vastnfs-worker-1', 'Running')


def test_get_pod_server_error_is_cluster_access_error(api, core):
    core.read_namespaced_pod.side_effect = ApiException(status=500, reason="Internal Server Error")
    with pytest.raises(ClusterAccessError):
        api.get_pod('vastnfs-worker-1', 'vastnfs-kmm')


def test_missing_secret(api, core):
    core.read_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")
    assert not api.secret_exists('vastnfs-signing-key', 'vastnfs-kmm')
    assert api.read_secret_key('vastnfs-signing-key', 'vastnfs-kmm', 'key') is None


def test_read_secret_key_decodes_data(api, core):
    core.read_namespaced_secret.return_value = client.V1Secret(
        data={'cert': base64.b64encode(b"0\x82\x03").decode()}
    )
    assert api.read_secret_key('vastnfs-signing-cert', 'vastnfs-kmm', 'cert') == b"0\x82\x03"
    assert api.read_secret_key('vastnfs-signing-cert', 'vastnfs-kmm', 'key') is None


@pytest.mark.parametrize("call", [
    lambda api: api.list_pods('vastnfs-kmm'),
    lambda api: api.get_pod('vastnfs-worker-1', 'vastnfs-kmm'),
    lambda api: api.ensure_namespace('vastnfs-kmm'),
    lambda api: api.secret_exists('pull-secret', 'vastnfs-kmm'),
    lambda api: api.list_nodes(),
])
def test_transport_errors_become_cluster_access_errors(api, core, call):
    error = MaxRetryError(None, '/api/v1/pods', reason="connection refused")
    for method in ('list_namespaced_pod', 'read_namespaced_pod', 'read_namespace',
                   'read_namespaced_secret', 'list_node'):
        getattr(core, method).side_effect = error
    with pytest.raises(ClusterAccessError):
        call(api)


def test_fetch_logs_tolerates_dropped_connection(api, core):
    core.read_namespaced_pod_log.side_effect = ProtocolError("Connection aborted.")
    assert api.fetch_logs('vastnfs-worker-1', 'vastnfs-kmm') is None


def test_ensure_namespace_creates_missing(api, core):
    core.read_namespace.side_effect = ApiException(status=404, reason="Not Found")
    assert api.ensure_namespace('vastnfs-kmm')
    body = core.create_namespace.call_args[0][0]
    assert body.metadata.name == 'vastnfs-kmm'


# Reconciler over the real adapter

class ScriptedClusterClient(ClusterClient):
    """Real API paths; node exec and apply are scripted."""

    def __init__(self, core):
        super().__init__(core_api=core, custom_api=MagicMock(), rbac_api=MagicMock())
        self.applied = []

    def exec_on_node(self, node, script, timeout=None):
        return ExecResult(0, probe_output())

    def apply_manifest(self, manifest):
        self.applied.append(manifest)
        return "configured"


def test_connection_loss_after_apply_is_only_a_warning(core, clock):
    core.list_node.return_value = client.V1NodeList(
        items=[client.V1Node(metadata=client.V1ObjectMeta(name='worker-a'))]
    )
    core.list_namespaced_pod.side_effect = MaxRetryError(None, '/api/v1/pods', reason="connection reset")
    api = ScriptedClusterClient(core)
    request = DeploymentRequest(
        target_version='4.0.36',
        namespace='vastnfs-kmm',
        image='registry.example.com/vastnfs:${KERNEL_FULL_VERSION}',
        follow_logs=True,
    )

    report = DeploymentReconciler(api, sleep=clock.sleep, clock=clock).run(request, "kind: Module\n")

    assert report.applied
    assert api.applied == ["kind: Module\n"]
    assert report.phase == DeploymentPhase.DONE
    assert report.readiness['pods'] == WaitOutcome.TIMED_OUT
    assert len(report.warnings) == 1


# Kubeconfig

def test_kubeconfig_content_loaded_from_memory(monkeypatch):
    loaded = {}

    def no_file_loading(*args, **kwargs):
        raise AssertionError("kubeconfig content must not be loaded from a file")

    monkeypatch.setenv("KUBECONFIG_CONTENT", "apiVersion: v1\nkind: Config\nclusters: []\n")
    monkeypatch.setattr(kube.config, 'load_kube_config_from_dict', loaded.update)
    monkeypatch.setattr(kube.config, 'load_kube_config', no_file_loading)
    assert kube.load_kubeconfig() == "KUBECONFIG_CONTENT"
    assert loaded['kind'] == 'Config'
