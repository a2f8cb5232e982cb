from vastkmm.modules.cluster import ExecResult
from vastkmm.modules.errors import ClusterAccessError
from vastkmm.modules.models import WaitOutcome, WorkerStatus
from vastkmm.modules.verify import parse_secure_boot_output, troubleshooting, verify_deployment

READY_MODULE = {'status': {'moduleLoader': {'availableNumber': 3, 'desiredNumber': 3}}}


def loaded_everywhere(cluster, version='4.0.35'):
    for node in cluster.nodes:
        cluster.set_loaded(node, version)


def test_passes_when_active_on_all_nodes(cluster):
    loaded_everywhere(cluster)
    cluster.modules['vastnfs'] = READY_MODULE
    cluster.pod_polls = [[WorkerStatus('vastnfs-worker-a', 'Running')]]
    report = verify_deployment(cluster, 'vastnfs-kmm', check_secure_boot_state=False)
    assert report.passed
    assert report.module_status == {'availableNumber': 3, 'desiredNumber': 3}
    assert report.as_dict()['cluster']['active'] == 3
    assert [p.name for p in report.pods] == ['vastnfs-worker-a']


def test_fails_when_some_nodes_inactive(cluster):
    cluster.set_loaded('worker-a', '4.0.35')
    cluster.modules['vastnfs'] = READY_MODULE
    report = verify_deployment(cluster, 'vastnfs-kmm', check_secure_boot_state=False)
    assert not report.passed
    assert report.cluster_state.active_count == 1


def test_fails_when_module_missing(cluster):
    loaded_everywhere(cluster)
    report = verify_deployment(cluster, 'vastnfs-kmm', check_secure_boot_state=False)
    assert not report.module_found
    assert not report.passed


def test_node_list_error_recorded(cluster):
    cluster.nodes_error = ClusterAccessError("Failed to list nodes: Forbidden")
    cluster.modules['vastnfs'] = READY_MODULE
    report = verify_deployment(cluster, 'vastnfs-kmm', check_secure_boot_state=False)
    assert report.errors == ["Failed to list nodes: Forbidden"]
    assert not report.passed


def test_waits_for_module_loader(cluster, clock):
    loaded_everywhere(cluster)
    cluster.modules['vastnfs'] = {'status': {'moduleLoader': {'availableNumber': 1, 'desiredNumber': 3}}}
    report = verify_deployment(
        cluster, 'vastnfs-kmm', wait_timeout=30, check_secure_boot_state=False,
        sleep=clock.sleep, clock=clock,
    )
    assert report.module_wait == WaitOutcome.TIMED_OUT
    assert clock.now == 30


def test_secure_boot_inspected_on_first_node(cluster):
    loaded_everywhere(cluster)
    cluster.modules['vastnfs'] = READY_MODULE
    calls = []
    original = cluster.exec_on_node

    def exec_on_node(node, script, timeout=None):
        if 'mokutil' in script:
            calls.append(node)
            return ExecResult(0, "signature=30:45:02:21\nsb_state=SecureBoot enabled\n")
        return original(node, script, timeout)

    cluster.exec_on_node = exec_on_node
    report = verify_deployment(cluster, 'vastnfs-kmm')
    assert calls == ['worker-a']
    assert report.secure_boot.sb_state == "SecureBoot enabled"
    assert report.secure_boot.signature == "30:45:02:21"


def test_parse_secure_boot_without_signature():
    info = parse_secure_boot_output('worker-a', "Starting pod/...\nsignature=\nsb_state=SecureBoot disabled\n")
    assert info.signature is None
    assert info.sb_state == "SecureBoot disabled"


def test_troubleshooting_mentions_namespace():
    hints = troubleshooting('vastnfs-kmm', 'vastnfs')
    assert any('-n vastnfs-kmm' in line for line in hints)
