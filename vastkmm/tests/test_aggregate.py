import threading
import time

import pytest

from vastkmm.modules.aggregate import ClusterStateAggregator
from vastkmm.modules.errors import ClusterAccessError, CommandError
from vastkmm.modules.models import NOT_LOADED, ModuleState


def test_collects_every_node(cluster):
    cluster.set_loaded('worker-a', '4.0.35')
    state = ClusterStateAggregator(cluster).collect()
    assert state.total_count == 3
    assert state.active_count == 1
    assert state.loaded_nodes() == ['worker-a']
    assert state.nodes['worker-b'] == NOT_LOADED


def test_probe_failure_degrades_to_not_loaded(cluster):
    cluster.set_loaded('worker-a', '4.0.35')
    cluster.probe_responses['worker-c'] = CommandError(['oc', 'debug'], 1, "node not ready")
    state = ClusterStateAggregator(cluster).collect()
    assert state.nodes['worker-c'] == NOT_LOADED
    assert state.unreachable == frozenset({'worker-c'})
    assert state.active_count == 1


def test_result_independent_of_node_order(cluster):
    cluster.set_loaded('worker-a', '4.0.35')
    cluster.set_loaded('worker-c', '4.0.36')
    aggregator = ClusterStateAggregator(cluster)
    forward = aggregator.collect(['worker-a', 'worker-b', 'worker-c'])
    backward = aggregator.collect(['worker-c', 'worker-b', 'worker-a'])
    assert forward == backward


def test_node_list_failure_raises(cluster):
    cluster.nodes_error = ClusterAccessError("Failed to list nodes: Unauthorized")
    with pytest.raises(ClusterAccessError):
        ClusterStateAggregator(cluster).collect()


def test_empty_cluster(cluster):
    cluster.nodes = []
    state = ClusterStateAggregator(cluster).collect()
    assert state.total_count == 0
    assert not state.all_versions_match('4.0.35')


def test_concurrency_is_bounded(cluster):
    cluster.nodes = [f'worker-{i}' for i in range(6)]
    lock = threading.Lock()
    active = {'now': 0, 'max': 0}

    class SlowProbe:
        def inspect(self, node):
            with lock:
                active['now'] += 1
                active['max'] = max(active['max'], active['now'])
            time.sleep(0.05)
            with lock:
                active['now'] -= 1
            return ModuleState(loaded=True, version='4.0.35')

    state = ClusterStateAggregator(cluster, probe=SlowProbe(), max_workers=2).collect()
    assert state.active_count == 6
    assert active['max'] <= 2


def test_version_queries():
    from vastkmm.modules.models import ClusterModuleState

    state = ClusterModuleState(nodes={
        'a': ModuleState(loaded=True, version='4.0.36'),
        'b': ModuleState(loaded=True, version='4.0.35'),
    })
    assert state.any_version_matches('4.0.36')
    assert not state.all_versions_match('4.0.36')
    assert state.as_dict()['active'] == 2
