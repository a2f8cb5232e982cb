import pytest
from fastapi.testclient import TestClient

from conftest import FakeCluster
from vastkmm.api.deps import get_aggregator, get_cluster
from vastkmm.api.main import app
from vastkmm.config import Config
from vastkmm.modules.aggregate import ClusterStateAggregator
from vastkmm.modules.errors import ClusterAccessError

HEADERS = {"X-API-Key": Config.API_KEY}


@pytest.fixture
def fake_cluster():
    cluster = FakeCluster(nodes=['worker-a', 'worker-b'])
    app.dependency_overrides[get_cluster] = lambda: cluster
    app.dependency_overrides[get_aggregator] = lambda: ClusterStateAggregator(cluster)
    yield cluster
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def test_requires_api_key(client, fake_cluster):
    response = client.get("/status")
    assert response.status_code == 403
    response = client.get("/status", headers={"X-API-Key": "wrong"})
    assert response.status_code == 403


def test_docs_are_public(client):
    assert client.get("/openapi.json").status_code == 200


def test_status(client, fake_cluster):
    fake_cluster.set_loaded('worker-a', '4.0.35')
    response = client.get("/status", headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data['active'] == 1
    assert data['total'] == 2
    assert data['nodes']['worker-a'] == {'loaded': True, 'version': '4.0.35', 'build_version': None}


def test_status_cluster_unreachable(client, fake_cluster):
    fake_cluster.nodes_error = ClusterAccessError("Failed to list nodes: connection refused")
    response = client.get("/status", headers=HEADERS)
    assert response.status_code == 503


def test_verify(client, fake_cluster):
    fake_cluster.set_loaded('worker-a', '4.0.35')
    response = client.post("/verify", json={"namespace": "vastnfs-kmm"}, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data['passed'] is False
    assert data['module_found'] is False
    assert data['troubleshooting']
