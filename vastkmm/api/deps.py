"""Request dependencies; overridden in tests."""
from fastapi import Depends, HTTPException

from vastkmm.commands import aggregator, cluster_client
from vastkmm.modules.aggregate import ClusterStateAggregator
from vastkmm.modules.cluster import ClusterClient
from vastkmm.modules.errors import ClusterAccessError
from vastkmm.modules.settings import get_settings

def get_cluster() -> ClusterClient:
    try:
        return cluster_client(get_settings())
    except ClusterAccessError as e:
        raise HTTPException(status_code=503, detail=str(e))

def get_aggregator(cluster: ClusterClient = Depends(get_cluster)) -> ClusterStateAggregator:
    return aggregator(cluster, get_settings())
