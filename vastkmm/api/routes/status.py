from fastapi import APIRouter, Depends, HTTPException

from vastkmm.api.deps import get_aggregator
from vastkmm.modules.aggregate import ClusterStateAggregator
from vastkmm.modules.errors import ClusterAccessError

router = APIRouter()

@router.get("/status")
def cluster_status(aggregator: ClusterStateAggregator = Depends(get_aggregator)):
    """VAST NFS module state of every node."""
    try:
        state = aggregator.collect()
    except ClusterAccessError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return state.as_dict()
