from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vastkmm.api.deps import get_aggregator, get_cluster
from vastkmm.config import Config
from vastkmm.modules.aggregate import ClusterStateAggregator
from vastkmm.modules.cluster import ClusterClient
from vastkmm.modules.verify import troubleshooting, verify_deployment

router = APIRouter()

class VerifyRequest(BaseModel):
    namespace: str = Config.NAMESPACE
    module_name: str = Config.MODULE_NAME
    check_secure_boot: bool = False

@router.post("/verify")
def run_verify(
    req: VerifyRequest,
    cluster: ClusterClient = Depends(get_cluster),
    aggregator: ClusterStateAggregator = Depends(get_aggregator),
):
    report = verify_deployment(
        cluster,
        req.namespace,
        module_name=req.module_name,
        aggregator=aggregator,
        check_secure_boot_state=req.check_secure_boot,
    )
    result = report.as_dict()
    if not report.passed:
        result["troubleshooting"] = troubleshooting(req.namespace, req.module_name)
    return result
