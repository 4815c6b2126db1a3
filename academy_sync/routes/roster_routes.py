from fastapi import APIRouter, BackgroundTasks, Depends, status

from academy_sync.core.exceptions import NotFoundException
from academy_sync.dependencies import get_reconciliation_service
from academy_sync.schemas.sync_schemas import RosterDrift, SweepScheduledResponse, SyncResult
from academy_sync.services.roster_reconciliation_service import RosterReconciliationService

router = APIRouter()


@router.post(
    "/rosters/rebuild",
    response_model=SweepScheduledResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def rebuild_all_rosters(
    tenant_id: str,
    background_tasks: BackgroundTasks,
    service: RosterReconciliationService = Depends(get_reconciliation_service),
):
    """
    Schedule a rebuild of every active cohort roster of the tenant.

    Runs after the response is sent; progress and failures go to the logs.
    """
    background_tasks.add_task(service.rebuild_all_rosters, tenant_id)
    return SweepScheduledResponse(tenant_id=tenant_id)


@router.post("/cohorts/{cohort_id}/roster/rebuild", response_model=SyncResult)
async def rebuild_cohort_roster(
    tenant_id: str,
    cohort_id: str,
    service: RosterReconciliationService = Depends(get_reconciliation_service),
):
    """Rebuild one cohort's roster from the student records"""
    return await service.rebuild_cohort_roster(cohort_id, tenant_id)


@router.get("/cohorts/{cohort_id}/roster/drift", response_model=RosterDrift)
async def get_roster_drift(
    tenant_id: str,
    cohort_id: str,
    service: RosterReconciliationService = Depends(get_reconciliation_service),
):
    """Compare a cohort's stored roster with the student records without changing anything"""
    drift = await service.detect_drift(cohort_id, tenant_id)
    if drift is None:
        raise NotFoundException(f"Cohort {cohort_id} not found")
    return drift
