from fastapi import APIRouter, Depends, HTTPException, status

from shopflows.auth import access
from shopflows.auth.access import Actor, Job, LaborEntry
from shopflows.auth.context import Session
from shopflows.auth.dependencies import get_services, require_feature, require_session
from shopflows.auth.provider import IdentityBackendError
from shopflows.models.access import (
    AccessSummary,
    InventoryAccess,
    JobAccess,
    JobAccessRequest,
    LaborEntryAccess,
    LaborEntryAccessRequest,
)
from shopflows.services import Services

router = APIRouter(prefix="/api/access", tags=["access"])


def _actor(session: Session, services: Services) -> Actor:
    """The signed-in user with their department. Device sessions have none."""
    department_id = None
    if session.user_id:
        try:
            department_id = services.directory.department_of(session.user_id)
        except IdentityBackendError:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Directory unavailable",
            )
    return Actor.from_session(session, department_id=department_id)


def _org_for(requested: str | None, session: Session) -> str:
    org_id = requested or session.org_id
    if not org_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="org_id is required when no organization is selected",
        )
    return org_id


@router.get("", response_model=AccessSummary)
async def get_access(
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """What the current user may manage; drives which screens the UI offers."""
    actor = _actor(session, services)
    return AccessSummary(
        role=actor.role,
        department_id=actor.department_id,
        department_filter=access.department_filter(actor),
        has_supervisor_privileges=access.has_supervisor_privileges(actor),
        can_manage_departments=access.can_manage_departments(actor),
        can_assign_user_to_department=access.can_assign_user_to_department(actor),
        can_manage_users=access.can_manage_users(actor),
        can_manage_stages=access.can_manage_stages(actor),
        can_view_reports=access.can_view_reports(actor),
        can_view_org_reports=access.can_view_org_reports(actor),
    )


@router.post("/jobs", response_model=JobAccess)
async def check_job_access(
    data: JobAccessRequest,
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    actor = _actor(session, services)
    job = Job(id=data.id, org_id=_org_for(data.org_id, session), department_id=data.department_id)
    return JobAccess(
        job_id=job.id,
        can_view=access.can_view_job(actor, job),
        can_edit=access.can_edit_job(actor, job),
        can_delete=access.can_delete_job(actor, job),
        can_assign=access.can_assign_job(actor, job),
        can_start_timer=access.can_start_timer(actor, job),
        can_add_material=access.can_add_material(actor, job),
    )


@router.post("/labor-entries", response_model=LaborEntryAccess)
async def check_labor_entry_access(
    data: LaborEntryAccessRequest,
    session: Session = Depends(require_feature("labor_tracking")),
    services: Services = Depends(get_services),
):
    actor = _actor(session, services)
    entry = LaborEntry(
        id=data.id,
        org_id=_org_for(data.org_id, session),
        worker_id=data.worker_id,
        job_id=data.job_id,
    )
    return LaborEntryAccess(
        entry_id=entry.id,
        can_view=access.can_view_labor_entry(actor, entry, data.job_department_id),
        can_edit=access.can_edit_labor_entry(actor, entry, data.job_department_id),
        can_stop_timer=access.can_stop_timer(actor, entry, data.job_department_id),
    )


@router.get("/inventory", response_model=InventoryAccess)
async def inventory_access(
    session: Session = Depends(require_feature("inventory")),
    services: Services = Depends(get_services),
):
    actor = _actor(session, services)
    return InventoryAccess(
        can_view=access.can_view_inventory(actor),
        can_manage=access.can_manage_inventory(actor),
    )
