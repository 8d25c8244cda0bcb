import logging

from fastapi import APIRouter, Depends

from shopflows.auth.context import Session, clear_organization, switch_organization
from shopflows.auth.dependencies import get_services, require_platform_admin
from shopflows.models.auth import OrgContextRequest, SessionResponse
from shopflows.observability import log_event, metrics_snapshot, reset_metrics
from shopflows.services import Services

router = APIRouter(prefix="/api/platform", tags=["platform"])


@router.put("/context", response_model=SessionResponse)
async def manage_organization(
    data: OrgContextRequest,
    session: Session = Depends(require_platform_admin),
    services: Services = Depends(get_services),
):
    """Act inside another organization's admin context without re-authenticating."""
    updated = switch_organization(services.store, data.org_id)
    log_event(
        "platform_org_context_switched",
        level=logging.WARNING,
        user_id=session.user_id,
        from_org_id=session.org_id,
        to_org_id=data.org_id,
    )
    return SessionResponse.from_session(updated)


@router.delete("/context", response_model=SessionResponse)
async def leave_organization(
    session: Session = Depends(require_platform_admin),
    services: Services = Depends(get_services),
):
    """Back to global browsing with no organization selected."""
    updated = clear_organization(services.store)
    log_event("platform_org_context_cleared", user_id=session.user_id, from_org_id=session.org_id)
    return SessionResponse.from_session(updated)


@router.get("/metrics")
async def get_metrics(
    reset: bool = False,
    session: Session = Depends(require_platform_admin),
):
    """In-process counters (logins, commits, flag fetches) since start or last reset."""
    counters = metrics_snapshot()
    if reset:
        reset_metrics()
        log_event("metrics_reset", user_id=session.user_id, counter_count=len(counters))
    return {"counters": counters}
