from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from shopflows.auth.context import SessionView
from shopflows.auth.dependencies import get_services, get_session_view
from shopflows.auth.permissions import ADMIN_PORTAL_ROLES
from shopflows.auth.resolvers import (
    ACCESS_DENIED,
    BAD_CREDENTIALS,
    INVALID_PROFILE,
    NOT_CONFIGURED,
    PROFILE_NOT_FOUND,
    UNAVAILABLE,
    LoginResult,
    logout,
)
from shopflows.models.auth import (
    AdminLoginRequest,
    DeviceLoginRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    SessionResponse,
)
from shopflows.services import Services

router = APIRouter(prefix="/api/auth", tags=["auth"])

_FAILURE_STATUS = {
    BAD_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    PROFILE_NOT_FOUND: status.HTTP_403_FORBIDDEN,
    INVALID_PROFILE: status.HTTP_403_FORBIDDEN,
    ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    NOT_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def login_failure_detail(result: LoginResult) -> dict[str, Any]:
    return {
        "type": "login_failed",
        "reason": result.reason,
        "message": result.message,
        "clear_input": result.clear_input,
    }


def _respond(result: LoginResult) -> LoginResponse:
    if not result.success or result.session is None:
        raise HTTPException(
            status_code=_FAILURE_STATUS.get(result.reason, status.HTTP_401_UNAUTHORIZED),
            detail=login_failure_detail(result),
        )
    return LoginResponse(
        session=SessionResponse.from_session(result.session),
        redirect_to=result.redirect_to,
    )


@router.post("/device-login", response_model=LoginResponse)
async def device_login(data: DeviceLoginRequest, services: Services = Depends(get_services)):
    """Unlock a shop-floor terminal with its PIN."""
    return _respond(services.device_login.login(data.pin))


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, services: Services = Depends(get_services)):
    """Email/password login through the auth provider, then profile lookup."""
    allowed_roles = ADMIN_PORTAL_ROLES if data.admin_portal else None
    return _respond(services.provider_login.login(data.email, data.password, allowed_roles=allowed_roles))


@router.post("/admin-login", response_model=LoginResponse)
async def admin_login(data: AdminLoginRequest, services: Services = Depends(get_services)):
    """Login through the admin credential RPC."""
    return _respond(services.admin_login.login(data.email, data.password))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_session(services: Services = Depends(get_services)):
    logout(services.store, services.provider)
    return None


@router.get("/session", response_model=MeResponse)
async def get_session(
    view: SessionView = Depends(get_session_view),
    services: Services = Depends(get_services),
):
    """Current session plus the authorization flags derived from it."""
    org_name = None
    if view.is_managing_org:
        org_name = services.directory.organization_name(view.session.org_id)
    return MeResponse.from_view(view, managed_org_name=org_name)
