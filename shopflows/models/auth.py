from pydantic import BaseModel, EmailStr, Field

from shopflows.auth.context import Session, SessionView
from shopflows.auth.permissions import Role


class DeviceLoginRequest(BaseModel):
    pin: str = Field(min_length=1, max_length=12, pattern=r"^\d+$")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    admin_portal: bool = False


class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str


class SessionResponse(BaseModel):
    is_authenticated: bool = True
    org_id: str | None
    shop_id: str | None  # legacy name for org_id
    role: Role
    user_id: str | None = None
    device_id: str | None = None
    device_name: str | None = None
    email: str | None = None
    name: str | None = None
    is_device: bool = False

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            org_id=session.org_id,
            shop_id=session.org_id,
            role=session.role,
            user_id=session.user_id,
            device_id=session.device_id,
            device_name=session.device_name,
            email=session.email,
            name=session.name,
            is_device=session.is_device,
        )


class LoginResponse(BaseModel):
    success: bool = True
    session: SessionResponse
    redirect_to: str


class MeResponse(BaseModel):
    is_authenticated: bool
    session: SessionResponse | None = None
    is_admin: bool = False
    is_platform_admin: bool = False
    is_managing_org: bool = False
    managed_org_name: str | None = None
    permission_level: int = 0
    landing_path: str | None = None

    @classmethod
    def from_view(cls, view: SessionView, managed_org_name: str | None = None) -> "MeResponse":
        if view.session is None:
            return cls(is_authenticated=False)
        return cls(
            is_authenticated=True,
            session=SessionResponse.from_session(view.session),
            is_admin=view.is_admin,
            is_platform_admin=view.is_platform_admin,
            is_managing_org=view.is_managing_org,
            managed_org_name=managed_org_name,
            permission_level=view.permission_level,
            landing_path=view.landing_path,
        )


class OrgContextRequest(BaseModel):
    org_id: str = Field(min_length=1)
