from shopflows.auth.context import Session, SessionView, clear_organization, switch_organization
from shopflows.auth.dependencies import (
    get_services,
    get_session_view,
    require_admin,
    require_feature,
    require_platform_admin,
    require_session,
)
from shopflows.auth.store import SessionStore

__all__ = [
    "Session",
    "SessionView",
    "SessionStore",
    "clear_organization",
    "switch_organization",
    "get_services",
    "get_session_view",
    "require_admin",
    "require_feature",
    "require_platform_admin",
    "require_session",
]
