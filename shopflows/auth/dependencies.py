from fastapi import Depends, HTTPException, Request, status

from shopflows.auth.context import Session, SessionView
from shopflows.config import settings
from shopflows.db import get_supabase
from shopflows.services import Services, build_services


def get_services(request: Request) -> Services:
    """Services wired for this app. Built and started on first use."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(settings, get_supabase())
        services.start()
        request.app.state.services = services
    return services


def get_session_view(services: Services = Depends(get_services)) -> SessionView:
    return SessionView.of(services.store.get_current_session())


def require_session(view: SessionView = Depends(get_session_view)) -> Session:
    if view.session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    return view.session


def require_admin(view: SessionView = Depends(get_session_view)) -> Session:
    """Org-admin-only screens: shop admins and platform admins."""
    session = require_session(view)
    if not view.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return session


def require_platform_admin(view: SessionView = Depends(get_session_view)) -> Session:
    session = require_session(view)
    if not view.is_platform_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform admin role required",
        )
    return session


def require_feature(feature: str):
    """Gate a route on an optional module being enabled for the session's org."""
    def _require(
        session: Session = Depends(require_session),
        services: Services = Depends(get_services),
    ) -> Session:
        if services.features.state.org_id != session.org_id:
            services.features.fetch(session.org_id)
        if not services.features.has_feature(feature):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Feature not enabled: {feature}",
            )
        return session

    return _require
