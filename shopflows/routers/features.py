from fastapi import APIRouter, Depends, HTTPException, status

from shopflows.auth.context import Session
from shopflows.auth.dependencies import get_services, require_admin, require_session
from shopflows.features import FEATURE_NAMES, FeatureFlagService
from shopflows.models.features import FeatureFlagsResponse, FeatureUpdate
from shopflows.services import Services

router = APIRouter(prefix="/api/features", tags=["features"])


def _for_session(services: Services, session: Session) -> FeatureFlagService:
    if services.features.state.org_id != session.org_id:
        services.features.fetch(session.org_id)
    return services.features


@router.get("", response_model=FeatureFlagsResponse)
async def get_features(
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """Feature flags for the session's organization."""
    return FeatureFlagsResponse.from_state(_for_session(services, session).state)


@router.get("/{feature}")
async def check_feature(
    feature: str,
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """Whether one module is switched on; unknown names are simply off."""
    return {"feature": feature, "enabled": _for_session(services, session).has_feature(feature)}


@router.put("/{feature}", response_model=FeatureFlagsResponse)
async def update_feature(
    feature: str,
    data: FeatureUpdate,
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    if feature not in FEATURE_NAMES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Feature not found")
    if not session.org_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Select an organization first",
        )

    flags = _for_session(services, session)
    if not flags.set_feature(session.org_id, feature, data.enabled):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to update feature",
        )
    return FeatureFlagsResponse.from_state(flags.state)
