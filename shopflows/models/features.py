from pydantic import BaseModel

from shopflows.features import FeatureFlags, FeatureFlagState


class FeatureFlagsResponse(BaseModel):
    org_id: str | None
    status: str  # loaded | defaults | schema_not_ready | unavailable
    features: FeatureFlags

    @classmethod
    def from_state(cls, state: FeatureFlagState) -> "FeatureFlagsResponse":
        return cls(org_id=state.org_id, status=state.status, features=state.flags)


class FeatureUpdate(BaseModel):
    enabled: bool
