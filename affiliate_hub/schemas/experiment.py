from typing import Any, Literal

from pydantic import BaseModel, Field

from affiliate_hub.schemas.common import BaseSchema


class VariantResponse(BaseSchema):
    id: str
    name: str
    config: dict[str, Any]


class ExperimentAssignmentsResponse(BaseModel):
    user_id: str
    assignments: dict[str, str]
    variants: dict[str, VariantResponse]


class TrackExperimentEventRequest(BaseModel):
    experiment_id: str = Field(..., min_length=1, max_length=100)
    event_type: Literal["click", "conversion", "view"]
    metadata: dict[str, Any] | None = None


class TrackExperimentEventResponse(BaseModel):
    tracked: bool
