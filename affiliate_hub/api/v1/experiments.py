from fastapi import APIRouter, Request, Response

from affiliate_hub.config import settings
from affiliate_hub.dependencies import Bucketer
from affiliate_hub.schemas.experiment import (
    ExperimentAssignmentsResponse,
    TrackExperimentEventRequest,
    TrackExperimentEventResponse,
    VariantResponse,
)

router = APIRouter(prefix="/experiments", tags=["Experiments"])


def _set_assignment_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.experiment_cookie,
        token,
        max_age=settings.experiment_token_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


@router.get("", response_model=ExperimentAssignmentsResponse)
async def get_assignments(request: Request, response: Response, bucketer: Bucketer):
    user, token = bucketer.get_user_experiments(request.cookies.get(settings.experiment_cookie))
    _set_assignment_cookie(response, token)

    variants = bucketer.get_active_variants(user)
    return ExperimentAssignmentsResponse(
        user_id=user.user_id,
        assignments=user.assignments,
        variants={
            experiment_id: VariantResponse.model_validate(variant)
            for experiment_id, variant in variants.items()
        },
    )


@router.post("/events", response_model=TrackExperimentEventResponse)
async def track_event(
    data: TrackExperimentEventRequest,
    request: Request,
    response: Response,
    bucketer: Bucketer,
):
    user, token = bucketer.get_user_experiments(request.cookies.get(settings.experiment_cookie))
    _set_assignment_cookie(response, token)

    tracked = bucketer.track_event(user, data.experiment_id, data.event_type, data.metadata)
    return TrackExperimentEventResponse(tracked=tracked)
