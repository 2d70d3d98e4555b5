from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Path, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette import status

from abtesting.core.auth import require_auth_token
from abtesting.core.cache import TTLCache
from abtesting.core.db import engine, get_db
from abtesting.core.errors import (
    ExperimentConflict,
    ExperimentError,
    ExperimentNotFound,
    InvalidExperimentConfig,
    InvalidStatusTransition,
    StoreUnavailable,
)
from abtesting.core.logging import configure_logging
from abtesting.core.settings import config_settings
from abtesting.models.orm.base import Base
from abtesting.models.schemas.assignment import AssignmentContext, AssignmentResponseModel
from abtesting.models.schemas.event import EventCreateModel, EventResponseModel, UserActionModel
from abtesting.models.schemas.experiment import (
    Experiment,
    ExperimentCreateModel,
    ExperimentStatusUpdate,
)
from abtesting.models.schemas.feature import (
    FeatureConfigRequest,
    FeatureConfigResponse,
    FlagResponse,
    SessionResponse,
)
from abtesting.models.schemas.results import ExperimentResults
from abtesting.models.schemas.template import TemplateExperimentRequest, TemplateSummary
from abtesting.services.engine import ExperimentEngine
from abtesting.services.templates import EXPERIMENT_TEMPLATES
from abtesting.store.sql import SqlExperimentStore

configure_logging(config_settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="A/B testing engine",
    description="Deterministic experiment assignment, conversion tracking and results.",
    version="0.1.0",
    dependencies=[Depends(require_auth_token)],
    lifespan=lifespan,
)

# Shared by every request on this instance
app.state.definition_cache = TTLCache(
    config_settings.DEFINITION_CACHE_TTL_SECONDS, config_settings.CACHE_MAX_ENTRIES
)
app.state.session_cache = TTLCache(
    config_settings.SESSION_CACHE_TTL_SECONDS, config_settings.CACHE_MAX_ENTRIES
)

_ERROR_STATUS = {
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    ExperimentNotFound: status.HTTP_404_NOT_FOUND,
    InvalidExperimentConfig: status.HTTP_400_BAD_REQUEST,
    InvalidStatusTransition: status.HTTP_409_CONFLICT,
    ExperimentConflict: status.HTTP_409_CONFLICT,
}


@app.exception_handler(ExperimentError)
async def experiment_error_handler(request: Request, exc: ExperimentError):
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def get_engine(request: Request, db: Session = Depends(get_db)) -> ExperimentEngine:
    return ExperimentEngine(
        SqlExperimentStore(db),
        definition_cache=request.app.state.definition_cache,
        session_cache=request.app.state.session_cache,
    )


@app.post(
    "/experiments",
    response_model=Experiment,
    status_code=status.HTTP_201_CREATED,
    summary="Create an experiment (starts in draft)",
)
def post_experiments(
    experiment_data: ExperimentCreateModel,
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    return experiment_engine.experiments.create_experiment(experiment_data)


@app.get("/experiments/{experiment_id}", response_model=Experiment)
def get_experiment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    return experiment_engine.experiments.get_experiment(experiment_id)


@app.post(
    "/experiments/{experiment_id}/status",
    response_model=Experiment,
    summary="Start, pause, complete or cancel an experiment",
)
def post_experiment_status(
    update: ExperimentStatusUpdate,
    experiment_id: str = Path(..., description="The ID of the experiment."),
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    return experiment_engine.experiments.transition(experiment_id, update.status)


@app.get(
    "/experiments/{experiment_id}/assignment/{user_id}",
    response_model=AssignmentResponseModel,
    status_code=status.HTTP_200_OK,
    summary="Get user assignment",
)
def get_user_variant_assignment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    user_id: str = Path(..., description="The ID of the user."),
    country: Optional[str] = Query(None),
    referral_source: Optional[str] = Query(None),
    user_agent: Optional[str] = Header(None),
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    """
    Retrieves a user's variant. If no assignment exists and the user qualifies,
    a new, persistent assignment is created.
    """
    context = AssignmentContext(
        user_agent=user_agent, country=country, referral_source=referral_source
    )
    variant = experiment_engine.get_variant(user_id, experiment_id, context)
    return AssignmentResponseModel(
        experiment_id=experiment_id,
        user_id=user_id,
        in_experiment=variant is not None,
        variant=variant,
    )


@app.post(
    "/features/{feature}/config",
    response_model=FeatureConfigResponse,
    summary="Resolve a feature's config for a user",
)
def post_feature_config(
    request_data: FeatureConfigRequest,
    feature: str = Path(..., description="Feature tag, e.g. 'watermark'."),
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    config = experiment_engine.get_config(
        request_data.user_id, feature, request_data.default_config
    )
    return FeatureConfigResponse(feature=feature, config=config)


@app.get("/flags/{flag}", response_model=FlagResponse, summary="Evaluate a feature flag")
def get_flag(
    flag: str = Path(...),
    user_id: str = Query(...),
    default: bool = Query(False),
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    return FlagResponse(flag=flag, enabled=experiment_engine.is_enabled(user_id, flag, default))


@app.post(
    "/events",
    response_model=EventResponseModel,
    status_code=status.HTTP_201_CREATED,
    summary="Record a user event.",
)
def post_events(
    event_data: EventCreateModel,
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    if event_data.experiment_id is not None:
        recorded = experiment_engine.record_event(
            event_data.user_id,
            event_data.experiment_id,
            event_data.event_type,
            event_data.event_data,
            event_data.conversion_value,
        )
        experiment_ids = [event_data.experiment_id] if recorded else []
    else:
        experiment_ids = experiment_engine.track_event(
            event_data.user_id,
            event_data.event_type,
            event_data.event_data,
            event_data.conversion_value,
        )
    return EventResponseModel(experiment_ids=experiment_ids)


@app.get(
    "/experiments/{experiment_id}/results",
    response_model=ExperimentResults,
    status_code=status.HTTP_200_OK,
    summary="Get statistics for experiments",
)
def get_experiment_results(
    experiment_id: str,
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    return experiment_engine.compute_results(experiment_id)


@app.get("/templates", response_model=List[TemplateSummary], summary="List experiment presets")
def get_templates():
    return [
        TemplateSummary(
            key=key,
            name=template.name,
            feature=template.feature,
            variant_names=[v.variant_name for v in template.variants],
            conversion_goal=template.conversion_goal,
        )
        for key, template in EXPERIMENT_TEMPLATES.items()
    ]


@app.post(
    "/templates/{template_key}/experiments",
    response_model=Experiment,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft experiment from a preset",
)
def post_template_experiment(
    request_data: TemplateExperimentRequest,
    template_key: str = Path(..., description="Preset key, e.g. 'watermark_message'."),
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    return experiment_engine.experiments.create_from_template(
        template_key, **request_data.model_dump()
    )


@app.post(
    "/actions",
    response_model=EventResponseModel,
    status_code=status.HTTP_201_CREATED,
    summary="Record a product action in a feature",
)
def post_actions(
    action: UserActionModel,
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    experiment_ids = experiment_engine.track_user_action(
        action.user_id, action.action, action.feature, action.metadata, action.value
    )
    return EventResponseModel(experiment_ids=experiment_ids)


@app.post(
    "/sessions/{user_id}",
    response_model=SessionResponse,
    summary="Assign a user to every running experiment they qualify for",
)
def post_session(
    user_id: str = Path(..., description="The ID of the user."),
    country: Optional[str] = Query(None),
    referral_source: Optional[str] = Query(None),
    user_agent: Optional[str] = Header(None),
    experiment_engine: ExperimentEngine = Depends(get_engine),
):
    context = AssignmentContext(
        user_agent=user_agent, country=country, referral_source=referral_source
    )
    return SessionResponse(
        user_id=user_id, variants=experiment_engine.initialize_session(user_id, context)
    )

# Entry point for local development
if __name__ == "__main__":
    uvicorn.run("abtesting.main:app", host="0.0.0.0", port=8000, reload=True)
