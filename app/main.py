import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Path, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette import status

from app.core.auth import get_session_user_id, require_auth_token, require_session_user_id
from app.core.db import SessionLocal, engine, get_db
from app.core.errors import ExperimentPlatformError
from app.core.logging_setup import setup_logging
from app.core.settings import config_settings
from app.models.orm.base import Base
from app.models.orm.experiment import ExperimentStatus, ExperimentType
from app.models.schemas.assignment import (
    AssignmentModel,
    AssignmentResponseModel,
    AssignRequestModel,
    Identity,
)
from app.models.schemas.currency import (
    CurrencyPreferenceModel,
    CurrencyRateListModel,
    CurrencyRateModel,
    CurrencyRateUpdateModel,
    PriceQuoteModel,
)
from app.models.schemas.event import EventCreateModel, EventResponseModel
from app.models.schemas.experiment import (
    ExperimentCreateModel,
    ExperimentListResponseModel,
    ExperimentResponseModel,
    ExperimentResultsModel,
    ExperimentUpdateModel,
    VariantResponseModel,
)
from app.services.assignment_service import AssignmentService
from app.services.currency_service import CurrencyService
from app.services.event_service import EventService
from app.services.experiment_service import ExperimentService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config_settings.LOG_LEVEL, config_settings.LOG_FORMAT)

    if config_settings.CREATE_TABLES:
        Base.metadata.create_all(bind=engine)

    if config_settings.SEED_CURRENCY_RATES:
        db = SessionLocal()
        try:
            CurrencyService(db).seed_default_rates()
        finally:
            db.close()

    logger.info("Experiments service started")
    yield


app = FastAPI(
    title="Experiments & pricing service",
    description="A/B test assignment, event tracking and multi-currency pricing",
    version="0.1.0",
    dependencies=[Depends(require_auth_token)],
    lifespan=lifespan,
)


# --- Error handlers ---


@app.exception_handler(ExperimentPlatformError)
async def platform_error_handler(request: Request, exc: ExperimentPlatformError):
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(exc.message, extra={"error_code": exc.code, "path": request.url.path})
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                }
                for e in exc.errors()
            ],
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


def _identity(user_id: Optional[str], anon_id: Optional[str]) -> Identity:
    # A signed-in session always wins over a client supplied anonymous id
    if user_id is not None:
        return Identity(user_id=user_id)
    return Identity(anon_id=anon_id)


# --- Experiments (admin) ---


@app.post(
    "/experiments",
    response_model=ExperimentResponseModel,
    status_code=status.HTTP_201_CREATED,
)
def post_experiments(
    experiment_data: ExperimentCreateModel,
    user_id: Optional[str] = Depends(get_session_user_id),
    db: Session = Depends(get_db),
):
    experiment_service = ExperimentService(db)
    return experiment_service.create_experiment(experiment_data, created_by=user_id)


@app.get(
    "/experiments",
    response_model=ExperimentListResponseModel,
    status_code=status.HTTP_200_OK,
)
def list_experiments(
    status_filter: Optional[ExperimentStatus] = Query(None, alias="status"),
    test_type: Optional[ExperimentType] = Query(None),
    db: Session = Depends(get_db),
):
    experiments = ExperimentService(db).list_experiments(status=status_filter, test_type=test_type)
    return {"experiments": experiments}


@app.get(
    "/experiments/{experiment_id}",
    response_model=ExperimentResponseModel,
    status_code=status.HTTP_200_OK,
)
def get_experiment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    db: Session = Depends(get_db),
):
    return ExperimentService(db).get_experiment(experiment_id)


@app.patch(
    "/experiments/{experiment_id}",
    response_model=ExperimentResponseModel,
    status_code=status.HTTP_200_OK,
)
def patch_experiment(
    update_data: ExperimentUpdateModel,
    experiment_id: str = Path(..., description="The ID of the experiment."),
    db: Session = Depends(get_db),
):
    return ExperimentService(db).update_experiment(experiment_id, update_data)


@app.delete(
    "/experiments/{experiment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_experiment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    db: Session = Depends(get_db),
):
    ExperimentService(db).delete_experiment(experiment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Assignment & tracking ---


@app.post(
    "/experiments/{experiment_id}/assign",
    response_model=AssignmentResponseModel,
    status_code=status.HTTP_200_OK,
    summary="Assign the visitor to a variant",
)
def assign_variant(
    response: Response,
    payload: Optional[AssignRequestModel] = None,
    experiment_id: str = Path(..., description="The ID of the experiment."),
    user_id: Optional[str] = Depends(get_session_user_id),
    db: Session = Depends(get_db),
):
    """
    Returns the visitor's variant. The first call for a visitor may create a
    persistent assignment (201); later calls return the same one (200).
    """
    identity = _identity(user_id, payload.anon_id if payload else None)
    result = AssignmentService.from_session(db).assign_variant(experiment_id, identity)

    if not result.included:
        return AssignmentResponseModel(
            included=False,
            message="Visitor not included in experiment based on traffic allocation",
        )

    if result.created:
        response.status_code = status.HTTP_201_CREATED

    return AssignmentResponseModel(
        included=True,
        assignment=AssignmentModel.model_validate(result.assignment),
        variant=VariantResponseModel.model_validate(result.variant),
    )


@app.post(
    "/experiments/{experiment_id}/events",
    response_model=EventResponseModel,
    status_code=status.HTTP_201_CREATED,
    summary="Record an event for an assigned visitor.",
)
def post_events(
    event_data: EventCreateModel,
    experiment_id: str = Path(..., description="The ID of the experiment."),
    user_id: Optional[str] = Depends(get_session_user_id),
    db: Session = Depends(get_db),
):
    identity = _identity(user_id, event_data.anon_id)
    return EventService(db).record_event(experiment_id, identity, event_data)


@app.get(
    "/experiments/{experiment_id}/results",
    response_model=ExperimentResultsModel,
    status_code=status.HTTP_200_OK,
    summary="Get statistics for an experiment",
)
def get_experiment_results(
    experiment_id: str,
    event_type: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    db: Session = Depends(get_db),
):
    filter_params = {
        "event_type": event_type,
        "start_date": start_date,
        "end_date": end_date,
    }
    return ExperimentService(db).get_experiment_results(experiment_id, filter_params)


# --- Currency ---


@app.get("/currency/rates", response_model=CurrencyRateListModel)
def get_currency_rates(db: Session = Depends(get_db)):
    return {"rates": CurrencyService(db).list_rates()}


@app.put("/currency/rates/{currency_code}", response_model=CurrencyRateModel)
def put_currency_rate(
    rate_data: CurrencyRateUpdateModel,
    currency_code: str = Path(..., min_length=3, max_length=3),
    db: Session = Depends(get_db),
):
    return CurrencyService(db).update_rate(currency_code, rate_data.rate_to_usd)


@app.get("/currency/preference", response_model=CurrencyPreferenceModel)
def get_currency_preference(
    user_id: str = Depends(require_session_user_id),
    db: Session = Depends(get_db),
):
    return {"currency": CurrencyService(db).get_preference(user_id)}


@app.post("/currency/preference", response_model=CurrencyPreferenceModel)
def post_currency_preference(
    preference: CurrencyPreferenceModel,
    user_id: str = Depends(require_session_user_id),
    db: Session = Depends(get_db),
):
    saved = CurrencyService(db).set_preference(user_id, preference.currency)
    return {"currency": saved.currency_code}


@app.get("/currency/quote", response_model=PriceQuoteModel)
def get_price_quote(
    amount: int = Query(..., ge=0, description="Price in base currency minor units"),
    currency: str = Query(..., min_length=3, max_length=3),
    db: Session = Depends(get_db),
):
    return CurrencyService(db).quote_price(amount, currency)


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
