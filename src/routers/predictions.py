"""Cycle and prediction endpoints: record cycles, calculate, fetch latest, summary and status."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from src.cycles.service import InvalidParameterError, PredictionUnavailableError
from src.cycles.store import StoreUnavailableError
from src.dependencies import AppSettings, Predictions
from src.models.base import ErrorDetail
from src.models.cycles import CycleCreate, CycleRead
from src.models.predictions import CycleStatusRead, CycleSummaryRead, PredictionRead

router = APIRouter(
    prefix="/users/{user_id}",
    tags=["predictions"],
    responses={422: {"model": ErrorDetail}, 503: {"model": ErrorDetail}},
)
logger = logging.getLogger("femcare.routers.predictions")

INSUFFICIENT_DATA_DETAIL = "Not enough cycle history yet. Log at least 2 complete cycles."
STORE_UNAVAILABLE_DETAIL = "Cycle store unavailable, try again later"


def _store_unavailable(exc: StoreUnavailableError) -> HTTPException:
    logger.error("Store unavailable: %s", exc)
    return HTTPException(status_code=503, detail=STORE_UNAVAILABLE_DETAIL)


# ---------- Cycles ----------

@router.post(
    "/cycles",
    response_model=CycleRead,
    status_code=201,
    responses={409: {"model": ErrorDetail}},
)
async def record_cycle(user_id: str, body: CycleCreate, service: Predictions) -> Any:
    try:
        return await service.add_cycle(
            user_id,
            body.start_date,
            actual_length=body.actual_length,
            end_date=body.end_date,
        )
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/cycles/summary", response_model=CycleSummaryRead)
async def get_cycle_summary(user_id: str, service: Predictions) -> Any:
    try:
        summary = await service.summary(user_id)
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc
    if summary is None:
        raise HTTPException(status_code=422, detail=INSUFFICIENT_DATA_DETAIL)
    return summary


# ---------- Predictions ----------

@router.post(
    "/predictions",
    response_model=PredictionRead,
    status_code=201,
    responses={400: {"model": ErrorDetail}},
)
async def calculate_prediction(
    user_id: str,
    service: Predictions,
    luteal_phase_length_days: int | None = Query(default=None),
) -> Any:
    try:
        return await service.calculate(
            user_id, luteal_phase_length_days=luteal_phase_length_days
        )
    except InvalidParameterError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PredictionUnavailableError as exc:
        raise HTTPException(status_code=422, detail=INSUFFICIENT_DATA_DETAIL) from exc
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc


@router.get("/predictions", response_model=PredictionRead, responses={404: {"model": ErrorDetail}})
async def get_prediction(user_id: str, service: Predictions) -> Any:
    try:
        prediction = await service.latest(user_id)
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc
    if prediction is None:
        raise HTTPException(status_code=404, detail="No prediction found")
    return prediction


@router.get("/status", response_model=CycleStatusRead)
async def get_cycle_status(user_id: str, service: Predictions, settings: AppSettings) -> Any:
    try:
        return await service.status(user_id, period_length_days=settings.period_length_days)
    except StoreUnavailableError as exc:
        raise _store_unavailable(exc) from exc
