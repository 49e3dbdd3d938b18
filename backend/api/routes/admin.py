"""
Administrative endpoints: scheduler control and manual pipeline runs.

GET  /v1/admin/scheduler                      - Scheduler status and recent tasks.
POST /v1/admin/scheduler/start|stop           - Start or stop the control loop.
POST /v1/admin/run/daily|hourly               - Run a pipeline now.
POST /v1/admin/run/backfill                   - Backfill a game number range.
POST /v1/admin/run/verify/{game_number}       - Verify one game number.
PUT  /v1/admin/predictions/{game_number}      - Manual status/word override.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from shared.models.domain import Prediction, TaskResult
from shared.models.enums import PredictionStatus

from api.answers import AnswerService
from api.dependencies import get_answer_service

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class BackfillRequest(BaseModel):
    start_game_number: Optional[int] = None
    end_game_number: Optional[int] = None


class PredictionUpdate(BaseModel):
    status: PredictionStatus
    word: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


@router.get("/scheduler")
async def scheduler_status(
    history: int = Query(10, ge=0, le=100),
    service: AnswerService = Depends(get_answer_service),
) -> dict[str, Any]:
    return {
        "status": service.get_scheduler_status().model_dump(mode="json"),
        "recent_tasks": [t.model_dump(mode="json") for t in service.get_task_history(history)],
    }


@router.post("/scheduler/start", response_model=TaskResult)
async def start_scheduler(service: AnswerService = Depends(get_answer_service)) -> TaskResult:
    return service.start_scheduler()


@router.post("/scheduler/stop", response_model=TaskResult)
async def stop_scheduler(service: AnswerService = Depends(get_answer_service)) -> TaskResult:
    return service.stop_scheduler()


@router.post("/run/daily", response_model=TaskResult)
async def run_daily(service: AnswerService = Depends(get_answer_service)) -> TaskResult:
    return await service.run_daily_collection_now()


@router.post("/run/hourly", response_model=TaskResult)
async def run_hourly(service: AnswerService = Depends(get_answer_service)) -> TaskResult:
    return await service.run_hourly_verification_now()


@router.post("/run/backfill", response_model=TaskResult)
async def run_backfill(
    body: Optional[BackfillRequest] = None,
    service: AnswerService = Depends(get_answer_service),
) -> TaskResult:
    body = body or BackfillRequest()
    return await service.run_historical_backfill(body.start_game_number, body.end_game_number)


@router.post("/run/verify/{game_number}", response_model=TaskResult)
async def run_verify(
    game_number: int,
    service: AnswerService = Depends(get_answer_service),
) -> TaskResult:
    return await service.verify_game(game_number)


@router.put("/predictions/{game_number}", response_model=Prediction)
async def update_prediction(
    game_number: int,
    body: PredictionUpdate,
    service: AnswerService = Depends(get_answer_service),
) -> Prediction:
    try:
        updated = await service.update_prediction(game_number, body.status, body.word, body.confidence)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if updated is None:
        raise HTTPException(status_code=404, detail=f"No prediction for game #{game_number}")
    return updated
