"""
Prediction read endpoints.

GET /v1/predictions/today          - Prediction for the current game number (null if none yet).
GET /v1/predictions/history        - Verified predictions, newest game number first.
GET /v1/predictions/candidates     - Candidate predictions, oldest date first.
GET /v1/predictions/stats          - Totals and verification rate.
GET /v1/predictions/{game_number}  - One prediction by game number.
GET /v1/sources                    - Configured verification sources.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shared.models.domain import Prediction, PredictionStats, VerificationSource

from api.answers import AnswerService
from api.dependencies import get_answer_service

router = APIRouter(prefix="/v1", tags=["predictions"])


@router.get("/predictions/today", response_model=Optional[Prediction])
async def today_prediction(
    service: AnswerService = Depends(get_answer_service),
) -> Optional[Prediction]:
    return await service.get_today_prediction()


@router.get("/predictions/history", response_model=list[Prediction])
async def prediction_history(
    limit: int = Query(20, ge=1, le=365),
    service: AnswerService = Depends(get_answer_service),
) -> list[Prediction]:
    return await service.get_history(limit)


@router.get("/predictions/candidates", response_model=list[Prediction])
async def prediction_candidates(
    limit: int = Query(10, ge=1, le=100),
    service: AnswerService = Depends(get_answer_service),
) -> list[Prediction]:
    return await service.get_candidates(limit)


@router.get("/predictions/stats", response_model=PredictionStats)
async def prediction_stats(
    service: AnswerService = Depends(get_answer_service),
) -> PredictionStats:
    return await service.get_stats()


@router.get("/predictions/{game_number}", response_model=Prediction)
async def prediction_by_game_number(
    game_number: int,
    service: AnswerService = Depends(get_answer_service),
) -> Prediction:
    prediction = await service.get_prediction(game_number)
    if prediction is None:
        raise HTTPException(status_code=404, detail=f"No prediction for game #{game_number}")
    return prediction


@router.get("/sources", response_model=list[VerificationSource])
async def list_sources(
    service: AnswerService = Depends(get_answer_service),
) -> list[VerificationSource]:
    return await service.get_sources()
