"""mk_ranking REST endpoints — read-only; recompute lives under /admin."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.capabilities import Actor
from src.mk_common.database import get_db_session
from src.mk_common.enums import PeriodType, RankingMetric
from src.mk_common.response import ApiResponse, success_response
from src.mk_gateway.auth.dependencies import get_current_actor
from src.mk_ranking.application.service import RankingAggregator

router = APIRouter(prefix="/rankings", tags=["rankings"])

_aggregator = RankingAggregator()


@router.get("/{period_type}/{period_date}")
async def get_ranking_snapshot(
    period_type: PeriodType,
    period_date: date,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    metric: RankingMetric | None = Query(None),
) -> ApiResponse:
    data = await _aggregator.get_snapshot(db, period_type, period_date, metric)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
