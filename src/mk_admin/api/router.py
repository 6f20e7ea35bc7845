"""Admin REST API — every route requires the admin role."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_admin.application.service import AdminService
from src.mk_common.capabilities import Actor
from src.mk_common.database import get_db_session
from src.mk_common.enums import PeriodType
from src.mk_common.response import ApiResponse, success_response
from src.mk_gateway.auth.dependencies import require_admin
from src.mk_wallet.application.schemas import AdminAdjustRequest

router = APIRouter(prefix="/admin", tags=["admin"])
_service = AdminService()


@router.post("/wallets/{user_id}/adjust")
async def adjust_wallet(
    user_id: str,
    body: AdminAdjustRequest,
    request: Request,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.adjust_balance(db, actor, user_id, body.delta, body.note)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/wallets/rebuild")
async def rebuild_wallets(
    request: Request,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    resp = success_response(await _service.rebuild_balances(db, actor))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/rankings/{period_type}/{period_date}/recompute")
async def recompute_ranking(
    period_type: PeriodType,
    period_date: date,
    request: Request,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.recompute_ranking(db, actor, period_type, period_date)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/sweeps/settlements")
async def sweep_settlements(
    request: Request,
    actor: Annotated[Actor, Depends(require_admin)],
) -> ApiResponse:
    data = await _service.sweep_settlements(actor)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/sweeps/disputes")
async def sweep_disputes(
    request: Request,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    resp = success_response(await _service.sweep_disputes(db, actor))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/sweeps/listings")
async def sweep_listings(
    request: Request,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    resp = success_response(await _service.sweep_listings(db, actor))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/invariants")
async def verify_invariants(
    request: Request,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    resp = success_response(await _service.verify_invariants(db, actor))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
