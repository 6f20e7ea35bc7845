"""mk_wallet REST API — read-only for end users; adjustments live under /admin."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.capabilities import Actor
from src.mk_common.database import get_db_session
from src.mk_common.enums import WalletTransactionType
from src.mk_common.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from src.mk_common.response import ApiResponse, success_response
from src.mk_gateway.auth.dependencies import get_current_actor
from src.mk_wallet.application.service import WalletLedger

router = APIRouter(prefix="/wallet", tags=["wallet"])

_ledger = WalletLedger()


@router.get("/balance")
async def get_balance(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _ledger.get_balance(db, actor.user_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/history")
async def get_history(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    tx_type: WalletTransactionType | None = Query(None),
    related_order_id: str | None = Query(None),
) -> ApiResponse:
    data = await _ledger.get_history(
        db,
        actor.user_id,
        cursor,
        limit,
        tx_type.value if tx_type else None,
        related_order_id,
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
