"""mk_escrow REST endpoints — one trade session per confirmed order.

GET  /trades/{order_id}                      — session with latest messages
POST /trades/{order_id}/seller-transferred   — seller confirms transfer
POST /trades/{order_id}/buyer-received       — buyer confirms receipt
GET  /trades/{order_id}/messages             — message history (oldest first)
POST /trades/{order_id}/messages             — post a message
POST /trades/{order_id}/messages/read        — mark counter-party messages read
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.capabilities import Actor
from src.mk_common.database import get_db_session
from src.mk_common.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from src.mk_common.response import ApiResponse, success_response
from src.mk_escrow.application.schemas import ConfirmTradeRequest, PostMessageRequest
from src.mk_escrow.application.service import EscrowTradeSession
from src.mk_gateway.auth.dependencies import get_current_actor

router = APIRouter(prefix="/trades", tags=["trades"])

_escrow = EscrowTradeSession()


@router.get("/{order_id}")
async def get_trade_session(
    order_id: str,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _escrow.get_session(db, actor, order_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{order_id}/seller-transferred")
async def confirm_seller_transferred(
    order_id: str,
    body: ConfirmTradeRequest,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _escrow.confirm_seller_transferred(db, actor, order_id, body.notes)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{order_id}/buyer-received")
async def confirm_buyer_received(
    order_id: str,
    body: ConfirmTradeRequest,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _escrow.confirm_buyer_received(db, actor, order_id, body.notes)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{order_id}/messages")
async def list_trade_messages(
    order_id: str,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> ApiResponse:
    data = await _escrow.list_messages(db, actor, order_id, cursor, limit)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{order_id}/messages")
async def post_trade_message(
    order_id: str,
    body: PostMessageRequest,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _escrow.post_message(db, actor, order_id, body.text, body.attachment_ref)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{order_id}/messages/read")
async def mark_trade_messages_read(
    order_id: str,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _escrow.mark_messages_read(db, actor, order_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
