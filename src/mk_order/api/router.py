"""mk_order REST endpoints.

POST /orders                      — create (reserves listing quantity)
GET  /orders/purchases            — orders I placed
GET  /orders/sales                — orders placed on my listings
GET  /orders/{order_id}           — detail (buyer, seller or admin)
POST /orders/{order_id}/confirm   — seller confirms; buyer funds move to escrow
POST /orders/{order_id}/cancel    — buyer or seller cancels; refund if charged
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.capabilities import Actor
from src.mk_common.database import get_db_session
from src.mk_common.enums import OrderStatus
from src.mk_common.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from src.mk_common.response import ApiResponse, success_response
from src.mk_gateway.auth.dependencies import get_current_actor
from src.mk_order.application.schemas import (
    CancelOrderRequest,
    ConfirmOrderRequest,
    CreateOrderRequest,
)
from src.mk_order.application.service import OrderEngine

router = APIRouter(prefix="/orders", tags=["orders"])

_engine = OrderEngine()


@router.post("")
async def create_order(
    body: CreateOrderRequest,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _engine.create_order(
        db, actor, body.listing_id, body.quantity, body.notes, body.request_id
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/purchases")
async def list_my_purchases(
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    status: OrderStatus | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> ApiResponse:
    data = await _engine.list_my_purchases(
        db, actor, status.value if status else None, cursor, limit
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/sales")
async def list_my_sales(
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    status: OrderStatus | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> ApiResponse:
    data = await _engine.list_my_sales(
        db, actor, status.value if status else None, cursor, limit
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _engine.get_order(db, actor, order_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{order_id}/confirm")
async def confirm_order(
    order_id: str,
    body: ConfirmOrderRequest,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _engine.confirm_order(db, actor, order_id, body.notes)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _engine.cancel_order(db, actor, order_id, body.reason)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
