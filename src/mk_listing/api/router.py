"""mk_listing REST endpoints.

POST   /listings               — create (any authenticated user)
GET    /listings               — search with cursor pagination
GET    /listings/{listing_id}  — detail
PATCH  /listings/{listing_id}  — seller edit
DELETE /listings/{listing_id}  — seller removal (soft delete)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.capabilities import Actor
from src.mk_common.database import get_db_session
from src.mk_common.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from src.mk_common.response import ApiResponse, success_response
from src.mk_gateway.auth.dependencies import get_current_actor
from src.mk_listing.application.schemas import CreateListingRequest, UpdateListingRequest
from src.mk_listing.application.service import ListingStore

router = APIRouter(prefix="/listings", tags=["listings"])

_store = ListingStore()


@router.post("")
async def create_listing(
    body: CreateListingRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _store.create_listing(
        db,
        actor,
        title=body.title,
        unit_price=body.unit_price,
        quantity=body.quantity,
        description=body.description,
        image_url=body.image_url,
        is_negotiable=body.is_negotiable,
        expires_at=body.expires_at,
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("")
async def search_listings(
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    status: str | None = Query(
        None, description="Filter by status. Default: ACTIVE. Use ALL for no filter."
    ),
    seller_id: str | None = Query(None),
    keyword: str | None = Query(None, max_length=100),
    min_price: int | None = Query(None, ge=0),
    max_price: int | None = Query(None, ge=0),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(None),
) -> ApiResponse:
    data = await _store.search_listings(
        db,
        status,
        cursor,
        limit,
        seller_id=seller_id,
        keyword=keyword,
        min_price=min_price,
        max_price=max_price,
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{listing_id}")
async def get_listing(
    listing_id: str,
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _store.get_listing(db, listing_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.patch("/{listing_id}")
async def update_listing(
    listing_id: str,
    body: UpdateListingRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _store.update_listing(
        db, actor, listing_id, body.to_changes(), body.expected_version
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.delete("/{listing_id}")
async def remove_listing(
    listing_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _store.remove_listing(db, actor, listing_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
