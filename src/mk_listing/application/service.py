"""ListingStore — listing lifecycle and available-quantity accounting.

Seller-facing operations (create/update/remove) own their transaction.
`reserve_quantity`, `release_reservation` and `commit_sale` are called by
the order engine and settlement inside THEIR transaction; they never commit.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mk_common.capabilities import Actor, Operation, Subject, authorize
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import ListingStatus
from src.mk_common.errors import (
    ConflictError,
    InsufficientQuantityError,
    InternalError,
    InvalidStateTransitionError,
    ListingHasActiveOrdersError,
    ListingNotActiveError,
    ListingNotFoundError,
    ValidationError,
)
from src.mk_common.id_generator import generate_id
from src.mk_common.pagination import cursor_decode, cursor_encode, split_page
from src.mk_common.retry import translate_db_errors, with_store_timeout
from src.mk_listing.application.schemas import ListingDetail, ListingListResponse
from src.mk_listing.domain.models import (
    MAX_DESCRIPTION_LENGTH,
    MAX_IMAGE_URL_LENGTH,
    MAX_QUANTITY,
    MAX_TITLE_LENGTH,
    MAX_UNIT_PRICE,
    Listing,
    ListingChanges,
    ListingFilter,
)
from src.mk_listing.domain.repository import ListingRepositoryProtocol
from src.mk_listing.infrastructure.persistence import ListingRepository

logger = logging.getLogger(__name__)


def _validate(
    title: str,
    description: str | None,
    unit_price: int,
    quantity: int,
    image_url: str | None,
) -> None:
    if not title or not title.strip() or len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be 1..{MAX_TITLE_LENGTH} characters")
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"description exceeds {MAX_DESCRIPTION_LENGTH} characters")
    if not 1 <= unit_price <= MAX_UNIT_PRICE:
        raise ValidationError(f"unit_price must be 1..{MAX_UNIT_PRICE}")
    if not 1 <= quantity <= MAX_QUANTITY:
        raise ValidationError(f"quantity must be 1..{MAX_QUANTITY}")
    if image_url is not None and len(image_url) > MAX_IMAGE_URL_LENGTH:
        raise ValidationError(f"image_url exceeds {MAX_IMAGE_URL_LENGTH} characters")


def _validate_expiry(expires_at: datetime, now: datetime) -> None:
    if expires_at.tzinfo is None or expires_at.utcoffset() is None:
        raise ValidationError("expires_at must carry a timezone offset")
    if expires_at <= now:
        raise ValidationError("expires_at must be in the future")


class ListingStore:
    def __init__(
        self,
        repo: ListingRepositoryProtocol | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: ListingRepositoryProtocol = repo or ListingRepository()
        self._clock = clock

    # ------------------------------------------------------------------
    # Seller operations
    # ------------------------------------------------------------------

    async def create_listing(
        self,
        db: AsyncSession,
        actor: Actor,
        title: str,
        unit_price: int,
        quantity: int,
        description: str | None = None,
        image_url: str | None = None,
        is_negotiable: bool = False,
        expires_at: datetime | None = None,
    ) -> ListingDetail:
        authorize(actor, Operation.CREATE_LISTING)
        _validate(title, description, unit_price, quantity, image_url)
        now = self._clock()
        if expires_at is None:
            expires_at = now + timedelta(days=settings.LISTING_DEFAULT_EXPIRY_DAYS)
        else:
            _validate_expiry(expires_at, now)

        listing = Listing(
            id=generate_id(),
            seller_id=actor.user_id,
            title=title.strip(),
            description=description,
            unit_price=unit_price,
            total_quantity=quantity,
            reserved_quantity=0,
            sold_quantity=0,
            status=ListingStatus.ACTIVE.value,
            image_url=image_url,
            is_negotiable=is_negotiable,
            expires_at=expires_at,
        )
        try:
            async with translate_db_errors("create_listing"):
                created = await with_store_timeout(
                    self._repo.insert(db, listing), "create_listing"
                )
                await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Listing %s created by %s: %d x %d points",
            created.id, actor.user_id, quantity, unit_price,
        )
        return ListingDetail.from_domain(created)

    async def update_listing(
        self,
        db: AsyncSession,
        actor: Actor,
        listing_id: str,
        changes: ListingChanges,
        expected_version: int | None = None,
    ) -> ListingDetail:
        try:
            async with translate_db_errors("update_listing"):
                updated = await with_store_timeout(
                    self._update(db, actor, listing_id, changes, expected_version),
                    "update_listing",
                )
                await db.commit()
        except Exception:
            await db.rollback()
            raise
        return ListingDetail.from_domain(updated)

    async def _update(
        self,
        db: AsyncSession,
        actor: Actor,
        listing_id: str,
        changes: ListingChanges,
        expected_version: int | None,
    ) -> Listing:
        current = await self._get_or_raise(db, listing_id)
        authorize(actor, Operation.UPDATE_LISTING, Subject(owner_id=current.seller_id))
        if not current.is_editable:
            raise InvalidStateTransitionError("Listing", current.status, "UPDATED")
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(
                f"listing {listing_id} is at version {current.version}, "
                f"expected {expected_version}"
            )

        merged = Listing(
            id=current.id,
            seller_id=current.seller_id,
            title=(changes.title if changes.title is not None else current.title).strip(),
            description=(
                changes.description if changes.description is not None else current.description
            ),
            unit_price=changes.unit_price if changes.unit_price is not None else current.unit_price,
            total_quantity=(
                changes.total_quantity
                if changes.total_quantity is not None
                else current.total_quantity
            ),
            reserved_quantity=current.reserved_quantity,
            sold_quantity=current.sold_quantity,
            status=current.status,
            image_url=changes.image_url if changes.image_url is not None else current.image_url,
            is_negotiable=(
                changes.is_negotiable
                if changes.is_negotiable is not None
                else current.is_negotiable
            ),
            expires_at=changes.expires_at if changes.expires_at is not None else current.expires_at,
        )
        _validate(
            merged.title, merged.description, merged.unit_price,
            merged.total_quantity, merged.image_url,
        )
        if changes.expires_at is not None:
            _validate_expiry(changes.expires_at, self._clock())
        committed = current.reserved_quantity + current.sold_quantity
        if merged.total_quantity < committed:
            raise ValidationError(
                f"total_quantity {merged.total_quantity} is below "
                f"reserved+sold ({committed})"
            )

        updated = await self._repo.update(db, merged, current.version)
        if updated is None:
            # Someone reserved, sold or edited between our read and write
            raise ConflictError(f"listing {listing_id} changed concurrently")
        logger.info("Listing %s updated by %s (v%d)", listing_id, actor.user_id, updated.version)
        return updated

    async def remove_listing(
        self, db: AsyncSession, actor: Actor, listing_id: str
    ) -> ListingDetail:
        try:
            async with translate_db_errors("remove_listing"):
                removed = await with_store_timeout(
                    self._remove(db, actor, listing_id), "remove_listing"
                )
                await db.commit()
        except Exception:
            await db.rollback()
            raise
        return ListingDetail.from_domain(removed)

    async def _remove(self, db: AsyncSession, actor: Actor, listing_id: str) -> Listing:
        current = await self._get_or_raise(db, listing_id)
        authorize(actor, Operation.REMOVE_LISTING, Subject(owner_id=current.seller_id))
        if current.status == ListingStatus.REMOVED:
            return current
        removed = await self._repo.remove(db, listing_id, self._clock())
        if removed is None:
            latest = await self._get_or_raise(db, listing_id)
            if latest.status == ListingStatus.REMOVED:
                return latest
            raise ListingHasActiveOrdersError(listing_id)
        logger.info("Listing %s removed by %s", listing_id, actor.user_id)
        return removed

    async def expire_listings(self, db: AsyncSession, now: datetime | None = None) -> int:
        """Sweep: ACTIVE/SOLD_OUT listings past expires_at become EXPIRED."""
        try:
            expired = await self._repo.expire_due(db, now or self._clock())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if expired:
            logger.info("Expired %d listing(s)", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_listing(self, db: AsyncSession, listing_id: str) -> ListingDetail:
        return ListingDetail.from_domain(await self._get_or_raise(db, listing_id))

    async def search_listings(
        self,
        db: AsyncSession,
        status: str | None,
        cursor: str | None,
        limit: int,
        seller_id: str | None = None,
        keyword: str | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
    ) -> ListingListResponse:
        # status=None → default ACTIVE; status='ALL' → no filter
        sql_status = None if status == "ALL" else (status or ListingStatus.ACTIVE.value)
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("min_price must not exceed max_price")
        cursor_id: Any = cursor_decode(cursor)
        flt = ListingFilter(
            status=sql_status,
            seller_id=seller_id,
            keyword=keyword.strip() if keyword and keyword.strip() else None,
            min_price=min_price,
            max_price=max_price,
        )
        rows = await self._repo.search(
            db, flt, cursor_id if isinstance(cursor_id, str) else None, limit + 1
        )
        page, has_more = split_page(rows, limit)
        return ListingListResponse(
            items=[ListingDetail.from_domain(listing) for listing in page],
            next_cursor=cursor_encode(page[-1].id) if has_more and page else None,
            has_more=has_more,
        )

    async def find_overcommitted(self, db: AsyncSession) -> list[str]:
        return await self._repo.find_overcommitted(db)

    # ------------------------------------------------------------------
    # Quantity accounting (caller's transaction)
    # ------------------------------------------------------------------

    async def reserve_quantity(
        self, db: AsyncSession, listing_id: str, quantity: int
    ) -> Listing:
        """Atomically hold `quantity` units; never lets reserved+sold exceed total."""
        if quantity <= 0:
            raise ValidationError(f"quantity must be positive, got {quantity}")
        now = self._clock()
        reserved = await self._repo.reserve(db, listing_id, quantity, now)
        if reserved is not None:
            return reserved

        current = await self._get_or_raise(db, listing_id)
        if current.status != ListingStatus.ACTIVE:
            raise ListingNotActiveError(listing_id, current.status)
        if current.is_expired(now):
            raise ListingNotActiveError(listing_id, ListingStatus.EXPIRED.value)
        raise InsufficientQuantityError(listing_id, quantity, max(current.available_quantity, 0))

    async def release_reservation(
        self, db: AsyncSession, listing_id: str, quantity: int
    ) -> Listing:
        released = await self._repo.release(db, listing_id, quantity)
        if released is None:
            logger.error("Release of %d on listing %s matched no reservation", quantity, listing_id)
            raise InternalError(f"reservation accounting broken on listing {listing_id}")
        return released

    async def commit_sale(
        self, db: AsyncSession, listing_id: str, quantity: int
    ) -> Listing:
        """Convert `quantity` reserved units into sold units."""
        sold = await self._repo.commit_sale(db, listing_id, quantity)
        if sold is None:
            logger.error("Commit of %d on listing %s matched no reservation", quantity, listing_id)
            raise InternalError(f"reservation accounting broken on listing {listing_id}")
        return sold

    async def _get_or_raise(self, db: AsyncSession, listing_id: str) -> Listing:
        listing = await self._repo.get(db, listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing
