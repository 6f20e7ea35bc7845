"""Repository Protocol for listings.

Quantity mutations return the updated Listing, or None when the conditional
UPDATE matched no row (constraint violated or listing gone). The service
re-reads the row to pick the precise error.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_listing.domain.models import Listing, ListingFilter


class ListingRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, listing: Listing) -> Listing: ...

    async def get(self, db: AsyncSession, listing_id: str) -> Listing | None: ...

    async def reserve(
        self, db: AsyncSession, listing_id: str, quantity: int, now: datetime
    ) -> Listing | None: ...

    async def release(
        self, db: AsyncSession, listing_id: str, quantity: int
    ) -> Listing | None: ...

    async def commit_sale(
        self, db: AsyncSession, listing_id: str, quantity: int
    ) -> Listing | None: ...

    async def update(
        self, db: AsyncSession, listing: Listing, expected_version: int
    ) -> Listing | None: ...

    async def remove(
        self, db: AsyncSession, listing_id: str, now: datetime
    ) -> Listing | None: ...

    async def expire_due(self, db: AsyncSession, now: datetime) -> list[str]: ...

    async def search(
        self,
        db: AsyncSession,
        flt: ListingFilter,
        cursor_id: str | None,
        limit: int,
    ) -> list[Listing]: ...

    async def find_overcommitted(self, db: AsyncSession) -> list[str]: ...
