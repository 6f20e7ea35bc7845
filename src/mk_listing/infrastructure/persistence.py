"""ListingRepository — concrete implementation of ListingRepositoryProtocol.

Quantity accounting is done in single conditional UPDATE ... RETURNING
statements, so two concurrent reservations on one listing serialize on the
row lock and the second re-evaluates `available >= :quantity` against the
committed value. A result of 0 rows means the reservation would overcommit.

asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.errors import InternalError
from src.mk_listing.domain.models import Listing, ListingFilter

_COLUMNS = """
    id, seller_id, title, description, unit_price,
    total_quantity, reserved_quantity, sold_quantity, status,
    image_url, is_negotiable, expires_at, sold_out_at, removed_at,
    version, created_at, updated_at
"""

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_INSERT_SQL = text(f"""
    INSERT INTO listings
        (id, seller_id, title, description, unit_price,
         total_quantity, reserved_quantity, sold_quantity, status,
         image_url, is_negotiable, expires_at)
    VALUES
        (:id, :seller_id, :title, :description, :unit_price,
         :total_quantity, 0, 0, :status,
         :image_url, :is_negotiable, :expires_at)
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM listings WHERE id = :listing_id")

# Available quantity hitting zero flips the listing to SOLD_OUT in the same statement
_RESERVE_SQL = text(f"""
    UPDATE listings
    SET reserved_quantity = reserved_quantity + :quantity,
        status = CASE
            WHEN total_quantity - reserved_quantity - sold_quantity = :quantity
            THEN 'SOLD_OUT' ELSE status END,
        sold_out_at = CASE
            WHEN total_quantity - reserved_quantity - sold_quantity = :quantity
            THEN NOW() ELSE sold_out_at END,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :listing_id
      AND status = 'ACTIVE'
      AND (expires_at IS NULL OR expires_at > :now)
      AND total_quantity - reserved_quantity - sold_quantity >= :quantity
    RETURNING {_COLUMNS}
""")

_RELEASE_SQL = text(f"""
    UPDATE listings
    SET reserved_quantity = reserved_quantity - :quantity,
        status = CASE WHEN status = 'SOLD_OUT' THEN 'ACTIVE' ELSE status END,
        sold_out_at = CASE WHEN status = 'SOLD_OUT' THEN NULL ELSE sold_out_at END,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :listing_id AND reserved_quantity >= :quantity
    RETURNING {_COLUMNS}
""")

_COMMIT_SALE_SQL = text(f"""
    UPDATE listings
    SET reserved_quantity = reserved_quantity - :quantity,
        sold_quantity = sold_quantity + :quantity,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :listing_id AND reserved_quantity >= :quantity
    RETURNING {_COLUMNS}
""")

_UPDATE_SQL = text(f"""
    UPDATE listings
    SET title = :title,
        description = :description,
        unit_price = :unit_price,
        total_quantity = :total_quantity,
        image_url = :image_url,
        is_negotiable = :is_negotiable,
        expires_at = :expires_at,
        status = CASE
            WHEN :total_quantity - reserved_quantity - sold_quantity = 0
            THEN 'SOLD_OUT' ELSE 'ACTIVE' END,
        sold_out_at = CASE
            WHEN :total_quantity - reserved_quantity - sold_quantity = 0
            THEN COALESCE(sold_out_at, NOW()) ELSE NULL END,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :listing_id
      AND version = :expected_version
      AND status IN ('ACTIVE', 'SOLD_OUT')
      AND :total_quantity >= reserved_quantity + sold_quantity
    RETURNING {_COLUMNS}
""")

_REMOVE_SQL = text(f"""
    UPDATE listings
    SET status = 'REMOVED',
        removed_at = :now,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :listing_id
      AND status <> 'REMOVED'
      AND reserved_quantity = 0
    RETURNING {_COLUMNS}
""")

_EXPIRE_DUE_SQL = text("""
    UPDATE listings
    SET status = 'EXPIRED',
        version = version + 1,
        updated_at = NOW()
    WHERE status IN ('ACTIVE', 'SOLD_OUT')
      AND expires_at IS NOT NULL
      AND expires_at <= :now
    RETURNING id
""")

_SEARCH_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM listings
    WHERE
        (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
        AND (CAST(:seller_id AS TEXT) IS NULL OR seller_id = CAST(:seller_id AS TEXT))
        AND (
            CAST(:keyword AS TEXT) IS NULL
            OR title ILIKE '%' || CAST(:keyword AS TEXT) || '%'
        )
        AND (CAST(:min_price AS BIGINT) IS NULL OR unit_price >= CAST(:min_price AS BIGINT))
        AND (CAST(:max_price AS BIGINT) IS NULL OR unit_price <= CAST(:max_price AS BIGINT))
        AND (CAST(:cursor_id AS TEXT) IS NULL OR id < CAST(:cursor_id AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")

_OVERCOMMITTED_SQL = text("""
    SELECT id FROM listings
    WHERE reserved_quantity < 0
       OR sold_quantity < 0
       OR reserved_quantity + sold_quantity > total_quantity
    ORDER BY id
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_listing(row: object) -> Listing:
    return Listing(
        id=row.id,  # type: ignore[attr-defined]
        seller_id=row.seller_id,  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        unit_price=row.unit_price,  # type: ignore[attr-defined]
        total_quantity=row.total_quantity,  # type: ignore[attr-defined]
        reserved_quantity=row.reserved_quantity,  # type: ignore[attr-defined]
        sold_quantity=row.sold_quantity,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        image_url=row.image_url,  # type: ignore[attr-defined]
        is_negotiable=row.is_negotiable,  # type: ignore[attr-defined]
        expires_at=row.expires_at,  # type: ignore[attr-defined]
        sold_out_at=row.sold_out_at,  # type: ignore[attr-defined]
        removed_at=row.removed_at,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ListingRepository:
    async def insert(self, db: AsyncSession, listing: Listing) -> Listing:
        result = await db.execute(
            _INSERT_SQL,
            {
                "id": listing.id,
                "seller_id": listing.seller_id,
                "title": listing.title,
                "description": listing.description,
                "unit_price": listing.unit_price,
                "total_quantity": listing.total_quantity,
                "status": listing.status,
                "image_url": listing.image_url,
                "is_negotiable": listing.is_negotiable,
                "expires_at": listing.expires_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Listing insert returned no rows")
        return _row_to_listing(row)

    async def get(self, db: AsyncSession, listing_id: str) -> Listing | None:
        result = await db.execute(_GET_SQL, {"listing_id": listing_id})
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def reserve(
        self, db: AsyncSession, listing_id: str, quantity: int, now: datetime
    ) -> Listing | None:
        result = await db.execute(
            _RESERVE_SQL, {"listing_id": listing_id, "quantity": quantity, "now": now}
        )
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def release(
        self, db: AsyncSession, listing_id: str, quantity: int
    ) -> Listing | None:
        result = await db.execute(
            _RELEASE_SQL, {"listing_id": listing_id, "quantity": quantity}
        )
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def commit_sale(
        self, db: AsyncSession, listing_id: str, quantity: int
    ) -> Listing | None:
        result = await db.execute(
            _COMMIT_SALE_SQL, {"listing_id": listing_id, "quantity": quantity}
        )
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def update(
        self, db: AsyncSession, listing: Listing, expected_version: int
    ) -> Listing | None:
        result = await db.execute(
            _UPDATE_SQL,
            {
                "listing_id": listing.id,
                "title": listing.title,
                "description": listing.description,
                "unit_price": listing.unit_price,
                "total_quantity": listing.total_quantity,
                "image_url": listing.image_url,
                "is_negotiable": listing.is_negotiable,
                "expires_at": listing.expires_at,
                "expected_version": expected_version,
            },
        )
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def remove(
        self, db: AsyncSession, listing_id: str, now: datetime
    ) -> Listing | None:
        result = await db.execute(_REMOVE_SQL, {"listing_id": listing_id, "now": now})
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def expire_due(self, db: AsyncSession, now: datetime) -> list[str]:
        result = await db.execute(_EXPIRE_DUE_SQL, {"now": now})
        return [row.id for row in result.fetchall()]

    async def search(
        self,
        db: AsyncSession,
        flt: ListingFilter,
        cursor_id: str | None,
        limit: int,
    ) -> list[Listing]:
        result = await db.execute(
            _SEARCH_SQL,
            {
                "status": flt.status,
                "seller_id": flt.seller_id,
                "keyword": flt.keyword,
                "min_price": flt.min_price,
                "max_price": flt.max_price,
                "cursor_id": cursor_id,
                "limit": limit,
            },
        )
        return [_row_to_listing(row) for row in result.fetchall()]

    async def find_overcommitted(self, db: AsyncSession) -> list[str]:
        result = await db.execute(_OVERCOMMITTED_SQL)
        return [row.id for row in result.fetchall()]
