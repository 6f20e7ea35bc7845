"""WalletRepository — concrete implementation of WalletRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A debit returning 0 rows means the balance would go negative; the row lock
taken by the UPDATE serializes concurrent debits/credits on one wallet.

Transaction ownership: the CALLER (application service) commits or rolls back.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.errors import InsufficientBalanceError, InternalError
from src.mk_wallet.domain.models import ProjectionMismatch, WalletAccount, WalletTransaction

# ---------------------------------------------------------------------------
# SQL: wallet_accounts mutations
# ---------------------------------------------------------------------------

_ENSURE_ACCOUNT_SQL = text("""
    INSERT INTO wallet_accounts (user_id)
    VALUES (:user_id)
    ON CONFLICT (user_id) DO NOTHING
""")

_CREDIT_SQL = text("""
    UPDATE wallet_accounts
    SET balance = balance + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id
    RETURNING user_id, balance, version, created_at, updated_at
""")

_DEBIT_SQL = text("""
    UPDATE wallet_accounts
    SET balance = balance - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND balance >= :amount
    RETURNING user_id, balance, version, created_at, updated_at
""")

_INSERT_TRANSACTION_SQL = text("""
    INSERT INTO wallet_transactions
        (user_id, delta, balance_after, tx_type, related_order_id, note)
    VALUES
        (:user_id, :delta, :balance_after, :tx_type, :related_order_id, :note)
    RETURNING id, user_id, delta, balance_after, tx_type,
              related_order_id, note, created_at
""")

_GET_ACCOUNT_SQL = text("""
    SELECT user_id, balance, version, created_at, updated_at
    FROM wallet_accounts
    WHERE user_id = :user_id
""")

_LIST_TRANSACTIONS_SQL = text("""
    SELECT id, user_id, delta, balance_after, tx_type,
           related_order_id, note, created_at
    FROM wallet_transactions
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
      AND (CAST(:tx_type AS TEXT) IS NULL OR tx_type = :tx_type)
      AND (CAST(:related_order_id AS TEXT) IS NULL OR related_order_id = :related_order_id)
    ORDER BY id DESC
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# SQL: projection maintenance
# ---------------------------------------------------------------------------

_LEDGER_TOTALS_CTE = """
    WITH ledger AS (
        SELECT w.user_id, w.balance AS cached_balance,
               COALESCE(SUM(t.delta), 0) AS ledger_balance
        FROM wallet_accounts w
        LEFT JOIN wallet_transactions t ON t.user_id = w.user_id
        GROUP BY w.user_id, w.balance
    )
"""

_PROJECTION_MISMATCH_SQL = text(_LEDGER_TOTALS_CTE + """
    SELECT user_id, cached_balance, ledger_balance
    FROM ledger
    WHERE cached_balance <> ledger_balance
    ORDER BY user_id
""")

_REBUILD_BALANCES_SQL = text(_LEDGER_TOTALS_CTE + """
    UPDATE wallet_accounts w
    SET balance = ledger.ledger_balance,
        version = w.version + 1,
        updated_at = NOW()
    FROM ledger
    WHERE w.user_id = ledger.user_id
      AND w.balance <> ledger.ledger_balance
    RETURNING w.user_id
""")

_NEGATIVE_BALANCES_SQL = text("""
    SELECT user_id FROM wallet_accounts WHERE balance < 0 ORDER BY user_id
""")

_SUM_BALANCES_SQL = text("SELECT COALESCE(SUM(balance), 0) FROM wallet_accounts")

_SUM_ADJUSTMENTS_SQL = text("""
    SELECT COALESCE(SUM(delta), 0)
    FROM wallet_transactions
    WHERE tx_type = 'ADMIN_ADJUSTMENT'
""")


def _row_to_account(row: object) -> WalletAccount:
    return WalletAccount(
        user_id=row.user_id,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_transaction(row: object) -> WalletTransaction:
    return WalletTransaction(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        delta=row.delta,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        tx_type=row.tx_type,  # type: ignore[attr-defined]
        related_order_id=row.related_order_id,  # type: ignore[attr-defined]
        note=row.note,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class WalletRepository:
    """Concrete repository — all operations atomic at the SQL level."""

    async def get_account(
        self, db: AsyncSession, user_id: str
    ) -> WalletAccount | None:
        result = await db.execute(_GET_ACCOUNT_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def _append(
        self,
        db: AsyncSession,
        account: WalletAccount,
        delta: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
    ) -> WalletTransaction:
        result = await db.execute(
            _INSERT_TRANSACTION_SQL,
            {
                "user_id": account.user_id,
                "delta": delta,
                "balance_after": account.balance,
                "tx_type": tx_type,
                "related_order_id": related_order_id,
                "note": note,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Wallet transaction insert returned no rows")
        return _row_to_transaction(row)

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
    ) -> WalletTransaction:
        await db.execute(_ENSURE_ACCOUNT_SQL, {"user_id": user_id})
        result = await db.execute(_CREDIT_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Wallet vanished during credit for {user_id}")
        return await self._append(
            db, _row_to_account(row), amount, tx_type, related_order_id, note
        )

    async def debit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
    ) -> WalletTransaction:
        result = await db.execute(_DEBIT_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            account = await self.get_account(db, user_id)
            raise InsufficientBalanceError(amount, account.balance if account else 0)
        return await self._append(
            db, _row_to_account(row), -amount, tx_type, related_order_id, note
        )

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
        related_order_id: str | None,
    ) -> list[WalletTransaction]:
        result = await db.execute(
            _LIST_TRANSACTIONS_SQL,
            {
                "user_id": user_id,
                "cursor_id": cursor_id,
                "tx_type": tx_type,
                "related_order_id": related_order_id,
                "limit": limit,
            },
        )
        return [_row_to_transaction(row) for row in result.fetchall()]

    async def find_projection_mismatches(
        self, db: AsyncSession
    ) -> list[ProjectionMismatch]:
        result = await db.execute(_PROJECTION_MISMATCH_SQL)
        return [
            ProjectionMismatch(
                user_id=row.user_id,
                cached_balance=row.cached_balance,
                ledger_balance=row.ledger_balance,
            )
            for row in result.fetchall()
        ]

    async def find_negative_balances(self, db: AsyncSession) -> list[str]:
        result = await db.execute(_NEGATIVE_BALANCES_SQL)
        return [row.user_id for row in result.fetchall()]

    async def rebuild_balances(self, db: AsyncSession) -> int:
        result = await db.execute(_REBUILD_BALANCES_SQL)
        return len(result.fetchall())

    async def sum_balances(self, db: AsyncSession) -> int:
        return int((await db.execute(_SUM_BALANCES_SQL)).scalar_one())

    async def sum_adjustments(self, db: AsyncSession) -> int:
        return int((await db.execute(_SUM_ADJUSTMENTS_SQL)).scalar_one())
