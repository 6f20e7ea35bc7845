"""System wallet ids.

System wallets are ordinary ledger accounts, so the zero-sum rule
(sum of all balances == sum of ADMIN_ADJUSTMENT deltas) covers them too.
"""

PLATFORM_FEE_USER_ID = "PLATFORM_FEE"

# One escrow wallet per order keeps the hold off any shared hot row
_ESCROW_PREFIX = "escrow:"


def escrow_wallet_id(order_id: str) -> str:
    return f"{_ESCROW_PREFIX}{order_id}"


def is_system_wallet(user_id: str) -> bool:
    return user_id == PLATFORM_FEE_USER_ID or user_id.startswith(_ESCROW_PREFIX)
