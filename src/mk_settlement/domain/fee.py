"""Platform fee calculation on integer points."""


def calc_platform_fee(total_amount: int, fee_bps: int, min_fee: int) -> int:
    """Half-up rounding: (total x bps + 5000) // 10000.

    A non-zero rate charges at least `min_fee`, but never more than the
    order total itself. A zero rate charges nothing.
    """
    if total_amount <= 0 or fee_bps <= 0:
        return 0
    fee = (total_amount * fee_bps + 5000) // 10000
    return min(max(fee, min_fee), total_amount)


def split_settlement(total_amount: int, fee_bps: int, min_fee: int) -> tuple[int, int]:
    """Return (platform_fee, seller_amount); the two always sum to total_amount."""
    fee = calc_platform_fee(total_amount, fee_bps, min_fee)
    return fee, total_amount - fee
