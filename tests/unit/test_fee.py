"""Tests for platform fee calculation on integer points."""

import pytest

from src.mk_settlement.domain.fee import calc_platform_fee, split_settlement


class TestCalcPlatformFee:
    def test_five_percent_of_two_hundred(self) -> None:
        assert calc_platform_fee(200, 500, 1) == 10

    def test_half_up_rounding(self) -> None:
        # 30 * 5% = 1.5 -> 2
        assert calc_platform_fee(30, 500, 1) == 2
        # 29 * 5% = 1.45 -> 1
        assert calc_platform_fee(29, 500, 1) == 1

    def test_minimum_fee_applies_to_small_orders(self) -> None:
        assert calc_platform_fee(5, 500, 1) == 1

    def test_fee_never_exceeds_total(self) -> None:
        assert calc_platform_fee(1, 500, 3) == 1

    def test_zero_rate_charges_nothing(self) -> None:
        assert calc_platform_fee(1000, 0, 1) == 0


class TestSplitSettlement:
    @pytest.mark.parametrize("total", [1, 7, 200, 999_999])
    def test_parts_sum_to_total(self, total: int) -> None:
        fee, seller = split_settlement(total, 500, 1)
        assert fee + seller == total
        assert fee >= 0 and seller >= 0

    def test_scenario_split(self) -> None:
        assert split_settlement(200, 500, 1) == (10, 190)
