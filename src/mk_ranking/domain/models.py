"""Ranking domain — period windows and the pure snapshot aggregation.

A snapshot is keyed by (period_type, period_date) and holds one ranked list
per metric. It is fully derived from completed orders, so recomputing it
over the same orders always yields the same entries in the same order.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from src.mk_common.datetime_utils import start_of_day
from src.mk_common.enums import PeriodType, RankingMetric


@dataclass(frozen=True)
class CompletedSale:
    """The slice of a COMPLETED order the aggregation needs."""

    order_id: str
    listing_id: str
    quantity: int
    total_amount: int


@dataclass(frozen=True)
class RankingEntry:
    period_type: str
    period_date: date
    metric: str
    rank: int
    listing_id: str
    amount: int
    volume: int

    @property
    def value(self) -> int:
        return self.amount if self.metric == RankingMetric.AMOUNT else self.volume


def period_window(period_type: PeriodType, period_date: date) -> tuple[datetime, datetime]:
    """Half-open UTC window [start, end) of the period containing `period_date`.

    DAILY is the day itself, WEEKLY starts on the Monday of that week and
    MONTHLY on the 1st of that month.
    """
    if period_type is PeriodType.DAILY:
        start = period_date
        end = start + timedelta(days=1)
    elif period_type is PeriodType.WEEKLY:
        start = period_date - timedelta(days=period_date.weekday())
        end = start + timedelta(days=7)
    else:
        start = period_date.replace(day=1)
        end = (start + timedelta(days=32)).replace(day=1)
    return start_of_day(start), start_of_day(end)


def period_key(period_type: PeriodType, period_date: date) -> date:
    """First day of the period; any date inside it names the same snapshot."""
    return period_window(period_type, period_date)[0].date()


def aggregate(
    sales: Iterable[CompletedSale], period_type: PeriodType, period_date: date
) -> list[RankingEntry]:
    totals: dict[str, list[int]] = {}
    for sale in sales:
        bucket = totals.setdefault(sale.listing_id, [0, 0])
        bucket[0] += sale.total_amount
        bucket[1] += sale.quantity

    entries: list[RankingEntry] = []
    for metric in RankingMetric:
        index = 0 if metric is RankingMetric.AMOUNT else 1
        # ties broken by listing id so reruns are deterministic
        ordered = sorted(totals.items(), key=lambda kv: (-kv[1][index], kv[0]))
        for rank, (listing_id, (amount, volume)) in enumerate(ordered, start=1):
            entries.append(
                RankingEntry(
                    period_type=period_type.value,
                    period_date=period_date,
                    metric=metric.value,
                    rank=rank,
                    listing_id=listing_id,
                    amount=amount,
                    volume=volume,
                )
            )
    return entries
