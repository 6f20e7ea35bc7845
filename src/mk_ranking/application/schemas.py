"""Pydantic schemas for mk_ranking API."""

from pydantic import BaseModel

from src.mk_ranking.domain.models import RankingEntry


class RankingEntryItem(BaseModel):
    metric: str
    rank: int
    listing_id: str
    value: int
    amount: int
    volume: int

    @classmethod
    def from_domain(cls, entry: RankingEntry) -> "RankingEntryItem":
        return cls(
            metric=entry.metric,
            rank=entry.rank,
            listing_id=entry.listing_id,
            value=entry.value,
            amount=entry.amount,
            volume=entry.volume,
        )


class RankingSnapshotResponse(BaseModel):
    period_type: str
    period_date: str
    entries: list[RankingEntryItem]
