from __future__ import annotations

from pydantic import BaseModel

from ...models.streak import LeaderboardEntry


class LeaderboardItem(BaseModel):
    rank: int
    user_id: str
    display_name: str
    current: int
    best: int
    week_count: int

    @classmethod
    def from_domain(cls, entry: LeaderboardEntry) -> "LeaderboardItem":
        return cls(
            rank=entry.rank,
            user_id=entry.user_id,
            display_name=entry.display_name,
            current=entry.current,
            best=entry.best,
            week_count=entry.week_count,
        )


class LeaderboardResponse(BaseModel):
    experience_id: str
    items: list[LeaderboardItem]
