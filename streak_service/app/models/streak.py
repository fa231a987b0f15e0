"""스트릭 도메인 모델.

current 는 연속 참여 일수, best 는 역대 최고 기록, week_count 는 이번 주 참여 일수다.
상태는 inactive(current=0) 와 active(current>0) 두 가지이며, 하루라도 빠지면 current 만 0 이 된다.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class Streak(BaseModel):
    experience_id: str
    user_id: str
    current: int = 0
    best: int = 0
    week_count: int = 0
    last_active_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class LeaderboardEntry(BaseModel):
    """리더보드 한 줄. 스트릭과 유저 표시 이름을 합친 읽기 모델."""

    rank: int
    user_id: str
    username: str | None
    current: int
    best: int
    week_count: int

    @property
    def display_name(self) -> str:
        return self.username or f"User {self.user_id[-6:]}"
