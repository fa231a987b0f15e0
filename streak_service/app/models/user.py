from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class User(BaseModel):
    """커뮤니티 멤버. 채팅 답글이 처음 관찰될 때 생성된다."""

    user_id: str  # Whop user id (유니크)
    username: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def display_name(self) -> str:
        return self.username or f"User {self.user_id[-6:]}"
