from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


REWARD_TYPE_STREAK = "streak"


class IssuedCode(BaseModel):
    """발급된 할인 코드."""

    id: str | None = None
    code: str
    promo_id: str | None = None  # Whop promo code id
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class Reward(BaseModel):
    """(experience, user, type, threshold) 당 최대 1건. 이 행의 삽입이 보상 지급 확정 시점이다."""

    id: str | None = None
    experience_id: str
    user_id: str
    type: str = REWARD_TYPE_STREAK
    threshold: int
    issued_code_id: str | None = None
    created_at: datetime
    updated_at: datetime
