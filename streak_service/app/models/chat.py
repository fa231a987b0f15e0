"""Whop 게이트웨이 경계에서 사용하는 정규화된 모델."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ChatMessage(BaseModel):
    """채팅 메시지의 표준 형태. 응답 포맷 차이는 게이트웨이 어댑터에서만 흡수한다."""

    actor_id: str | None
    actor_name: str | None = None
    text: str = ""
    timestamp: datetime | None = None


class IssuedPromo(BaseModel):
    """보상 발급기(Whop promo code)가 돌려준 결과."""

    promo_id: str | None
    code: str
