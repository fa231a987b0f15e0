from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


# 데일리 프롬프트 게시 자체를 기록할 때 사용하는 액터 id
SYSTEM_ACTOR_ID = "SYSTEM"


class MessageLog(BaseModel):
    """특정 액터가 특정 날짜에 처음 글을 남긴 기록.

    - (experience_id, actor_id, day_key) 당 최대 1건이며, 이 유니크 제약이 중복 처리 방지 장치다.
    - actor_id 가 SYSTEM 인 행은 프롬프트 게시 시각(앵커)을 나타낸다.
    """

    id: str | None = None
    experience_id: str
    actor_id: str
    day_key: str  # YYYY-MM-DD (UTC)
    first_post_at: datetime
    created_at: datetime
    updated_at: datetime

    @property
    def is_anchor(self) -> bool:
        return self.actor_id == SYSTEM_ACTOR_ID
