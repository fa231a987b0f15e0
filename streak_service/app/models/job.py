from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"
    PROCESSED = "processed"
    NO_PROMPT_YESTERDAY = "no_prompt_yesterday"
    NO_MESSAGES = "no_messages"
    SUCCESS = "success"
    ERROR = "error"


class ExperienceJobResult(BaseModel):
    """익스피리언스 단위 처리 결과. 작업 종류에 따라 필요한 필드만 채운다."""

    experience_id: str
    status: JobStatus
    error: str | None = None
    prompt: str | None = None
    users_active: int | None = None
    streaks_updated: int | None = None
    streaks_reset: int | None = None
    rewards_issued: int | None = None
    top_performers: int | None = None


class JobSummary(BaseModel):
    """크론 작업 1회 실행 결과 요약."""

    success: bool = True
    date: str | None = None
    results: list[ExperienceJobResult] = Field(default_factory=list)

    def count(self, status: JobStatus) -> int:
        return sum(1 for r in self.results if r.status == status)
