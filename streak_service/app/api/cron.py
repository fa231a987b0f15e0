"""외부 스케줄러가 호출하는 배치 작업 트리거.

세 엔드포인트 모두 x-questchat-signature 헤더로 인증하며, 인증 실패 시 어떤 작업도 하지 않는다.
"""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header

from ..config import SIGNATURE_HEADER, CronConfig, load_cron_config
from ..exceptions import InvalidSignatureError
from ..models.job import JobSummary
from ..services.daily_prompt_service import DailyPromptService, get_daily_prompt_service
from ..services.rollover_service import RolloverService, get_rollover_service
from ..services.weekly_summary_service import (
    WeeklySummaryService,
    get_weekly_summary_service,
)


def verify_signature(
    signature: str | None = Header(default=None, alias=SIGNATURE_HEADER),
    config: CronConfig = Depends(load_cron_config),
) -> None:
    """공유 비밀값과 헤더를 상수 시간으로 비교한다. 비밀값이 설정되지 않았으면 항상 거절한다."""

    if not config.signing_secret or not signature:
        raise InvalidSignatureError("missing signature or signing secret")

    if not hmac.compare_digest(
        signature.encode("utf-8"), config.signing_secret.encode("utf-8")
    ):
        raise InvalidSignatureError("signature mismatch")


router = APIRouter(dependencies=[Depends(verify_signature)])


@router.post(
    "/prompt",
    response_model=JobSummary,
    response_model_exclude_none=True,
    summary="데일리 퀘스트 게시",
)
def trigger_daily_prompt(
    service: DailyPromptService = Depends(get_daily_prompt_service),
) -> JobSummary:
    return service.run()


@router.post(
    "/rollover",
    response_model=JobSummary,
    response_model_exclude_none=True,
    summary="어제 답글 집계 및 스트릭 갱신",
)
def trigger_rollover(
    service: RolloverService = Depends(get_rollover_service),
) -> JobSummary:
    return service.run()


@router.post(
    "/week",
    response_model=JobSummary,
    response_model_exclude_none=True,
    summary="주간 리더보드 게시 및 초기화",
)
def trigger_weekly_summary(
    service: WeeklySummaryService = Depends(get_weekly_summary_service),
) -> JobSummary:
    return service.run()
