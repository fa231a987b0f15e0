from __future__ import annotations

import logging
from datetime import datetime

from fastapi import Depends
from pymongo.database import Database

from common.mongo.client import get_database
from common.types.datetime import to_day_key, to_utc, utc_now

from .channel_resolver import ChannelResolver, get_channel_resolver, get_experience_repository
from .prompt_pool import PromptPool, get_prompt_pool
from ..gateways.interfaces import MessagingGatewayInterface
from ..gateways.whop import get_whop_client
from ..models.experience import ConfiguredExperience
from ..models.job import ExperienceJobResult, JobStatus, JobSummary
from ..models.message_log import SYSTEM_ACTOR_ID, MessageLog
from ..repositories.interfaces import (
    ExperienceRepositoryInterface,
    MessageLogRepositoryInterface,
)
from ..repositories.message_log_repository import MessageLogRepository


logger = logging.getLogger(__name__)


def format_prompt_message(day_key: str, prompt: str) -> str:
    return (
        f"🌟 **Daily Quest** ({day_key})\n\n"
        f"{prompt}\n\n"
        "💡 *First reply counts toward your streak!*"
    )


class DailyPromptService:
    """설정된 모든 익스피리언스에 오늘의 질문을 하루 1회 게시한다.

    - SYSTEM MessageLog 가 오늘 게시 여부의 기록이자 다음 날 롤오버의 시간 기준(앵커)이다.
    - 전송에 성공한 뒤에만 기록하므로, 실패한 익스피리언스는 재실행 시 다시 게시된다.
    """

    def __init__(
        self,
        experience_repo: ExperienceRepositoryInterface,
        message_log_repo: MessageLogRepositoryInterface,
        gateway: MessagingGatewayInterface,
        channel_resolver: ChannelResolver,
        prompt_pool: PromptPool,
    ) -> None:
        self._experience_repo = experience_repo
        self._message_log_repo = message_log_repo
        self._gateway = gateway
        self._channel_resolver = channel_resolver
        self._prompt_pool = prompt_pool

    def run(self, now: datetime | None = None) -> JobSummary:
        now = to_utc(now) if now is not None else utc_now()
        today = to_day_key(now)

        experiences = self._experience_repo.list_configured()
        logger.info(
            "posting daily prompts for %d experiences",
            len(experiences),
            extra={"job": "prompt", "day_key": today},
        )

        summary = JobSummary(date=today)
        for item in experiences:
            try:
                result = self._post_for_experience(item, today, now)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "daily prompt failed for %s: %s",
                    item.experience_id,
                    exc,
                    extra={"job": "prompt", "experience_id": item.experience_id},
                )
                result = ExperienceJobResult(
                    experience_id=item.experience_id,
                    status=JobStatus.ERROR,
                    error=str(exc),
                )
            summary.results.append(result)

        logger.info(
            "daily prompt job completed: posted=%d already_posted=%d errors=%d",
            summary.count(JobStatus.POSTED),
            summary.count(JobStatus.ALREADY_POSTED),
            summary.count(JobStatus.ERROR),
            extra={"job": "prompt", "day_key": today},
        )
        return summary

    def _post_for_experience(
        self, item: ConfiguredExperience, today: str, now: datetime
    ) -> ExperienceJobResult:
        experience_id = item.experience_id

        if self._message_log_repo.find(experience_id, SYSTEM_ACTOR_ID, today) is not None:
            logger.debug("prompt already posted for %s on %s", experience_id, today)
            return ExperienceJobResult(
                experience_id=experience_id, status=JobStatus.ALREADY_POSTED
            )

        prompt = self._prompt_pool.pick()
        channel_id = self._channel_resolver.resolve(item.experience)
        self._gateway.send_message(channel_id, format_prompt_message(today, prompt))

        inserted = self._message_log_repo.try_insert(
            MessageLog(
                experience_id=experience_id,
                actor_id=SYSTEM_ACTOR_ID,
                day_key=today,
                first_post_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        if not inserted:
            # 동시에 실행된 다른 작업이 먼저 기록했다. 앵커는 먼저 기록된 쪽을 따른다.
            logger.warning(
                "prompt anchor for %s on %s was recorded concurrently",
                experience_id,
                today,
            )

        logger.info(
            "posted daily prompt to %s",
            experience_id,
            extra={"job": "prompt", "experience_id": experience_id, "day_key": today},
        )
        return ExperienceJobResult(
            experience_id=experience_id, status=JobStatus.POSTED, prompt=prompt
        )


def get_message_log_repository(
    db: Database = Depends(get_database),
) -> MessageLogRepositoryInterface:
    """FastAPI DI용 MessageLogRepository 팩토리."""

    return MessageLogRepository(db)


def get_daily_prompt_service(
    experience_repo: ExperienceRepositoryInterface = Depends(get_experience_repository),
    message_log_repo: MessageLogRepositoryInterface = Depends(get_message_log_repository),
    gateway: MessagingGatewayInterface = Depends(get_whop_client),
    channel_resolver: ChannelResolver = Depends(get_channel_resolver),
    prompt_pool: PromptPool = Depends(get_prompt_pool),
) -> DailyPromptService:
    """FastAPI DI용 DailyPromptService 팩토리."""

    return DailyPromptService(
        experience_repo=experience_repo,
        message_log_repo=message_log_repo,
        gateway=gateway,
        channel_resolver=channel_resolver,
        prompt_pool=prompt_pool,
    )
