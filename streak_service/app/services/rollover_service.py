from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from fastapi import Depends
from pymongo.database import Database

from common.mongo.client import get_database
from common.types.datetime import to_day_key, to_utc, utc_now

from .channel_resolver import ChannelResolver, get_channel_resolver, get_experience_repository
from .daily_prompt_service import get_message_log_repository
from ..exceptions import MessageFetchError
from ..gateways.interfaces import MessagingGatewayInterface, RewardIssuerInterface
from ..gateways.whop import get_whop_client
from ..models.chat import ChatMessage
from ..models.experience import ConfiguredExperience
from ..models.job import ExperienceJobResult, JobStatus, JobSummary
from ..models.message_log import SYSTEM_ACTOR_ID, MessageLog
from ..models.reward import REWARD_TYPE_STREAK, IssuedCode, Reward
from ..models.streak import Streak
from ..models.user import User
from ..repositories.interfaces import (
    ExperienceRepositoryInterface,
    IssuedCodeRepositoryInterface,
    MessageLogRepositoryInterface,
    RewardRepositoryInterface,
    StreakRepositoryInterface,
    UserRepositoryInterface,
)
from ..repositories.reward_repository import IssuedCodeRepository, RewardRepository
from ..repositories.streak_repository import StreakRepository
from ..repositories.user_repository import UserRepository


logger = logging.getLogger(__name__)


REPLY_WINDOW = timedelta(hours=24)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def select_first_replies(
    messages: Iterable[ChatMessage], since: datetime, until: datetime
) -> list[ChatMessage]:
    """[since, until) 구간에서 액터별 첫 메시지만 시간순으로 반환한다.

    - 타임스탬프 기준 안정 정렬이므로 같은 시각이면 피드 순서가 우선한다.
    - SYSTEM 메시지와 액터 id 가 없는 메시지는 제외한다.
    """

    window = [
        m
        for m in messages
        if m.timestamp is not None and since <= to_utc(m.timestamp) < until
    ]
    window.sort(key=lambda m: to_utc(m.timestamp))

    seen: set[str] = set()
    firsts: list[ChatMessage] = []
    for message in window:
        actor_id = message.actor_id
        if not actor_id or actor_id == SYSTEM_ACTOR_ID or actor_id in seen:
            continue
        seen.add(actor_id)
        firsts.append(message)
    return firsts


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value > 0:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def build_reward_code(threshold: int, actor_id: str, now: datetime) -> str:
    """QUEST-{threshold}D-{액터 id 마지막 6자}-{base36 밀리초} 형식의 대문자 코드를 만든다."""

    actor_suffix = "".join(ch for ch in actor_id if ch.isalnum())[-6:]
    millis = int(to_utc(now).timestamp() * 1000)
    return f"QUEST-{threshold}D-{actor_suffix}-{_to_base36(millis)}".upper()


def format_reward_message(display_name: str, threshold: int, percentage: int, code: str) -> str:
    return (
        f"🎉 **Congratulations {display_name}!** 🎉\n\n"
        f"You've reached a **{threshold}-day streak!** 🔥\n\n"
        f"Here's your reward: **{percentage}% OFF**\n"
        f"Promo Code: `{code}`\n\n"
        "Keep going for more rewards! 🚀"
    )


class RolloverService:
    """어제의 데일리 퀘스트 답글을 집계해 스트릭을 갱신하고 보상을 지급한다.

    - 같은 날짜로 여러 번 실행돼도 결과가 같다. 액터별 MessageLog 유니크 삽입이
      스트릭 증가의 관문이고, Reward 유니크 삽입이 보상 지급의 관문이다.
    - 익스피리언스 단위로 실패를 격리한다. 한 곳의 오류가 나머지 처리를 막지 않는다.
    """

    def __init__(
        self,
        experience_repo: ExperienceRepositoryInterface,
        message_log_repo: MessageLogRepositoryInterface,
        user_repo: UserRepositoryInterface,
        streak_repo: StreakRepositoryInterface,
        reward_repo: RewardRepositoryInterface,
        issued_code_repo: IssuedCodeRepositoryInterface,
        gateway: MessagingGatewayInterface,
        reward_issuer: RewardIssuerInterface,
        channel_resolver: ChannelResolver,
    ) -> None:
        self._experience_repo = experience_repo
        self._message_log_repo = message_log_repo
        self._user_repo = user_repo
        self._streak_repo = streak_repo
        self._reward_repo = reward_repo
        self._issued_code_repo = issued_code_repo
        self._gateway = gateway
        self._reward_issuer = reward_issuer
        self._channel_resolver = channel_resolver

    def run(self, now: datetime | None = None) -> JobSummary:
        now = to_utc(now) if now is not None else utc_now()
        yesterday = to_day_key(now - timedelta(days=1))

        experiences = self._experience_repo.list_configured()
        logger.info(
            "starting rollover for %d experiences",
            len(experiences),
            extra={"job": "rollover", "day_key": yesterday},
        )

        summary = JobSummary(date=yesterday)
        for item in experiences:
            try:
                result = self._process_experience(item, yesterday, now)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "rollover failed for %s: %s",
                    item.experience_id,
                    exc,
                    extra={"job": "rollover", "experience_id": item.experience_id},
                )
                result = ExperienceJobResult(
                    experience_id=item.experience_id,
                    status=JobStatus.ERROR,
                    error=str(exc),
                )
            summary.results.append(result)

        logger.info(
            "rollover completed: processed=%d skipped=%d errors=%d",
            summary.count(JobStatus.PROCESSED),
            summary.count(JobStatus.NO_PROMPT_YESTERDAY)
            + summary.count(JobStatus.NO_MESSAGES),
            summary.count(JobStatus.ERROR),
            extra={"job": "rollover", "day_key": yesterday},
        )
        return summary

    def _process_experience(
        self, item: ConfiguredExperience, yesterday: str, now: datetime
    ) -> ExperienceJobResult:
        experience_id = item.experience_id
        log_extra = {"job": "rollover", "experience_id": experience_id, "day_key": yesterday}

        anchor = self._message_log_repo.find(experience_id, SYSTEM_ACTOR_ID, yesterday)
        if anchor is None:
            logger.info("no prompt posted yesterday, skipping", extra=log_extra)
            return ExperienceJobResult(
                experience_id=experience_id, status=JobStatus.NO_PROMPT_YESTERDAY
            )

        channel_id = self._channel_resolver.resolve(item.experience)
        try:
            messages = self._gateway.list_messages(channel_id)
        except MessageFetchError as exc:
            # 조용한 채널과 장애를 구분할 수 없으므로 아무것도 바꾸지 않는다. 재실행이 같은 날을 다시 처리한다.
            logger.warning("failed to fetch messages: %s", exc, extra=log_extra)
            return ExperienceJobResult(
                experience_id=experience_id, status=JobStatus.NO_MESSAGES
            )

        since = to_utc(anchor.first_post_at)
        until = since + REPLY_WINDOW + timedelta(minutes=item.config.grace_minutes)
        replies = select_first_replies(messages, since, until)
        logger.info(
            "found %d first replies out of %d messages",
            len(replies),
            len(messages),
            extra=log_extra,
        )

        active_user_ids: set[str] = set()
        streaks_updated = 0
        rewards_issued = 0
        for reply in replies:
            actor_id = reply.actor_id
            if not actor_id:
                continue
            active_user_ids.add(actor_id)

            if self._message_log_repo.find(experience_id, actor_id, yesterday) is not None:
                logger.debug("actor %s already processed for %s", actor_id, yesterday)
                continue

            user = self._user_repo.upsert(actor_id, reply.actor_name)

            inserted = self._message_log_repo.try_insert(
                MessageLog(
                    experience_id=experience_id,
                    actor_id=actor_id,
                    day_key=yesterday,
                    first_post_at=to_utc(reply.timestamp),
                    created_at=now,
                    updated_at=now,
                )
            )
            if not inserted:
                logger.info(
                    "actor %s was processed by a concurrent run", actor_id, extra=log_extra
                )
                continue

            streak = self._streak_repo.record_activity(experience_id, actor_id, now)
            streaks_updated += 1

            if self._grant_reward(item, streak, user, channel_id, now):
                rewards_issued += 1

        # 이미 집계된 액터는 이번 피드에서 밀려나도 리셋 대상이 아니다.
        active_user_ids.update(self._message_log_repo.list_actor_ids(experience_id, yesterday))

        streaks_reset = self._streak_repo.reset_inactive(
            experience_id, sorted(active_user_ids)
        )

        logger.info(
            "rollover processed: active=%d updated=%d reset=%d rewards=%d",
            len(active_user_ids),
            streaks_updated,
            streaks_reset,
            rewards_issued,
            extra=log_extra,
        )
        return ExperienceJobResult(
            experience_id=experience_id,
            status=JobStatus.PROCESSED,
            users_active=len(active_user_ids),
            streaks_updated=streaks_updated,
            streaks_reset=streaks_reset,
            rewards_issued=rewards_issued,
        )

    def _grant_reward(
        self,
        item: ConfiguredExperience,
        streak: Streak,
        user: User,
        channel_id: str,
        now: datetime,
    ) -> bool:
        """임계값에 도달했으면 보상을 지급하고, 이번 실행에서 새로 지급했는지 반환한다."""

        threshold = streak.current
        config = item.config
        experience_id = item.experience_id
        user_id = streak.user_id

        if threshold not in config.streak_thresholds:
            return False

        access_pass_id = item.experience.access_pass_id
        if not access_pass_id:
            logger.info(
                "experience %s has no access pass, skipping %d-day reward for %s",
                experience_id,
                threshold,
                user_id,
            )
            return False

        if self._reward_repo.exists(experience_id, user_id, REWARD_TYPE_STREAK, threshold):
            return False

        code = build_reward_code(threshold, user_id, now)
        expires_at = now + timedelta(days=config.reward_expiry_days)

        try:
            promo = self._reward_issuer.issue_code(
                product_id=access_pass_id,
                code=code,
                label=f"{threshold}-day streak reward",
                percentage=config.reward_percentage,
                stock=config.reward_stock,
                expires_at=expires_at,
            )
            issued = self._issued_code_repo.insert(
                IssuedCode(
                    code=promo.code,
                    promo_id=promo.promo_id,
                    expires_at=expires_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            reward = self._reward_repo.try_insert(
                Reward(
                    experience_id=experience_id,
                    user_id=user_id,
                    type=REWARD_TYPE_STREAK,
                    threshold=threshold,
                    issued_code_id=issued.id,
                    created_at=now,
                    updated_at=now,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "failed to issue %d-day reward for %s in %s: %s",
                threshold,
                user_id,
                experience_id,
                exc,
            )
            return False

        if reward is None:
            logger.info(
                "%d-day reward for %s was granted by a concurrent run", threshold, user_id
            )
            return False

        logger.info(
            "issued %d-day reward %s to %s",
            threshold,
            issued.code,
            user_id,
            extra={"job": "rollover", "experience_id": experience_id},
        )

        try:
            self._gateway.send_message(
                channel_id,
                format_reward_message(
                    user.display_name, threshold, config.reward_percentage, issued.code
                ),
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "reward %s issued but congratulation message failed: %s",
                issued.code,
                exc,
            )
        return True


def get_user_repository(
    db: Database = Depends(get_database),
) -> UserRepositoryInterface:
    """FastAPI DI용 UserRepository 팩토리."""

    return UserRepository(db)


def get_streak_repository(
    db: Database = Depends(get_database),
) -> StreakRepositoryInterface:
    """FastAPI DI용 StreakRepository 팩토리."""

    return StreakRepository(db)


def get_reward_repository(
    db: Database = Depends(get_database),
) -> RewardRepositoryInterface:
    return RewardRepository(db)


def get_issued_code_repository(
    db: Database = Depends(get_database),
) -> IssuedCodeRepositoryInterface:
    return IssuedCodeRepository(db)


def get_rollover_service(
    experience_repo: ExperienceRepositoryInterface = Depends(get_experience_repository),
    message_log_repo: MessageLogRepositoryInterface = Depends(get_message_log_repository),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
    streak_repo: StreakRepositoryInterface = Depends(get_streak_repository),
    reward_repo: RewardRepositoryInterface = Depends(get_reward_repository),
    issued_code_repo: IssuedCodeRepositoryInterface = Depends(get_issued_code_repository),
    whop_client=Depends(get_whop_client),
    channel_resolver: ChannelResolver = Depends(get_channel_resolver),
) -> RolloverService:
    """FastAPI DI용 RolloverService 팩토리. 메시지 게이트웨이와 보상 발급기는 같은 Whop 클라이언트다."""

    return RolloverService(
        experience_repo=experience_repo,
        message_log_repo=message_log_repo,
        user_repo=user_repo,
        streak_repo=streak_repo,
        reward_repo=reward_repo,
        issued_code_repo=issued_code_repo,
        gateway=whop_client,
        reward_issuer=whop_client,
        channel_resolver=channel_resolver,
    )
