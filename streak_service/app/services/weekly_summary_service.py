from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from fastapi import Depends

from common.types.datetime import to_day_key, to_utc, utc_now

from .channel_resolver import ChannelResolver, get_channel_resolver, get_experience_repository
from .rollover_service import get_streak_repository, get_user_repository
from ..config import load_cron_config
from ..gateways.interfaces import MessagingGatewayInterface
from ..gateways.whop import get_whop_client
from ..models.experience import ConfiguredExperience
from ..models.job import ExperienceJobResult, JobStatus, JobSummary
from ..models.streak import LeaderboardEntry
from ..repositories.interfaces import (
    ExperienceRepositoryInterface,
    StreakRepositoryInterface,
    UserRepositoryInterface,
)


logger = logging.getLogger(__name__)


MEDALS = ("🥇", "🥈", "🥉")


def format_weekly_leaderboard(entries: Sequence[LeaderboardEntry]) -> str:
    lines = [
        "🏆 **WEEKLY LEADERBOARD** 🏆\n\n",
        "Here are this week's most active members:\n\n",
    ]
    for entry in entries:
        marker = MEDALS[entry.rank - 1] if entry.rank <= len(MEDALS) else f"{entry.rank}."
        lines.append(
            f"{marker} **{entry.display_name}** - {entry.week_count} days active\n"
        )
    lines.append("\n🎯 Keep up the great work, champions!\n")
    lines.append("📅 *Weekly leaderboard resets every Monday*")
    return "".join(lines)


class WeeklySummaryService:
    """주간 참여 순위를 게시하고 week_count 를 초기화한다.

    게시는 best-effort 이며, 게시 실패와 무관하게 초기화는 항상 수행한다.
    """

    def __init__(
        self,
        experience_repo: ExperienceRepositoryInterface,
        streak_repo: StreakRepositoryInterface,
        user_repo: UserRepositoryInterface,
        gateway: MessagingGatewayInterface,
        channel_resolver: ChannelResolver,
        leaderboard_size: int = 10,
    ) -> None:
        self._experience_repo = experience_repo
        self._streak_repo = streak_repo
        self._user_repo = user_repo
        self._gateway = gateway
        self._channel_resolver = channel_resolver
        self._leaderboard_size = leaderboard_size

    def run(self, now: datetime | None = None) -> JobSummary:
        now = to_utc(now) if now is not None else utc_now()
        today = to_day_key(now)

        experiences = self._experience_repo.list_configured()
        logger.info(
            "starting weekly summary for %d experiences",
            len(experiences),
            extra={"job": "week", "day_key": today},
        )

        summary = JobSummary(date=today)
        for item in experiences:
            try:
                result = self._summarize_experience(item)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "weekly summary failed for %s: %s",
                    item.experience_id,
                    exc,
                    extra={"job": "week", "experience_id": item.experience_id},
                )
                result = ExperienceJobResult(
                    experience_id=item.experience_id,
                    status=JobStatus.ERROR,
                    error=str(exc),
                )
            summary.results.append(result)

        logger.info(
            "weekly summary completed: success=%d errors=%d",
            summary.count(JobStatus.SUCCESS),
            summary.count(JobStatus.ERROR),
            extra={"job": "week", "day_key": today},
        )
        return summary

    def _summarize_experience(self, item: ConfiguredExperience) -> ExperienceJobResult:
        experience_id = item.experience_id

        streaks = self._streak_repo.list_top_by_week_count(
            experience_id, self._leaderboard_size
        )
        if streaks:
            users = self._user_repo.list_by_ids([s.user_id for s in streaks])
            entries = [
                LeaderboardEntry(
                    rank=rank,
                    user_id=streak.user_id,
                    username=users[streak.user_id].username
                    if streak.user_id in users
                    else None,
                    current=streak.current,
                    best=streak.best,
                    week_count=streak.week_count,
                )
                for rank, streak in enumerate(streaks, 1)
            ]
            try:
                channel_id = self._channel_resolver.resolve(item.experience)
                self._gateway.send_message(channel_id, format_weekly_leaderboard(entries))
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "failed to post weekly leaderboard for %s: %s", experience_id, exc
                )

        reset = self._streak_repo.reset_week_counts(experience_id)
        logger.info(
            "weekly counts reset for %s: top=%d reset=%d",
            experience_id,
            len(streaks),
            reset,
            extra={"job": "week", "experience_id": experience_id},
        )
        return ExperienceJobResult(
            experience_id=experience_id,
            status=JobStatus.SUCCESS,
            top_performers=len(streaks),
        )


def get_weekly_summary_service(
    experience_repo: ExperienceRepositoryInterface = Depends(get_experience_repository),
    streak_repo: StreakRepositoryInterface = Depends(get_streak_repository),
    user_repo: UserRepositoryInterface = Depends(get_user_repository),
    gateway: MessagingGatewayInterface = Depends(get_whop_client),
    channel_resolver: ChannelResolver = Depends(get_channel_resolver),
) -> WeeklySummaryService:
    """FastAPI DI용 WeeklySummaryService 팩토리."""

    return WeeklySummaryService(
        experience_repo=experience_repo,
        streak_repo=streak_repo,
        user_repo=user_repo,
        gateway=gateway,
        channel_resolver=channel_resolver,
        leaderboard_size=load_cron_config().leaderboard_size,
    )
