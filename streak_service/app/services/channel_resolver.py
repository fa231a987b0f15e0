from __future__ import annotations

import logging

from fastapi import Depends
from pymongo.database import Database

from common.mongo.client import get_database

from ..gateways.interfaces import MessagingGatewayInterface
from ..gateways.whop import get_whop_client
from ..models.experience import Experience
from ..repositories.experience_repository import ExperienceRepository
from ..repositories.interfaces import ExperienceRepositoryInterface


logger = logging.getLogger(__name__)


class ChannelResolver:
    """익스피리언스가 사용할 채팅 채널 id 를 결정한다.

    1. 캐시된 chat_channel_id
    2. access_pass_id 가 있으면 게이트웨이 find_or_create_chat 결과 (캐시에 저장)
    3. 둘 다 없거나 실패하면 experience_id 자체
    """

    def __init__(
        self,
        experience_repo: ExperienceRepositoryInterface,
        gateway: MessagingGatewayInterface,
    ) -> None:
        self._experience_repo = experience_repo
        self._gateway = gateway

    def resolve(self, experience: Experience) -> str:
        if experience.chat_channel_id:
            return experience.chat_channel_id

        if not experience.access_pass_id:
            return experience.experience_id

        try:
            channel_id = self._gateway.find_or_create_chat(
                experience.access_pass_id, experience.name
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "failed to resolve chat channel for %s, falling back to experience id: %s",
                experience.experience_id,
                exc,
            )
            return experience.experience_id

        if not channel_id:
            logger.warning(
                "no chat channel found for %s (access pass %s)",
                experience.experience_id,
                experience.access_pass_id,
            )
            return experience.experience_id

        self._experience_repo.cache_chat_channel(experience.experience_id, channel_id)
        experience.chat_channel_id = channel_id
        logger.info(
            "cached chat channel %s for experience %s",
            channel_id,
            experience.experience_id,
        )
        return channel_id


def get_experience_repository(
    db: Database = Depends(get_database),
) -> ExperienceRepositoryInterface:
    """FastAPI DI용 ExperienceRepository 팩토리."""

    return ExperienceRepository(db)


def get_channel_resolver(
    experience_repo: ExperienceRepositoryInterface = Depends(get_experience_repository),
    gateway: MessagingGatewayInterface = Depends(get_whop_client),
) -> ChannelResolver:
    return ChannelResolver(experience_repo=experience_repo, gateway=gateway)
