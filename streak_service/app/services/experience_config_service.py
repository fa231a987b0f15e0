from __future__ import annotations

import logging
import re

from fastapi import Depends
from pymongo.database import Database

from common.mongo.client import get_database

from .channel_resolver import get_experience_repository
from ..exceptions import ConfigValidationError
from ..models.experience import (
    DEFAULT_EXPERIENCE_NAME,
    ExperienceConfig,
    ExperienceConfigUpdate,
)
from ..repositories.experience_repository import ExperienceConfigRepository
from ..repositories.interfaces import (
    ExperienceConfigRepositoryInterface,
    ExperienceRepositoryInterface,
)


logger = logging.getLogger(__name__)


_PROMPT_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_config(config: ExperienceConfig) -> None:
    if not 1 <= config.reward_percentage <= 100:
        raise ConfigValidationError("reward_percentage must be between 1 and 100")
    if config.reward_stock < 1:
        raise ConfigValidationError("reward_stock must be >= 1")
    if config.reward_expiry_days < 1:
        raise ConfigValidationError("reward_expiry_days must be >= 1")
    if config.grace_minutes < 0:
        raise ConfigValidationError("grace_minutes must be >= 0")
    if not _PROMPT_TIME_PATTERN.match(config.prompt_time_utc):
        raise ConfigValidationError("prompt_time_utc must be HH:MM (24h, UTC)")
    if not config.streak_thresholds:
        raise ConfigValidationError("streak_thresholds must not be empty")
    if any(t <= 0 for t in config.streak_thresholds):
        raise ConfigValidationError("streak_thresholds must be positive integers")


class ExperienceConfigService:
    """익스피리언스 설정 조회/저장.

    - 설정이 저장된 익스피리언스만 스케줄 작업 대상이 된다.
    - 저장 시 익스피리언스가 없으면 함께 생성한다.
    """

    def __init__(
        self,
        experience_repo: ExperienceRepositoryInterface,
        config_repo: ExperienceConfigRepositoryInterface,
    ) -> None:
        self._experience_repo = experience_repo
        self._config_repo = config_repo

    def get_config(self, experience_id: str) -> ExperienceConfig | None:
        """익스피리언스가 없으면 None, 설정이 없으면 기본값을 반환한다."""

        if self._experience_repo.find_by_experience_id(experience_id) is None:
            return None

        stored = self._config_repo.find_by_experience_id(experience_id)
        return stored or ExperienceConfig(experience_id=experience_id)

    def save_config(
        self, experience_id: str, update: ExperienceConfigUpdate
    ) -> ExperienceConfig:
        base = self._config_repo.find_by_experience_id(
            experience_id
        ) or ExperienceConfig(experience_id=experience_id)

        changes = update.model_dump(
            exclude_none=True, exclude={"name", "access_pass_id"}
        )
        merged = base.model_copy(update=changes)
        if merged.streak_thresholds:
            merged.streak_thresholds = sorted(set(merged.streak_thresholds))
        validate_config(merged)

        self._experience_repo.create_if_missing(
            experience_id, update.name or DEFAULT_EXPERIENCE_NAME
        )
        if update.access_pass_id is not None:
            self._experience_repo.update_access_pass(
                experience_id, update.access_pass_id or None
            )

        saved = self._config_repo.upsert(merged)
        logger.info(
            "saved config for %s: thresholds=%s reward=%d%%",
            experience_id,
            saved.streak_thresholds,
            saved.reward_percentage,
            extra={"experience_id": experience_id},
        )
        return saved


def get_experience_config_repository(
    db: Database = Depends(get_database),
) -> ExperienceConfigRepositoryInterface:
    """FastAPI DI용 ExperienceConfigRepository 팩토리."""

    return ExperienceConfigRepository(db)


def get_experience_config_service(
    experience_repo: ExperienceRepositoryInterface = Depends(get_experience_repository),
    config_repo: ExperienceConfigRepositoryInterface = Depends(
        get_experience_config_repository
    ),
) -> ExperienceConfigService:
    """FastAPI DI용 ExperienceConfigService 팩토리."""

    return ExperienceConfigService(experience_repo=experience_repo, config_repo=config_repo)
