"""익스피리언스/설정 레포지토리 구현체.

experiences 와 configs 는 experience_id 로 1:1 연결되며, 설정이 있는 익스피리언스만 배치 대상이다.
"""

from __future__ import annotations

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.types.datetime import utc_now

from .documents.experience_document import (
    ExperienceConfigDocument,
    ExperienceDocument,
)
from .interfaces import (
    ExperienceConfigRepositoryInterface,
    ExperienceRepositoryInterface,
)
from ..models.experience import ConfiguredExperience, Experience, ExperienceConfig


class ExperienceRepository(ExperienceRepositoryInterface):
    """experiences 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["experiences"]

    def find_by_experience_id(self, experience_id: str) -> Experience | None:
        raw = self._col.find_one({"experience_id": experience_id})
        if not raw:
            return None
        return ExperienceDocument.model_validate(raw).to_domain()

    def create_if_missing(self, experience_id: str, name: str) -> Experience:
        now = utc_now()
        try:
            self._col.update_one(
                {"experience_id": experience_id},
                {
                    "$setOnInsert": {
                        "name": name,
                        "access_pass_id": None,
                        "chat_channel_id": None,
                        "created_at": now,
                        "updated_at": now,
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            # 동시에 다른 요청이 먼저 생성한 경우. 아래에서 그 문서를 읽는다.
            pass

        existing = self.find_by_experience_id(experience_id)
        if existing is None:
            raise RuntimeError(
                "create_if_missing failed: experience not found after upsert"
            )
        return existing

    def update_access_pass(self, experience_id: str, access_pass_id: str | None) -> None:
        self._col.update_one(
            {"experience_id": experience_id},
            {"$set": {"access_pass_id": access_pass_id, "updated_at": utc_now()}},
        )

    def cache_chat_channel(self, experience_id: str, chat_channel_id: str) -> None:
        self._col.update_one(
            {"experience_id": experience_id},
            {"$set": {"chat_channel_id": chat_channel_id, "updated_at": utc_now()}},
        )

    def list_configured(self) -> list[ConfiguredExperience]:
        pipeline = [
            {
                "$lookup": {
                    "from": "configs",
                    "localField": "experience_id",
                    "foreignField": "experience_id",
                    "as": "config",
                }
            },
            {"$match": {"config.0": {"$exists": True}}},
            {"$sort": {"experience_id": 1}},
        ]

        items: list[ConfiguredExperience] = []
        for raw in self._col.aggregate(pipeline):
            config_raw = raw.pop("config")[0]
            items.append(
                ConfiguredExperience(
                    experience=ExperienceDocument.model_validate(raw).to_domain(),
                    config=ExperienceConfigDocument.model_validate(
                        config_raw
                    ).to_domain(),
                )
            )
        return items


class ExperienceConfigRepository(ExperienceConfigRepositoryInterface):
    """configs 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["configs"]

    def find_by_experience_id(self, experience_id: str) -> ExperienceConfig | None:
        raw = self._col.find_one({"experience_id": experience_id})
        if not raw:
            return None
        return ExperienceConfigDocument.model_validate(raw).to_domain()

    def upsert(self, config: ExperienceConfig) -> ExperienceConfig:
        now = utc_now()
        self._col.update_one(
            {"experience_id": config.experience_id},
            {
                "$setOnInsert": {"created_at": now},
                "$set": {
                    "prompt_time_utc": config.prompt_time_utc,
                    "grace_minutes": config.grace_minutes,
                    "reward_percentage": config.reward_percentage,
                    "reward_stock": config.reward_stock,
                    "reward_expiry_days": config.reward_expiry_days,
                    "streak_thresholds": list(config.streak_thresholds),
                    "updated_at": now,
                },
            },
            upsert=True,
        )

        stored = self.find_by_experience_id(config.experience_id)
        if stored is None:
            raise RuntimeError("config upsert failed: document not found after update")
        return stored
