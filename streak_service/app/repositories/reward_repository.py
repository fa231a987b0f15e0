"""보상/발급 코드 레포지토리 구현체.

rewards 의 유니크 인덱스가 같은 임계값 보상을 두 번 지급하지 않게 하는 최종 장치다.
"""

from __future__ import annotations

import logging

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .documents.reward_document import IssuedCodeDocument, RewardDocument
from .interfaces import IssuedCodeRepositoryInterface, RewardRepositoryInterface
from ..models.reward import IssuedCode, Reward


logger = logging.getLogger(__name__)


class RewardRepository(RewardRepositoryInterface):
    """rewards 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["rewards"]

    def exists(
        self, experience_id: str, user_id: str, type_: str, threshold: int
    ) -> bool:
        raw = self._col.find_one(
            {
                "experience_id": experience_id,
                "user_id": user_id,
                "type": type_,
                "threshold": threshold,
            },
            {"_id": 1},
        )
        return raw is not None

    def try_insert(self, reward: Reward) -> Reward | None:
        payload = RewardDocument.from_domain(reward).to_mongo_record()
        try:
            result = self._col.insert_one(payload)
        except DuplicateKeyError:
            logger.info(
                "reward already granted (experience=%s, user=%s, threshold=%d)",
                reward.experience_id,
                reward.user_id,
                reward.threshold,
            )
            return None
        return reward.model_copy(update={"id": str(result.inserted_id)})


class IssuedCodeRepository(IssuedCodeRepositoryInterface):
    """issued_codes 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["issued_codes"]

    def insert(self, code: IssuedCode) -> IssuedCode:
        payload = IssuedCodeDocument.from_domain(code).to_mongo_record()
        result = self._col.insert_one(payload)
        return code.model_copy(update={"id": str(result.inserted_id)})
