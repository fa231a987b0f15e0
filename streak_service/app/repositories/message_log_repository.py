from __future__ import annotations

import logging

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .documents.message_log_document import MessageLogDocument
from .interfaces import MessageLogRepositoryInterface
from ..models.message_log import SYSTEM_ACTOR_ID, MessageLog


logger = logging.getLogger(__name__)


class MessageLogRepository(MessageLogRepositoryInterface):
    """message_logs 컬렉션에 대한 MongoDB 접근 레이어.

    uniq_experience_actor_day 인덱스 덕분에 같은 (experience, actor, day) 행은 한 번만 삽입된다.
    동시에 두 롤오버가 돌더라도 두 번째 삽입은 DuplicateKeyError 로 실패한다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["message_logs"]

    def find(self, experience_id: str, actor_id: str, day_key: str) -> MessageLog | None:
        raw = self._col.find_one(
            {"experience_id": experience_id, "actor_id": actor_id, "day_key": day_key}
        )
        if not raw:
            return None
        return MessageLogDocument.model_validate(raw).to_domain()

    def try_insert(self, log: MessageLog) -> bool:
        payload = MessageLogDocument.from_domain(log).to_mongo_record()
        try:
            self._col.insert_one(payload)
        except DuplicateKeyError:
            logger.debug(
                "message log already exists (experience=%s, actor=%s, day=%s)",
                log.experience_id,
                log.actor_id,
                log.day_key,
            )
            return False
        return True

    def list_actor_ids(self, experience_id: str, day_key: str) -> list[str]:
        return self._col.distinct(
            "actor_id",
            {
                "experience_id": experience_id,
                "day_key": day_key,
                "actor_id": {"$ne": SYSTEM_ACTOR_ID},
            },
        )
