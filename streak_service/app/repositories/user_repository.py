from __future__ import annotations

from pymongo import ReturnDocument
from pymongo.database import Database

from common.types.datetime import utc_now

from .documents.user_document import UserDocument
from .interfaces import UserRepositoryInterface
from ..models.user import User


class UserRepository(UserRepositoryInterface):
    """users 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["users"]

    def upsert(self, user_id: str, username: str | None) -> User:
        now = utc_now()
        set_on_insert: dict = {"created_at": now}
        set_fields: dict = {"updated_at": now}
        if username:
            set_fields["username"] = username
        else:
            set_on_insert["username"] = None

        raw = self._col.find_one_and_update(
            {"user_id": user_id},
            {"$setOnInsert": set_on_insert, "$set": set_fields},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return UserDocument.model_validate(raw).to_domain()

    def list_by_ids(self, user_ids: list[str]) -> dict[str, User]:
        if not user_ids:
            return {}

        result: dict[str, User] = {}
        for raw in self._col.find({"user_id": {"$in": user_ids}}):
            user = UserDocument.model_validate(raw).to_domain()
            result[user.user_id] = user
        return result
