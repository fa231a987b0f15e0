from __future__ import annotations

from common.mongo.types import BaseDocument

from ...models.user import User


class UserDocument(BaseDocument):
    """MongoDB users 컬렉션 도큐먼트 모델."""

    user_id: str
    username: str | None = None

    def to_domain(self) -> User:
        return User(
            user_id=self.user_id,
            username=self.username,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
