from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.message_log import MessageLog


class MessageLogDocument(BaseDocument):
    """MongoDB message_logs 컬렉션 도큐먼트 모델."""

    experience_id: str
    actor_id: str
    day_key: str
    first_post_at: MongoDateTime

    @classmethod
    def from_domain(cls, log: MessageLog) -> "MessageLogDocument":
        return cls.model_validate(build_document_data_from_domain(log))

    def to_domain(self) -> MessageLog:
        return MessageLog(
            id=from_object_id(self.id),
            experience_id=self.experience_id,
            actor_id=self.actor_id,
            day_key=self.day_key,
            first_post_at=self.first_post_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
