from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.reward import IssuedCode, Reward


class RewardDocument(BaseDocument):
    """MongoDB rewards 컬렉션 도큐먼트 모델."""

    experience_id: str
    user_id: str
    type: str
    threshold: int
    issued_code_id: str | None = None

    @classmethod
    def from_domain(cls, reward: Reward) -> "RewardDocument":
        return cls.model_validate(build_document_data_from_domain(reward))

    def to_domain(self) -> Reward:
        return Reward(
            id=from_object_id(self.id),
            experience_id=self.experience_id,
            user_id=self.user_id,
            type=self.type,
            threshold=self.threshold,
            issued_code_id=self.issued_code_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class IssuedCodeDocument(BaseDocument):
    """MongoDB issued_codes 컬렉션 도큐먼트 모델."""

    code: str
    promo_id: str | None = None
    expires_at: MongoDateTime

    @classmethod
    def from_domain(cls, code: IssuedCode) -> "IssuedCodeDocument":
        return cls.model_validate(build_document_data_from_domain(code))

    def to_domain(self) -> IssuedCode:
        return IssuedCode(
            id=from_object_id(self.id),
            code=self.code,
            promo_id=self.promo_id,
            expires_at=self.expires_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
