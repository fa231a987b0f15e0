from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models.experience import ConfiguredExperience, Experience, ExperienceConfig
from ..models.message_log import MessageLog
from ..models.reward import IssuedCode, Reward
from ..models.streak import Streak
from ..models.user import User


class ExperienceRepositoryInterface(Protocol):
    """ExperienceRepository가 따라야 할 최소한의 계약.

    Service 레이어는 이 인터페이스에만 의존하고, 구체 구현(Mongo 등)은 몰라도 된다.
    """

    def find_by_experience_id(
        self, experience_id: str
    ) -> Experience | None:  # pragma: no cover - Protocol
        ...

    def create_if_missing(
        self, experience_id: str, name: str
    ) -> Experience:  # pragma: no cover - Protocol
        """없으면 생성하고, 있으면 기존 값을 그대로 반환한다."""
        ...

    def update_access_pass(
        self, experience_id: str, access_pass_id: str | None
    ) -> None:  # pragma: no cover - Protocol
        ...

    def cache_chat_channel(
        self, experience_id: str, chat_channel_id: str
    ) -> None:  # pragma: no cover - Protocol
        ...

    def list_configured(self) -> list[ConfiguredExperience]:  # pragma: no cover - Protocol
        """설정(Config)이 존재하는 익스피리언스만 반환한다."""
        ...


class ExperienceConfigRepositoryInterface(Protocol):
    """익스피리언스당 1건의 설정을 관리한다."""

    def find_by_experience_id(
        self, experience_id: str
    ) -> ExperienceConfig | None:  # pragma: no cover - Protocol
        ...

    def upsert(
        self, config: ExperienceConfig
    ) -> ExperienceConfig:  # pragma: no cover - Protocol
        ...


class MessageLogRepositoryInterface(Protocol):
    """(experience_id, actor_id, day_key) 유니크 제약을 갖는 첫 글 기록 저장소."""

    def find(
        self, experience_id: str, actor_id: str, day_key: str
    ) -> MessageLog | None:  # pragma: no cover - Protocol
        ...

    def try_insert(self, log: MessageLog) -> bool:  # pragma: no cover - Protocol
        """삽입에 성공하면 True, 같은 키가 이미 있으면 덮어쓰지 않고 False 를 반환한다."""
        ...

    def list_actor_ids(
        self, experience_id: str, day_key: str
    ) -> list[str]:  # pragma: no cover - Protocol
        """해당 날짜에 기록된 액터 id 목록. SYSTEM 앵커는 제외한다."""
        ...


class UserRepositoryInterface(Protocol):
    def upsert(
        self, user_id: str, username: str | None
    ) -> User:  # pragma: no cover - Protocol
        """username 이 주어지면 갱신하고, 없으면 기존 값을 유지한다."""
        ...

    def list_by_ids(
        self, user_ids: list[str]
    ) -> dict[str, User]:  # pragma: no cover - Protocol
        ...


class StreakRepositoryInterface(Protocol):
    """(experience_id, user_id) 당 1건의 스트릭 카운터 저장소."""

    def record_activity(
        self, experience_id: str, user_id: str, active_at: datetime
    ) -> Streak:  # pragma: no cover - Protocol
        """스트릭이 없으면 만들고 current/week_count 를 1 올린 뒤 best 를 max(best, current) 로 맞춘다."""
        ...

    def reset_inactive(
        self, experience_id: str, active_user_ids: list[str]
    ) -> int:  # pragma: no cover - Protocol
        """active_user_ids 에 없는 current > 0 스트릭을 0 으로 만들고 변경 건수를 반환한다."""
        ...

    def list_top_by_week_count(
        self, experience_id: str, limit: int
    ) -> list[Streak]:  # pragma: no cover - Protocol
        """week_count > 0 인 스트릭을 week_count 내림차순으로 반환한다."""
        ...

    def reset_week_counts(self, experience_id: str) -> int:  # pragma: no cover - Protocol
        ...

    def list_top_by_current(
        self, experience_id: str, limit: int
    ) -> list[Streak]:  # pragma: no cover - Protocol
        """current, best 내림차순으로 반환한다."""
        ...


class RewardRepositoryInterface(Protocol):
    """(experience_id, user_id, type, threshold) 유니크 제약을 갖는 보상 저장소."""

    def exists(
        self, experience_id: str, user_id: str, type_: str, threshold: int
    ) -> bool:  # pragma: no cover - Protocol
        ...

    def try_insert(self, reward: Reward) -> Reward | None:  # pragma: no cover - Protocol
        """중복 키면 None 을 반환한다. 이미 다른 실행이 보상을 지급했다는 뜻이다."""
        ...


class IssuedCodeRepositoryInterface(Protocol):
    def insert(self, code: IssuedCode) -> IssuedCode:  # pragma: no cover - Protocol
        ...
