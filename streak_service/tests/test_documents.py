from __future__ import annotations

from datetime import datetime, timezone

from bson import ObjectId

from streak_service.app.models.message_log import MessageLog
from streak_service.app.repositories.documents.experience_document import (
    ExperienceConfigDocument,
)
from streak_service.app.repositories.documents.message_log_document import (
    MessageLogDocument,
)
from streak_service.app.repositories.documents.streak_document import StreakDocument


POSTED_AT = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_message_log_record_lets_mongo_assign_id() -> None:
    log = MessageLog(
        experience_id="E1",
        actor_id="user_1",
        day_key="2025-03-01",
        first_post_at=POSTED_AT,
        created_at=POSTED_AT,
        updated_at=POSTED_AT,
    )

    record = MessageLogDocument.from_domain(log).to_mongo_record()

    assert "_id" not in record
    assert record["day_key"] == "2025-03-01"
    assert record["first_post_at"] == POSTED_AT


def test_documents_read_naive_datetimes_as_utc() -> None:
    oid = ObjectId()
    raw = {
        "_id": oid,
        "experience_id": "E1",
        "actor_id": "SYSTEM",
        "day_key": "2025-03-01",
        "first_post_at": datetime(2025, 3, 1, 10, 0),
        "created_at": datetime(2025, 3, 1, 10, 0),
        "updated_at": datetime(2025, 3, 1, 10, 0),
    }

    log = MessageLogDocument.model_validate(raw).to_domain()

    assert log.id == str(oid)
    assert log.is_anchor
    assert log.first_post_at == POSTED_AT


def test_streak_document_defaults_missing_counters() -> None:
    raw = {
        "_id": ObjectId(),
        "experience_id": "E1",
        "user_id": "user_1",
        "current": 2,
        "created_at": POSTED_AT,
        "updated_at": POSTED_AT,
    }

    streak = StreakDocument.model_validate(raw).to_domain()

    assert (streak.current, streak.best, streak.week_count) == (2, 0, 0)
    assert streak.last_active_at is None


def test_config_document_without_thresholds_uses_defaults() -> None:
    raw = {
        "_id": ObjectId(),
        "experience_id": "E1",
        "reward_percentage": 15,
        "created_at": POSTED_AT,
        "updated_at": POSTED_AT,
    }

    config = ExperienceConfigDocument.model_validate(raw).to_domain()

    assert config.reward_percentage == 15
    assert config.streak_thresholds == [3, 7]
    assert config.grace_minutes == 90
