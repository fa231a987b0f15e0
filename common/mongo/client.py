from __future__ import annotations

import logging
import threading
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import get_mongo_db_name, get_mongo_timeout_ms, get_mongo_uri


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """프로세스 전역 MongoClient 를 반환한다.

    - MONGO_URI 에서 URI 를 읽고 ping 으로 연결을 검증한다.
    - 사용할 DB 이름은 MONGO_DB_NAME 우선, 없으면 URI 의 기본 DB.
    - 유니크 인덱스를 포함한 필수 인덱스를 최초 1회 생성한다.
    - 서비스 종료 시 close_client() 로 정리한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        timeout_ms = get_mongo_timeout_ms()
        client: MongoClient = MongoClient(
            get_mongo_uri(),
            tz_aware=True,
            serverSelectionTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
        )

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        db_name = get_mongo_db_name()
        try:
            db = client[db_name] if db_name else client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        try:
            ensure_indexes(db)
        except Exception as exc:  # noqa: BLE001
            client.close()
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            raise

        _client = client
        _db = db
        logger.info("MongoDB connected and indexes ensured (db=%s)", db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다. FastAPI Depends 로도 사용된다."""

    if _db is None:
        get_client()
    assert _db is not None
    return _db


def close_client() -> None:
    """전역 MongoClient 를 닫는다. 이후 get_database() 호출 시 다시 연결한다."""

    global _client, _db

    with _lock:
        if _client is None:
            return
        _client.close()
        _client = None
        _db = None
        logger.info("MongoDB client closed")


def ensure_indexes(db: Database) -> None:
    """스트릭/보상 도메인의 인덱스를 생성한다.

    유니크 인덱스가 멱등성 보장의 최종 방어선이다. 같은 날 같은 액터의 message_logs 나
    같은 임계값의 rewards 가 중복 삽입되면 DuplicateKeyError 가 발생한다.
    create_index 는 이미 존재하면 아무 것도 하지 않으므로 반복 호출해도 안전하다.
    """

    db["experiences"].create_index(
        [("experience_id", ASCENDING)],
        name="uniq_experience_id",
        unique=True,
    )

    db["configs"].create_index(
        [("experience_id", ASCENDING)],
        name="uniq_config_experience_id",
        unique=True,
    )

    db["message_logs"].create_index(
        [("experience_id", ASCENDING), ("actor_id", ASCENDING), ("day_key", ASCENDING)],
        name="uniq_experience_actor_day",
        unique=True,
    )

    db["users"].create_index(
        [("user_id", ASCENDING)],
        name="uniq_user_id",
        unique=True,
    )

    streaks = db["streaks"]
    streaks.create_index(
        [("experience_id", ASCENDING), ("user_id", ASCENDING)],
        name="uniq_experience_user",
        unique=True,
    )
    streaks.create_index(
        [("experience_id", ASCENDING), ("week_count", DESCENDING)],
        name="idx_experience_week_count",
    )
    streaks.create_index(
        [("experience_id", ASCENDING), ("current", DESCENDING), ("best", DESCENDING)],
        name="idx_experience_current_best",
    )

    db["rewards"].create_index(
        [
            ("experience_id", ASCENDING),
            ("user_id", ASCENDING),
            ("type", ASCENDING),
            ("threshold", ASCENDING),
        ],
        name="uniq_experience_user_type_threshold",
        unique=True,
    )

    db["issued_codes"].create_index(
        [("code", ASCENDING)],
        name="uniq_code",
        unique=True,
    )
