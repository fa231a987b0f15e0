from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Annotated

from pydantic.functional_serializers import PlainSerializer


DAY_KEY_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """naive datetime 은 UTC 로 간주하고, aware datetime 은 UTC 로 변환한다."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_day_key(value: datetime | date) -> str:
    """UTC 달력 날짜 문자열(YYYY-MM-DD)을 반환한다. 일 단위 멱등성 검사의 파티션 키다."""
    if isinstance(value, datetime):
        value = to_utc(value).date()
    return value.strftime(DAY_KEY_FORMAT)


def serialize_datetime_to_utc_iso8601(value: datetime) -> str:
    """모든 datetime을 UTC 기준 ISO8601(+타임존) 문자열로 직렬화한다."""
    return to_utc(value).isoformat()


UtcDateTime = Annotated[
    datetime,
    PlainSerializer(
        serialize_datetime_to_utc_iso8601,
        return_type=str,
        when_used="json",
    ),
]
