from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_FILE_NAME = "config.yaml"

WHOP_API_KEY = "WHOP_API_KEY"
WHOP_APP_ID = "WHOP_APP_ID"
WHOP_AGENT_USER_ID = "WHOP_AGENT_USER_ID"
WHOP_API_BASE_URL = "WHOP_API_BASE_URL"
WHOP_TIMEOUT_SECONDS = "WHOP_TIMEOUT_SECONDS"
QUESTCHAT_SIGNING_SECRET = "QUESTCHAT_SIGNING_SECRET"
LEADERBOARD_SIZE = "LEADERBOARD_SIZE"
QUESTCHAT_SERVICE_URL = "QUESTCHAT_SERVICE_URL"

# 스케줄러 트리거 요청의 공유 비밀값 헤더
SIGNATURE_HEADER = "x-questchat-signature"

DEFAULT_WHOP_API_BASE_URL = "https://api.whop.com"
DEFAULT_WHOP_TIMEOUT_SECONDS = 15.0
DEFAULT_LEADERBOARD_SIZE = 10
DEFAULT_SERVICE_URL = "http://localhost:8003"


@dataclass(slots=True)
class WhopConfig:
    """Whop API 접속 설정."""

    api_key: str
    app_id: str | None
    agent_user_id: str | None
    base_url: str
    timeout_seconds: float


@dataclass(slots=True)
class CronConfig:
    """스케줄러 트리거 엔드포인트 설정."""

    signing_secret: str
    leaderboard_size: int


@dataclass(slots=True)
class TriggerConfig:
    """트리거 CLI 설정."""

    service_url: str
    signing_secret: str
    timeout_seconds: float


def load_whop_config() -> WhopConfig:
    api_key = os.getenv(WHOP_API_KEY)
    if not api_key:
        raise RuntimeError(
            f"{WHOP_API_KEY} environment variable is required for streak-service",
        )

    base_url = (os.getenv(WHOP_API_BASE_URL) or DEFAULT_WHOP_API_BASE_URL).rstrip("/")

    timeout_raw = os.getenv(WHOP_TIMEOUT_SECONDS)
    if not timeout_raw:
        timeout_seconds = DEFAULT_WHOP_TIMEOUT_SECONDS
    else:
        try:
            timeout_seconds = float(timeout_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{WHOP_TIMEOUT_SECONDS} must be a float if set, got: {timeout_raw!r}"
            ) from exc
        if timeout_seconds <= 0:
            raise RuntimeError(
                f"{WHOP_TIMEOUT_SECONDS} must be > 0, got: {timeout_seconds}"
            )

    return WhopConfig(
        api_key=api_key,
        app_id=os.getenv(WHOP_APP_ID) or None,
        agent_user_id=os.getenv(WHOP_AGENT_USER_ID) or None,
        base_url=base_url,
        timeout_seconds=timeout_seconds,
    )


def _load_leaderboard_size() -> int:
    raw = os.getenv(LEADERBOARD_SIZE)
    if not raw:
        return DEFAULT_LEADERBOARD_SIZE
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(
            f"{LEADERBOARD_SIZE} must be an integer if set, got: {raw!r}"
        ) from exc
    if value <= 0:
        raise RuntimeError(f"{LEADERBOARD_SIZE} must be >= 1, got: {value}")
    return value


def load_cron_config() -> CronConfig:
    """크론 엔드포인트 설정을 로드한다.

    서명 비밀값이 비어 있으면 모든 트리거 호출이 401 로 거절된다.
    """

    return CronConfig(
        signing_secret=os.getenv(QUESTCHAT_SIGNING_SECRET, ""),
        leaderboard_size=_load_leaderboard_size(),
    )


def load_trigger_config() -> TriggerConfig:
    secret = os.getenv(QUESTCHAT_SIGNING_SECRET)
    if not secret:
        raise RuntimeError(
            f"{QUESTCHAT_SIGNING_SECRET} environment variable is required to trigger jobs",
        )

    service_url = (os.getenv(QUESTCHAT_SERVICE_URL) or DEFAULT_SERVICE_URL).rstrip("/")
    return TriggerConfig(
        service_url=service_url,
        signing_secret=secret,
        # 롤오버는 채널 수에 비례해 오래 걸릴 수 있으므로 게이트웨이 타임아웃보다 넉넉히 잡는다.
        timeout_seconds=300.0,
    )


def _find_config_path() -> Path | None:
    """현재 작업 디렉토리에서 상위로 올라가며 config.yaml 을 찾는다. 없으면 None."""

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def load_prompt_overrides(path: Path | None = None) -> list[str]:
    """config.yaml 의 prompts 목록을 읽는다.

    파일이나 섹션이 없으면 빈 목록을 반환하고, 호출 측은 내장 프롬프트 풀을 사용한다.
    """

    path = path or _find_config_path()
    if path is None:
        return []

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    raw_prompts = data.get("prompts") or []
    if not isinstance(raw_prompts, list):
        raise RuntimeError(f"invalid prompts in {path}: expected a list")

    prompts: list[str] = []
    for item in raw_prompts:
        text = str(item).strip() if item is not None else ""
        if text:
            prompts.append(text)

    logger.info("loaded %d prompt overrides from %s", len(prompts), path)
    return prompts
