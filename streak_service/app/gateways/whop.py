"""Whop API 어댑터.

채팅 메시지 전송/조회, 채팅 채널 find-or-create, 프로모 코드 발급을 GraphQL 로 호출한다.
Whop 응답의 메시지 필드 이름은 엔드포인트/버전에 따라 다르므로, 여기서 한 번만
ChatMessage 로 정규화하고 서비스 레이어는 정규화된 형태만 본다.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from common.types.datetime import to_utc

from .interfaces import MessagingGatewayInterface, RewardIssuerInterface
from ..config import WhopConfig, load_whop_config
from ..exceptions import (
    GatewayError,
    MessageFetchError,
    MessageSendError,
    RewardIssueError,
)
from ..models.chat import ChatMessage, IssuedPromo


logger = logging.getLogger(__name__)


GRAPHQL_PATH = "/public-graphql"

SEND_MESSAGE_MUTATION = """
mutation sendMessageToChat($input: SendMessageInput!) {
  sendMessage(input: $input)
}
"""

LIST_MESSAGES_QUERY = """
query listMessagesFromChat($feedId: ID!, $feedType: FeedTypes!) {
  feedPosts(feedId: $feedId, feedType: $feedType) {
    posts {
      ... on DmsPost {
        id
        createdAt
        content
        user { id username name }
      }
    }
  }
}
"""

FIND_OR_CREATE_CHAT_MUTATION = """
mutation findOrCreateChat($input: CreateChatInput!) {
  createChat(input: $input) { id }
}
"""

CREATE_PROMO_CODE_MUTATION = """
mutation createPromoCode($input: CreatePromoCodeInput!) {
  createPromoCode(input: $input) { id code }
}
"""

CHAT_FEED_TYPE = "chat_feed"

# 응답 포맷별 필드 경로. 앞에 있는 경로가 우선한다.
_ACTOR_ID_PATHS: tuple[tuple[str, ...], ...] = (
    ("user", "id"),
    ("userId",),
    ("user_id",),
    ("authorId",),
    ("author", "id"),
)
_ACTOR_NAME_PATHS: tuple[tuple[str, ...], ...] = (
    ("user", "username"),
    ("user", "name"),
    ("username",),
    ("authorName",),
    ("author", "username"),
    ("author", "name"),
)
_TIMESTAMP_PATHS: tuple[tuple[str, ...], ...] = (
    ("createdAt",),
    ("created_at",),
    ("postedAt",),
)
_TEXT_PATHS: tuple[tuple[str, ...], ...] = (
    ("content",),
    ("message",),
    ("text",),
)
_POST_LIST_KEYS = ("posts", "messages", "items", "nodes")

# 이 값 이상인 정수 타임스탬프는 밀리초로 본다. (초 단위라면 서기 5138년)
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def _dig(raw: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    value: Any = raw
    for key in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def _first_present(raw: Mapping[str, Any], paths: tuple[tuple[str, ...], ...]) -> Any:
    for path in paths:
        value = _dig(raw, path)
        if value not in (None, ""):
            return value
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """ISO8601 문자열 또는 epoch(초/밀리초)를 UTC datetime 으로 변환한다."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_utc(value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            value = int(text)
        else:
            try:
                return to_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
            except ValueError:
                logger.warning("unparseable message timestamp: %r", value)
                return None

    if isinstance(value, (int, float)):
        seconds = value / 1000 if value >= _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning("out-of-range message timestamp: %r", value)
            return None

    return None


def normalize_message(raw: Mapping[str, Any]) -> ChatMessage:
    """Whop 메시지 dict 한 건을 ChatMessage 로 변환한다."""

    actor_id = _first_present(raw, _ACTOR_ID_PATHS)
    actor_name = _first_present(raw, _ACTOR_NAME_PATHS)
    text = _first_present(raw, _TEXT_PATHS)

    return ChatMessage(
        actor_id=str(actor_id) if actor_id is not None else None,
        actor_name=str(actor_name) if actor_name is not None else None,
        text=str(text) if text is not None else "",
        timestamp=parse_timestamp(_first_present(raw, _TIMESTAMP_PATHS)),
    )


def extract_posts(payload: Any) -> list[Mapping[str, Any]]:
    """GraphQL data 에서 메시지 목록을 찾는다.

    {"feedPosts": {"posts": [...]}}, {"posts": [...]}, [...] 형태를 모두 받는다.
    """

    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, Mapping)]
    if not isinstance(payload, Mapping):
        return []

    for key in _POST_LIST_KEYS:
        value = payload.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, Mapping)]

    for value in payload.values():
        if isinstance(value, Mapping):
            found = extract_posts(value)
            if found:
                return found
    return []


def _build_http_client(config: WhopConfig) -> httpx.Client:
    headers = {
        "Authorization": f"Bearer {config.api_key}",
        "Content-Type": "application/json",
    }
    if config.agent_user_id:
        headers["x-on-behalf-of"] = config.agent_user_id
    if config.app_id:
        headers["x-whop-app-id"] = config.app_id

    return httpx.Client(
        base_url=config.base_url,
        timeout=config.timeout_seconds,
        headers=headers,
    )


class WhopClient(MessagingGatewayInterface, RewardIssuerInterface):
    """Whop GraphQL API 클라이언트.

    - 모든 호출은 WhopConfig.timeout_seconds 로 제한된다.
    - 호출 내부에서 재시도하지 않는다. 실패는 예외로 올리고, 재시도는 스케줄러의 재실행에 맡긴다.
    """

    def __init__(self, config: WhopConfig, http_client: httpx.Client | None = None) -> None:
        self._config = config
        self._http = http_client or _build_http_client(config)

    def close(self) -> None:
        self._http.close()

    def _execute(
        self, operation_name: str, query: str, variables: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            resp = self._http.post(
                GRAPHQL_PATH,
                json={
                    "operationName": operation_name,
                    "query": query,
                    "variables": variables,
                },
            )
        except httpx.RequestError as exc:
            raise GatewayError(f"{operation_name} request failed: {exc}") from exc

        if resp.status_code != 200:
            raise GatewayError(
                f"{operation_name} failed: status code {resp.status_code}, "
                f"body: {resp.text[:500]}"
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise GatewayError(f"{operation_name} returned invalid JSON") from exc

        errors = body.get("errors") if isinstance(body, Mapping) else None
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, Mapping) else str(first)
            raise GatewayError(f"{operation_name} failed: {message}")

        data = body.get("data") if isinstance(body, Mapping) else None
        return data if isinstance(data, dict) else {}

    def send_message(self, channel_id: str, text: str) -> None:
        try:
            self._execute(
                "sendMessageToChat",
                SEND_MESSAGE_MUTATION,
                {
                    "input": {
                        "feedId": channel_id,
                        "feedType": CHAT_FEED_TYPE,
                        "message": text,
                    }
                },
            )
        except GatewayError as exc:
            raise MessageSendError(str(exc)) from exc

        logger.debug("sent chat message to %s (%d chars)", channel_id, len(text))

    def list_messages(self, channel_id: str) -> list[ChatMessage]:
        try:
            data = self._execute(
                "listMessagesFromChat",
                LIST_MESSAGES_QUERY,
                {"feedId": channel_id, "feedType": CHAT_FEED_TYPE},
            )
        except GatewayError as exc:
            raise MessageFetchError(str(exc)) from exc

        messages = [normalize_message(raw) for raw in extract_posts(data)]
        logger.debug("listed %d chat messages from %s", len(messages), channel_id)
        return messages

    def find_or_create_chat(self, product_id: str, name: str) -> str | None:
        data = self._execute(
            "findOrCreateChat",
            FIND_OR_CREATE_CHAT_MUTATION,
            {"input": {"accessPassId": product_id, "name": name}},
        )
        chat = data.get("createChat") or data.get("findOrCreateChat") or {}
        chat_id = chat.get("id") if isinstance(chat, Mapping) else None
        return str(chat_id) if chat_id else None

    def issue_code(
        self,
        *,
        product_id: str,
        code: str,
        label: str,
        percentage: int,
        stock: int,
        expires_at: datetime,
    ) -> IssuedPromo:
        try:
            data = self._execute(
                "createPromoCode",
                CREATE_PROMO_CODE_MUTATION,
                {
                    "input": {
                        "accessPassId": product_id,
                        "promoType": "percentage",
                        "amountOff": percentage,
                        "baseCurrency": "usd",
                        "code": code,
                        "numberOfIntervals": 1,
                        "stock": stock,
                        "expirationDatetime": int(to_utc(expires_at).timestamp()),
                        "onePerCustomer": True,
                        "newUsersOnly": False,
                    }
                },
            )
        except GatewayError as exc:
            raise RewardIssueError(f"promo code {code} for {label}: {exc}") from exc

        promo = data.get("createPromoCode") or {}
        promo_id = promo.get("id") if isinstance(promo, Mapping) else None
        issued = promo.get("code") if isinstance(promo, Mapping) else None
        return IssuedPromo(
            promo_id=str(promo_id) if promo_id else None,
            code=str(issued or code),
        )


_client: Optional[WhopClient] = None
_lock = threading.Lock()


def get_whop_client() -> WhopClient:
    """프로세스 전역 WhopClient 를 반환한다. FastAPI Depends 로도 사용된다."""

    global _client

    if _client is not None:
        return _client

    with _lock:
        if _client is None:
            _client = WhopClient(load_whop_config())
        return _client


def close_whop_client() -> None:
    global _client

    with _lock:
        if _client is None:
            return
        _client.close()
        _client = None
