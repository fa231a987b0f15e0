from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models.chat import ChatMessage, IssuedPromo


class MessagingGatewayInterface(Protocol):
    """채팅 플랫폼 메시지 API 계약.

    실패는 exceptions.GatewayError 하위 예외로 표현한다.
    """

    def send_message(self, channel_id: str, text: str) -> None:  # pragma: no cover - Protocol
        ...

    def list_messages(
        self, channel_id: str
    ) -> list[ChatMessage]:  # pragma: no cover - Protocol
        """채널의 메시지를 정규화된 형태로 반환한다. 시간 필터링은 호출 측 책임이다."""
        ...

    def find_or_create_chat(
        self, product_id: str, name: str
    ) -> str | None:  # pragma: no cover - Protocol
        """상품에 연결된 채팅 채널 id 를 찾거나 만든다. 찾지 못하면 None."""
        ...


class RewardIssuerInterface(Protocol):
    """할인 코드 발급 API 계약."""

    def issue_code(
        self,
        *,
        product_id: str,
        code: str,
        label: str,
        percentage: int,
        stock: int,
        expires_at: datetime,
    ) -> IssuedPromo:  # pragma: no cover - Protocol
        ...
