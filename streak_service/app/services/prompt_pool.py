from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from ..config import load_prompt_overrides


logger = logging.getLogger(__name__)


DEFAULT_PROMPTS: tuple[str, ...] = (
    "🌅 Good morning! What's one thing you're excited about today?",
    "💪 What's a small win you had yesterday?",
    "🎯 What's one goal you want to accomplish this week?",
    "🧠 What's something new you learned recently?",
    "✨ What's bringing you joy today?",
    "🚀 What's a challenge you're working through right now?",
    "🙏 What's something you're grateful for today?",
    "💡 Share a tip or insight that helped you recently!",
    "🔥 What's keeping you motivated this week?",
    "🌟 Describe your ideal day in 3 words!",
)


class PromptPool:
    """데일리 퀘스트 질문 목록에서 하나를 고른다.

    config.yaml 의 prompts 가 있으면 내장 목록 대신 사용한다.
    """

    def __init__(
        self,
        prompts: Sequence[str] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        chosen = [p.strip() for p in (prompts or ()) if p and p.strip()]
        self._prompts: tuple[str, ...] = tuple(chosen) or DEFAULT_PROMPTS
        self._rng = rng or random.Random()

    @property
    def prompts(self) -> tuple[str, ...]:
        return self._prompts

    def pick(self) -> str:
        return self._rng.choice(self._prompts)


_pool: PromptPool | None = None


def get_prompt_pool() -> PromptPool:
    """FastAPI DI용 PromptPool 팩토리. config.yaml 은 최초 1회만 읽는다."""

    global _pool

    if _pool is None:
        overrides = load_prompt_overrides()
        if overrides:
            logger.info("using %d prompts from config.yaml", len(overrides))
        _pool = PromptPool(overrides)
    return _pool
