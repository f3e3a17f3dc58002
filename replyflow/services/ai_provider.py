"""AI Provider abstraction layer.

Reply text is produced by an OpenAI-compatible chat completion endpoint
behind a small interface so tests and other providers can stand in.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from replyflow.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """A single message in a conversation."""

    role: str  # 'system', 'user', 'assistant'
    content: str


@dataclass
class ChatResponse:
    """Response from an AI provider."""

    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.4,
        max_tokens: int = 400,
    ) -> ChatResponse:
        """Send a chat completion request."""


class OpenAIProvider(AIProvider):
    """OpenAI API provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url
        self.timeout = timeout

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.4,
        max_tokens: int = 400,
    ) -> ChatResponse:
        model = model or self.default_model

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": model,
                    "messages": [{"role": m.role, "content": m.content} for m in messages],
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                },
            )
            response.raise_for_status()
            data = response.json()

        usage = data.get("usage", {})
        return ChatResponse(
            content=data["choices"][0]["message"]["content"] or "",
            model=model,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
        )


def get_ai_provider() -> AIProvider | None:
    """Return the configured provider, or None when AI replies are disabled."""
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIProvider(api_key=settings.OPENAI_API_KEY, default_model=settings.AI_MODEL)
