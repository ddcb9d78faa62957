from abc import ABC, abstractmethod
from typing import List, Optional


class LLMError(Exception):
    """Completion provider failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class LLMRateLimitError(LLMError):
    """Completion provider rejected the call with a rate limit (HTTP 429)."""


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    History items are ``{"role": "user" | "model", "content": str}``.
    """

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are present."""

    @abstractmethod
    def chat(self, system_prompt: str, history: List[dict], user_message: str) -> str:
        """Continue a conversation and return the model's reply text."""

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Single-shot completion for a standalone prompt."""
