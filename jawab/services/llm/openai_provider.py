from typing import List, Optional

import httpx

from jawab.logging_config import get_logger
from jawab.services.llm.base import LLMError, LLMProvider, LLMRateLimitError

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI API provider."""

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gpt-4o-mini",
        timeout_seconds: float = 20.0,
        max_tokens: int = 800,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.base_url = "https://api.openai.com/v1/chat/completions"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def chat(self, system_prompt: str, history: List[dict], user_message: str) -> str:
        messages = [{"role": "system", "content": system_prompt}]
        for item in history:
            role = "assistant" if item.get("role") == "model" else "user"
            messages.append({"role": role, "content": item.get("content", "")})
        messages.append({"role": "user", "content": user_message})
        return self.generate(messages)

    def complete(self, prompt: str) -> str:
        return self.generate([{"role": "user", "content": prompt}])

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> str:
        """Generate response from OpenAI."""
        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_completion_tokens": self.max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise LLMError(f"OpenAI transport error: {exc}") from exc

        logger.debug(f"OpenAI response status: {response.status_code}")

        if response.status_code == 429:
            raise LLMRateLimitError("OpenAI rate limited", status_code=429)
        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text[:500]}")
            raise LLMError(f"OpenAI API error: {response.status_code} - {response.text[:200]}", response.status_code)

        data = response.json()
        content = ""
        if data.get("choices"):
            message = data["choices"][0].get("message", {})
            content = message.get("content") or ""
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")
        return content
