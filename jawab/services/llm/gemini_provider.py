from typing import List, Optional

import httpx

from jawab.logging_config import get_logger
from jawab.services.llm.base import LLMError, LLMProvider, LLMRateLimitError

logger = get_logger("llm.gemini")

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiProvider(LLMProvider):
    """Google Gemini generateContent provider."""

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gemini-2.0-flash",
        timeout_seconds: float = 20.0,
        max_tokens: int = 800,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def chat(self, system_prompt: str, history: List[dict], user_message: str) -> str:
        contents = [
            {"role": "model" if item.get("role") == "model" else "user", "parts": [{"text": item.get("content", "")}]}
            for item in history
        ]
        contents.append({"role": "user", "parts": [{"text": user_message}]})
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": contents,
            "generationConfig": {"maxOutputTokens": self.max_tokens},
        }
        return self._generate(payload)

    def complete(self, prompt: str) -> str:
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        return self._generate(payload)

    def _generate(self, payload: dict, model: Optional[str] = None) -> str:
        model = model or self.default_model
        url = f"{GEMINI_API_BASE}/{model}:generateContent"
        logger.debug(f"Gemini request: model={model}, contents_count={len(payload.get('contents', []))}")

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    url,
                    headers={"x-goog-api-key": self.api_key or "", "Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise LLMError(f"Gemini transport error: {exc}") from exc

        logger.debug(f"Gemini response status: {response.status_code}")

        if response.status_code == 429:
            raise LLMRateLimitError("Gemini rate limited", status_code=429)
        if response.status_code != 200:
            logger.error(f"Gemini error: {response.text[:500]}")
            raise LLMError(f"Gemini API error: {response.status_code} - {response.text[:200]}", response.status_code)

        data = response.json()
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)
