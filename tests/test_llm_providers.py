from unittest.mock import patch

import httpx
import pytest

from jawab.config import settings
from jawab.services.llm import (
    GeminiProvider,
    LLMError,
    LLMRateLimitError,
    OpenAIProvider,
    build_llm_provider,
)

HISTORY = [
    {"role": "user", "content": "How much is a haircut?"},
    {"role": "model", "content": "150 AED."},
]


def _patched_client(module, response):
    patcher = patch(f"jawab.services.llm.{module}.httpx.Client")
    client_cls = patcher.start()
    client = client_cls.return_value.__enter__.return_value
    if isinstance(response, Exception):
        client.post.side_effect = response
    else:
        client.post.return_value = response
    return patcher, client


class TestGeminiProvider:
    def test_chat_payload_and_reply(self):
        provider = GeminiProvider(api_key="g-key", default_model="gemini-2.0-flash", max_tokens=256)
        response = httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "Sure, "}, {"text": "tomorrow at 4."}]}}]}
        )
        patcher, client = _patched_client("gemini_provider", response)
        try:
            reply = provider.chat("You are the receptionist.", HISTORY, "Can I book?")
        finally:
            patcher.stop()

        assert reply == "Sure, tomorrow at 4."
        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url.endswith("/gemini-2.0-flash:generateContent")
        assert kwargs["headers"]["x-goog-api-key"] == "g-key"
        payload = kwargs["json"]
        assert payload["systemInstruction"] == {"parts": [{"text": "You are the receptionist."}]}
        assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
        assert payload["contents"][-1]["parts"][0]["text"] == "Can I book?"
        assert payload["generationConfig"]["maxOutputTokens"] == 256

    def test_no_candidates_is_empty(self):
        patcher, _ = _patched_client("gemini_provider", httpx.Response(200, json={"candidates": []}))
        try:
            assert GeminiProvider(api_key="g-key").complete("classify") == ""
        finally:
            patcher.stop()

    def test_rate_limit(self):
        patcher, _ = _patched_client("gemini_provider", httpx.Response(429, text="quota"))
        try:
            with pytest.raises(LLMRateLimitError):
                GeminiProvider(api_key="g-key").complete("hi")
        finally:
            patcher.stop()

    def test_server_error(self):
        patcher, _ = _patched_client("gemini_provider", httpx.Response(500, text="internal"))
        try:
            with pytest.raises(LLMError) as exc_info:
                GeminiProvider(api_key="g-key").complete("hi")
        finally:
            patcher.stop()
        assert exc_info.value.status_code == 500

    def test_transport_error(self):
        patcher, _ = _patched_client("gemini_provider", httpx.ConnectError("refused"))
        try:
            with pytest.raises(LLMError):
                GeminiProvider(api_key="g-key").complete("hi")
        finally:
            patcher.stop()

    def test_is_configured(self):
        assert GeminiProvider(api_key="g-key").is_configured
        assert not GeminiProvider(api_key=None).is_configured


class TestOpenAIProvider:
    def test_maps_model_role_to_assistant(self):
        response = httpx.Response(200, json={"choices": [{"message": {"content": "Booked for 4pm."}}]})
        patcher, client = _patched_client("openai_provider", response)
        try:
            reply = OpenAIProvider(api_key="o-key").chat("System.", HISTORY, "4pm please")
        finally:
            patcher.stop()

        assert reply == "Booked for 4pm."
        messages = client.post.call_args.kwargs["json"]["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert client.post.call_args.kwargs["headers"]["Authorization"] == "Bearer o-key"

    def test_rate_limit(self):
        patcher, _ = _patched_client("openai_provider", httpx.Response(429, text="slow down"))
        try:
            with pytest.raises(LLMRateLimitError):
                OpenAIProvider(api_key="o-key").complete("hi")
        finally:
            patcher.stop()


class TestBuildProvider:
    def test_gemini_by_default(self):
        provider = build_llm_provider(settings.model_copy(update={"llm_provider": "gemini", "gemini_api_key": "g"}))

        assert isinstance(provider, GeminiProvider)
        assert provider.is_configured

    def test_openai(self):
        provider = build_llm_provider(settings.model_copy(update={"llm_provider": "openai", "openai_api_key": "o"}))

        assert isinstance(provider, OpenAIProvider)
