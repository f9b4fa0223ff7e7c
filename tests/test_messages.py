"""
Unit tests for messages, responses and error types.
"""

from datetime import datetime

import pytest

from llm_orchestrator.core.errors import (
    OrchestratorError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitExceededError,
    ValidationError,
    redact_secrets,
)
from llm_orchestrator.core.messages import LLMMessage, LLMResponse, validate_messages
from llm_orchestrator.core.token_counter import TokenUsage


class TestMessages:

    def test_dicts_are_coerced_in_order(self):
        messages = validate_messages([
            {"role": "system", "content": "s"},
            LLMMessage("user", "u"),
        ])
        assert [m.role for m in messages] == ["system", "user"]

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_messages([])

    def test_multimodal_content(self):
        message = LLMMessage.coerce({
            "role": "user",
            "content": [
                {"type": "text", "text": "read this"},
                {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,AAAA"}},
            ],
        })
        assert message.text == "read this"
        assert message.has_images is True

    def test_bad_content_parts_rejected(self):
        with pytest.raises(ValidationError):
            LLMMessage.coerce({"role": "user", "content": [{"text": "no type"}]})


class TestLLMResponse:

    def test_as_cached_copies(self):
        response = LLMResponse(content="x", model="gpt-4o", provider="openai")
        cached = response.as_cached()
        assert cached.cached is True
        assert response.cached is False

    def test_to_dict(self):
        response = LLMResponse(
            content="x", model="gpt-4o", provider="openai",
            tokens_used=TokenUsage(3, 4), cost=0.1, fallback_used=True,
        )
        data = response.to_dict()
        assert data["tokens_used"] == {"input": 3, "output": 4}
        assert data["fallback_used"] is True
        assert data["cached"] is False


class TestErrors:

    def test_provider_error_fields(self):
        error = ProviderError("openai", "503", retryable=True)
        assert str(error) == "openai: 503"
        assert isinstance(error, OrchestratorError)

    def test_unavailable_message_names_both_failures(self):
        error = ProviderUnavailableError(
            "chat", ProviderError("deepseek", "timeout"), ProviderError("openai", "503"),
        )
        assert "deepseek: timeout" in str(error)
        assert "openai: 503" in str(error)

    def test_rate_limit_error_carries_reset(self):
        reset_at = datetime(2026, 1, 1)
        assert RateLimitExceededError("slow down", reset_at).reset_at == reset_at


class TestRedaction:

    def test_literal_secret(self):
        assert redact_secrets("key=hunter2hunter2", ["hunter2hunter2"]) == "key=[REDACTED]"

    def test_openai_style_key(self):
        text = redact_secrets("Incorrect API key provided: sk-abcdef1234567890")
        assert "sk-abcdef1234567890" not in text

    def test_bearer_token(self):
        assert redact_secrets("Authorization: Bearer abc.def") == "Authorization: Bearer [REDACTED]"

    def test_plain_text_untouched(self):
        assert redact_secrets("503 Service Unavailable") == "503 Service Unavailable"
