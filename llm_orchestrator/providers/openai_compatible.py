"""
OpenAI-compatible provider implementation.

Uses the openai Python SDK (>=1.0.0) async client. Serves OpenAI itself and
vendors exposing the same API (DeepSeek, Gemini's compatibility endpoint)
via ``base_url``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    OpenAIError,
    PermissionDeniedError,
    RateLimitError,
    UnprocessableEntityError,
)

from ..core.errors import ProviderError, redact_secrets
from ..core.messages import LLMMessage, ProviderResult
from ..core.token_counter import TokenUsage
from .base import ChatOptions, ProviderClient

logger = logging.getLogger(__name__)

# The request itself was rejected; another provider would reject it too
_PERMANENT_ERRORS = (BadRequestError, NotFoundError, UnprocessableEntityError)

# Failures specific to this provider
_TRANSIENT_ERRORS = (
    APITimeoutError,
    APIConnectionError,
    RateLimitError,
    AuthenticationError,
    PermissionDeniedError,
)


class OpenAICompatibleProvider(ProviderClient):
    """Provider backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        name: str,
        model: str,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        supports_vision: bool = False,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        if not name or not name.strip():
            raise ValueError("name is required and cannot be empty")
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.name = name
        self.model = model
        self.base_url = base_url
        self.supports_vision = supports_vision
        self._api_key = api_key
        # The SDK retries on its own by default; fallback is decided upstream
        self._client = client or AsyncOpenAI(
            api_key=api_key or "missing",
            base_url=base_url,
            max_retries=0,
        )

    async def is_available(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # ProviderClient interface
    # ------------------------------------------------------------------

    async def chat(self, messages: Sequence[LLMMessage], options: ChatOptions) -> ProviderResult:
        """Send messages and return content, model and token usage.

        Raises:
            ProviderError: On any API failure or malformed response body
        """
        if not self._api_key:
            raise ProviderError(self.name, "API key not configured", retryable=True)

        create_kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": self._format_messages(messages),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.response_format == "json":
            create_kwargs["response_format"] = {"type": "json_object"}
        if options.timeout is not None:
            create_kwargs["timeout"] = options.timeout

        # Errors are raised "from None": SDK exception text may carry the key
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**create_kwargs)
        except _PERMANENT_ERRORS as exc:
            raise self._error(exc, retryable=False) from None
        except _TRANSIENT_ERRORS as exc:
            raise self._error(exc, retryable=True) from None
        except APIStatusError as exc:
            # 5xx and anything else non-2xx
            raise self._error(exc, retryable=exc.status_code >= 500 or exc.status_code == 408) from None
        except OpenAIError as exc:
            raise self._error(exc, retryable=True) from None
        except ValueError as exc:
            # 2xx with a body that is not valid JSON
            raise self._error(exc, retryable=True) from None
        elapsed = time.monotonic() - start

        return self._parse_response(response, elapsed)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _format_messages(self, messages: Iterable[LLMMessage]) -> List[Dict[str, Any]]:
        """Convert messages to the wire format; text-only for non-vision models."""
        formatted = []
        for message in messages:
            if isinstance(message.content, str) or self.supports_vision:
                formatted.append(message.to_dict())
            else:
                formatted.append({"role": message.role, "content": message.text})
        return formatted

    def _parse_response(self, response: Any, elapsed: float) -> ProviderResult:
        choices = getattr(response, "choices", None)
        if not choices:
            raise ProviderError(self.name, "malformed response: no choices", retryable=True)
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            raise ProviderError(self.name, "malformed response: missing message content", retryable=True)

        usage = getattr(response, "usage", None)
        token_usage = TokenUsage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        logger.info(
            "LLM call: provider=%s model=%s tokens_in=%d tokens_out=%d latency=%.2fs",
            self.name,
            self.model,
            token_usage.input_tokens,
            token_usage.output_tokens,
            elapsed,
        )
        return ProviderResult(
            content=content,
            model=self.model,
            usage=token_usage,
            finish_reason=getattr(choices[0], "finish_reason", None),
        )

    def _error(self, exc: Exception, retryable: bool) -> ProviderError:
        secrets = [self._api_key] if self._api_key else []
        message = redact_secrets(f"{type(exc).__name__}: {exc}", secrets)
        log = logger.warning if retryable else logger.error
        log("Provider %s failed (retryable=%s): %s", self.name, retryable, message)
        return ProviderError(self.name, message, retryable=retryable)
