"""
Error taxonomy for the orchestrator.

Every error raised on purpose by this package derives from OrchestratorError.
Caller-initiated cancellation is asyncio.CancelledError and is never wrapped.
"""

import re
from datetime import datetime
from typing import Iterable, Optional

_SECRET_PATTERNS = (
    re.compile(r"sk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9_\-\.=]+"),
    re.compile(r"(?i)(api[_-]?key[\"'=:\s]+)[A-Za-z0-9_\-\.]{8,}"),
)

REDACTED = "[REDACTED]"


def redact_secrets(text: str, secrets: Iterable[str] = ()) -> str:
    """Mask API keys and bearer tokens in *text*.

    Args:
        text: Message that may contain credentials
        secrets: Literal secret values that must never appear

    Returns:
        The text with every known secret replaced by a placeholder
    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    for pattern in _SECRET_PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
        else:
            text = pattern.sub(REDACTED, text)
    return text


class OrchestratorError(Exception):
    """Base class for orchestrator errors."""


class ValidationError(OrchestratorError, ValueError):
    """Raised for malformed call input. Never retried."""


class ConfigurationError(OrchestratorError, ValueError):
    """Raised for unknown task types or invalid routing configuration."""


class ProviderError(OrchestratorError):
    """A single provider call failed.

    ``retryable`` separates transient failures (timeouts, 5xx, rate limits,
    malformed bodies) from permanent ones (the request itself was rejected).
    Only retryable errors move the call to the fallback provider.
    """

    def __init__(self, provider: str, message: str, retryable: bool = True):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.retryable = retryable


class ProviderUnavailableError(OrchestratorError):
    """Raised when the primary and fallback providers both failed."""

    def __init__(
        self,
        task_type: str,
        primary_error: ProviderError,
        fallback_error: Optional[ProviderError] = None,
    ):
        parts = [f"primary {primary_error}"]
        if fallback_error is not None:
            parts.append(f"fallback {fallback_error}")
        else:
            parts.append("no fallback configured")
        super().__init__(f"LLM request failed for {task_type}: " + "; ".join(parts))
        self.task_type = task_type
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class RateLimitExceededError(OrchestratorError):
    """Raised when a user exceeds the call or token limits of their tier."""

    def __init__(self, message: str, reset_at: datetime):
        super().__init__(message)
        self.reset_at = reset_at
