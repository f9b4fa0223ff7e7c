"""
Message and response models.

Defines the conversation messages sent to providers and the immutable
responses handed back to callers.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .errors import ValidationError
from .token_counter import TokenUsage

VALID_ROLES = ("system", "user", "assistant")

ContentPart = Dict[str, Any]
MessageContent = Union[str, List[ContentPart]]


@dataclass(frozen=True)
class LLMMessage:
    """One entry of an ordered conversation."""
    role: str
    content: MessageContent

    @classmethod
    def coerce(cls, value: Union["LLMMessage", Mapping[str, Any]]) -> "LLMMessage":
        """Build a message from an LLMMessage or an OpenAI-style dict.

        Raises:
            ValidationError: If the value is not a message or has a bad role/content
        """
        if isinstance(value, LLMMessage):
            message = value
        elif isinstance(value, Mapping):
            if "role" not in value or "content" not in value:
                raise ValidationError("message must have 'role' and 'content'")
            message = cls(role=value["role"], content=value["content"])
        else:
            raise ValidationError(f"unsupported message type: {type(value).__name__}")

        if message.role not in VALID_ROLES:
            raise ValidationError(
                f"invalid message role {message.role!r}; expected one of {list(VALID_ROLES)}"
            )
        if isinstance(message.content, str):
            return message
        if isinstance(message.content, list) and all(
            isinstance(part, Mapping) and "type" in part for part in message.content
        ):
            return message
        raise ValidationError("message content must be a string or a list of content parts")

    @property
    def text(self) -> str:
        """Text of the message; for multimodal content the first text part."""
        if isinstance(self.content, str):
            return self.content
        for part in self.content:
            if part.get("type") == "text":
                return part.get("text", "")
        return ""

    @property
    def has_images(self) -> bool:
        if isinstance(self.content, str):
            return False
        return any(part.get("type") == "image_url" for part in self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


def validate_messages(messages: Sequence[Any]) -> List[LLMMessage]:
    """Coerce and validate an ordered message list.

    The list must be non-empty and contain at least one user or system
    message. Order is preserved.

    Args:
        messages: LLMMessage instances or dicts with role/content

    Returns:
        List of LLMMessage in the original order

    Raises:
        ValidationError: If the list is empty or any message is malformed
    """
    if not messages:
        raise ValidationError("messages is required and cannot be empty")
    coerced = [LLMMessage.coerce(m) for m in messages]
    if not any(m.role in ("user", "system") for m in coerced):
        raise ValidationError("messages must contain at least one 'user' or 'system' entry")
    return coerced


@dataclass(frozen=True)
class ProviderResult:
    """Raw outcome of a provider chat call."""
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class LLMResponse:
    """Response returned to callers of the orchestrator.

    Produced once per call and never mutated; cache hits hand out a copy
    with ``cached`` set.
    """
    content: str
    model: str
    provider: str
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    cached: bool = False
    fallback_used: bool = False
    finish_reason: Optional[str] = None

    def as_cached(self) -> "LLMResponse":
        return replace(self, cached=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "provider": self.provider,
            "cached": self.cached,
            "tokens_used": self.tokens_used.to_dict(),
            "cost": self.cost,
            "fallback_used": self.fallback_used,
            "finish_reason": self.finish_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LLMResponse":
        """Rebuild a response written with to_dict."""
        tokens = data.get("tokens_used") or {}
        return cls(
            content=data["content"],
            model=data["model"],
            provider=data["provider"],
            tokens_used=TokenUsage(
                input_tokens=tokens.get("input", 0),
                output_tokens=tokens.get("output", 0),
            ),
            cost=float(data.get("cost", 0.0)),
            cached=bool(data.get("cached", False)),
            fallback_used=bool(data.get("fallback_used", False)),
            finish_reason=data.get("finish_reason"),
        )
