"""
Provider client interface.

Every provider the orchestrator routes to implements ProviderClient.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from ..core.messages import LLMMessage, ProviderResult


@dataclass(frozen=True)
class ChatOptions:
    """Per-call options passed to a provider."""
    max_tokens: int
    temperature: float
    response_format: str = "text"
    timeout: Optional[float] = None


class ProviderClient(ABC):
    """Abstract base for chat-completion providers.

    Implementations raise ProviderError on failure and must not retry
    internally; the orchestrator owns the fallback decision.
    """

    name: str
    model: str
    supports_vision: bool = False

    @abstractmethod
    async def chat(self, messages: Sequence[LLMMessage], options: ChatOptions) -> ProviderResult:
        """Send a chat completion request and return the provider result."""
        ...

    async def is_available(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
