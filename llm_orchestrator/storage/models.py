"""
Data models for storage layer.

Defines the rows written to and read from the persistent store.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.messages import LLMResponse


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one provider call (or cache hit).

    Append-only rows that form the usage and cost ledger.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    task_type: str
    model: str
    provider: str
    input_tokens: int
    output_tokens: int
    cost: float
    latency_ms: int
    success: bool
    cached: bool = False
    fallback_used: bool = False
    user_id: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class CachedResponse:
    """A response read back from the persistent cache tier."""
    response: LLMResponse
    ttl_remaining: float
