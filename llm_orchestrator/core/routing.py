"""
Per-task routing table.

Each TaskType maps to a primary provider, an optional fallback provider and
the default call options. The built-in table is exhaustive over TaskType.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError
from .task_types import TaskType

RESPONSE_FORMATS = ("text", "json")

DEFAULT_CACHE_TTL = 900  # seconds


@dataclass(frozen=True)
class RouteConfig:
    """Routing and default options for one task type.

    ``cache_ttl`` of 0 disables response caching for the task.
    """
    task_type: str
    primary_provider: str
    fallback_provider: Optional[str] = None
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout: float = 30.0
    cache_ttl: float = DEFAULT_CACHE_TTL
    response_format: str = "text"

    def __post_init__(self):
        """Validate route values."""
        if not self.primary_provider:
            raise ConfigurationError(f"route {self.task_type}: primary_provider is required")
        if self.fallback_provider == self.primary_provider:
            raise ConfigurationError(
                f"route {self.task_type}: fallback_provider must differ from primary_provider"
            )
        if isinstance(self.max_tokens, bool) or not isinstance(self.max_tokens, int) or self.max_tokens <= 0:
            raise ConfigurationError(f"route {self.task_type}: max_tokens must be a positive integer")
        if not 0 <= self.temperature <= 2:
            raise ConfigurationError(f"route {self.task_type}: temperature must be within [0, 2]")
        if self.timeout <= 0:
            raise ConfigurationError(f"route {self.task_type}: timeout must be > 0")
        if self.cache_ttl < 0:
            raise ConfigurationError(f"route {self.task_type}: cache_ttl must be >= 0")
        if self.response_format not in RESPONSE_FORMATS:
            raise ConfigurationError(
                f"route {self.task_type}: response_format must be one of {list(RESPONSE_FORMATS)}"
            )

    @property
    def providers(self) -> tuple:
        """Primary then fallback provider names."""
        if self.fallback_provider:
            return (self.primary_provider, self.fallback_provider)
        return (self.primary_provider,)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "RouteConfig":
        """Return a copy with non-None *overrides* applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_type": self.task_type,
            "primary_provider": self.primary_provider,
            "fallback_provider": self.fallback_provider,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "timeout": self.timeout,
            "cache_ttl": self.cache_ttl,
            "response_format": self.response_format,
        }


def _route(task_type: TaskType, primary: str, fallback: Optional[str], **options: Any) -> RouteConfig:
    return RouteConfig(
        task_type=task_type.value,
        primary_provider=primary,
        fallback_provider=fallback,
        **options,
    )


BUILTIN_ROUTES: Dict[TaskType, RouteConfig] = {
    # Conversational turns depend on history the key cannot see
    TaskType.CHAT: _route(
        TaskType.CHAT, "deepseek", "openai",
        temperature=0.7, max_tokens=1000, timeout=60.0, cache_ttl=0,
    ),
    TaskType.PRODUCT_MATCHING: _route(
        TaskType.PRODUCT_MATCHING, "deepseek", "openai",
        temperature=0.3, max_tokens=2000, timeout=30.0, cache_ttl=3600, response_format="json",
    ),
    # Only the vision-capable provider can read receipts
    TaskType.RECEIPT_OCR: _route(
        TaskType.RECEIPT_OCR, "openai", None,
        temperature=0.1, max_tokens=4000, timeout=60.0, cache_ttl=86400,
    ),
    TaskType.PRICE_ANALYSIS: _route(
        TaskType.PRICE_ANALYSIS, "deepseek", "openai",
        temperature=0.4, max_tokens=500, timeout=30.0, cache_ttl=300,
    ),
    TaskType.MEAL_PLANNING: _route(
        TaskType.MEAL_PLANNING, "deepseek", "openai",
        temperature=0.6, max_tokens=4000, timeout=60.0, cache_ttl=3600, response_format="json",
    ),
    TaskType.LIST_BUILDING: _route(
        TaskType.LIST_BUILDING, "deepseek", "openai",
        temperature=0.5, max_tokens=2000, timeout=30.0, cache_ttl=3600, response_format="json",
    ),
    TaskType.SPENDING_ANALYSIS: _route(
        TaskType.SPENDING_ANALYSIS, "deepseek", "openai",
        temperature=0.4, max_tokens=1000, timeout=30.0, cache_ttl=900,
    ),
    TaskType.ALERT_CONTEXT: _route(
        TaskType.ALERT_CONTEXT, "deepseek", None,
        temperature=0.3, max_tokens=300, timeout=15.0, cache_ttl=300,
    ),
    TaskType.CONTENT_GENERATION: _route(
        TaskType.CONTENT_GENERATION, "deepseek", "openai",
        temperature=0.7, max_tokens=2000, timeout=60.0, cache_ttl=3600,
    ),
    TaskType.DATA_QUALITY: _route(
        TaskType.DATA_QUALITY, "deepseek", None,
        temperature=0.2, max_tokens=1000, timeout=30.0, cache_ttl=3600, response_format="json",
    ),
    TaskType.TRANSLATION: _route(
        TaskType.TRANSLATION, "deepseek", None,
        temperature=0.3, max_tokens=500, timeout=15.0, cache_ttl=86400,
    ),
    TaskType.TITLE_GENERATION: _route(
        TaskType.TITLE_GENERATION, "deepseek", None,
        temperature=0.5, max_tokens=20, timeout=10.0, cache_ttl=86400,
    ),
}

_missing = set(TaskType) - set(BUILTIN_ROUTES)
if _missing:
    raise ConfigurationError(f"built-in routes missing task types: {sorted(t.value for t in _missing)}")
