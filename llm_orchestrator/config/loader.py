"""
Configuration management and loading.

Handles provider definitions, per-task route overrides and runtime settings.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.errors import ConfigurationError
from ..core.routing import BUILTIN_ROUTES, RouteConfig
from ..core.task_types import TaskType


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for one OpenAI-compatible provider."""
    name: str
    model: str
    api_key_env: str
    base_url: Optional[str] = None
    supports_vision: bool = False

    def __post_init__(self):
        """Validate provider values."""
        if not self.model:
            raise ConfigurationError(f"provider {self.name}: model is required")
        if not self.api_key_env:
            raise ConfigurationError(f"provider {self.name}: api_key_env is required")

    def api_key(self) -> Optional[str]:
        """Read the API key from the environment; None when unset or blank."""
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None


@dataclass(frozen=True)
class RoutingSettings:
    """How task types without a route are handled."""
    allow_unknown_task_types: bool = True
    default_task: TaskType = TaskType.CHAT
    route_cache_ttl: float = 60.0

    def __post_init__(self):
        if self.route_cache_ttl < 0:
            raise ConfigurationError("route_cache_ttl must be >= 0")


@dataclass(frozen=True)
class CacheSettings:
    """In-process cache bounds and the persistent tier switch."""
    max_entries: int = 1000
    sweep_interval: float = 60.0
    persistent: bool = True

    def __post_init__(self):
        if self.max_entries <= 0:
            raise ConfigurationError("cache max_entries must be > 0")
        if self.sweep_interval <= 0:
            raise ConfigurationError("cache sweep_interval must be > 0")


@dataclass(frozen=True)
class StoreSettings:
    """Persistent store location; no db_path means no store."""
    db_path: Optional[str] = None
    timeout: float = 5.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ConfigurationError("store timeout must be > 0")


@dataclass(frozen=True)
class UsageSettings:
    record_cache_hits: bool = False


DEFAULT_PROVIDERS: Dict[str, ProviderConfig] = {
    "deepseek": ProviderConfig(
        name="deepseek",
        model="deepseek-chat",
        base_url="https://api.deepseek.com",
        api_key_env="DEEPSEEK_API_KEY",
    ),
    "openai": ProviderConfig(
        name="openai",
        model="gpt-4o",
        api_key_env="OPENAI_API_KEY",
        supports_vision=True,
    ),
}


@dataclass(frozen=True)
class OrchestratorConfig:
    """Complete orchestrator configuration."""
    providers: Dict[str, ProviderConfig] = field(default_factory=lambda: dict(DEFAULT_PROVIDERS))
    routes: Dict[TaskType, RouteConfig] = field(default_factory=lambda: dict(BUILTIN_ROUTES))
    routing: RoutingSettings = field(default_factory=RoutingSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    usage: UsageSettings = field(default_factory=UsageSettings)

    def __post_init__(self):
        """Every route must reference configured providers."""
        for task_type, route in self.routes.items():
            for provider in route.providers:
                if provider not in self.providers:
                    raise ConfigurationError(
                        f"route {task_type.value} references unknown provider '{provider}'"
                    )
        missing = set(TaskType) - set(self.routes)
        if missing:
            raise ConfigurationError(f"routes missing task types: {sorted(t.value for t in missing)}")

    def get_route(self, task_type: TaskType) -> RouteConfig:
        return self.routes[task_type]

    def api_key_values(self) -> List[str]:
        """Configured API key values, for scrubbing error text."""
        keys = (provider.api_key() for provider in self.providers.values())
        return [key for key in keys if key]


def default_config() -> OrchestratorConfig:
    """Built-in configuration used when no file is given."""
    return OrchestratorConfig()


_TOP_LEVEL_KEYS = {"providers", "routes", "routing", "cache", "store", "usage"}
_PROVIDER_KEYS = {"model", "api_key_env", "base_url", "supports_vision"}
_ROUTE_KEYS = {
    "primary_provider", "fallback_provider", "max_tokens", "temperature",
    "timeout", "cache_ttl", "response_format",
}
_ROUTING_KEYS = {"allow_unknown_task_types", "default_task", "route_cache_ttl"}
_CACHE_KEYS = {"max_entries", "sweep_interval", "persistent"}
_STORE_KEYS = {"db_path", "timeout"}
_USAGE_KEYS = {"record_cache_hits"}


def load_config(path: str) -> OrchestratorConfig:
    """Load and validate orchestrator configuration from a YAML file.

    Strict validation rejects unknown keys so a typo never silently falls
    back to a default route.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated OrchestratorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ConfigurationError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Orchestrator config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ConfigurationError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ConfigurationError("Configuration must be a mapping")

    _check_keys(raw_config, _TOP_LEVEL_KEYS, "configuration")

    providers = dict(DEFAULT_PROVIDERS)
    for name, data in _section(raw_config, "providers").items():
        _require_mapping(data, f"providers.{name}")
        _check_keys(data, _PROVIDER_KEYS, f"providers.{name}")
        base = providers.get(name)
        if base is None:
            if 'model' not in data or 'api_key_env' not in data:
                raise ConfigurationError(
                    f"providers.{name}: new providers need 'model' and 'api_key_env'"
                )
            base = ProviderConfig(name=name, model=data['model'], api_key_env=data['api_key_env'])
        providers[name] = replace(base, **data)

    routes = dict(BUILTIN_ROUTES)
    for task_name, data in _section(raw_config, "routes").items():
        try:
            task_type = TaskType(task_name)
        except ValueError:
            valid = [t.value for t in TaskType]
            raise ConfigurationError(f"routes.{task_name}: unknown task type; expected one of {valid}")
        _require_mapping(data, f"routes.{task_name}")
        _check_keys(data, _ROUTE_KEYS, f"routes.{task_name}")
        routes[task_type] = replace(routes[task_type], **data)

    routing_data = _section(raw_config, "routing")
    _check_keys(routing_data, _ROUTING_KEYS, "routing")
    if 'default_task' in routing_data:
        try:
            routing_data = dict(routing_data, default_task=TaskType(routing_data['default_task']))
        except ValueError:
            raise ConfigurationError(f"routing.default_task: unknown task type {routing_data['default_task']!r}")

    cache_data = _section(raw_config, "cache")
    _check_keys(cache_data, _CACHE_KEYS, "cache")
    store_data = _section(raw_config, "store")
    _check_keys(store_data, _STORE_KEYS, "store")
    usage_data = _section(raw_config, "usage")
    _check_keys(usage_data, _USAGE_KEYS, "usage")

    return OrchestratorConfig(
        providers=providers,
        routes=routes,
        routing=RoutingSettings(**routing_data),
        cache=CacheSettings(**cache_data),
        store=StoreSettings(**store_data),
        usage=UsageSettings(**usage_data),
    )


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config.get(name) or {}
    _require_mapping(data, name)
    return data


def _require_mapping(data: Any, path: str) -> None:
    if not isinstance(data, dict):
        raise ConfigurationError(f"'{path}' must be a dictionary")


def _check_keys(data: Dict[str, Any], allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ConfigurationError(f"Unknown keys in {path}: {sorted(unknown_keys)}")
