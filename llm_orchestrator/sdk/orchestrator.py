"""
LLM orchestrator.

Routes chat requests by task type, serves repeats from the response cache,
falls back to a secondary provider once on transient failure and records
usage without blocking the caller.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Coroutine, Dict, Mapping, Optional, Sequence, Set, Tuple, Union

from ..config.loader import OrchestratorConfig, default_config, load_config
from ..core.cache import ResponseCache, make_cache_key
from ..core.errors import (
    ConfigurationError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitExceededError,
    ValidationError,
    redact_secrets,
)
from ..core.messages import LLMMessage, LLMResponse, validate_messages
from ..core.pricing import estimate_cost
from ..core.rate_limiter import RateLimiter, SubscriptionTier
from ..core.routing import RESPONSE_FORMATS, RouteConfig
from ..core.task_types import TaskType, parse_task_type
from ..providers import ChatOptions, ProviderClient, build_providers
from ..storage.models import UsageRecord
from ..storage.store import SQLiteStore, Store

logger = logging.getLogger(__name__)


class LLMOrchestrator:
    """Task-routed chat completions with caching and single fallback.

    Per call: Resolving -> CacheCheck -> (CacheHit | Primary -> (Success |
    Fallback -> (Success | Failed))). No call retries the same provider and
    no call goes beyond one fallback.

    Example:
        async with create_orchestrator() as orchestrator:
            response = await orchestrator.chat(
                [{"role": "user", "content": "2% milk"}],
                task_type=TaskType.LIST_BUILDING,
            )
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderClient],
        config: Optional[OrchestratorConfig] = None,
        cache: Optional[ResponseCache] = None,
        store: Optional[Store] = None,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            providers: Provider clients keyed by the names routes refer to
            config: Orchestrator configuration (built-in defaults if None)
            cache: Response cache (a fresh one is created if None)
            store: Persistent store for routes, usage records and cached responses
            rate_limiter: Per-user limiter applied when a user_id is given
            clock: Monotonic time source in seconds
        """
        if not providers:
            raise ConfigurationError("at least one provider is required")
        self.config = config or default_config()
        self.providers: Dict[str, ProviderClient] = dict(providers)
        self.cache = cache or ResponseCache(
            max_entries=self.config.cache.max_entries,
            sweep_interval=self.config.cache.sweep_interval,
        )
        self.store = store
        self.rate_limiter = rate_limiter or RateLimiter()
        self._clock = clock
        self._route_memo: Dict[str, Tuple[float, RouteConfig]] = {}
        self._pending: Set["asyncio.Task[None]"] = set()
        self._secrets = self.config.api_key_values()

    async def __aenter__(self) -> "LLMOrchestrator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: Sequence[Union[LLMMessage, Mapping[str, Any]]],
        task_type: Union[TaskType, str] = TaskType.CHAT,
        *,
        user_id: Optional[str] = None,
        subscription_tier: Union[SubscriptionTier, str] = SubscriptionTier.FREE,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        response_format: Optional[str] = None,
    ) -> LLMResponse:
        """Run one chat completion for *task_type*.

        Args:
            messages: Ordered conversation; needs a user or system entry
            task_type: TaskType or its string value
            user_id: Caller identity for rate limiting and attribution
            subscription_tier: Tier selecting the rate limits
            max_tokens: Overrides the route's max tokens (positive int)
            temperature: Overrides the route's temperature (0-2)
            response_format: Overrides the route's response format

        Returns:
            LLMResponse; ``cached`` is True when served from the cache

        Raises:
            ValidationError: Malformed messages or overrides
            ConfigurationError: Unknown task type with defaults disabled
            RateLimitExceededError: The user is over their tier limits
            ProviderError: The primary rejected the request permanently
            ProviderUnavailableError: Primary and fallback both failed
            asyncio.CancelledError: The caller cancelled the call
        """
        conversation = validate_messages(messages)
        _validate_overrides(max_tokens, temperature, response_format)
        tier = _parse_tier(subscription_tier)
        routed_task, task_name = self._resolve_task_type(task_type)

        if user_id:
            self._check_rate_limit(user_id, tier)

        route = await self._resolve_route(routed_task)
        route = route.with_overrides({
            "max_tokens": max_tokens,
            "temperature": temperature,
            "response_format": response_format,
        })

        cache_key = None
        if route.cache_ttl > 0:
            cache_key = make_cache_key(task_name, conversation, self._fingerprint_options(route))
            cached = self.cache.get(cache_key)
            if cached is None:
                cached = await self._fetch_persisted(cache_key)
            if cached is not None:
                logger.debug("Cache hit for %s (%s)", task_name, cache_key[:16])
                if user_id:
                    self.rate_limiter.record(user_id, 0)
                if self.config.usage.record_cache_hits:
                    self._emit_usage(UsageRecord(
                        timestamp=datetime.now(),
                        task_type=task_name,
                        model=cached.model,
                        provider=cached.provider,
                        input_tokens=0,
                        output_tokens=0,
                        cost=0.0,
                        latency_ms=0,
                        success=True,
                        cached=True,
                        user_id=user_id,
                    ))
                return cached

        response = await self._call_with_fallback(task_name, route, conversation, user_id)

        if cache_key is not None:
            self.cache.set(cache_key, response, route.cache_ttl)
            if self._persistent_cache:
                self._schedule(self._write_persisted(cache_key, response, route.cache_ttl))
        if user_id:
            self.rate_limiter.record(user_id, response.tokens_used.total_tokens)
        return response

    def get_route_config(self, task_type: Union[TaskType, str]) -> RouteConfig:
        """Return the configured (not store-overridden) route for a task."""
        routed_task, _ = self._resolve_task_type(task_type)
        return self.config.get_route(routed_task)

    async def provider_status(self) -> Dict[str, bool]:
        """Report whether each registered provider is usable."""
        return {name: await provider.is_available() for name, provider in self.providers.items()}

    async def drain(self) -> None:
        """Wait for outstanding usage and cache writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Flush pending writes, clear the cache and close provider clients."""
        await self.drain()
        self.cache.close()
        self._route_memo.clear()
        for provider in self.providers.values():
            await provider.aclose()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve_task_type(self, task_type: Union[TaskType, str]) -> Tuple[TaskType, str]:
        """Return (task used for routing, task name used for attribution)."""
        if not isinstance(task_type, str):
            raise ValidationError(f"task_type must be a TaskType or string, got {type(task_type).__name__}")
        parsed = parse_task_type(task_type)
        if parsed is not None:
            return parsed, parsed.value
        if not self.config.routing.allow_unknown_task_types:
            raise ConfigurationError(f"Unknown task type: {task_type}")
        default_task = self.config.routing.default_task
        logger.warning("Unknown task type %r; using %s route", task_type, default_task.value)
        return default_task, task_type

    def _check_rate_limit(self, user_id: str, tier: SubscriptionTier) -> None:
        result = self.rate_limiter.check(user_id, tier)
        if not result.allowed:
            logger.info("Rate limit hit for user %s: %s", user_id, result.reason)
            raise RateLimitExceededError(result.reason or "Rate limit exceeded", result.reset_at)

    async def _resolve_route(self, task_type: TaskType) -> RouteConfig:
        """Stored override if any, else the configured route.

        Store failures degrade to the configured route.
        """
        fallback_route = self.config.get_route(task_type)
        if self.store is None:
            return fallback_route

        memo = self._route_memo.get(task_type.value)
        if memo is not None and memo[0] > self._clock():
            return memo[1]

        try:
            stored = await asyncio.wait_for(
                self.store.fetch_route(task_type.value),
                timeout=self.config.store.timeout,
            )
        except Exception as exc:
            logger.warning(
                "Route lookup for %s failed (%s: %s); using built-in route",
                task_type.value, type(exc).__name__, exc,
            )
            return fallback_route

        route = stored or fallback_route
        ttl = self.config.routing.route_cache_ttl
        if ttl > 0:
            self._route_memo[task_type.value] = (self._clock() + ttl, route)
        return route

    def _fingerprint_options(self, route: RouteConfig) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "max_tokens": route.max_tokens,
            "temperature": route.temperature,
            "response_format": route.response_format,
        }
        for role, name in (("primary", route.primary_provider), ("fallback", route.fallback_provider)):
            provider = self.providers.get(name) if name else None
            options[role] = f"{name}:{provider.model}" if provider else name
        return options

    # ------------------------------------------------------------------
    # Persistent cache tier
    # ------------------------------------------------------------------

    @property
    def _persistent_cache(self) -> bool:
        return self.store is not None and self.config.cache.persistent

    async def _fetch_persisted(self, cache_key: str) -> Optional[LLMResponse]:
        """Look up the store's cache and promote a hit into memory.

        Store failures count as a miss.
        """
        if not self._persistent_cache:
            return None
        try:
            persisted = await asyncio.wait_for(
                self.store.fetch_cached(cache_key),
                timeout=self.config.store.timeout,
            )
        except Exception as exc:
            logger.warning(
                "Cache lookup for %s failed (%s: %s); treating as a miss",
                cache_key[:16], type(exc).__name__, exc,
            )
            return None
        if persisted is None or persisted.ttl_remaining <= 0:
            return None
        self.cache.set(cache_key, persisted.response, persisted.ttl_remaining)
        return persisted.response.as_cached()

    async def _write_persisted(self, cache_key: str, response: LLMResponse, ttl: float) -> None:
        try:
            await asyncio.wait_for(
                self.store.store_cached(cache_key, response, ttl),
                timeout=self.config.store.timeout,
            )
        except Exception:
            logger.warning("Failed to persist cache entry %s", cache_key[:16], exc_info=True)

    # ------------------------------------------------------------------
    # Provider invocation
    # ------------------------------------------------------------------

    async def _call_with_fallback(
        self,
        task_name: str,
        route: RouteConfig,
        conversation: Sequence[LLMMessage],
        user_id: Optional[str],
    ) -> LLMResponse:
        try:
            return await self._invoke(route.primary_provider, task_name, route, conversation, user_id, False)
        except ProviderError as exc:
            if not exc.retryable:
                logger.error("Primary provider %s rejected %s request: %s", exc.provider, task_name, exc.message)
                raise
            primary_error = exc

        if not route.fallback_provider:
            logger.error("Provider %s failed for %s and no fallback is configured", route.primary_provider, task_name)
            raise ProviderUnavailableError(task_name, primary_error) from primary_error

        logger.warning(
            "Primary provider %s failed for %s; trying fallback %s",
            route.primary_provider, task_name, route.fallback_provider,
        )
        try:
            return await self._invoke(route.fallback_provider, task_name, route, conversation, user_id, True)
        except ProviderError as exc:
            logger.error("Fallback provider %s also failed for %s: %s", exc.provider, task_name, exc.message)
            raise ProviderUnavailableError(task_name, primary_error, exc) from exc

    async def _invoke(
        self,
        provider_name: str,
        task_name: str,
        route: RouteConfig,
        conversation: Sequence[LLMMessage],
        user_id: Optional[str],
        fallback_used: bool,
    ) -> LLMResponse:
        provider = self.providers.get(provider_name)
        if provider is None:
            raise ProviderError(provider_name, "provider not registered", retryable=True)

        options = ChatOptions(
            max_tokens=route.max_tokens,
            temperature=route.temperature,
            response_format=route.response_format,
            timeout=route.timeout,
        )
        start = self._clock()
        # Surfaced errors never chain the unscrubbed original
        try:
            result = await asyncio.wait_for(provider.chat(conversation, options), timeout=route.timeout)
        except asyncio.TimeoutError:
            error = ProviderError(provider_name, f"timed out after {route.timeout:g}s", retryable=True)
            self._record_failure(task_name, provider_name, provider, error, start, user_id, fallback_used)
            raise error from None
        except ProviderError as exc:
            error = self._scrub(exc)
            self._record_failure(task_name, provider_name, provider, error, start, user_id, fallback_used)
            raise error from None
        except Exception as exc:
            error = self._scrub(ProviderError(provider_name, f"{type(exc).__name__}: {exc}", retryable=True))
            logger.warning("Provider %s raised %s for %s", provider_name, type(exc).__name__, task_name)
            self._record_failure(task_name, provider_name, provider, error, start, user_id, fallback_used)
            raise error from None

        latency_ms = self._elapsed_ms(start)
        cost = estimate_cost(result.model, result.usage)
        response = LLMResponse(
            content=result.content,
            model=result.model,
            provider=provider_name,
            tokens_used=result.usage,
            cost=cost,
            cached=False,
            fallback_used=fallback_used,
            finish_reason=result.finish_reason,
        )
        logger.info(
            "Completed %s via %s/%s in %dms (tokens=%d cost=$%.6f fallback=%s)",
            task_name, provider_name, result.model, latency_ms,
            result.usage.total_tokens, cost, fallback_used,
        )
        self._emit_usage(UsageRecord(
            timestamp=datetime.now(),
            task_type=task_name,
            model=result.model,
            provider=provider_name,
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            cost=cost,
            latency_ms=latency_ms,
            success=True,
            fallback_used=fallback_used,
            user_id=user_id,
        ))
        return response

    def _scrub(self, error: ProviderError) -> ProviderError:
        message = redact_secrets(error.message, self._secrets)
        if message == error.message:
            return error
        return ProviderError(error.provider, message, retryable=error.retryable)

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)

    # ------------------------------------------------------------------
    # Usage tracking
    # ------------------------------------------------------------------

    def _record_failure(
        self,
        task_name: str,
        provider_name: str,
        provider: ProviderClient,
        error: ProviderError,
        start: float,
        user_id: Optional[str],
        fallback_used: bool,
    ) -> None:
        self._emit_usage(UsageRecord(
            timestamp=datetime.now(),
            task_type=task_name,
            model=provider.model,
            provider=provider_name,
            input_tokens=0,
            output_tokens=0,
            cost=0.0,
            latency_ms=self._elapsed_ms(start),
            success=False,
            fallback_used=fallback_used,
            user_id=user_id,
            error_message=error.message,
        ))

    def _emit_usage(self, record: UsageRecord) -> None:
        """Schedule a usage write; never blocks or fails the call."""
        if self.store is None:
            return
        self._schedule(self._write_usage(record))

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_usage(self, record: UsageRecord) -> None:
        try:
            await asyncio.wait_for(self.store.record_usage(record), timeout=self.config.store.timeout)
        except Exception:
            logger.warning(
                "Failed to record usage for %s/%s", record.task_type, record.model, exc_info=True
            )


def _validate_overrides(
    max_tokens: Optional[int],
    temperature: Optional[float],
    response_format: Optional[str],
) -> None:
    if max_tokens is not None and (
        isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0
    ):
        raise ValidationError(f"max_tokens must be a positive integer, got {max_tokens!r}")
    if temperature is not None and (
        isinstance(temperature, bool)
        or not isinstance(temperature, (int, float))
        or not 0 <= temperature <= 2
    ):
        raise ValidationError(f"temperature must be a number within [0, 2], got {temperature!r}")
    if response_format is not None and response_format not in RESPONSE_FORMATS:
        raise ValidationError(f"response_format must be one of {list(RESPONSE_FORMATS)}")


def _parse_tier(tier: Union[SubscriptionTier, str]) -> SubscriptionTier:
    try:
        return SubscriptionTier(tier)
    except ValueError:
        valid = [t.value for t in SubscriptionTier]
        raise ValidationError(f"subscription_tier must be one of {valid}, got {tier!r}")


def create_orchestrator(
    config: Optional[OrchestratorConfig] = None,
    config_path: Optional[str] = None,
) -> LLMOrchestrator:
    """Build an orchestrator with providers and store from configuration.

    Args:
        config: Configuration object; takes precedence over config_path
        config_path: YAML file to load when no config is given

    Returns:
        Ready-to-use LLMOrchestrator
    """
    if config is None:
        config = load_config(config_path) if config_path else default_config()
    store = SQLiteStore(config.store.db_path) if config.store.db_path else None
    return LLMOrchestrator(
        providers=build_providers(config),
        config=config,
        store=store,
    )
