"""
Shared test doubles for orchestrator tests.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from llm_orchestrator.core.messages import LLMResponse, ProviderResult
from llm_orchestrator.core.routing import RouteConfig
from llm_orchestrator.core.token_counter import TokenUsage
from llm_orchestrator.providers.base import ProviderClient
from llm_orchestrator.storage.models import CachedResponse, UsageRecord
from llm_orchestrator.storage.store import Store


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(ProviderClient):
    """Provider returning canned content or raising a canned error."""

    def __init__(
        self,
        name: str,
        model: str,
        content: str = "ok",
        error: Optional[Exception] = None,
        delay: float = 0.0,
        usage: TokenUsage = TokenUsage(input_tokens=10, output_tokens=5),
    ):
        self.name = name
        self.model = model
        self.content = content
        self.error = error
        self.delay = delay
        self.usage = usage
        self.calls: List[tuple] = []
        self.closed = False

    async def chat(self, messages, options):
        self.calls.append((list(messages), options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ProviderResult(content=self.content, model=self.model, usage=self.usage, finish_reason="stop")

    async def aclose(self) -> None:
        self.closed = True


class MemoryStore(Store):
    """In-memory store with switchable failures."""

    def __init__(
        self,
        fail_fetch: bool = False,
        fail_record: bool = False,
        fetch_delay: float = 0.0,
        fail_cache: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.routes: Dict[str, RouteConfig] = {}
        self.records: List[UsageRecord] = []
        self.cached: Dict[str, Tuple[LLMResponse, float]] = {}
        self.fail_fetch = fail_fetch
        self.fail_record = fail_record
        self.fetch_delay = fetch_delay
        self.fail_cache = fail_cache
        self.clock = clock
        self.fetch_calls = 0
        self.cache_fetch_calls = 0

    async def fetch_route(self, task_type: str) -> Optional[RouteConfig]:
        self.fetch_calls += 1
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fail_fetch:
            raise ConnectionError("store unreachable")
        return self.routes.get(task_type)

    async def record_usage(self, record: UsageRecord) -> None:
        if self.fail_record:
            raise ConnectionError("store unreachable")
        self.records.append(record)

    async def fetch_cached(self, cache_key: str) -> Optional[CachedResponse]:
        self.cache_fetch_calls += 1
        if self.fail_cache:
            raise ConnectionError("store unreachable")
        entry = self.cached.get(cache_key)
        if entry is None or entry[1] <= self.clock():
            return None
        return CachedResponse(response=entry[0], ttl_remaining=entry[1] - self.clock())

    async def store_cached(self, cache_key: str, response: LLMResponse, ttl: float) -> None:
        if self.fail_cache:
            raise ConnectionError("store unreachable")
        self.cached[cache_key] = (response, self.clock() + ttl)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def deepseek():
    return FakeProvider("deepseek", "deepseek-chat", content="primary answer")


@pytest.fixture
def openai_provider():
    return FakeProvider("openai", "gpt-4o", content="fallback answer")


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)
