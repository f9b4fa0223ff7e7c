"""
Async store interface consumed by the orchestrator.

The orchestrator reads route configuration by task type, appends usage
records and reads and writes the persistent response cache; SQLiteStore
serves all three from the local database.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

from ..core.messages import LLMResponse
from ..core.routing import RouteConfig
from .db import DEFAULT_DB_PATH
from .models import CachedResponse, UsageRecord
from .repository import (
    delete_expired_cache,
    fetch_cached_response,
    fetch_route_override,
    initialize_schema,
    insert_usage_record,
    upsert_cached_response,
)

logger = logging.getLogger(__name__)


class Store(ABC):
    """Row store for route configuration, usage records and cached responses.

    The cache methods default to a store without a persistent cache tier.
    """

    @abstractmethod
    async def fetch_route(self, task_type: str) -> Optional[RouteConfig]:
        """Return the stored route for *task_type*, or None."""
        ...

    @abstractmethod
    async def record_usage(self, record: UsageRecord) -> None:
        """Append one usage record."""
        ...

    async def fetch_cached(self, cache_key: str) -> Optional[CachedResponse]:
        """Return the live cached response for *cache_key*, or None."""
        return None

    async def store_cached(self, cache_key: str, response: LLMResponse, ttl: float) -> None:
        """Store *response* under *cache_key* for *ttl* seconds."""

    async def purge_expired_cache(self) -> int:
        """Delete expired cached responses and return how many were removed."""
        return 0


class SQLiteStore(Store):
    """Store backed by the SQLite ledger.

    Blocking sqlite3 calls run in a worker thread so they never stall the
    event loop.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, initialize: bool = True):
        self.db_path = db_path
        if initialize:
            initialize_schema(db_path)

    async def fetch_route(self, task_type: str) -> Optional[RouteConfig]:
        return await asyncio.to_thread(fetch_route_override, task_type, self.db_path)

    async def record_usage(self, record: UsageRecord) -> None:
        await asyncio.to_thread(insert_usage_record, record, self.db_path)
        logger.debug(
            "Recorded usage: task=%s model=%s success=%s cost=%.6f",
            record.task_type, record.model, record.success, record.cost,
        )

    async def fetch_cached(self, cache_key: str) -> Optional[CachedResponse]:
        return await asyncio.to_thread(fetch_cached_response, cache_key, self.db_path)

    async def store_cached(self, cache_key: str, response: LLMResponse, ttl: float) -> None:
        expires_at = datetime.now() + timedelta(seconds=ttl)
        await asyncio.to_thread(upsert_cached_response, cache_key, response, expires_at, self.db_path)

    async def purge_expired_cache(self) -> int:
        removed = await asyncio.to_thread(delete_expired_cache, self.db_path)
        if removed:
            logger.debug("Deleted %d expired cache rows", removed)
        return removed
