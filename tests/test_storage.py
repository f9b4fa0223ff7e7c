"""
Unit tests for storage layer.

Tests schema creation, usage ledger writes, route overrides, the response
cache table and the async store.
"""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta

import pytest

from llm_orchestrator.core.messages import LLMResponse
from llm_orchestrator.core.routing import RouteConfig
from llm_orchestrator.core.token_counter import TokenUsage
from llm_orchestrator.storage.db import get_connection
from llm_orchestrator.storage.models import UsageRecord
from llm_orchestrator.storage.repository import (
    delete_expired_cache,
    fetch_cached_response,
    fetch_recent_usage_records,
    fetch_route_override,
    get_repository,
    initialize_schema,
    insert_usage_record,
    insert_usage_records,
    upsert_cached_response,
    upsert_route_override,
)
from llm_orchestrator.storage.store import SQLiteStore


def make_record(**overrides) -> UsageRecord:
    values = dict(
        timestamp=datetime.now(),
        task_type="product_matching",
        model="deepseek-chat",
        provider="deepseek",
        input_tokens=100,
        output_tokens=50,
        cost=0.000028,
        latency_ms=420,
        success=True,
    )
    values.update(overrides)
    return UsageRecord(**values)


class StorageTestCase:
    """Temporary database per test."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestStorageSchema(StorageTestCase):
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify all tables are created."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
            tables = {row[0] for row in cursor.fetchall()}
            assert {"llm_usage_record", "llm_route_config", "llm_cache"} <= tables

            cursor = conn.execute("PRAGMA table_info(llm_usage_record)")
            column_names = [col[1] for col in cursor.fetchall()]
            assert column_names == [
                'id', 'timestamp', 'task_type', 'model', 'provider',
                'input_tokens', 'output_tokens', 'total_tokens', 'cost', 'latency_ms',
                'success', 'cached', 'fallback_used', 'user_id', 'error_message',
            ]
        finally:
            conn.close()

    def test_schema_is_idempotent(self):
        initialize_schema(self.db_path)
        initialize_schema(self.db_path)


class TestUsageRecords(StorageTestCase):
    """Test usage record insertion and retrieval."""

    def test_insert_and_fetch(self):
        record = make_record(user_id="u1", fallback_used=True)
        insert_usage_record(record, self.db_path)

        records = fetch_recent_usage_records(db_path=self.db_path)

        assert len(records) == 1
        fetched = records[0]
        assert fetched.task_type == "product_matching"
        assert fetched.total_tokens == 150
        assert fetched.fallback_used is True
        assert fetched.cached is False
        assert fetched.user_id == "u1"
        assert fetched.timestamp == record.timestamp

    def test_failed_call_keeps_error_message(self):
        insert_usage_record(
            make_record(success=False, input_tokens=0, output_tokens=0, cost=0.0, error_message="503"),
            self.db_path,
        )

        fetched = fetch_recent_usage_records(db_path=self.db_path)[0]

        assert fetched.success is False
        assert fetched.error_message == "503"

    def test_batch_insert_newest_first(self):
        now = datetime.now()
        insert_usage_records([
            make_record(timestamp=now - timedelta(minutes=2), task_type="chat"),
            make_record(timestamp=now, task_type="translation"),
        ], self.db_path)

        records = fetch_recent_usage_records(db_path=self.db_path)

        assert [r.task_type for r in records] == ["translation", "chat"]

    def test_filter_by_task_type(self):
        insert_usage_records([make_record(task_type="chat"), make_record()], self.db_path)

        records = fetch_recent_usage_records(task_type="chat", db_path=self.db_path)

        assert len(records) == 1

    def test_empty_batch_is_noop(self):
        insert_usage_records([], self.db_path)
        assert fetch_recent_usage_records(db_path=self.db_path) == []


class TestUsageStats(StorageTestCase):
    """Aggregate statistics."""

    def test_usage_stats(self):
        insert_usage_records([
            make_record(cost=0.5, latency_ms=100),
            make_record(cost=0.25, latency_ms=300, cached=True),
            make_record(cost=0.0, success=False, input_tokens=0, output_tokens=0),
            make_record(timestamp=datetime.now() - timedelta(days=40), cost=9.0),
        ], self.db_path)

        stats = get_repository(self.db_path).get_usage_stats(days=30)

        assert stats["total_requests"] == 3
        assert stats["total_cost"] == pytest.approx(0.75)
        assert stats["failures"] == 1
        assert stats["cache_hits"] == 1
        assert stats["total_tokens"] == 300

    def test_stats_by_task(self):
        insert_usage_records([
            make_record(task_type="chat", cost=0.1),
            make_record(task_type="chat", cost=0.2),
            make_record(task_type="translation", cost=0.3),
        ], self.db_path)

        by_task = get_repository(self.db_path).get_stats_by_task()

        assert list(by_task) == ["chat", "translation"]
        assert by_task["chat"]["total_requests"] == 2
        assert by_task["chat"]["total_cost"] == pytest.approx(0.3)

    def test_recent_records_filtered_by_model(self):
        insert_usage_records([make_record(), make_record(model="gpt-4o", provider="openai")], self.db_path)

        records = get_repository(self.db_path).get_recent_records(model="gpt-4o", days=1)

        assert [r.provider for r in records] == ["openai"]


class TestRouteOverrides(StorageTestCase):
    """Per-task route overrides."""

    def test_missing_override(self):
        assert fetch_route_override("chat", self.db_path) is None

    def test_upsert_replaces(self):
        upsert_route_override(RouteConfig(task_type="chat", primary_provider="deepseek"), self.db_path)
        route = RouteConfig(
            task_type="chat", primary_provider="openai", fallback_provider="deepseek",
            max_tokens=64, temperature=0.2, timeout=12.0, cache_ttl=0, response_format="json",
        )
        upsert_route_override(route, self.db_path)

        assert fetch_route_override("chat", self.db_path) == route



RESPONSE = LLMResponse(
    content="2% milk -> Horizon Organic 2%",
    model="deepseek-chat",
    provider="deepseek",
    tokens_used=TokenUsage(input_tokens=40, output_tokens=12),
    cost=0.000024,
    finish_reason="stop",
)


class TestResponseCache(StorageTestCase):
    """Persistent response cache rows."""

    def test_upsert_and_fetch(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        upsert_cached_response("k1", RESPONSE, now + timedelta(minutes=15), self.db_path)

        cached = fetch_cached_response("k1", self.db_path, now=now)

        assert cached.response == RESPONSE
        assert cached.ttl_remaining == 900
        assert fetch_cached_response("missing", self.db_path, now=now) is None

    def test_expired_row_is_ignored(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        upsert_cached_response("k1", RESPONSE, now + timedelta(seconds=30), self.db_path)

        assert fetch_cached_response("k1", self.db_path, now=now + timedelta(seconds=30)) is None

    def test_upsert_replaces(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        upsert_cached_response("k1", RESPONSE, now + timedelta(seconds=30), self.db_path)
        newer = LLMResponse(content="eggs", model="gpt-4o", provider="openai", fallback_used=True)
        upsert_cached_response("k1", newer, now + timedelta(hours=1), self.db_path)

        cached = fetch_cached_response("k1", self.db_path, now=now + timedelta(minutes=5))

        assert cached.response == newer

    def test_delete_expired(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        upsert_cached_response("old", RESPONSE, now - timedelta(seconds=1), self.db_path)
        upsert_cached_response("live", RESPONSE, now + timedelta(hours=1), self.db_path)

        assert delete_expired_cache(self.db_path, now=now) == 1
        assert fetch_cached_response("live", self.db_path, now=now) is not None
        assert delete_expired_cache(self.db_path, now=now) == 0


class TestSQLiteStore:
    """Async store over the SQLite ledger."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "store.db")

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @pytest.mark.asyncio
    async def test_store_round_trip(self):
        """The store creates its schema and serves routes and usage."""
        store = SQLiteStore(self.db_path)
        route = RouteConfig(task_type="translation", primary_provider="openai")
        upsert_route_override(route, self.db_path)

        assert await store.fetch_route("translation") == route
        assert await store.fetch_route("chat") is None

        await store.record_usage(make_record())
        assert len(fetch_recent_usage_records(db_path=self.db_path)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_writes(self):
        store = SQLiteStore(self.db_path)

        await asyncio.gather(*(store.record_usage(make_record(latency_ms=i)) for i in range(5)))

        assert len(fetch_recent_usage_records(db_path=self.db_path)) == 5

    @pytest.mark.asyncio
    async def test_cached_response_round_trip(self):
        store = SQLiteStore(self.db_path)

        await store.store_cached("k1", RESPONSE, ttl=900)
        cached = await store.fetch_cached("k1")

        assert cached.response == RESPONSE
        assert 0 < cached.ttl_remaining <= 900
        assert await store.fetch_cached("k2") is None
        assert await store.purge_expired_cache() == 0
