"""
Repository pattern for data access.

Handles the append-only usage ledger, per-task route overrides and the
persistent response cache.
"""

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..core.messages import LLMResponse
from ..core.routing import RouteConfig
from .db import DEFAULT_DB_PATH, get_connection
from .models import CachedResponse, UsageRecord

_USAGE_COLUMNS = """
    timestamp, task_type, model, provider, input_tokens, output_tokens,
    total_tokens, cost, latency_ms, success, cached, fallback_used,
    user_id, error_message
"""

_ROUTE_COLUMNS = """
    task_type, primary_provider, fallback_provider, max_tokens, temperature,
    timeout, cache_ttl, response_format
"""


def _row_to_record(row) -> UsageRecord:
    return UsageRecord(
        timestamp=datetime.fromisoformat(row[0]),
        task_type=row[1],
        model=row[2],
        provider=row[3],
        input_tokens=row[4],
        output_tokens=row[5],
        cost=row[7],
        latency_ms=row[8],
        success=bool(row[9]),
        cached=bool(row[10]),
        fallback_used=bool(row[11]),
        user_id=row[12],
        error_message=row[13],
    )


def _record_params(record: UsageRecord) -> tuple:
    return (
        record.timestamp.isoformat(),
        record.task_type,
        record.model,
        record.provider,
        record.input_tokens,
        record.output_tokens,
        record.total_tokens,
        record.cost,
        record.latency_ms,
        int(record.success),
        int(record.cached),
        int(record.fallback_used),
        record.user_id,
        record.error_message,
    )


_INSERT_USAGE_SQL = f"""
    INSERT INTO llm_usage_record ({_USAGE_COLUMNS})
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class UsageRepository:
    """Repository for reading the usage ledger.

    Provides filtered listings and aggregate statistics per task type.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_recent_records(
        self,
        task_type: Optional[str] = None,
        model: Optional[str] = None,
        days: Optional[int] = None,
        limit: int = 1000
    ) -> List[UsageRecord]:
        """Get recent usage records with optional filtering.

        Args:
            task_type: Optional filter for a specific task type
            model: Optional filter for a specific model
            days: Optional number of days to look back
            limit: Maximum number of records to return

        Returns:
            List of usage records ordered by timestamp (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_USAGE_COLUMNS} FROM llm_usage_record"
            params: list = []
            conditions = []

            if task_type:
                conditions.append("task_type = ?")
                params.append(task_type)
            if model:
                conditions.append("model = ?")
                params.append(model)
            if days is not None:
                cutoff = (datetime.now() - timedelta(days=days)).isoformat()
                conditions.append("timestamp >= ?")
                params.append(cutoff)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY timestamp DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_usage_stats(
        self,
        task_type: Optional[str] = None,
        days: int = 30
    ) -> Dict[str, float]:
        """Get usage statistics for the specified time period.

        Args:
            task_type: Optional filter for a specific task type
            days: Number of days to include in the statistics

        Returns:
            Dictionary containing usage statistics
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()

            query = """
                SELECT
                    COUNT(*) as total_requests,
                    SUM(cost) as total_cost,
                    AVG(cost) as avg_cost,
                    SUM(total_tokens) as total_tokens,
                    SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END) as failures,
                    SUM(cached) as cache_hits,
                    AVG(latency_ms) as avg_latency_ms
                FROM llm_usage_record
                WHERE timestamp >= ?
            """
            params: list = [cutoff]

            if task_type:
                query += " AND task_type = ?"
                params.append(task_type)

            row = conn.execute(query, params).fetchone()

            return {
                "total_requests": row[0] or 0,
                "total_cost": float(row[1] or 0),
                "avg_cost": float(row[2] or 0),
                "total_tokens": row[3] or 0,
                "failures": row[4] or 0,
                "cache_hits": row[5] or 0,
                "avg_latency_ms": float(row[6] or 0),
            }
        finally:
            conn.close()

    def get_stats_by_task(self, days: int = 30) -> Dict[str, Dict[str, float]]:
        """Get request count, cost and tokens grouped by task type."""
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()
            cursor = conn.execute("""
                SELECT task_type, COUNT(*), SUM(cost), SUM(total_tokens),
                       SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END)
                FROM llm_usage_record
                WHERE timestamp >= ?
                GROUP BY task_type
                ORDER BY task_type
            """, (cutoff,))
            return {
                row[0]: {
                    "total_requests": row[1],
                    "total_cost": float(row[2] or 0),
                    "total_tokens": row[3] or 0,
                    "failures": row[4] or 0,
                }
                for row in cursor.fetchall()
            }
        finally:
            conn.close()


def get_repository(db_path: str = DEFAULT_DB_PATH) -> UsageRepository:
    """Get a repository instance for *db_path*."""
    return UsageRepository(db_path)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the ledger, route override and cache tables if they don't exist.

    llm_usage_record is append-only: no UPDATE or DELETE is ever
    performed on it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS llm_usage_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                task_type TEXT NOT NULL,
                model TEXT NOT NULL,
                provider TEXT NOT NULL,
                input_tokens INTEGER NOT NULL,
                output_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                cost REAL NOT NULL,
                latency_ms INTEGER NOT NULL,
                success INTEGER NOT NULL,
                cached INTEGER NOT NULL DEFAULT 0,
                fallback_used INTEGER NOT NULL DEFAULT 0,
                user_id TEXT,
                error_message TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS llm_route_config (
                task_type TEXT PRIMARY KEY,
                primary_provider TEXT NOT NULL,
                fallback_provider TEXT,
                max_tokens INTEGER NOT NULL,
                temperature REAL NOT NULL,
                timeout REAL NOT NULL,
                cache_ttl REAL NOT NULL,
                response_format TEXT NOT NULL DEFAULT 'text'
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS llm_cache (
                cache_key TEXT PRIMARY KEY,
                model TEXT NOT NULL,
                response TEXT NOT NULL,
                token_count INTEGER NOT NULL,
                expires_at TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_llm_cache_expires_at ON llm_cache (expires_at)")
        conn.commit()
    finally:
        conn.close()


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single usage record to the ledger.

    Args:
        record: The usage record to write
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(_INSERT_USAGE_SQL, _record_params(record))
        conn.commit()
    finally:
        conn.close()


def insert_usage_records(records: List[UsageRecord], db_path: str = DEFAULT_DB_PATH) -> None:
    """Append multiple usage records in a single transaction.

    Args:
        records: List of usage records to write
        db_path: Path to SQLite database file
    """
    if not records:
        return

    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN TRANSACTION")
        for record in records:
            conn.execute(_INSERT_USAGE_SQL, _record_params(record))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetch_recent_usage_records(
    task_type: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageRecord]:
    """Fetch recent usage records, newest first.

    Args:
        task_type: Optional filter for a specific task type
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of usage records ordered by timestamp (newest first)
    """
    return UsageRepository(db_path).get_recent_records(task_type=task_type, limit=limit)


def upsert_route_override(route: RouteConfig, db_path: str = DEFAULT_DB_PATH) -> None:
    """Store (or replace) the route override for ``route.task_type``."""
    conn = get_connection(db_path)
    try:
        conn.execute(f"""
            INSERT OR REPLACE INTO llm_route_config ({_ROUTE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            route.task_type,
            route.primary_provider,
            route.fallback_provider,
            route.max_tokens,
            route.temperature,
            route.timeout,
            route.cache_ttl,
            route.response_format,
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_route_override(task_type: str, db_path: str = DEFAULT_DB_PATH) -> Optional[RouteConfig]:
    """Return the stored route for *task_type*, or None if there is none."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            f"SELECT {_ROUTE_COLUMNS} FROM llm_route_config WHERE task_type = ?",
            (task_type,),
        ).fetchone()
    finally:
        conn.close()
    if row is None:
        return None
    return RouteConfig(
        task_type=row[0],
        primary_provider=row[1],
        fallback_provider=row[2],
        max_tokens=row[3],
        temperature=row[4],
        timeout=row[5],
        cache_ttl=row[6],
        response_format=row[7],
    )


def upsert_cached_response(
    cache_key: str,
    response: LLMResponse,
    expires_at: datetime,
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Store (or replace) the cached response for *cache_key*.

    Args:
        cache_key: Call fingerprint
        response: Uncached response to store
        expires_at: Wall-clock time after which the entry is ignored
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT OR REPLACE INTO llm_cache (cache_key, model, response, token_count, expires_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            cache_key,
            response.model,
            json.dumps(response.to_dict()),
            response.tokens_used.total_tokens,
            expires_at.isoformat(),
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_cached_response(
    cache_key: str,
    db_path: str = DEFAULT_DB_PATH,
    now: Optional[datetime] = None
) -> Optional[CachedResponse]:
    """Return the live cached response for *cache_key*, or None.

    Expired rows are ignored, not deleted; see delete_expired_cache.
    """
    now = now or datetime.now()
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT response, expires_at FROM llm_cache WHERE cache_key = ? AND expires_at > ?",
            (cache_key, now.isoformat()),
        ).fetchone()
    finally:
        conn.close()
    if row is None:
        return None
    remaining = (datetime.fromisoformat(row[1]) - now).total_seconds()
    return CachedResponse(response=LLMResponse.from_dict(json.loads(row[0])), ttl_remaining=remaining)


def delete_expired_cache(db_path: str = DEFAULT_DB_PATH, now: Optional[datetime] = None) -> int:
    """Delete expired cache rows and return how many were removed."""
    now = now or datetime.now()
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("DELETE FROM llm_cache WHERE expires_at <= ?", (now.isoformat(),))
        conn.commit()
        return cursor.rowcount
    finally:
        conn.close()
