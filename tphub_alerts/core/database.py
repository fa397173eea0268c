"""
Async PostgreSQL connection pool module for Supabase database connectivity.

This module provides an async PostgreSQL connection pool using asyncpg. All
reads performed by the alert pipeline (anomaly RPCs, staff profiles, alert
preferences) flow through this module, providing a single point of
configuration and management.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Initialize the connection pool
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown
- execute_query(): Convenience helper for executing raw SQL queries
- record_to_dict(): Convert asyncpg records into JSON-ready dicts

Connection Pool Configuration:
- min_size: 1 (the service handles a handful of cron/debug calls a day)
- max_size: 10 (enough for the concurrent anomaly fetches of one run)
- command_timeout: 60 seconds (query timeout)

Usage:
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT * FROM get_daily_order_anomalies(p_threshold => $1)", -20)

    # Or use the convenience helper
    rows = await execute_query("SELECT id FROM profiles WHERE role = ANY($1::text[])", roles)
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

import asyncpg
from asyncpg import Pool

from tphub_alerts.core.config import get_settings


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called
_pool: Optional[Pool] = None


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    If the pool is already initialized, the existing pool is returned
    without creating a new one.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        RuntimeError: If DATABASE_URL is not configured.
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError('DATABASE_URL is not configured')

        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=1,
            max_size=10,
            command_timeout=60,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing if needed.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        RuntimeError: If DATABASE_URL is not configured.
        asyncpg.PostgresError: If connection to the database fails during lazy init.

    Note:
        The returned pool should not be closed manually. Use close_db() at
        application shutdown instead.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """
    Close the database connection pool gracefully.

    Idempotent: calling it when the pool is not initialized has no effect.
    Subsequent calls to get_db_pool() create a new pool.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None


# =============================================================================
# Query Execution Helpers
# =============================================================================

async def execute_query(query: str, *args: Any) -> List[asyncpg.Record]:
    """
    Execute a single query and return results.

    The function handles pool acquisition, query execution, and connection
    release. Each call acquires its own connection, so several calls can
    run concurrently under asyncio.gather().

    Args:
        query: SQL query string with optional $1, $2, etc. parameter placeholders.
        *args: Query parameters corresponding to placeholders in the query.

    Returns:
        List[asyncpg.Record]: Records returned by the query.

    Raises:
        asyncpg.PostgresError: If the query execution fails.
        asyncpg.UndefinedFunctionError: If a referenced RPC does not exist.
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        return await conn.fetch(query, *args)


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    return value


def record_to_dict(record: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Convert an asyncpg record (or any mapping) into a JSON-ready dict.

    Decimal becomes float, UUID becomes str, dates become ISO strings, and
    arrays are converted element by element. Column order is preserved.
    """
    return {key: _to_json_value(value) for key, value in dict(record).items()}
