"""
Async PostgreSQL connection pool module.

This module owns the single asyncpg pool used by the routing repositories.
The pool is created once in the FastAPI lifespan and shared by every request.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Initialize the connection pool at application startup
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown
- rows_affected(): row count from an asyncpg command status

JSONB columns (normalized values, explainability, configuration documents)
are decoded to Python objects by a per-connection type codec registered in
_init_connection, so repositories read and write plain dicts.

Usage:
    # At application startup (in FastAPI lifespan)
    await init_db()

    pool = await get_db_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM routing_proposal WHERE id = $1", proposal_id)

    # At application shutdown
    await close_db()
"""

import json
from typing import Optional

import asyncpg
from asyncpg import Pool

from lead_router.core.config import get_settings


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called
_pool: Optional[Pool] = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Register JSON codecs so jsonb/json columns round-trip as Python objects."""
    for type_name in ('jsonb', 'json'):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema='pg_catalog',
        )


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    The pool is configured with min_size=2, max_size=10 and a 60 second
    command timeout. Calling this twice returns the existing pool.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60,
            init=_init_connection,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing if needed.

    Returns:
        Pool: The asyncpg connection pool instance.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """
    Close the database connection pool gracefully.

    Idempotent; after closing, get_db_pool() creates a fresh pool.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None


# =============================================================================
# Command Status Helpers
# =============================================================================

def rows_affected(status: str) -> int:
    """Parse the trailing row count out of an asyncpg command status."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0
