"""
SQL Query Module for the Lead Router.

Provides the parameterized asyncpg statements for the routing tables:
configuration documents, routing settings, agent performance snapshots,
routing proposals, the apply guard and the cached user directory.

Follows Repository Pattern for clean separation between business logic and
data access; lead_router.services.routing_state is the only consumer.

Example usage:
    from lead_router.sql import routing_queries as q

    row = await conn.fetchrow(q.GET_PROPOSAL_BY_KEY, idempotency_key)
"""

from lead_router.sql import routing_queries

__all__ = ['routing_queries']
