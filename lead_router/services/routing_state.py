"""
Routing State Repositories

asyncpg-backed persistence for everything the routing pipeline reads and
writes. Each repository takes an optional pool; when none is given the
shared pool from lead_router.core.database is used.

Repositories:
- RoutingConfigRepository: internal schema, field mapping and rule set,
  newest or by version
- RoutingSettingsRepository: routing mode, scoring configuration, the
  enabled flag and pinned versions
- AgentSnapshotRepository: agent performance snapshots
- ProposalRepository: idempotent proposal creation, transitions, listing
- ApplyGuardRepository: the exactly-once apply guard
- UserCacheRepository: cached monday.com user directory
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from asyncpg import Pool

from lead_router.core.database import get_db_pool, rows_affected
from lead_router.models.enums import GuardOutcome, ProposalStatus, RoutingMode
from lead_router.models.schemas import (
    AgentPerformanceSnapshot,
    ExternalUser,
    FieldMappingConfig,
    InternalSchema,
    ProposalPage,
    RoutingProposal,
    RoutingSettings,
    RuleAction,
    RuleSet,
    SelectedRule,
)
from lead_router.sql import routing_queries as q

logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE: int = 25
MAX_PAGE_SIZE: int = 100
DEFAULT_SNAPSHOT_WINDOW_DAYS: int = 30


class _PoolRepository:
    def __init__(self, pool: Optional[Pool] = None):
        self._pool = pool

    async def _get_pool(self) -> Pool:
        if self._pool is not None:
            return self._pool
        return await get_db_pool()


# =============================================================================
# Record Conversion
# =============================================================================


def _document(record: Mapping[str, Any]) -> Dict[str, Any]:
    document = dict(record['document'] or {})
    # The row's version column is authoritative
    document['version'] = record['version']
    return document


def record_to_proposal(record: Mapping[str, Any]) -> RoutingProposal:
    selected = record['selected_rule']
    action = record['action']
    return RoutingProposal(
        id=str(record['id']),
        idempotencyKey=record['idempotency_key'],
        boardId=str(record['board_id']),
        itemId=str(record['item_id']),
        itemName=record['item_name'],
        normalizedValues=record['normalized_values'] or {},
        selectedRule=SelectedRule.model_validate(selected) if selected else None,
        action=RuleAction.model_validate(action) if action else None,
        explainability=record['explainability'] or {},
        status=ProposalStatus(record['status']),
        createdAt=record['created_at'],
        decidedAt=record['decided_at'],
        decidedBy=record['decided_by'],
        decisionNotes=record['decision_notes'],
        appliedAt=record['applied_at'],
    )


def record_to_snapshot(record: Mapping[str, Any]) -> AgentPerformanceSnapshot:
    return AgentPerformanceSnapshot(
        agentUserId=str(record['agent_user_id']),
        agentName=record['agent_name'],
        windowDays=record['window_days'],
        conversionRate=record['conversion_rate'],
        avgDealSize=record['avg_deal_size'],
        industryPerf=record['industry_perf'] or {},
        isHot=bool(record['is_hot']),
        hotDealsCount=record['hot_deals_count'] or 0,
        medianResponseMinutes=record['median_response_minutes'],
        burnoutScore=record['burnout_score'],
        availability=record['availability'],
        computedAt=record['computed_at'],
    )


# =============================================================================
# Configuration
# =============================================================================


class RoutingConfigRepository(_PoolRepository):
    """Reads routing configuration documents, newest or by version."""

    async def latest_schema(self) -> Optional[InternalSchema]:
        row = await self._fetch_document(q.LATEST_SCHEMA)
        return InternalSchema.model_validate(_document(row)) if row else None

    async def latest_mapping(self) -> Optional[FieldMappingConfig]:
        row = await self._fetch_document(q.LATEST_MAPPING)
        return FieldMappingConfig.model_validate(_document(row)) if row else None

    async def latest_rules(self) -> Optional[RuleSet]:
        row = await self._fetch_document(q.LATEST_RULES)
        return RuleSet.model_validate(_document(row)) if row else None

    async def schema_version(self, version: int) -> Optional[InternalSchema]:
        row = await self._fetch_document(q.SCHEMA_BY_VERSION, version)
        return InternalSchema.model_validate(_document(row)) if row else None

    async def mapping_version(self, version: int) -> Optional[FieldMappingConfig]:
        row = await self._fetch_document(q.MAPPING_BY_VERSION, version)
        return FieldMappingConfig.model_validate(_document(row)) if row else None

    async def rules_version(self, version: int) -> Optional[RuleSet]:
        row = await self._fetch_document(q.RULES_BY_VERSION, version)
        return RuleSet.model_validate(_document(row)) if row else None

    async def _fetch_document(self, query: str, *args: Any) -> Optional[Mapping[str, Any]]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchrow(query, *args)


class RoutingSettingsRepository(_PoolRepository):

    async def get(self) -> RoutingSettings:
        row = await self._fetch()
        if row is None:
            return RoutingSettings()
        return RoutingSettings(
            mode=RoutingMode(row['mode']),
            isEnabled=bool(row['is_enabled']),
            enabledAt=row['enabled_at'],
            enabledBy=row['enabled_by'],
            schemaVersion=row['schema_version'],
            mappingVersion=row['mapping_version'],
            rulesVersion=row['rules_version'],
        )

    async def get_scoring_config(self) -> Dict[str, Any]:
        row = await self._fetch()
        if row is None or not row['scoring_config']:
            return {}
        return dict(row['scoring_config'])

    async def set_mode(self, mode: RoutingMode) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(q.UPSERT_ROUTING_MODE, mode.value)

    async def enable(
        self,
        schema_version: int,
        mapping_version: int,
        rules_version: Optional[int],
        enabled_by: Optional[str] = None,
    ) -> None:
        """Turn routing on and pin the given configuration versions."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(q.ENABLE_ROUTING, enabled_by, schema_version, mapping_version, rules_version)

    async def disable(self) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(q.DISABLE_ROUTING)

    async def _fetch(self) -> Optional[Mapping[str, Any]]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchrow(q.GET_ROUTING_SETTINGS)


class AgentSnapshotRepository(_PoolRepository):

    async def list_snapshots(
        self,
        agent_ids: Optional[Sequence[str]] = None,
        window_days: int = DEFAULT_SNAPSHOT_WINDOW_DAYS,
    ) -> List[AgentPerformanceSnapshot]:
        """
        One snapshot per agent, preferring `window_days` and otherwise the
        shortest available window.
        """
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                q.LIST_AGENT_SNAPSHOTS,
                window_days,
                list(agent_ids) if agent_ids else None,
            )
        return [record_to_snapshot(r) for r in rows]


# =============================================================================
# Proposals
# =============================================================================


class ProposalRepository(_PoolRepository):
    """Persistence for routing proposals."""

    async def get(self, proposal_id: str) -> Optional[RoutingProposal]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(q.GET_PROPOSAL, proposal_id)
        return record_to_proposal(row) if row else None

    async def get_by_idempotency_key(self, key: str) -> Optional[RoutingProposal]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(q.GET_PROPOSAL_BY_KEY, key)
        return record_to_proposal(row) if row else None

    async def create_if_absent(
        self,
        idempotency_key: str,
        board_id: str,
        item_id: str,
        item_name: Optional[str],
        normalized_values: Dict[str, Any],
        selected_rule: Optional[SelectedRule],
        action: Optional[RuleAction],
        explainability: Dict[str, Any],
    ) -> Tuple[RoutingProposal, bool]:
        """
        Insert a PROPOSED row unless one already exists for the key.

        An existing row is returned untouched, whatever its status.

        Returns:
            (proposal, created)
        """
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                q.INSERT_PROPOSAL,
                str(uuid4()),
                idempotency_key,
                board_id,
                item_id,
                item_name,
                normalized_values,
                selected_rule.model_dump(mode='json') if selected_rule else None,
                action.model_dump(mode='json') if action else None,
                explainability,
            )
            if row is not None:
                return record_to_proposal(row), True

            existing = await conn.fetchrow(q.GET_PROPOSAL_BY_KEY, idempotency_key)

        if existing is None:
            # Conflict on the key but the row is gone; only possible if deleted concurrently
            raise RuntimeError(f'Proposal for key {idempotency_key} vanished during create')
        return record_to_proposal(existing), False

    async def transition(
        self,
        proposal_id: str,
        to_status: ProposalStatus,
        from_statuses: Iterable[ProposalStatus],
        decided_by: Optional[str] = None,
        notes: Optional[str] = None,
        action: Optional[RuleAction] = None,
    ) -> Optional[RoutingProposal]:
        """
        Move a proposal to `to_status` only if it is currently in one of
        `from_statuses`.

        Runs under the same row lock as ApplyGuardRepository.try_begin, so a
        decision can never interleave with the start of an apply.

        Returns:
            The updated proposal, or None when the proposal does not exist, is
            in another status, or already has an apply guard row.
        """
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(q.LOCK_PROPOSAL, proposal_id)
                row = await conn.fetchrow(
                    q.TRANSITION_PROPOSAL,
                    proposal_id,
                    to_status.value,
                    decided_by,
                    notes,
                    action.model_dump(mode='json') if action else None,
                    [s.value for s in from_statuses],
                )
        return record_to_proposal(row) if row else None

    async def mark_applied(self, proposal_id: str) -> Optional[RoutingProposal]:
        """Set APPLIED; returns None for a missing or REJECTED proposal."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(q.MARK_PROPOSAL_APPLIED, proposal_id)
        return record_to_proposal(row) if row else None

    async def list(
        self,
        status: Optional[ProposalStatus] = None,
        board_id: Optional[str] = None,
        item_id: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ProposalPage:
        """Newest first; `cursor` is the id of the last proposal of the previous page."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                q.LIST_PROPOSALS,
                status.value if status else None,
                board_id,
                item_id,
                cursor,
                limit + 1,
            )
        items = [record_to_proposal(r) for r in rows[:limit]]
        next_cursor = items[-1].id if len(rows) > limit and items else None
        return ProposalPage(items=items, nextCursor=next_cursor)


# =============================================================================
# Apply Guard
# =============================================================================


class ApplyGuardRepository(_PoolRepository):
    """
    Exactly-once apply guard.

    The guard row is created by a single INSERT ... ON CONFLICT DO NOTHING,
    so exactly one caller per proposal ever sees BEGIN, across requests,
    processes and server instances sharing the database.
    """

    async def try_begin(self, proposal_id: str) -> GuardOutcome:
        """
        Attempt to create the guard row for a proposal.

        The proposal row is locked first, the same lock taken by every
        manager transition, so a rejection either lands before the guard
        (REJECTED) or is refused because the guard exists.

        Returns:
            BEGIN: this caller created the row and must do the write.
            ALREADY: a completed apply exists; no write is needed.
            IN_PROGRESS: another caller holds an unfinished guard.
            REJECTED: the proposal was rejected; nothing was inserted.
        """
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                status = await conn.fetchval(q.LOCK_PROPOSAL, proposal_id)
                if status == ProposalStatus.REJECTED.value:
                    return GuardOutcome.REJECTED

                inserted = await conn.fetchval(q.TRY_BEGIN_APPLY, proposal_id)
                if inserted is not None:
                    return GuardOutcome.BEGIN

                row = await conn.fetchrow(q.GET_APPLY_GUARD, proposal_id)

        if row is not None and row['completed_at'] is not None:
            return GuardOutcome.ALREADY
        return GuardOutcome.IN_PROGRESS

    async def mark_complete(self, proposal_id: str) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(q.COMPLETE_APPLY, proposal_id)

    async def release(self, proposal_id: str) -> bool:
        """Delete an unfinished guard so a failed apply can be retried."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            status = await conn.execute(q.RELEASE_APPLY, proposal_id)
        return rows_affected(status) > 0


# =============================================================================
# User Cache
# =============================================================================


class UserCacheRepository(_PoolRepository):

    async def list_users(self) -> List[ExternalUser]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(q.LIST_CACHED_USERS)
        return [ExternalUser(id=r['user_id'], name=r['name'], email=r['email']) for r in rows]

    async def upsert_many(self, users: Sequence[ExternalUser]) -> int:
        if not users:
            return 0
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.executemany(
                q.UPSERT_CACHED_USER,
                [(u.id, u.name or '', u.email or '') for u in users],
            )
        logger.info(f"Cached {len(users)} monday.com user(s)")
        return len(users)


async def ensure_tables(pool: Optional[Pool] = None) -> None:
    """Create routing tables when they do not exist yet."""
    pool = pool or await get_db_pool()
    async with pool.acquire() as conn:
        for statement in q.CREATE_TABLES:
            await conn.execute(statement)


__all__ = [
    'RoutingConfigRepository',
    'RoutingSettingsRepository',
    'AgentSnapshotRepository',
    'ProposalRepository',
    'ApplyGuardRepository',
    'UserCacheRepository',
    'record_to_proposal',
    'record_to_snapshot',
    'ensure_tables',
]
