"""
Lead Router Services Module

Business logic for the routing pipeline. Pure services (normalization,
rule_engine, scoring) take plain models and return plain models; the
stateful ones receive their collaborators through their constructors.

Services:
- normalization: schema-driven coercion of raw board values
- rule_engine: priority-ordered rule evaluation with explainability
- scoring: weighted agent scoring and ranking
- write_queue: rate-limited, retrying, prioritized queue for external writes
- monday_client: monday.com GraphQL client
- writeback: column payloads and ordered write-back of an assignment
- people: assignee identifier resolution with a cached user directory
- routing_state: asyncpg repositories for configuration, proposals and guards
- proposals: the proposal orchestrator and state machine

All services are designed to be consumed by the API layer (lead_router/api/).
"""

# =============================================================================
# Pure Services
# =============================================================================

from lead_router.services.normalization import (
    normalize,
    coerce_value,
    required_field_errors,
    validate_schema_minimums,
    map_item_to_raw,
)

from lead_router.services.rule_engine import (
    compare,
    evaluate_rules,
    evaluate_rule_set,
)

from lead_router.services.scoring import (
    score_agent,
    score_agents,
    validate_weights,
    recommendation_band,
)

# =============================================================================
# External Writes
# =============================================================================

from lead_router.services.write_queue import (
    RetryPolicy,
    ExternalWriteQueue,
)

from lead_router.services.monday_client import MondayClient

from lead_router.services.writeback import (
    apply_assignment,
    set_routing_meta,
)

from lead_router.services.people import AssigneeResolver

# =============================================================================
# Orchestration
# =============================================================================

from lead_router.services.proposals import (
    build_idempotency_key,
    ProposalOrchestrator,
)

__all__ = [
    'normalize',
    'coerce_value',
    'required_field_errors',
    'validate_schema_minimums',
    'map_item_to_raw',
    'compare',
    'evaluate_rules',
    'evaluate_rule_set',
    'score_agent',
    'score_agents',
    'validate_weights',
    'recommendation_band',
    'RetryPolicy',
    'ExternalWriteQueue',
    'MondayClient',
    'apply_assignment',
    'set_routing_meta',
    'AssigneeResolver',
    'build_idempotency_key',
    'ProposalOrchestrator',
]
