"""
Package initialization file for lead router models.

Re-exports the Pydantic schemas and enumerations from schemas.py and enums.py
so other modules can import data models without knowing the internal module
structure.

Usage:
    from lead_router.models import (
        ProposalStatus,
        RoutingMode,
        InternalSchema,
        RoutingProposal,
        # ... etc
    )
"""

# =============================================================================
# Enums
# =============================================================================

from lead_router.models.enums import (
    # Schema
    EntityType,
    FieldType,
    # Rules
    Comparator,
    RuleActionType,
    # Proposals and routing
    ProposalStatus,
    RoutingMode,
    GuardOutcome,
    # Scoring
    ScoringComponent,
    BurnoutPolarity,
    RecommendationBand,
    # Write-back
    WritebackColumnType,
    WritebackErrorCode,
)

# =============================================================================
# Schemas
# =============================================================================

from lead_router.models.schemas import (
    # Internal schema and field mapping
    FieldDefinition,
    InternalSchema,
    BoardColumnRef,
    WritebackTargets,
    FieldMappingConfig,
    MappingField,
    ConfigIssue,
    # Rules
    RuleCondition,
    RuleAction,
    RoutingRule,
    RuleSet,
    ConditionExplain,
    RuleExplain,
    SelectedRule,
    EvaluateResult,
    # Normalization
    NormalizationError,
    NormalizationResult,
    # Scoring
    AgentPerformanceSnapshot,
    ScoringConfig,
    AgentScore,
    # Routing state
    RoutingProposal,
    RoutingSettings,
    ProposalPage,
    # monday.com objects
    ExternalColumnValue,
    ExternalItem,
    ExternalUser,
    # Write queue
    WriteError,
    WriteResult,
    QueueMetrics,
    # API request / response
    EvaluateRequest,
    ExecuteRequest,
    PreviewRequest,
    DecisionRequest,
    OverrideRequest,
    ModeRequest,
    EnableRoutingRequest,
    BulkApproveRequest,
    BulkApproveItem,
)

__all__ = [
    # Enums
    'EntityType',
    'FieldType',
    'Comparator',
    'RuleActionType',
    'ProposalStatus',
    'RoutingMode',
    'GuardOutcome',
    'ScoringComponent',
    'BurnoutPolarity',
    'RecommendationBand',
    'WritebackColumnType',
    'WritebackErrorCode',
    # Schemas
    'FieldDefinition',
    'InternalSchema',
    'BoardColumnRef',
    'WritebackTargets',
    'FieldMappingConfig',
    'MappingField',
    'ConfigIssue',
    'RuleCondition',
    'RuleAction',
    'RoutingRule',
    'RuleSet',
    'ConditionExplain',
    'RuleExplain',
    'SelectedRule',
    'EvaluateResult',
    'NormalizationError',
    'NormalizationResult',
    'AgentPerformanceSnapshot',
    'ScoringConfig',
    'AgentScore',
    'RoutingProposal',
    'RoutingSettings',
    'ProposalPage',
    'ExternalColumnValue',
    'ExternalItem',
    'ExternalUser',
    'WriteError',
    'WriteResult',
    'QueueMetrics',
    'EvaluateRequest',
    'ExecuteRequest',
    'PreviewRequest',
    'DecisionRequest',
    'OverrideRequest',
    'ModeRequest',
    'EnableRoutingRequest',
    'BulkApproveRequest',
    'BulkApproveItem',
]
