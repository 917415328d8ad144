"""
Pydantic models for the Lead Router service.

This module provides type-safe validation and serialization for:
- routing configuration documents (internal schema, field mapping, rule set)
- pipeline outputs (normalization, rule explainability, agent scores)
- persisted routing state (proposals, settings)
- monday.com items and users
- API request/response bodies

Field names are camelCase so configuration documents stored as JSONB and the
JSON exchanged with the UI map onto the models without aliases.

All models use Pydantic v2 syntax.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)

from lead_router.models.enums import (
    BurnoutPolarity,
    Comparator,
    EntityType,
    FieldType,
    ProposalStatus,
    RecommendationBand,
    RoutingMode,
    RuleActionType,
    ScoringComponent,
    WritebackErrorCode,
)


# =============================================================================
# Internal Schema
# =============================================================================


class FieldDefinition(BaseModel):
    """
    A single admin-defined field of the internal schema.

    Fields are versioned with their schema and treated as immutable once a
    mapping or rule references them.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "lead_industry",
                "label": "Industry",
                "entity": "lead",
                "type": "status",
                "required": False,
                "active": True,
                "isCore": True,
            }
        }
    )

    id: str = Field(..., min_length=1, description="Stable field identifier")
    label: str = Field(..., description="Human readable label")
    entity: EntityType = Field(..., description="Entity the field belongs to")
    type: FieldType = Field(..., description="Declared value type")
    required: bool = Field(default=False, description="Routing is blocked when missing")
    active: bool = Field(default=True, description="Inactive fields are ignored")
    isCore: Optional[bool] = Field(default=None, description="Shipped with the default schema")
    description: Optional[str] = Field(default=None)
    group: Optional[str] = Field(default=None, description="UI grouping hint")


class InternalSchema(BaseModel):
    """Versioned set of internal field definitions."""

    version: int = Field(..., ge=1)
    updatedAt: Optional[datetime] = None
    fields: List[FieldDefinition] = Field(default_factory=list)

    def active_fields(self, entity: EntityType) -> List[FieldDefinition]:
        return [f for f in self.fields if f.active and f.entity == entity]

    def required_active_fields(self, entity: Optional[EntityType] = None) -> List[FieldDefinition]:
        return [
            f for f in self.fields
            if f.active and f.required and (entity is None or f.entity == entity)
        ]


# =============================================================================
# Field Mapping
# =============================================================================


class BoardColumnRef(BaseModel):
    """Pointer to one column on a monday.com board."""

    boardId: str = Field(..., min_length=1)
    columnId: str = Field(..., min_length=1)
    columnType: Optional[str] = Field(default=None, description="monday.com column type, e.g. people/status/text")

    @field_validator('boardId', 'columnId', mode='before')
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        # monday.com ids arrive as ints from some endpoints
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class WritebackTargets(BaseModel):
    assignedAgent: BoardColumnRef
    routingStatus: Optional[BoardColumnRef] = None
    routingReason: Optional[BoardColumnRef] = None


class MappingField(BaseModel):
    """Per-field switch kept alongside the column references."""

    id: str = Field(..., min_length=1)
    isEnabled: bool = True


class FieldMappingConfig(BaseModel):
    """Versioned mapping from internal field ids to board columns."""

    version: int = Field(..., ge=1)
    updatedAt: Optional[datetime] = None
    primaryBoardId: Optional[str] = None
    mappings: Dict[str, BoardColumnRef] = Field(default_factory=dict)
    fields: List[MappingField] = Field(default_factory=list, description="Optional; empty means every field is enabled")
    writebackTargets: WritebackTargets


class ConfigIssue(BaseModel):
    """One reason a schema/mapping pair cannot be used for routing."""

    code: str
    message: str
    fieldId: Optional[str] = None


# =============================================================================
# Rules
# =============================================================================

# Closed union of condition value kinds. Strict types keep True from matching 1.
ConditionScalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
ConditionValue = Union[ConditionScalar, List[ConditionScalar], None]


class RuleCondition(BaseModel):
    """One `fieldId op value` test inside a rule."""

    fieldId: str = Field(..., min_length=1)
    op: Comparator
    value: ConditionValue = None

    @field_validator('value', mode='before')
    @classmethod
    def _coerce_value(cls, v: Any) -> Any:
        if isinstance(v, (tuple, set, frozenset)):
            return list(v)
        return v


class RuleAction(BaseModel):
    type: RuleActionType
    value: str = Field(..., description="Agent pool id or assignee identifier")


class RoutingRule(BaseModel):
    """
    A prioritized routing rule.

    Lower priority numbers take precedence. All `when` conditions must pass
    (AND semantics) for the rule to match; an empty `when` always matches.
    """
    id: str
    name: str
    description: Optional[str] = None
    priority: int = 0
    enabled: bool = True
    when: List[RuleCondition] = Field(default_factory=list)
    then: RuleAction


class RuleSet(BaseModel):
    version: int = Field(..., ge=1)
    updatedAt: Optional[datetime] = None
    rules: List[RoutingRule] = Field(default_factory=list)


# =============================================================================
# Normalization Output
# =============================================================================


class NormalizationError(BaseModel):
    fieldId: str
    expectedType: FieldType
    reason: str
    rawValue: Any = None


class NormalizationResult(BaseModel):
    """Normalized values keyed by field id plus every coercion failure."""

    values: Dict[str, Any] = Field(default_factory=dict)
    errors: List[NormalizationError] = Field(default_factory=list)


# =============================================================================
# Rule Evaluation Output
# =============================================================================


class ConditionExplain(BaseModel):
    fieldId: str
    op: Comparator
    expected: Any = None
    actual: Any = None
    passed: bool


class RuleExplain(BaseModel):
    ruleId: str
    ruleName: str
    priority: int
    enabled: bool
    conditions: List[ConditionExplain] = Field(default_factory=list)
    matched: bool
    action: Optional[RuleAction] = None


class SelectedRule(BaseModel):
    id: str
    name: str
    priority: int
    action: RuleAction


class EvaluateResult(BaseModel):
    matched: bool
    selectedRule: Optional[SelectedRule] = None
    explains: List[RuleExplain] = Field(default_factory=list)


# =============================================================================
# Agent Scoring
# =============================================================================


class AgentPerformanceSnapshot(BaseModel):
    """
    Per-agent performance facts for one metrics window.

    Produced by the metrics job; every metric is optional because a fresh
    agent may not have enough history yet.
    """

    agentUserId: str
    agentName: Optional[str] = None
    windowDays: int = 30
    conversionRate: Optional[float] = None
    avgDealSize: Optional[float] = None
    industryPerf: Dict[str, float] = Field(default_factory=dict)
    isHot: bool = False
    hotDealsCount: int = 0
    medianResponseMinutes: Optional[float] = None
    burnoutScore: Optional[float] = None
    availability: Optional[float] = None
    computedAt: Optional[datetime] = None

    @field_validator('agentUserId', mode='before')
    @classmethod
    def _coerce_agent_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ScoringConfig(BaseModel):
    """
    Component weights and toggles for agent scoring.

    Weights are percentages (0-100) and are expected to sum to about 100 over
    the enabled components. Components missing from `weights` weigh 0;
    components missing from `enabled` are enabled.
    """

    weights: Dict[ScoringComponent, Annotated[float, Field(ge=0, le=100)]] = Field(default_factory=dict)
    enabled: Dict[ScoringComponent, bool] = Field(default_factory=dict)
    avgDealReference: float = Field(default=20000.0, gt=0)
    responseReferenceMinutes: float = Field(default=240.0, gt=0)
    hotStreakMinDeals: int = Field(default=1, ge=0)
    burnoutPolarity: BurnoutPolarity = BurnoutPolarity.PENALTY
    availabilityCap: float = Field(default=1.0, ge=0, le=1, description="Placeholder capacity signal")

    def weight(self, component: ScoringComponent) -> float:
        return float(self.weights.get(component, 0.0))

    def is_enabled(self, component: ScoringComponent) -> bool:
        return self.enabled.get(component, True)


class AgentScore(BaseModel):
    agentUserId: str
    agentName: Optional[str] = None
    total: float
    breakdown: Dict[ScoringComponent, float] = Field(default_factory=dict, description="Weighted points per component")
    components: Dict[ScoringComponent, float] = Field(default_factory=dict, description="Component scores on the 0-10 scale")
    band: Optional[RecommendationBand] = None


# =============================================================================
# Routing State
# =============================================================================


class RoutingProposal(BaseModel):
    """One routing decision for one external item."""

    id: str
    idempotencyKey: str
    boardId: str
    itemId: str
    itemName: Optional[str] = None
    normalizedValues: Dict[str, Any] = Field(default_factory=dict)
    selectedRule: Optional[SelectedRule] = None
    action: Optional[RuleAction] = None
    explainability: Dict[str, Any] = Field(default_factory=dict)
    status: ProposalStatus = ProposalStatus.PROPOSED
    createdAt: Optional[datetime] = None
    decidedAt: Optional[datetime] = None
    decidedBy: Optional[str] = None
    decisionNotes: Optional[str] = None
    appliedAt: Optional[datetime] = None


class RoutingSettings(BaseModel):
    """
    Routing mode plus the enabled flag and the configuration versions pinned
    when routing was enabled.
    """

    mode: RoutingMode = RoutingMode.MANUAL_APPROVAL
    isEnabled: bool = False
    enabledAt: Optional[datetime] = None
    enabledBy: Optional[str] = None
    schemaVersion: Optional[int] = None
    mappingVersion: Optional[int] = None
    rulesVersion: Optional[int] = None

    @property
    def pinned(self) -> bool:
        return self.isEnabled and self.schemaVersion is not None and self.mappingVersion is not None


class ProposalPage(BaseModel):
    items: List[RoutingProposal] = Field(default_factory=list)
    nextCursor: Optional[str] = None


# =============================================================================
# monday.com Objects
# =============================================================================


class ExternalColumnValue(BaseModel):
    id: str
    text: Optional[str] = None
    value: Optional[Any] = None
    type: Optional[str] = None


class ExternalItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: Optional[str] = None
    boardId: Optional[str] = None
    columnValues: List[ExternalColumnValue] = Field(default_factory=list, alias="column_values")

    @field_validator('id', 'boardId', mode='before')
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ExternalUser(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# =============================================================================
# Write Queue
# =============================================================================


class WriteError(BaseModel):
    message: str
    code: WritebackErrorCode = WritebackErrorCode.UNKNOWN
    retryable: bool = False


class WriteResult(BaseModel):
    """Structured outcome of a queued write, including failures."""

    success: bool
    attempts: int = 0
    durationMs: float = 0.0
    value: Optional[Any] = None
    error: Optional[WriteError] = None


class QueueMetrics(BaseModel):
    totalRequests: int = 0
    successfulRequests: int = 0
    failedRequests: int = 0
    retriedRequests: int = 0
    queueSize: int = 0
    averageWaitTime: float = Field(default=0.0, description="Rolling mean queue wait in milliseconds")
    requestsPerMinute: int = 0


# =============================================================================
# API Request / Response Models
# =============================================================================


class EvaluateRequest(BaseModel):
    """Dry-run body: either raw values keyed by field id, or a monday.com item."""

    lead: Optional[Dict[str, Any]] = None
    item: Optional[ExternalItem] = None


class ExecuteRequest(BaseModel):
    item: Optional[ExternalItem] = None
    boardId: Optional[str] = None
    itemId: Optional[str] = None
    forceManual: bool = False

    @field_validator('boardId', 'itemId', mode='before')
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class PreviewRequest(BaseModel):
    lead: Dict[str, Any] = Field(default_factory=dict)
    agentIds: Optional[List[str]] = None


class DecisionRequest(BaseModel):
    decidedBy: Optional[str] = None
    notes: Optional[str] = None


class OverrideRequest(BaseModel):
    assigneeValue: str = Field(..., min_length=1)
    applyNow: bool = True
    decidedBy: Optional[str] = None
    notes: Optional[str] = None


class ModeRequest(BaseModel):
    mode: RoutingMode


class EnableRoutingRequest(BaseModel):
    enabledBy: Optional[str] = None


class BulkApproveRequest(BaseModel):
    proposalIds: List[str] = Field(..., min_length=1, max_length=50)
    decidedBy: Optional[str] = None


class BulkApproveItem(BaseModel):
    proposalId: str
    ok: bool
    status: Optional[ProposalStatus] = None
    alreadyApplied: bool = False
    error: Optional[str] = None
    code: Optional[str] = None
