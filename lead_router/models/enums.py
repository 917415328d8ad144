"""
Enumeration definitions for the Lead Router service.

All enums inherit from both `str` and `Enum` so they serialize as plain strings
in Pydantic models and JSON responses, and compare equal to the raw values
stored in the database.
"""

from enum import Enum


class EntityType(str, Enum):
    """Entities an internal schema field can describe."""
    LEAD = "lead"
    AGENT = "agent"
    DEAL = "deal"


class FieldType(str, Enum):
    """
    Declared value type of an internal schema field.

    - text / number / boolean: primitive coercions
    - status: a label, from a plain string or a {label} object
    - date: normalized to an ISO 8601 string
    - computed: produced internally, never coerced from raw input
    """
    TEXT = "text"
    NUMBER = "number"
    STATUS = "status"
    DATE = "date"
    BOOLEAN = "boolean"
    COMPUTED = "computed"


class Comparator(str, Enum):
    """Operators available to a rule condition."""
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    CONTAINS = "contains"


class RuleActionType(str, Enum):
    """What a matched rule asks the router to do."""
    ASSIGN_AGENT_POOL = "assign_agent_pool"
    ASSIGN_AGENT_ID = "assign_agent_id"


class ProposalStatus(str, Enum):
    """
    Routing proposal lifecycle.

    PROPOSED -> APPROVED | REJECTED | OVERRIDDEN
    PROPOSED -> APPLIED (AUTO mode)
    APPROVED | OVERRIDDEN -> APPLIED

    REJECTED and APPLIED are terminal.
    """
    PROPOSED = "PROPOSED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    OVERRIDDEN = "OVERRIDDEN"
    APPLIED = "APPLIED"


class RoutingMode(str, Enum):
    AUTO = "AUTO"
    MANUAL_APPROVAL = "MANUAL_APPROVAL"


class ScoringComponent(str, Enum):
    """The seven independently weighted agent scoring components."""
    INDUSTRY_PERF = "industryPerf"
    CONVERSION = "conversion"
    AVG_DEAL = "avgDeal"
    HOT_STREAK = "hotStreak"
    RESPONSE_SPEED = "responseSpeed"
    BURNOUT = "burnout"
    AVAILABILITY_CAP = "availabilityCap"


class BurnoutPolarity(str, Enum):
    """
    How the burnout metric contributes to an agent's score.

    - penalty: a higher burnout score lowers the component (1 - burnout)
    - reward: the raw burnout score is passed through unchanged
    """
    PENALTY = "penalty"
    REWARD = "reward"


class RecommendationBand(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class GuardOutcome(str, Enum):
    """Result of attempting to create the apply guard row."""
    BEGIN = "BEGIN"
    ALREADY = "ALREADY"
    IN_PROGRESS = "IN_PROGRESS"
    REJECTED = "REJECTED"


class WritebackColumnType(str, Enum):
    """Column types the assigned agent can be written into."""
    PEOPLE = "people"
    TEXT = "text"
    STATUS = "status"


class WritebackErrorCode(str, Enum):
    """Classification attached to a failed queued write."""
    RATE_LIMITED = "RATE_LIMITED"
    CLIENT_ERROR = "CLIENT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    API_ERROR = "API_ERROR"
    UNKNOWN = "UNKNOWN"
