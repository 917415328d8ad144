"""
SQL statements for routing state persistence.

All statements use asyncpg positional parameters ($1, $2, ...). JSONB columns
are encoded/decoded by the JSON codec registered on each pool connection
(see lead_router.core.database), so parameters and results are plain Python
objects.

Tables:
    internal_schema / field_mapping_config / rule_set
        Versioned configuration documents (JSONB). The newest version wins
        unless routing is enabled with pinned versions.
    routing_settings
        Single row (id = 1) holding the routing mode, scoring config, the
        enabled flag and the pinned configuration versions.
    agent_metrics_snapshot
        Agent performance facts per metrics window.
    routing_proposal
        One row per idempotency key.
    routing_apply
        Apply guard; the primary key on proposal_id makes the first INSERT
        the only one that succeeds.
    monday_user_cache
        monday.com user directory used for assignee resolution.
"""

from typing import List


# =============================================================================
# DDL
# =============================================================================

CREATE_TABLES: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS internal_schema (
        version     INTEGER PRIMARY KEY,
        document    JSONB NOT NULL,
        updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS field_mapping_config (
        version     INTEGER PRIMARY KEY,
        document    JSONB NOT NULL,
        updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rule_set (
        version     INTEGER PRIMARY KEY,
        document    JSONB NOT NULL,
        updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS routing_settings (
        id              INTEGER PRIMARY KEY DEFAULT 1,
        mode            TEXT NOT NULL DEFAULT 'MANUAL_APPROVAL',
        scoring_config  JSONB,
        is_enabled      BOOLEAN NOT NULL DEFAULT FALSE,
        enabled_at      TIMESTAMPTZ,
        enabled_by      TEXT,
        schema_version  INTEGER,
        mapping_version INTEGER,
        rules_version   INTEGER,
        updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_metrics_snapshot (
        agent_user_id           TEXT NOT NULL,
        window_days             INTEGER NOT NULL,
        agent_name              TEXT,
        conversion_rate         DOUBLE PRECISION,
        avg_deal_size           DOUBLE PRECISION,
        industry_perf           JSONB NOT NULL DEFAULT '{}'::jsonb,
        is_hot                  BOOLEAN NOT NULL DEFAULT FALSE,
        hot_deals_count         INTEGER NOT NULL DEFAULT 0,
        median_response_minutes DOUBLE PRECISION,
        burnout_score           DOUBLE PRECISION,
        availability            DOUBLE PRECISION,
        computed_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (agent_user_id, window_days)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS routing_proposal (
        id                  TEXT PRIMARY KEY,
        idempotency_key     TEXT NOT NULL UNIQUE,
        board_id            TEXT NOT NULL,
        item_id             TEXT NOT NULL,
        item_name           TEXT,
        normalized_values   JSONB NOT NULL DEFAULT '{}'::jsonb,
        selected_rule       JSONB,
        action              JSONB,
        explainability      JSONB NOT NULL DEFAULT '{}'::jsonb,
        status              TEXT NOT NULL DEFAULT 'PROPOSED',
        created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        decided_at          TIMESTAMPTZ,
        decided_by          TEXT,
        decision_notes      TEXT,
        applied_at          TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_routing_proposal_created
        ON routing_proposal (created_at DESC, id DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS routing_apply (
        proposal_id     TEXT PRIMARY KEY REFERENCES routing_proposal (id),
        started_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        completed_at    TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS monday_user_cache (
        user_id     TEXT PRIMARY KEY,
        name        TEXT NOT NULL DEFAULT '',
        email       TEXT NOT NULL DEFAULT '',
        updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
]


# =============================================================================
# Configuration
# =============================================================================

LATEST_SCHEMA = "SELECT version, document FROM internal_schema ORDER BY version DESC LIMIT 1"
LATEST_MAPPING = "SELECT version, document FROM field_mapping_config ORDER BY version DESC LIMIT 1"
LATEST_RULES = "SELECT version, document FROM rule_set ORDER BY version DESC LIMIT 1"

SCHEMA_BY_VERSION = "SELECT version, document FROM internal_schema WHERE version = $1"
MAPPING_BY_VERSION = "SELECT version, document FROM field_mapping_config WHERE version = $1"
RULES_BY_VERSION = "SELECT version, document FROM rule_set WHERE version = $1"

GET_ROUTING_SETTINGS = """
    SELECT mode, scoring_config, is_enabled, enabled_at, enabled_by,
           schema_version, mapping_version, rules_version
    FROM routing_settings
    WHERE id = 1
"""

UPSERT_ROUTING_MODE = """
    INSERT INTO routing_settings (id, mode, updated_at)
    VALUES (1, $1, NOW())
    ON CONFLICT (id) DO UPDATE SET mode = EXCLUDED.mode, updated_at = NOW()
"""

# Enabling pins the configuration versions in effect at that moment
ENABLE_ROUTING = """
    INSERT INTO routing_settings (
        id, is_enabled, enabled_at, enabled_by,
        schema_version, mapping_version, rules_version, updated_at
    ) VALUES (1, TRUE, NOW(), $1, $2, $3, $4, NOW())
    ON CONFLICT (id) DO UPDATE SET
        is_enabled = TRUE,
        enabled_at = NOW(),
        enabled_by = EXCLUDED.enabled_by,
        schema_version = EXCLUDED.schema_version,
        mapping_version = EXCLUDED.mapping_version,
        rules_version = EXCLUDED.rules_version,
        updated_at = NOW()
"""

# Disabling keeps the pinned versions for reference
DISABLE_ROUTING = """
    INSERT INTO routing_settings (id, is_enabled, updated_at)
    VALUES (1, FALSE, NOW())
    ON CONFLICT (id) DO UPDATE SET
        is_enabled = FALSE,
        enabled_at = NULL,
        updated_at = NOW()
"""


# =============================================================================
# Agent Snapshots
# =============================================================================

# One snapshot per agent: the preferred window when present, else the shortest
LIST_AGENT_SNAPSHOTS = """
    SELECT DISTINCT ON (agent_user_id)
        agent_user_id, window_days, agent_name, conversion_rate, avg_deal_size,
        industry_perf, is_hot, hot_deals_count, median_response_minutes,
        burnout_score, availability, computed_at
    FROM agent_metrics_snapshot
    WHERE ($2::text[] IS NULL OR agent_user_id = ANY($2::text[]))
    ORDER BY agent_user_id, (window_days = $1) DESC, window_days ASC
"""


# =============================================================================
# Proposals
# =============================================================================

PROPOSAL_COLUMNS = """
    id, idempotency_key, board_id, item_id, item_name, normalized_values,
    selected_rule, action, explainability, status, created_at, decided_at,
    decided_by, decision_notes, applied_at
"""

INSERT_PROPOSAL = f"""
    INSERT INTO routing_proposal (
        id, idempotency_key, board_id, item_id, item_name,
        normalized_values, selected_rule, action, explainability, status, created_at
    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, 'PROPOSED', NOW())
    ON CONFLICT (idempotency_key) DO NOTHING
    RETURNING {PROPOSAL_COLUMNS}
"""

GET_PROPOSAL = f"SELECT {PROPOSAL_COLUMNS} FROM routing_proposal WHERE id = $1"

GET_PROPOSAL_BY_KEY = f"SELECT {PROPOSAL_COLUMNS} FROM routing_proposal WHERE idempotency_key = $1"

# Row lock taken before any status change or guard insert for a proposal
LOCK_PROPOSAL = "SELECT status FROM routing_proposal WHERE id = $1 FOR UPDATE"

# Conditional transition; no row back means not found, wrong current status,
# or an apply already started
TRANSITION_PROPOSAL = f"""
    UPDATE routing_proposal
    SET status = $2,
        decided_at = NOW(),
        decided_by = COALESCE($3, decided_by),
        decision_notes = COALESCE($4, decision_notes),
        action = COALESCE($5, action)
    WHERE id = $1
      AND status = ANY($6::text[])
      AND NOT EXISTS (SELECT 1 FROM routing_apply WHERE proposal_id = $1)
    RETURNING {PROPOSAL_COLUMNS}
"""

MARK_PROPOSAL_APPLIED = f"""
    UPDATE routing_proposal
    SET status = 'APPLIED',
        applied_at = COALESCE(applied_at, NOW())
    WHERE id = $1 AND status <> 'REJECTED'
    RETURNING {PROPOSAL_COLUMNS}
"""

LIST_PROPOSALS = f"""
    SELECT {PROPOSAL_COLUMNS}
    FROM routing_proposal
    WHERE ($1::text IS NULL OR status = $1)
      AND ($2::text IS NULL OR board_id = $2)
      AND ($3::text IS NULL OR item_id = $3)
      AND (
        $4::text IS NULL
        OR (created_at, id) < (SELECT created_at, id FROM routing_proposal WHERE id = $4)
      )
    ORDER BY created_at DESC, id DESC
    LIMIT $5
"""


# =============================================================================
# Apply Guard
# =============================================================================

TRY_BEGIN_APPLY = """
    INSERT INTO routing_apply (proposal_id, started_at)
    VALUES ($1, NOW())
    ON CONFLICT (proposal_id) DO NOTHING
    RETURNING proposal_id
"""

GET_APPLY_GUARD = "SELECT started_at, completed_at FROM routing_apply WHERE proposal_id = $1"

COMPLETE_APPLY = "UPDATE routing_apply SET completed_at = NOW() WHERE proposal_id = $1"

# Only an unfinished guard may be released
RELEASE_APPLY = "DELETE FROM routing_apply WHERE proposal_id = $1 AND completed_at IS NULL"


# =============================================================================
# User Cache
# =============================================================================

LIST_CACHED_USERS = "SELECT user_id, name, email FROM monday_user_cache ORDER BY user_id"

UPSERT_CACHED_USER = """
    INSERT INTO monday_user_cache (user_id, name, email, updated_at)
    VALUES ($1, $2, $3, NOW())
    ON CONFLICT (user_id) DO UPDATE SET
        name = EXCLUDED.name,
        email = EXCLUDED.email,
        updated_at = NOW()
"""
