"""
FastAPI router module for the routing pipeline.

Key Endpoints:
- POST /routing/evaluate - Dry run: normalize a lead and explain every rule
- POST /routing/execute - Propose and decide for one monday.com item
- POST /routing/preview - Rank candidate agents for a lead
- GET /routing/queue/metrics - External write queue counters
- GET /routing/state - Enabled flag, pinned versions and mode
- POST /routing/enable - Validate the newest configuration and pin it
- POST /routing/disable - Stop pinning; the newest configuration is used
- GET /routing/settings - Current routing mode
- POST /routing/settings - Switch between AUTO and MANUAL_APPROVAL

Response Shapes:
- evaluate: { ok, matched, selectedRule, explains, normalizedValues,
  normalizationErrors, versions, configSource, routingEnabled }
- execute: { ok, proposal, created, mode, pendingApproval, applied,
  alreadyApplied, applyInProgress, assignee, writeback }
- state / enable / disable: { ok, enabled, state }
- preview: { ok, agents, weightsValid, totalWeight }

Routing errors (RoutingError subclasses) propagate to the application-wide
handler in main.py, which renders { ok: false, error, code, details }.
Anything else is logged and returned as HTTP 500.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException

from lead_router.core.dependencies import (
    OrchestratorDep,
    SettingsDep,
    SettingsRepoDep,
    SnapshotRepoDep,
    WriteQueueDep,
)
from lead_router.core.exceptions import RoutingError
from lead_router.models.schemas import (
    EnableRoutingRequest,
    EvaluateRequest,
    ExecuteRequest,
    ModeRequest,
    PreviewRequest,
    QueueMetrics,
    RoutingSettings,
)
from lead_router.services.normalization import map_item_to_raw
from lead_router.services.scoring import score_agents, scoring_config_from_settings, validate_weights


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/evaluate")
async def evaluate_lead(
    orchestrator: OrchestratorDep,
    body: EvaluateRequest = Body(...),
) -> Dict[str, Any]:
    """
    Evaluate the current rule set against one lead without persisting anything.

    The body carries either raw values keyed by internal field id (`lead`) or
    a monday.com item (`item`) that is mapped through the field mapping first.
    """
    try:
        settings = await orchestrator.get_settings()
        context = await orchestrator.load_context(settings)

        if body.item is not None:
            raw = map_item_to_raw(body.item, context.mapping)
        else:
            raw = body.lead or {}

        evaluation = orchestrator.evaluate(raw, context)
        result = evaluation.result

        return {
            "ok": True,
            "matched": result.matched,
            "selectedRule": result.selectedRule.model_dump(mode="json") if result.selectedRule else None,
            "explains": [e.model_dump(mode="json") for e in result.explains],
            "normalizedValues": evaluation.normalization.values,
            "normalizationErrors": [e.model_dump(mode="json") for e in evaluation.normalization.errors],
            "versions": context.versions,
            "configSource": context.source,
            "routingEnabled": settings.isEnabled,
        }

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error evaluating lead")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to evaluate lead: {str(e)}"
        )


@router.post("/execute")
async def execute_routing(
    orchestrator: OrchestratorDep,
    body: ExecuteRequest = Body(...),
) -> Dict[str, Any]:
    """
    Run the full pipeline for one item: normalize, evaluate, propose, decide.

    In AUTO mode the assignment is written back immediately; in manual mode
    the proposal waits for a manager.
    """
    try:
        outcome = await orchestrator.execute(
            item=body.item,
            board_id=body.boardId,
            item_id=body.itemId,
            force_manual=body.forceManual,
        )

        applied = outcome.decision.apply
        return {
            "ok": True,
            "proposal": outcome.proposal.model_dump(mode="json"),
            "created": outcome.created,
            "mode": outcome.mode.value,
            "pendingApproval": outcome.decision.pending_approval,
            "applied": applied is not None,
            "alreadyApplied": bool(applied and applied.already_applied),
            "applyInProgress": bool(applied and applied.in_progress),
            "assignee": applied.assignee if applied else None,
            "writeback": applied.writeback.model_dump(mode="json") if applied and applied.writeback else None,
        }

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error executing routing")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to execute routing: {str(e)}"
        )


@router.post("/preview")
async def preview_scores(
    settings: SettingsDep,
    settings_repo: SettingsRepoDep,
    snapshot_repo: SnapshotRepoDep,
    body: PreviewRequest = Body(...),
) -> Dict[str, Any]:
    """Score and rank candidate agents for a lead using the stored scoring config."""
    try:
        overrides = await settings_repo.get_scoring_config()
        config = scoring_config_from_settings(settings, overrides)
        weights_ok, total_weight = validate_weights(config)
        if not weights_ok:
            logger.warning(f"Scoring weights sum to {total_weight:g}, expected 100")

        snapshots = await snapshot_repo.list_snapshots(body.agentIds)
        scores = score_agents(body.lead, snapshots, config)

        logger.info(f"Scored {len(scores)} agent(s) for preview")
        return {
            "ok": True,
            "agents": [s.model_dump(mode="json") for s in scores],
            "weightsValid": weights_ok,
            "totalWeight": round(total_weight, 2),
        }

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error scoring agents")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to score agents: {str(e)}"
        )


@router.get("/queue/metrics", response_model=QueueMetrics)
async def queue_metrics(queue: WriteQueueDep) -> QueueMetrics:
    return queue.get_metrics()


# =============================================================================
# Routing State
# =============================================================================


def _state_response(settings: RoutingSettings) -> Dict[str, Any]:
    return {
        "ok": True,
        "enabled": settings.isEnabled,
        "state": settings.model_dump(mode="json"),
    }


@router.get("/state")
async def routing_state(orchestrator: OrchestratorDep) -> Dict[str, Any]:
    try:
        return _state_response(await orchestrator.get_settings())

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error reading routing state")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to read routing state: {str(e)}"
        )


@router.post("/enable")
async def enable_routing(
    orchestrator: OrchestratorDep,
    body: Optional[EnableRoutingRequest] = Body(default=None),
) -> Dict[str, Any]:
    """
    Enable routing pinned to the newest schema, mapping and rule set.

    Refused with E3003 when the schema or mapping is missing and with E3004
    (listing every issue) when they fail validation.
    """
    try:
        settings = await orchestrator.enable_routing(enabled_by=body.enabledBy if body else None)
        return _state_response(settings)

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error enabling routing")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to enable routing: {str(e)}"
        )


@router.post("/disable")
async def disable_routing(orchestrator: OrchestratorDep) -> Dict[str, Any]:
    try:
        return _state_response(await orchestrator.disable_routing())

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error disabling routing")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to disable routing: {str(e)}"
        )


@router.get("/settings")
async def get_routing_settings(orchestrator: OrchestratorDep) -> Dict[str, Any]:
    settings = await orchestrator.get_settings()
    return {"ok": True, "mode": settings.mode.value}


@router.post("/settings")
async def set_routing_mode(
    orchestrator: OrchestratorDep,
    body: ModeRequest = Body(...),
) -> Dict[str, Any]:
    """Switch the routing mode; unknown modes are rejected with 422."""
    try:
        settings = await orchestrator.set_mode(body.mode)
        return {"ok": True, "mode": settings.mode.value}

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error setting routing mode")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to set routing mode: {str(e)}"
        )
