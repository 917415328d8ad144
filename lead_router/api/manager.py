"""
FastAPI router module for manager review of routing proposals.

Key Endpoints:
- GET /manager/proposals - List proposals (newest first, cursor paginated)
- POST /manager/proposals/{id}/approve - Approve and apply
- POST /manager/proposals/{id}/reject - Reject (terminal, no write-back)
- POST /manager/proposals/{id}/override - Replace the assignee, optionally apply
- POST /manager/proposals/bulk-approve - Approve up to 50 proposals

Core Rule:
- An assignment reaches monday.com at most once per proposal, however many
  times approve is clicked; repeats answer with alreadyApplied=true.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query

from lead_router.core.dependencies import OrchestratorDep
from lead_router.core.exceptions import RoutingError
from lead_router.models.enums import ProposalStatus
from lead_router.models.schemas import (
    BulkApproveRequest,
    DecisionRequest,
    OverrideRequest,
)
from lead_router.services.proposals import ApplyOutcome


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT: int = 25

MAX_LIST_LIMIT: int = 100

# UI alias for proposals awaiting a decision
PENDING_ALIAS = "PENDING"

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================


def _parse_status(value: Optional[str]) -> Optional[ProposalStatus]:
    if not value:
        return None
    normalized = value.strip().upper()
    if normalized == PENDING_ALIAS:
        return ProposalStatus.PROPOSED
    try:
        return ProposalStatus(normalized)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status filter: {value}"
        )


def _apply_response(outcome: ApplyOutcome) -> Dict[str, Any]:
    return {
        "ok": True,
        "proposal": outcome.proposal.model_dump(mode="json"),
        "alreadyApplied": outcome.already_applied,
        "applyInProgress": outcome.in_progress,
        "assignee": outcome.assignee,
        "writeback": outcome.writeback.model_dump(mode="json") if outcome.writeback else None,
    }


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/proposals")
async def list_proposals(
    orchestrator: OrchestratorDep,
    status: Optional[str] = Query(default=None, description="Proposal status, or PENDING"),
    boardId: Optional[str] = Query(default=None),
    itemId: Optional[str] = Query(default=None),
    cursor: Optional[str] = Query(default=None, description="Id of the last proposal of the previous page"),
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
) -> Dict[str, Any]:
    """List proposals, newest first."""
    parsed = _parse_status(status)
    try:
        page = await orchestrator.list_proposals(
            status=parsed,
            board_id=boardId,
            item_id=itemId,
            cursor=cursor,
            limit=limit,
        )
        return {
            "ok": True,
            "items": [p.model_dump(mode="json") for p in page.items],
            "nextCursor": page.nextCursor,
        }

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error listing proposals")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list proposals: {str(e)}"
        )


@router.post("/proposals/bulk-approve")
async def bulk_approve(
    orchestrator: OrchestratorDep,
    body: BulkApproveRequest = Body(...),
) -> Dict[str, Any]:
    """
    Approve several proposals; each id succeeds or fails independently.

    Returns:
        { ok, results: [{proposalId, ok, status, alreadyApplied, error, code}],
          approved, failed }
    """
    try:
        results = await orchestrator.bulk_approve(body.proposalIds, decided_by=body.decidedBy)
        approved = sum(1 for r in results if r.ok)
        logger.info(f"Bulk approve: {approved}/{len(results)} succeeded")
        return {
            "ok": True,
            "results": [r.model_dump(mode="json") for r in results],
            "approved": approved,
            "failed": len(results) - approved,
        }

    except RoutingError:
        raise
    except Exception as e:
        logger.exception("Error in bulk approve")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to bulk approve: {str(e)}"
        )


@router.post("/proposals/{proposal_id}/approve")
async def approve_proposal(
    proposal_id: str,
    orchestrator: OrchestratorDep,
    body: Optional[DecisionRequest] = Body(default=None),
) -> Dict[str, Any]:
    body = body or DecisionRequest()
    try:
        outcome = await orchestrator.approve(proposal_id, decided_by=body.decidedBy, notes=body.notes)
        return _apply_response(outcome)

    except RoutingError:
        raise
    except Exception as e:
        logger.exception(f"Error approving proposal {proposal_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to approve proposal: {str(e)}"
        )


@router.post("/proposals/{proposal_id}/reject")
async def reject_proposal(
    proposal_id: str,
    orchestrator: OrchestratorDep,
    body: Optional[DecisionRequest] = Body(default=None),
) -> Dict[str, Any]:
    body = body or DecisionRequest()
    try:
        proposal = await orchestrator.reject(proposal_id, decided_by=body.decidedBy, notes=body.notes)
        return {"ok": True, "proposal": proposal.model_dump(mode="json")}

    except RoutingError:
        raise
    except Exception as e:
        logger.exception(f"Error rejecting proposal {proposal_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to reject proposal: {str(e)}"
        )


@router.post("/proposals/{proposal_id}/override")
async def override_proposal(
    proposal_id: str,
    orchestrator: OrchestratorDep,
    body: OverrideRequest = Body(...),
) -> Dict[str, Any]:
    """Replace the proposed assignee; applies immediately unless applyNow is false."""
    try:
        proposal, outcome = await orchestrator.override(
            proposal_id,
            body.assigneeValue,
            apply_now=body.applyNow,
            decided_by=body.decidedBy,
            notes=body.notes,
        )
        if outcome is not None:
            return _apply_response(outcome)
        return {
            "ok": True,
            "proposal": proposal.model_dump(mode="json"),
            "alreadyApplied": False,
            "assignee": None,
            "writeback": None,
        }

    except RoutingError:
        raise
    except Exception as e:
        logger.exception(f"Error overriding proposal {proposal_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to override proposal: {str(e)}"
        )
