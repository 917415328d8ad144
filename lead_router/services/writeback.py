"""
Write-back Service

Pushes a routing decision into monday.com through the External Write Queue,
using the write-back targets configured in the field mapping.

The assigned agent column can be:
- people: {"personsAndTeams": [{"id": <int>, "kind": "person"}]}
- text:   {"text": "<value>"}
- status: {"label": "<value>"}

The optional routing status column always receives {"label"} and the
optional routing reason column always receives {"text"}.

Each column write is one queued task keyed by item, column and a digest of the
value, so a repeated write of the same value while the first is still pending
is deduplicated by the queue. The first failed column write stops the
write-back and its WriteResult is returned.
"""

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from lead_router.core.exceptions import WritebackConfigurationError
from lead_router.models.enums import WritebackColumnType
from lead_router.models.schemas import BoardColumnRef, WriteResult, WritebackTargets
from lead_router.services.monday_client import MondayClient
from lead_router.services.write_queue import ExternalWriteQueue

logger = logging.getLogger(__name__)


# Assignment writes jump ahead of status-only annotations
ASSIGNMENT_PRIORITY: int = 10
META_PRIORITY: int = 1


def _dedupe_key(item_id: str, column_id: str, value: Dict[str, Any]) -> str:
    digest = hashlib.sha1(json.dumps(value, sort_keys=True).encode('utf-8')).hexdigest()[:12]
    return f'{item_id}:{column_id}:{digest}'


def assigned_agent_value(column_type: Optional[str], assignee_value: str) -> Dict[str, Any]:
    """
    Build the column payload for the assigned agent.

    Raises:
        WritebackConfigurationError: For an unsupported column type, or a
            people column whose value is not a numeric user id.
    """
    column_type = column_type or WritebackColumnType.PEOPLE.value

    if column_type == WritebackColumnType.PEOPLE.value:
        try:
            person_id = int(str(assignee_value).strip())
        except ValueError as exc:
            raise WritebackConfigurationError(
                f"People column requires a numeric user id, got '{assignee_value}'"
            ) from exc
        return {'personsAndTeams': [{'id': person_id, 'kind': 'person'}]}

    if column_type == WritebackColumnType.TEXT.value:
        return {'text': str(assignee_value)}

    if column_type == WritebackColumnType.STATUS.value:
        return {'label': str(assignee_value)}

    raise WritebackConfigurationError(f'Unsupported assignedAgent columnType: {column_type}')


def _meta_writes(
    targets: WritebackTargets,
    status: Optional[str],
    reason: Optional[str],
) -> List[Tuple[BoardColumnRef, Dict[str, Any]]]:
    writes: List[Tuple[BoardColumnRef, Dict[str, Any]]] = []
    if targets.routingStatus is not None and status:
        writes.append((targets.routingStatus, {'label': str(status)}))
    if targets.routingReason is not None and reason:
        writes.append((targets.routingReason, {'text': str(reason)}))
    return writes


async def _run_writes(
    queue: ExternalWriteQueue,
    client: MondayClient,
    item_id: str,
    writes: List[Tuple[BoardColumnRef, Dict[str, Any]]],
    priority: int,
) -> WriteResult:
    attempts = 0
    duration_ms = 0.0

    for column, value in writes:
        async def task(column: BoardColumnRef = column, value: Dict[str, Any] = value) -> Any:
            return await client.change_column_value(column.boardId, item_id, column.columnId, value)

        result = await queue.submit(task, priority=priority, dedupe_key=_dedupe_key(item_id, column.columnId, value))
        attempts += result.attempts
        duration_ms += result.durationMs

        if not result.success:
            logger.warning(f"Write-back of column {column.columnId} on item {item_id} failed: "
                           f"{result.error.message if result.error else 'unknown error'}")
            return WriteResult(
                success=False,
                attempts=attempts,
                durationMs=round(duration_ms, 2),
                error=result.error,
            )

    return WriteResult(success=True, attempts=attempts, durationMs=round(duration_ms, 2))


async def apply_assignment(
    queue: ExternalWriteQueue,
    client: MondayClient,
    targets: WritebackTargets,
    item_id: str,
    assignee_value: str,
    status: Optional[str] = None,
    reason: Optional[str] = None,
) -> WriteResult:
    """
    Write the assignee, then the optional routing status and reason.

    Args:
        queue: The process write queue.
        client: monday.com client used by the queued tasks.
        targets: Write-back target columns from the field mapping.
        item_id: The monday.com item being routed.
        assignee_value: Resolved person id (people column) or label/text.
        status: Routing status label, written when a status column is configured.
        reason: Routing reason text, written when a reason column is configured.

    Returns:
        WriteResult for the whole write-back.

    Raises:
        WritebackConfigurationError: When the assigned agent column cannot
            hold the value.
    """
    assigned = targets.assignedAgent
    writes = [(assigned, assigned_agent_value(assigned.columnType, assignee_value))]
    writes.extend(_meta_writes(targets, status, reason))

    result = await _run_writes(queue, client, item_id, writes, ASSIGNMENT_PRIORITY)
    if result.success:
        logger.info(f"Assigned item {item_id} to {assignee_value} ({result.attempts} attempt(s))")
    return result


async def set_routing_meta(
    queue: ExternalWriteQueue,
    client: MondayClient,
    targets: WritebackTargets,
    item_id: str,
    status: Optional[str] = None,
    reason: Optional[str] = None,
) -> WriteResult:
    """Write only the routing status/reason columns, leaving the assignee untouched."""
    writes = _meta_writes(targets, status, reason)
    if not writes:
        return WriteResult(success=True, attempts=0, durationMs=0.0)
    return await _run_writes(queue, client, item_id, writes, META_PRIORITY)


__all__ = [
    'ASSIGNMENT_PRIORITY',
    'META_PRIORITY',
    'assigned_agent_value',
    'apply_assignment',
    'set_routing_meta',
]
