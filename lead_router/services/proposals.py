"""
Proposal Orchestrator Service

Drives one lead from raw board values to an applied assignment:

    item -> normalize -> evaluate rules -> propose -> decide -> apply

State Machine:
    PROPOSED -> APPROVED | REJECTED | OVERRIDDEN
    PROPOSED -> APPLIED                 (AUTO mode)
    APPROVED | OVERRIDDEN -> APPLIED    (manager action)
    REJECTED and APPLIED are terminal.

Idempotency:
- propose() keys every decision on board, item and the three configuration
  versions; repeating it returns the stored proposal unchanged
- apply() first inserts the apply guard row under a lock on the proposal
  row; only the caller that inserted it writes to monday.com, every other
  caller gets `already_applied` (with `in_progress` while the write runs)
- manager decisions take the same row lock and are refused once a guard row
  exists, so a rejection can never race an apply

Failure Handling:
- normalization errors on required fields stop the pipeline before rules run
- assignee resolution and write-back failures abort the apply, release the
  unfinished guard so the apply can be retried, and propagate
- the "Pending Approval" annotation in manual mode is best effort
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from lead_router.core.exceptions import (
    ConfigurationInvalidError,
    ConfigurationMissingError,
    ExternalApiError,
    InvalidProposalStateError,
    MissingItemReferenceError,
    NormalizationFailedError,
    ProposalActionMissingError,
    ProposalNotFoundError,
    RoutingError,
    WritebackError,
)
from lead_router.models.enums import (
    EntityType,
    GuardOutcome,
    ProposalStatus,
    RoutingMode,
    RuleActionType,
    WritebackColumnType,
)
from lead_router.models.schemas import (
    BulkApproveItem,
    ConfigIssue,
    EvaluateResult,
    ExternalItem,
    FieldMappingConfig,
    InternalSchema,
    NormalizationResult,
    ProposalPage,
    RoutingProposal,
    RoutingSettings,
    RuleAction,
    RuleSet,
    WriteResult,
)
from lead_router.services.monday_client import MondayClient
from lead_router.services.normalization import (
    map_item_to_raw,
    normalize,
    required_field_errors,
    validate_schema_and_mapping,
    validate_schema_minimums,
)
from lead_router.services.people import AssigneeResolver
from lead_router.services.routing_state import (
    ApplyGuardRepository,
    ProposalRepository,
    RoutingConfigRepository,
    RoutingSettingsRepository,
)
from lead_router.services.rule_engine import evaluate_rule_set, explainability_payload
from lead_router.services.write_queue import ExternalWriteQueue
from lead_router.services.writeback import apply_assignment, set_routing_meta

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_BULK_APPROVE: int = 50

APPROVED_REASON = 'Approved'
AUTO_REASON = 'Auto-routed'
OVERRIDE_REASON = 'Overridden by manager'
PENDING_REASON = 'Awaiting manager approval'

# Where the configuration of a decision came from
LATEST_SOURCE = 'latest'
PINNED_SOURCE = 'pinned'

# Statuses from which an apply may write to monday.com
APPLYABLE_STATUSES = (ProposalStatus.PROPOSED, ProposalStatus.APPROVED, ProposalStatus.OVERRIDDEN)


def build_idempotency_key(
    board_id: str,
    item_id: str,
    schema_version: int,
    mapping_version: int,
    rules_version: int,
) -> str:
    """
    Deterministic key for one routing decision.

    Format: "{boardId}::{itemId}::schema:{Vs}::mapping:{Vm}::rules:{Vr}"
    """
    return f'{board_id}::{item_id}::schema:{schema_version}::mapping:{mapping_version}::rules:{rules_version}'


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RoutingContext:
    """Configuration versions in effect for one decision."""
    schema: InternalSchema
    mapping: FieldMappingConfig
    rules: RuleSet
    source: str = LATEST_SOURCE

    @property
    def versions(self) -> Dict[str, int]:
        return {
            'schemaVersion': self.schema.version,
            'mappingVersion': self.mapping.version,
            'rulesVersion': self.rules.version,
        }


@dataclass
class Evaluation:
    normalization: NormalizationResult
    result: EvaluateResult


@dataclass
class ApplyOutcome:
    proposal: RoutingProposal
    already_applied: bool = False
    in_progress: bool = False
    assignee: Optional[str] = None
    writeback: Optional[WriteResult] = None


@dataclass
class DecideOutcome:
    proposal: RoutingProposal
    pending_approval: bool = False
    apply: Optional[ApplyOutcome] = None
    meta_writeback: Optional[WriteResult] = None


@dataclass
class ExecuteOutcome:
    proposal: RoutingProposal
    created: bool
    evaluation: Evaluation
    decision: DecideOutcome
    mode: RoutingMode


# =============================================================================
# Orchestrator
# =============================================================================


class ProposalOrchestrator:
    """
    Coordinates the routing pipeline and the proposal state machine.

    All collaborators are injected so tests can run against in-memory
    repositories and a queue driven by a fake clock.
    """

    def __init__(
        self,
        proposals: ProposalRepository,
        guards: ApplyGuardRepository,
        config_repo: RoutingConfigRepository,
        settings_repo: RoutingSettingsRepository,
        resolver: AssigneeResolver,
        queue: ExternalWriteQueue,
        client: MondayClient,
        assigned_status_label: str = 'Assigned',
        pending_status_label: str = 'Pending Approval',
    ):
        self._proposals = proposals
        self._guards = guards
        self._config = config_repo
        self._settings = settings_repo
        self._resolver = resolver
        self._queue = queue
        self._client = client
        self.assigned_status_label = assigned_status_label
        self.pending_status_label = pending_status_label

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    async def load_context(self, settings: Optional[RoutingSettings] = None) -> RoutingContext:
        """
        Load the schema, mapping and rule set to route with.

        While routing is enabled with pinned versions those exact versions are
        used (the rule set falls back to the newest when none was pinned);
        otherwise the newest of each. The schema/mapping pair is validated
        before it is returned.

        Raises:
            ConfigurationMissingError: If any of the three is missing.
            ConfigurationInvalidError: If the schema/mapping pair fails validation.
        """
        if settings is None:
            settings = await self._settings.get()

        if settings.pinned:
            schema = await self._config.schema_version(settings.schemaVersion)
            mapping = await self._config.mapping_version(settings.mappingVersion)
            if settings.rulesVersion is not None:
                rules = await self._config.rules_version(settings.rulesVersion)
            else:
                rules = await self._config.latest_rules()
            source = PINNED_SOURCE
        else:
            schema = await self._config.latest_schema()
            mapping = await self._config.latest_mapping()
            rules = await self._config.latest_rules()
            source = LATEST_SOURCE

        missing = [
            name for name, value in (('schema', schema), ('mapping', mapping), ('rules', rules))
            if value is None
        ]
        if missing:
            details: Dict[str, Any] = {'missing': missing}
            if settings.pinned:
                details['requestedVersions'] = {
                    'schemaVersion': settings.schemaVersion,
                    'mappingVersion': settings.mappingVersion,
                    'rulesVersion': settings.rulesVersion,
                }
            raise ConfigurationMissingError(
                f"Missing {source} routing configuration: {', '.join(missing)}",
                details=details,
            )

        self.validate_configuration(schema, mapping)
        return RoutingContext(schema=schema, mapping=mapping, rules=rules, source=source)

    def validate_configuration(self, schema: InternalSchema, mapping: FieldMappingConfig) -> None:
        """
        Raises:
            ConfigurationInvalidError: Listing every schema minimum and
                schema/mapping issue found.
        """
        issues = [ConfigIssue(code='SCHEMA.MINIMUMS', message=p) for p in validate_schema_minimums(schema)]
        issues.extend(validate_schema_and_mapping(schema, mapping))
        if issues:
            logger.warning(f"Routing configuration (schema v{schema.version}, mapping v{mapping.version}) "
                           f"failed validation with {len(issues)} issue(s)")
            raise ConfigurationInvalidError(
                'Routing configuration failed validation',
                issues=[i.model_dump(mode='json', exclude_none=True) for i in issues],
            )

    async def _mapping(self) -> FieldMappingConfig:
        settings = await self._settings.get()
        if settings.pinned:
            mapping = await self._config.mapping_version(settings.mappingVersion)
        else:
            mapping = await self._config.latest_mapping()
        if mapping is None:
            raise ConfigurationMissingError('Missing mapping config', details={'missing': ['mapping']})
        return mapping

    # -------------------------------------------------------------------------
    # Routing State
    # -------------------------------------------------------------------------

    async def get_settings(self) -> RoutingSettings:
        return await self._settings.get()

    async def set_mode(self, mode: RoutingMode) -> RoutingSettings:
        await self._settings.set_mode(mode)
        logger.info(f"Routing mode set to {mode.value}")
        return await self._settings.get()

    async def enable_routing(self, enabled_by: Optional[str] = None) -> RoutingSettings:
        """
        Validate the newest schema and mapping, then enable routing pinned to
        the newest schema, mapping and (when present) rule set versions.

        Raises:
            ConfigurationMissingError: Schema or mapping missing.
            ConfigurationInvalidError: The pair fails validation.
        """
        schema = await self._config.latest_schema()
        mapping = await self._config.latest_mapping()
        rules = await self._config.latest_rules()

        missing = [name for name, value in (('schema', schema), ('mapping', mapping)) if value is None]
        if missing:
            raise ConfigurationMissingError(
                f"Missing routing configuration: {', '.join(missing)}",
                details={'missing': missing},
            )
        self.validate_configuration(schema, mapping)

        await self._settings.enable(
            schema_version=schema.version,
            mapping_version=mapping.version,
            rules_version=rules.version if rules else None,
            enabled_by=enabled_by,
        )
        logger.info(f"Routing enabled (schema v{schema.version}, mapping v{mapping.version}, "
                    f"rules v{rules.version if rules else 'latest'})")
        return await self._settings.get()

    async def disable_routing(self) -> RoutingSettings:
        await self._settings.disable()
        logger.info('Routing disabled')
        return await self._settings.get()

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate(self, raw: Dict[str, Any], context: RoutingContext) -> Evaluation:
        """
        Normalize raw lead values and run the rules.

        Raises:
            NormalizationFailedError: If a required+active field failed, in
                which case no rule is evaluated.
        """
        normalization = normalize(context.schema, EntityType.LEAD, raw)
        blocking = required_field_errors(context.schema, normalization)
        if blocking:
            raise NormalizationFailedError([e.model_dump(mode='json') for e in normalization.errors])

        result = evaluate_rule_set(normalization.values, context.rules)
        return Evaluation(normalization=normalization, result=result)

    # -------------------------------------------------------------------------
    # Propose
    # -------------------------------------------------------------------------

    async def propose(
        self,
        board_id: str,
        item_id: str,
        evaluation: Evaluation,
        context: RoutingContext,
        item_name: Optional[str] = None,
    ) -> Tuple[RoutingProposal, bool]:
        """
        Persist a PROPOSED decision, or return the existing one for the same key.

        Returns:
            (proposal, created)
        """
        key = build_idempotency_key(
            board_id,
            item_id,
            context.schema.version,
            context.mapping.version,
            context.rules.version,
        )

        existing = await self._proposals.get_by_idempotency_key(key)
        if existing is not None:
            logger.debug(f"Proposal {existing.id} already exists for {key}")
            return existing, False

        selected = evaluation.result.selectedRule
        proposal, created = await self._proposals.create_if_absent(
            idempotency_key=key,
            board_id=board_id,
            item_id=item_id,
            item_name=item_name,
            normalized_values=evaluation.normalization.values,
            selected_rule=selected,
            action=selected.action if selected else None,
            explainability=explainability_payload(evaluation.result, context.versions),
        )
        if created:
            logger.info(f"Created proposal {proposal.id} for item {item_id} "
                        f"(rule: {selected.id if selected else 'none'})")
        return proposal, created

    # -------------------------------------------------------------------------
    # Decide
    # -------------------------------------------------------------------------

    async def decide(
        self,
        proposal: RoutingProposal,
        settings: Optional[RoutingSettings] = None,
        force_manual: bool = False,
        mapping: Optional[FieldMappingConfig] = None,
    ) -> DecideOutcome:
        """
        Apply immediately in AUTO mode, otherwise leave the proposal for a manager.

        Manual mode (or `force_manual`, e.g. when the lead's industry changed)
        keeps the proposal PROPOSED and tries to mark the item "Pending
        Approval"; a failure of that write is logged and ignored.
        """
        if settings is None:
            settings = await self._settings.get()

        if proposal.status != ProposalStatus.PROPOSED:
            # Already decided or applied; nothing automatic to do
            return DecideOutcome(proposal=proposal)

        if settings.mode == RoutingMode.MANUAL_APPROVAL or force_manual:
            meta = await self._mark_pending(proposal, mapping)
            return DecideOutcome(proposal=proposal, pending_approval=True, meta_writeback=meta)

        if proposal.action is None:
            logger.info(f"Proposal {proposal.id} matched no rule; nothing to apply")
            return DecideOutcome(proposal=proposal)

        reason = proposal.selectedRule.name if proposal.selectedRule else AUTO_REASON
        outcome = await self.apply(proposal.id, reason=reason)
        return DecideOutcome(proposal=outcome.proposal, apply=outcome)

    async def _mark_pending(
        self,
        proposal: RoutingProposal,
        mapping: Optional[FieldMappingConfig],
    ) -> Optional[WriteResult]:
        try:
            mapping = mapping or await self._mapping()
            reason = proposal.selectedRule.name if proposal.selectedRule else PENDING_REASON
            result = await set_routing_meta(
                self._queue,
                self._client,
                mapping.writebackTargets,
                proposal.itemId,
                status=self.pending_status_label,
                reason=reason,
            )
        except Exception as e:
            logger.warning(f"Could not mark item {proposal.itemId} as pending approval: {e}")
            return None

        if not result.success:
            logger.warning(f"Pending approval write-back failed for item {proposal.itemId}")
        return result

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    async def _require(self, proposal_id: str) -> RoutingProposal:
        proposal = await self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    async def apply(
        self,
        proposal_id: str,
        assignee_override: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> ApplyOutcome:
        """
        Write the proposal's assignment to monday.com exactly once.

        Args:
            proposal_id: Proposal to apply.
            assignee_override: Identifier to use instead of the action value.
            reason: Routing reason text for the write-back.

        Returns:
            ApplyOutcome; `already_applied` is True when another caller holds
            the guard, in which case no write was issued. `in_progress` marks
            a guard whose write has not finished; only its holder moves the
            proposal to APPLIED.

        Raises:
            ProposalNotFoundError: Unknown proposal.
            InvalidProposalStateError: The proposal was rejected, possibly
                while this call was waiting for the guard.
            ProposalActionMissingError: The proposal has nothing to assign.
            AssigneeResolutionError: The assignee could not be resolved.
            WritebackError: The write-back failed after all attempts.
        """
        proposal = await self._require(proposal_id)

        if proposal.status == ProposalStatus.REJECTED:
            raise InvalidProposalStateError(proposal_id, proposal.status.value, ProposalStatus.APPLIED.value)

        assignee = assignee_override or (proposal.action.value if proposal.action else None)
        if not assignee and proposal.status != ProposalStatus.APPLIED:
            raise ProposalActionMissingError(
                f'Proposal {proposal_id} has no action/value',
                details={'proposalId': proposal_id},
            )

        guard = await self._guards.try_begin(proposal_id)
        if guard == GuardOutcome.REJECTED:
            raise InvalidProposalStateError(proposal_id, ProposalStatus.REJECTED.value, ProposalStatus.APPLIED.value)

        if guard == GuardOutcome.IN_PROGRESS:
            # The guard holder marks the proposal APPLIED, or releases the guard on failure
            logger.info(f"Apply of proposal {proposal_id} already in progress; skipping write-back")
            current = await self._require(proposal_id)
            return ApplyOutcome(proposal=current, already_applied=True, in_progress=True)

        if guard == GuardOutcome.ALREADY:
            logger.info(f"Proposal {proposal_id} already applied; skipping write-back")
            applied = await self._proposals.mark_applied(proposal_id)
            return ApplyOutcome(proposal=applied or proposal, already_applied=True)

        try:
            mapping = await self._mapping()
            targets = mapping.writebackTargets
            column_type = targets.assignedAgent.columnType or WritebackColumnType.PEOPLE.value

            if column_type == WritebackColumnType.PEOPLE.value:
                resolved = str(await self._resolver.resolve(assignee))
            else:
                resolved = str(assignee)

            result = await apply_assignment(
                self._queue,
                self._client,
                targets,
                proposal.itemId,
                resolved,
                status=self.assigned_status_label,
                reason=reason or (proposal.selectedRule.name if proposal.selectedRule else APPROVED_REASON),
            )
            if not result.success:
                raise WritebackError(
                    f"Write-back failed for proposal {proposal_id}: "
                    f"{result.error.message if result.error else 'unknown error'}",
                    result=result.model_dump(mode='json'),
                )
        except Exception:
            await self._release_guard(proposal_id)
            raise

        await self._guards.mark_complete(proposal_id)
        applied = await self._proposals.mark_applied(proposal_id)
        logger.info(f"Applied proposal {proposal_id}: item {proposal.itemId} -> {resolved}")
        return ApplyOutcome(proposal=applied or proposal, assignee=resolved, writeback=result)

    async def _release_guard(self, proposal_id: str) -> None:
        try:
            released = await self._guards.release(proposal_id)
        except Exception as e:
            logger.error(f"Failed to release apply guard for proposal {proposal_id}: {e}")
            return
        if released:
            logger.info(f"Released apply guard for proposal {proposal_id} after failure")

    # -------------------------------------------------------------------------
    # Manager Actions
    # -------------------------------------------------------------------------

    async def _transition(
        self,
        proposal: RoutingProposal,
        to_status: ProposalStatus,
        from_statuses: Sequence[ProposalStatus],
        decided_by: Optional[str],
        notes: Optional[str],
        action: Optional[RuleAction] = None,
    ) -> RoutingProposal:
        if proposal.status not in from_statuses:
            raise InvalidProposalStateError(proposal.id, proposal.status.value, to_status.value)

        updated = await self._proposals.transition(
            proposal.id, to_status, from_statuses, decided_by=decided_by, notes=notes, action=action,
        )
        if updated is None:
            current = await self._require(proposal.id)
            if current.status in from_statuses:
                # Status unchanged, so the apply guard row blocked the update
                raise InvalidProposalStateError(
                    proposal.id, current.status.value, to_status.value, apply_started=True,
                )
            raise InvalidProposalStateError(proposal.id, current.status.value, to_status.value)
        return updated

    async def approve(
        self,
        proposal_id: str,
        decided_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ApplyOutcome:
        """
        Approve a PROPOSED decision and apply it.

        An APPROVED or OVERRIDDEN proposal whose earlier apply failed is
        applied again without another transition.
        """
        proposal = await self._require(proposal_id)

        if proposal.status == ProposalStatus.APPLIED:
            return await self.apply(proposal_id)

        if proposal.status == ProposalStatus.PROPOSED:
            proposal = await self._transition(
                proposal, ProposalStatus.APPROVED, (ProposalStatus.PROPOSED,), decided_by, notes,
            )
        elif proposal.status not in (ProposalStatus.APPROVED, ProposalStatus.OVERRIDDEN):
            raise InvalidProposalStateError(proposal_id, proposal.status.value, ProposalStatus.APPROVED.value)

        if proposal.status == ProposalStatus.OVERRIDDEN:
            reason = OVERRIDE_REASON
        else:
            reason = proposal.selectedRule.name if proposal.selectedRule else APPROVED_REASON
        return await self.apply(proposal_id, reason=reason)

    async def reject(
        self,
        proposal_id: str,
        decided_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> RoutingProposal:
        proposal = await self._require(proposal_id)
        updated = await self._transition(
            proposal, ProposalStatus.REJECTED, (ProposalStatus.PROPOSED,), decided_by, notes,
        )
        logger.info(f"Rejected proposal {proposal_id}")
        return updated

    async def override(
        self,
        proposal_id: str,
        assignee_value: str,
        apply_now: bool = True,
        decided_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[RoutingProposal, Optional[ApplyOutcome]]:
        """
        Replace the proposed assignee and optionally apply right away.

        Returns:
            (proposal, apply outcome or None when not applied now)
        """
        proposal = await self._require(proposal_id)
        action = RuleAction(type=RuleActionType.ASSIGN_AGENT_ID, value=assignee_value)
        updated = await self._transition(
            proposal,
            ProposalStatus.OVERRIDDEN,
            (ProposalStatus.PROPOSED, ProposalStatus.OVERRIDDEN),
            decided_by,
            notes,
            action=action,
        )
        logger.info(f"Overrode proposal {proposal_id} with assignee {assignee_value}")

        if not apply_now:
            return updated, None

        outcome = await self.apply(proposal_id, reason=OVERRIDE_REASON)
        return outcome.proposal, outcome

    async def bulk_approve(
        self,
        proposal_ids: Sequence[str],
        decided_by: Optional[str] = None,
    ) -> List[BulkApproveItem]:
        """
        Approve up to MAX_BULK_APPROVE proposals; each one succeeds or fails
        on its own.
        """
        if len(proposal_ids) > MAX_BULK_APPROVE:
            raise RoutingError(f'Max {MAX_BULK_APPROVE} ids', code='E1002', status_code=400)

        results: List[BulkApproveItem] = []
        for proposal_id in proposal_ids:
            try:
                proposal = await self._require(proposal_id)
                if proposal.status not in APPLYABLE_STATUSES:
                    raise InvalidProposalStateError(
                        proposal_id, proposal.status.value, ProposalStatus.APPROVED.value,
                    )
                outcome = await self.approve(proposal_id, decided_by=decided_by)
                results.append(BulkApproveItem(
                    proposalId=proposal_id,
                    ok=True,
                    status=outcome.proposal.status,
                    alreadyApplied=outcome.already_applied,
                ))
            except RoutingError as e:
                results.append(BulkApproveItem(proposalId=proposal_id, ok=False, error=e.message, code=e.code))
            except Exception as e:
                logger.exception(f"Unexpected error approving proposal {proposal_id}")
                results.append(BulkApproveItem(proposalId=proposal_id, ok=False, error=str(e)))

        return results

    async def list_proposals(
        self,
        status: Optional[ProposalStatus] = None,
        board_id: Optional[str] = None,
        item_id: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: int = 25,
    ) -> ProposalPage:
        return await self._proposals.list(
            status=status, board_id=board_id, item_id=item_id, cursor=cursor, limit=limit,
        )

    # -------------------------------------------------------------------------
    # Full Pipeline
    # -------------------------------------------------------------------------

    async def resolve_item(
        self,
        context: RoutingContext,
        item: Optional[ExternalItem] = None,
        board_id: Optional[str] = None,
        item_id: Optional[str] = None,
    ) -> ExternalItem:
        """
        Return a board item with a known board id, fetching it when only ids are given.

        Raises:
            MissingItemReferenceError: When no (boardId, itemId) can be
                established, or monday.com has no such item.
        """
        if item is not None:
            resolved_board = item.boardId or board_id or context.mapping.primaryBoardId
            if not resolved_board or not item.id:
                raise MissingItemReferenceError(
                    'Missing boardId/itemId for item',
                    details={'itemId': item.id, 'boardId': resolved_board},
                )
            return item.model_copy(update={'boardId': resolved_board})

        if not item_id:
            raise MissingItemReferenceError('Missing body.item or (boardId, itemId)')

        try:
            if board_id:
                return await self._client.fetch_item(board_id, item_id)
            return await self._client.fetch_item_by_id(item_id)
        except ExternalApiError as e:
            if e.http_status != 404:
                raise
            raise MissingItemReferenceError(
                f'Item {item_id} not found on monday.com',
                details={'boardId': board_id, 'itemId': item_id},
            ) from e

    async def execute(
        self,
        item: Optional[ExternalItem] = None,
        board_id: Optional[str] = None,
        item_id: Optional[str] = None,
        force_manual: bool = False,
    ) -> ExecuteOutcome:
        """Run the whole pipeline for one board item: propose, then decide."""
        settings = await self._settings.get()
        context = await self.load_context(settings)

        resolved = await self.resolve_item(context, item=item, board_id=board_id, item_id=item_id)
        raw = map_item_to_raw(resolved, context.mapping)
        evaluation = self.evaluate(raw, context)

        proposal, created = await self.propose(
            resolved.boardId, resolved.id, evaluation, context, item_name=resolved.name,
        )
        decision = await self.decide(
            proposal, settings=settings, force_manual=force_manual, mapping=context.mapping,
        )

        return ExecuteOutcome(
            proposal=decision.proposal,
            created=created,
            evaluation=evaluation,
            decision=decision,
            mode=settings.mode,
        )


__all__ = [
    'MAX_BULK_APPROVE',
    'build_idempotency_key',
    'RoutingContext',
    'Evaluation',
    'ApplyOutcome',
    'DecideOutcome',
    'ExecuteOutcome',
    'ProposalOrchestrator',
]
