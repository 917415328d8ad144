"""
Rule Evaluation Engine Service

Evaluates normalized lead values against the prioritized routing rules and
produces a full explainability trace.

Evaluation Semantics:
- Only enabled rules are evaluated, in ascending priority order (stable)
- A rule matches when every condition passes (AND); no conditions always matches
- Every enabled rule is evaluated even after a match, so the trace shows the
  per-condition outcome for all of them
- The first matching rule is selected; no match is a valid result

Comparators:
- eq / neq: None only equals None; booleans never equal numbers
- gt / gte / lt / lte: both operands must be numeric, otherwise False
- in: the expected value must be a list containing the actual value
- contains: substring test, strings only
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from lead_router.models.enums import Comparator
from lead_router.models.schemas import (
    ConditionExplain,
    EvaluateResult,
    RoutingRule,
    RuleCondition,
    RuleExplain,
    RuleSet,
    SelectedRule,
)

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(actual: Any, expected: Any) -> bool:
    # Python treats True == 1; routing rules must not
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    if _is_number(actual) != _is_number(expected):
        return False
    return actual == expected


def compare(op: Comparator, actual: Any, expected: Any) -> bool:
    """
    Apply one comparator.

    Args:
        op: The comparator.
        actual: The normalized lead value (may be None).
        expected: The rule's configured value.

    Returns:
        Whether the condition passes.
    """
    if actual is None:
        if op == Comparator.EQ:
            return expected is None
        if op == Comparator.NEQ:
            return expected is not None
        return False

    if op == Comparator.EQ:
        return _strict_equals(actual, expected)
    if op == Comparator.NEQ:
        return not _strict_equals(actual, expected)

    if op in (Comparator.GT, Comparator.GTE, Comparator.LT, Comparator.LTE):
        if not (_is_number(actual) and _is_number(expected)):
            return False
        if op == Comparator.GT:
            return actual > expected
        if op == Comparator.GTE:
            return actual >= expected
        if op == Comparator.LT:
            return actual < expected
        return actual <= expected

    if op == Comparator.IN:
        if not isinstance(expected, list):
            return False
        return any(_strict_equals(actual, candidate) for candidate in expected)

    if op == Comparator.CONTAINS:
        if not (isinstance(actual, str) and isinstance(expected, str)):
            return False
        return expected in actual

    return False


def _explain_condition(condition: RuleCondition, values: Mapping[str, Any]) -> ConditionExplain:
    actual = values.get(condition.fieldId)
    return ConditionExplain(
        fieldId=condition.fieldId,
        op=condition.op,
        expected=condition.value,
        actual=actual,
        passed=compare(condition.op, actual, condition.value),
    )


def evaluate_rules(values: Mapping[str, Any], rules: Sequence[RoutingRule]) -> EvaluateResult:
    """
    Evaluate all enabled rules against normalized values.

    Args:
        values: Normalized values keyed by field id.
        rules: Rules in any order; disabled rules are skipped.

    Returns:
        EvaluateResult with the selected rule (lowest priority number that
        matched) and one RuleExplain per enabled rule, in evaluation order.
    """
    ordered = sorted((r for r in rules if r.enabled), key=lambda r: r.priority)

    explains: List[RuleExplain] = []
    selected: Optional[SelectedRule] = None

    for rule in ordered:
        conditions = [_explain_condition(c, values) for c in rule.when]
        matched = all(c.passed for c in conditions)

        explains.append(RuleExplain(
            ruleId=rule.id,
            ruleName=rule.name,
            priority=rule.priority,
            enabled=rule.enabled,
            conditions=conditions,
            matched=matched,
            action=rule.then if matched else None,
        ))

        if matched and selected is None:
            selected = SelectedRule(
                id=rule.id,
                name=rule.name,
                priority=rule.priority,
                action=rule.then,
            )

    if selected is not None:
        logger.debug(f"Rule {selected.id} selected out of {len(ordered)} enabled rule(s)")

    return EvaluateResult(matched=selected is not None, selectedRule=selected, explains=explains)


def evaluate_rule_set(values: Mapping[str, Any], rule_set: RuleSet) -> EvaluateResult:
    return evaluate_rules(values, rule_set.rules)


def explainability_payload(
    result: EvaluateResult,
    versions: Dict[str, int],
) -> Dict[str, Any]:
    """Shape an evaluation into the JSON stored on a proposal."""
    return {
        'matched': result.matched,
        'selectedRule': result.selectedRule.model_dump(mode='json') if result.selectedRule else None,
        'explains': [e.model_dump(mode='json') for e in result.explains],
        'versions': dict(versions),
    }


__all__ = [
    'compare',
    'evaluate_rules',
    'evaluate_rule_set',
    'explainability_payload',
]
