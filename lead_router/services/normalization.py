"""
Normalization Engine Service

Converts heterogeneous raw values (as read from monday.com columns, webhook
payloads or manual test input) into the typed internal representation declared
by the active internal schema.

Coercion rules by declared field type:
- text: strings pass through; numbers and booleans are stringified; objects
  with a string `label` or `text` yield that string
- number: finite numbers pass through; strings are parsed after stripping
  thousands separators ("1,200" -> 1200.0)
- boolean: native booleans, 1/0, and yes/no/y/n/true/false/1/0 strings
- status: a label string, or an object with `label`/`text`
- date: ISO strings, YYYY-MM-DD strings, datetime/date objects, epoch
  milliseconds, monday.com {date, time} objects and {text} objects
- computed: produced internally, never read from raw input

Empty input (None or a whitespace-only string) normalizes to None and is an
error only for required fields.

normalize() never raises. Every failure is collected into the result so a
caller sees all problems in one pass.
"""

import json
import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from lead_router.models.enums import EntityType, FieldType, WritebackColumnType
from lead_router.models.schemas import (
    ConfigIssue,
    ExternalItem,
    FieldMappingConfig,
    InternalSchema,
    NormalizationError,
    NormalizationResult,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

_DATE_PREFIX = re.compile(r'^\d{4}-\d{2}-\d{2}')
_DATE_ONLY = re.compile(r'^\d{4}-\d{2}-\d{2}$')

TRUE_STRINGS = frozenset({'true', 'yes', 'y', '1'})
FALSE_STRINGS = frozenset({'false', 'no', 'n', '0'})

# monday.com column types whose `value` holds a JSON document with the label
JSON_VALUE_COLUMN_TYPES = frozenset({'status', 'color', 'dropdown'})


# =============================================================================
# Helpers
# =============================================================================


def _is_empty(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _is_number(raw: Any) -> bool:
    return isinstance(raw, (int, float)) and not isinstance(raw, bool)


def _label_or_text(raw: Any) -> Optional[str]:
    if isinstance(raw, Mapping):
        label = raw.get('label')
        if isinstance(label, str):
            return label
        text = raw.get('text')
        if isinstance(text, str):
            return text
    return None


def _to_utc_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _parse_iso(text: str) -> Optional[str]:
    candidate = text.strip()
    if candidate.endswith('Z'):
        candidate = candidate[:-1] + '+00:00'
    try:
        return _to_utc_iso(datetime.fromisoformat(candidate))
    except ValueError:
        return None


def to_iso_date_string(raw: Any) -> Optional[str]:
    """
    Coerce a date-like value to an ISO 8601 string.

    Strings that already start with YYYY-MM-DD are kept verbatim so a plain
    calendar date is not shifted into a timestamp.

    Returns:
        The ISO string, or None when the value cannot be interpreted as a date.
    """
    if isinstance(raw, str):
        text = raw.strip()
        if _DATE_PREFIX.match(text):
            return text
        return _parse_iso(text)

    if isinstance(raw, datetime):
        return _to_utc_iso(raw)

    if isinstance(raw, date):
        return raw.isoformat()

    if _is_number(raw):
        if not math.isfinite(raw):
            return None
        try:
            return _to_utc_iso(datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(raw, Mapping):
        day = raw.get('date')
        if isinstance(day, str):
            day = day.strip()
            if not _DATE_ONLY.match(day):
                return None
            time_part = raw.get('time')
            time_part = time_part.strip() if isinstance(time_part, str) else ''
            return f'{day}T{time_part}Z' if time_part else day
        text = raw.get('text')
        if isinstance(text, str):
            return _parse_iso(text)

    return None


# =============================================================================
# Coercion
# =============================================================================


def coerce_value(expected: FieldType, raw: Any) -> Tuple[bool, Any]:
    """
    Coerce one raw value to the expected field type.

    Args:
        expected: Declared type of the target field.
        raw: The raw input value.

    Returns:
        (True, value) on success, or (False, reason) when coercion failed.
    """
    if _is_empty(raw):
        return True, None

    if expected == FieldType.TEXT:
        if isinstance(raw, str):
            return True, raw
        if isinstance(raw, bool):
            return True, 'true' if raw else 'false'
        if _is_number(raw):
            return True, str(raw)
        extracted = _label_or_text(raw)
        if extracted is not None:
            return True, extracted
        return False, 'Expected a text value (string/number/boolean), or object with label/text.'

    if expected == FieldType.NUMBER:
        if _is_number(raw) and math.isfinite(raw):
            return True, raw
        if isinstance(raw, str):
            try:
                parsed = float(raw.replace(',', '').strip())
            except ValueError:
                parsed = None
            if parsed is not None and math.isfinite(parsed):
                return True, parsed
        return False, 'Expected a numeric value.'

    if expected == FieldType.BOOLEAN:
        if isinstance(raw, bool):
            return True, raw
        if _is_number(raw):
            if raw == 1:
                return True, True
            if raw == 0:
                return True, False
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in TRUE_STRINGS:
                return True, True
            if lowered in FALSE_STRINGS:
                return True, False
        return False, 'Expected a boolean value.'

    if expected == FieldType.STATUS:
        if isinstance(raw, str):
            return True, raw
        extracted = _label_or_text(raw)
        if extracted is not None:
            return True, extracted
        return False, 'Expected a status label (string or object with label/text).'

    if expected == FieldType.DATE:
        iso = to_iso_date_string(raw)
        if iso is None:
            return False, 'Expected a date (ISO string / YYYY-MM-DD / datetime / object with {date}).'
        return True, iso

    return False, 'Unsupported type.'


# =============================================================================
# Public API
# =============================================================================


def normalize(
    schema: InternalSchema,
    entity: EntityType,
    raw_by_field_id: Mapping[str, Any],
) -> NormalizationResult:
    """
    Normalize one entity record against the active fields of the schema.

    Every active, non-computed field of the entity gets an entry in
    `values` (None when missing or not coercible). Required fields that are
    empty, and any field whose value cannot be coerced, add a
    NormalizationError.

    Args:
        schema: The internal schema in effect.
        entity: Which entity's fields to normalize.
        raw_by_field_id: Raw values keyed by internal field id.

    Returns:
        NormalizationResult with normalized values and accumulated errors.
    """
    values: Dict[str, Any] = {}
    errors: List[NormalizationError] = []

    for field in schema.active_fields(entity):
        if field.type == FieldType.COMPUTED:
            continue

        raw = raw_by_field_id.get(field.id)

        if _is_empty(raw):
            values[field.id] = None
            if field.required:
                errors.append(NormalizationError(
                    fieldId=field.id,
                    expectedType=field.type,
                    reason='Required field is missing/empty.',
                    rawValue=raw,
                ))
            continue

        ok, outcome = coerce_value(field.type, raw)
        if ok:
            values[field.id] = outcome
        else:
            values[field.id] = None
            errors.append(NormalizationError(
                fieldId=field.id,
                expectedType=field.type,
                reason=outcome,
                rawValue=raw,
            ))

    if errors:
        logger.debug(f"Normalization produced {len(errors)} error(s) for entity {entity.value}")

    return NormalizationResult(values=values, errors=errors)


def required_field_errors(schema: InternalSchema, result: NormalizationResult) -> List[NormalizationError]:
    """Return the errors that belong to required+active fields."""
    required_ids = {f.id for f in schema.required_active_fields()}
    return [e for e in result.errors if e.fieldId in required_ids]


def validate_schema_minimums(schema: InternalSchema) -> List[str]:
    """
    Check that the schema can support routing at all.

    Returns:
        Human readable problems; an empty list means the schema is usable.
    """
    problems: List[str] = []
    for entity in EntityType:
        if not schema.active_fields(entity):
            problems.append(f"No active fields defined for entity '{entity.value}'.")
    if not schema.required_active_fields():
        problems.append('No required+active fields exist in schema. Routing should remain disabled.')
    return problems


def validate_schema_and_mapping(schema: InternalSchema, mapping: FieldMappingConfig) -> List[ConfigIssue]:
    """
    Check that a schema/mapping pair can be routed against.

    Checks, in order:
    1. the schema has at least one active field
    2. every active, non-computed field has a board/column reference
    3. no required+active field is switched off in `mapping.fields`
    4. no two active fields read the same board column
    5. the write-back targets use supported column types

    Returns:
        Issues found; an empty list means the pair is usable.
    """
    issues: List[ConfigIssue] = []

    active = [f for f in schema.fields if f.active]
    if not active:
        issues.append(ConfigIssue(
            code='SCHEMA.NO_ACTIVE_FIELDS',
            message='Internal schema has no active fields. Enable at least one field.',
        ))
        return issues

    # Computed fields are derived internally and never read from a column
    readable = [f for f in active if f.type != FieldType.COMPUTED]

    for f in readable:
        ref = mapping.mappings.get(f.id)
        if ref is None:
            issues.append(ConfigIssue(
                code='MAPPING.MISSING_BOARD_COLUMN_REF',
                message=f"Missing boardId/columnId mapping for active field '{f.id}'.",
                fieldId=f.id,
            ))

    switches = {mf.id: mf.isEnabled for mf in mapping.fields}
    for f in schema.required_active_fields():
        if switches.get(f.id) is False:
            issues.append(ConfigIssue(
                code='MAPPING.REQUIRED_FIELD_DISABLED',
                message=f"Required field '{f.id}' is disabled in mapping config.",
                fieldId=f.id,
            ))

    seen: Dict[Tuple[str, str], str] = {}
    for f in readable:
        ref = mapping.mappings.get(f.id)
        if ref is None:
            continue
        key = (ref.boardId, ref.columnId)
        if key in seen:
            issues.append(ConfigIssue(
                code='MAPPING.DUPLICATE_COLUMN_REF',
                message=f"Fields '{seen[key]}' and '{f.id}' map to the same column {ref.boardId}::{ref.columnId}.",
                fieldId=f.id,
            ))
        else:
            seen[key] = f.id

    targets = mapping.writebackTargets
    supported = {t.value for t in WritebackColumnType}
    agent_type = targets.assignedAgent.columnType
    if agent_type and agent_type not in supported:
        issues.append(ConfigIssue(
            code='WRITEBACK.INVALID_ASSIGNED_AGENT_COLUMN_TYPE',
            message=f"assignedAgent column type '{agent_type}' is not supported; use people, text or status.",
        ))
    if targets.routingReason and targets.routingReason.columnType not in (None, WritebackColumnType.TEXT.value):
        issues.append(ConfigIssue(
            code='WRITEBACK.INVALID_ROUTING_REASON_TYPE',
            message='routingReason must be a text column.',
        ))

    return issues


def _column_raw_value(column_type: Optional[str], text: Optional[str], value: Any) -> Any:
    if column_type in JSON_VALUE_COLUMN_TYPES and value is not None:
        if isinstance(value, str):
            try:
                decoded = json.loads(value)
            except ValueError:
                return text
        else:
            decoded = value
        # Status values are {"index": n, ...}; the label only lives in the display text
        if isinstance(decoded, dict) and not isinstance(decoded.get('label'), str) and text:
            decoded = {**decoded, 'label': text}
        return decoded
    return text


def map_item_to_raw(item: ExternalItem, mapping: FieldMappingConfig) -> Dict[str, Any]:
    """
    Build the raw `{fieldId: value}` input for normalize() from a board item.

    Status and dropdown columns carry their label inside a JSON `value`
    document, which is decoded (falling back to the display text when it is
    not valid JSON). Every other column type uses its display text.

    Args:
        item: The monday.com item with its column values.
        mapping: Field mapping in effect.

    Returns:
        Raw values keyed by internal field id; unmapped or absent columns are None.
    """
    columns = {cv.id: cv for cv in item.columnValues}
    raw: Dict[str, Any] = {}

    for field_id, ref in mapping.mappings.items():
        column = columns.get(ref.columnId)
        if column is None:
            raw[field_id] = None
            continue
        column_type = column.type or ref.columnType
        raw[field_id] = _column_raw_value(column_type, column.text, column.value)

    return raw


__all__ = [
    'normalize',
    'coerce_value',
    'to_iso_date_string',
    'required_field_errors',
    'validate_schema_minimums',
    'validate_schema_and_mapping',
    'map_item_to_raw',
]
