"""
Exception hierarchy for the routing pipeline.

Every error that should reach an API caller derives from RoutingError, which
carries a stable error code, an HTTP status and an optional details payload.
The FastAPI app registers a single handler for RoutingError (see main.py) that
renders {ok: false, error, code, details}.

Error Codes:
- E1001: Normalization failed for a required field
- E1003: Item reference (boardId/itemId) missing or unresolvable
- E3003: Routing configuration (schema/mapping/rules) not found
- E3004: Routing configuration failed business validation
- E3006: Proposal not found
- E3007: Proposal is not in a state that allows the requested transition
- E3008: Proposal has no action to apply
- E3010: Assignee identifier could not be resolved to exactly one user
- E3011: Write-back target columns are misconfigured
- E4001: monday.com API request failed
- E4003: monday.com rate limit exceeded
"""

from typing import Any, Dict, List, Optional


class RoutingError(Exception):
    """Base class for errors surfaced to API callers."""

    code: str = 'E0000'
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'ok': False, 'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body


class NormalizationFailedError(RoutingError):
    """Raised when a required+active field could not be normalized."""

    code = 'E1001'
    status_code = 400

    def __init__(self, errors: List[Dict[str, Any]], message: str = 'Normalization failed for required fields'):
        super().__init__(message, details={'normalizationErrors': errors})
        self.errors = errors


class MissingItemReferenceError(RoutingError):
    code = 'E1003'
    status_code = 400


class ConfigurationMissingError(RoutingError):
    code = 'E3003'
    status_code = 400


class ConfigurationInvalidError(RoutingError):
    """Raised when the schema/mapping pair cannot support routing."""

    code = 'E3004'
    status_code = 400

    def __init__(self, message: str, issues: List[Dict[str, Any]]):
        super().__init__(message, details={'issues': issues})
        self.issues = issues


class ProposalNotFoundError(RoutingError):
    code = 'E3006'
    status_code = 404

    def __init__(self, proposal_id: str):
        super().__init__(f'Proposal not found: {proposal_id}', details={'proposalId': proposal_id})
        self.proposal_id = proposal_id


class InvalidProposalStateError(RoutingError):
    """Raised on an illegal state machine transition."""

    code = 'E3007'
    status_code = 400

    def __init__(self, proposal_id: str, current: str, attempted: str, apply_started: bool = False):
        details: Dict[str, Any] = {'proposalId': proposal_id, 'currentStatus': current, 'attemptedStatus': attempted}
        message = f'Cannot move proposal {proposal_id} from {current} to {attempted}'
        if apply_started:
            details['applyStarted'] = True
            message += ': an apply has already started'
        super().__init__(message, details=details)
        self.current = current
        self.attempted = attempted


class ProposalActionMissingError(RoutingError):
    """Raised when applying a proposal that has no action to write back."""

    code = 'E3008'
    status_code = 400


class AssigneeResolutionError(RoutingError):
    """Raised when an assignee identifier is empty, ambiguous or unknown."""

    code = 'E3010'
    status_code = 400

    def __init__(self, message: str, identifier: Optional[str] = None, candidates: Optional[List[str]] = None):
        details: Dict[str, Any] = {'identifier': identifier}
        if candidates:
            details['candidates'] = candidates
        super().__init__(message, details=details)
        self.identifier = identifier
        self.candidates = candidates or []


class WritebackConfigurationError(RoutingError):
    code = 'E3011'
    status_code = 400


class ExternalApiError(RoutingError):
    """
    Raised by the monday.com client for any failed request.

    Attributes:
        http_status: HTTP status of the response, or None for transport and
            GraphQL-level errors.
        retry_after: Seconds from a Retry-After header, when present.
        transient: Whether a GraphQL-level error looks temporary.
    """

    code = 'E4001'
    status_code = 502

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        retry_after: Optional[float] = None,
        transient: bool = False,
    ):
        super().__init__(
            message,
            code='E4003' if http_status == 429 else None,
            details={'httpStatus': http_status} if http_status is not None else None,
        )
        self.http_status = http_status
        self.retry_after = retry_after
        self.transient = transient

    @property
    def is_rate_limited(self) -> bool:
        return self.http_status == 429

    @property
    def retryable(self) -> bool:
        if self.http_status is None:
            return self.transient
        if self.http_status == 429:
            return True
        return self.http_status >= 500


class WritebackError(RoutingError):
    """Raised by the orchestrator when a write-back exhausted its attempts."""

    code = 'E4001'
    status_code = 502

    def __init__(self, message: str, result: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={'writeback': result} if result else None)
        self.result = result
