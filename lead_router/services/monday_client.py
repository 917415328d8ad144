"""
monday.com GraphQL client.

A thin async wrapper around the monday.com v2 API built on httpx. It performs
exactly one HTTP request per call and raises ExternalApiError on any failure;
retry, backoff and rate limiting are owned by ExternalWriteQueue, so write
calls are always issued through the queue.

Key Operations:
- fetch_item(board_id, item_id): item with its typed column values
- fetch_item_by_id(item_id): same, resolving the board from the item
- change_column_value(board_id, item_id, column_id, value): JSON column write
- fetch_users(): directory of account users (id, name, email)
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from lead_router.core.exceptions import ExternalApiError
from lead_router.models.schemas import ExternalItem, ExternalUser

logger = logging.getLogger(__name__)


DEFAULT_API_URL = 'https://api.monday.com/v2'

# GraphQL error messages that indicate a temporary condition
_TRANSIENT_MESSAGE = re.compile(r'rate|limit|timeout|tempor|overload|try again', re.IGNORECASE)


# =============================================================================
# GraphQL Documents
# =============================================================================

FETCH_ITEM_QUERY = """
query ($boardId: [ID!], $itemId: [ID!]) {
  boards(ids: $boardId) {
    id
    items(ids: $itemId) {
      id
      name
      column_values { id text value type }
    }
  }
}
"""

FETCH_ITEM_BY_ID_QUERY = """
query ($itemId: [ID!]) {
  items(ids: $itemId) {
    id
    name
    board { id }
    column_values { id text value type }
  }
}
"""

CHANGE_COLUMN_VALUE_MUTATION = """
mutation ($boardId: ID!, $itemId: ID!, $columnId: String!, $value: JSON!) {
  change_column_value(board_id: $boardId, item_id: $itemId, column_id: $columnId, value: $value) {
    id
  }
}
"""

FETCH_USERS_QUERY = """
query {
  users { id name email }
}
"""


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class MondayClient:
    """
    Async monday.com API client.

    Args:
        token: API token sent as the Authorization header.
        api_url: GraphQL endpoint.
        timeout: Per-request timeout in seconds.
        http_client: Optional pre-built httpx.AsyncClient (tests pass one
            backed by httpx.MockTransport).
    """

    def __init__(
        self,
        token: Optional[str],
        api_url: str = DEFAULT_API_URL,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self._token = token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

        if not token:
            logger.warning('No monday.com API token configured; API calls will be rejected')

    @classmethod
    def from_settings(cls, settings: Any) -> 'MondayClient':
        return cls(
            token=settings.monday_api_token,
            api_url=settings.monday_api_url,
            timeout=settings.monday_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self._token:
            headers['Authorization'] = self._token
        return headers

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        POST one GraphQL document and return its `data` object.

        Raises:
            ExternalApiError: On non-2xx responses (http_status set, with
                retry_after from a Retry-After header), GraphQL errors
                (http_status None, transient when the message looks
                temporary) or an empty response.
            httpx.TransportError: Network failures and timeouts propagate
                unchanged so the queue can classify them.
        """
        response = await self._client.post(
            self.api_url,
            headers=self._headers(),
            json={'query': query, 'variables': variables or {}},
        )

        if response.status_code >= 400:
            raise ExternalApiError(
                f'monday.com API HTTP {response.status_code}: {response.text[:500]}',
                http_status=response.status_code,
                retry_after=_parse_retry_after(response.headers.get('retry-after')),
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalApiError(f'monday.com API returned invalid JSON: {exc}') from exc

        errors = payload.get('errors') or []
        if errors:
            message = '; '.join(str(e.get('message', e)) if isinstance(e, dict) else str(e) for e in errors)
            raise ExternalApiError(
                f'monday.com API GraphQL error: {message}',
                transient=bool(_TRANSIENT_MESSAGE.search(message)),
            )

        data = payload.get('data')
        if data is None:
            raise ExternalApiError('monday.com API returned no data.')
        return data

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_item(self, board_id: str, item_id: str) -> ExternalItem:
        data = await self.execute(FETCH_ITEM_QUERY, {'boardId': [board_id], 'itemId': [item_id]})
        boards = data.get('boards') or []
        board = boards[0] if boards else None
        items = (board or {}).get('items') or []
        if not items:
            raise ExternalApiError(f'monday.com item {item_id} not found on board {board_id}', http_status=404)
        item = items[0]
        return ExternalItem(
            id=item['id'],
            name=item.get('name'),
            boardId=str(board['id']),
            column_values=item.get('column_values') or [],
        )

    async def fetch_item_by_id(self, item_id: str) -> ExternalItem:
        data = await self.execute(FETCH_ITEM_BY_ID_QUERY, {'itemId': [item_id]})
        items = data.get('items') or []
        if not items:
            raise ExternalApiError(f'monday.com item {item_id} not found', http_status=404)
        item = items[0]
        board_id = (item.get('board') or {}).get('id')
        if not board_id:
            raise ExternalApiError(f'monday.com board for item {item_id} not found', http_status=404)
        return ExternalItem(
            id=item['id'],
            name=item.get('name'),
            boardId=str(board_id),
            column_values=item.get('column_values') or [],
        )

    async def fetch_users(self) -> List[ExternalUser]:
        data = await self.execute(FETCH_USERS_QUERY)
        return [
            ExternalUser(id=u['id'], name=u.get('name') or '', email=u.get('email') or '')
            for u in data.get('users') or []
        ]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def change_column_value(self, board_id: str, item_id: str, column_id: str, value: Any) -> Dict[str, Any]:
        """Write one column. `value` is JSON-encoded as the API expects."""
        return await self.execute(
            CHANGE_COLUMN_VALUE_MUTATION,
            {
                'boardId': str(board_id),
                'itemId': str(item_id),
                'columnId': column_id,
                'value': json.dumps(value),
            },
        )


__all__ = ['MondayClient', 'DEFAULT_API_URL']
