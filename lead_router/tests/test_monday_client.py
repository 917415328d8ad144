"""
Test Module for the monday.com GraphQL client.

Requests are served by httpx.MockTransport so the tests assert on the exact
payloads sent and on error mapping without network access.
"""

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from lead_router.core.exceptions import ExternalApiError
from lead_router.services.monday_client import MondayClient


pytestmark = pytest.mark.asyncio


def _client(handler: Callable[[httpx.Request], httpx.Response], captured: List[Dict[str, Any]]) -> MondayClient:
    def recording(request: httpx.Request) -> httpx.Response:
        captured.append({
            'headers': dict(request.headers),
            'body': json.loads(request.content.decode('utf-8')),
        })
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return MondayClient(token='secret-token', api_url='https://api.monday.test/v2', http_client=http_client)


class TestReads:

    async def test_fetch_item_parses_column_values(self):
        # Arrange
        captured: List[Dict[str, Any]] = []
        payload = {
            'data': {
                'boards': [{
                    'id': 111,
                    'items': [{
                        'id': '5001',
                        'name': 'Acme Corp',
                        'column_values': [
                            {'id': 'industry', 'text': 'SaaS', 'value': '{"index":1}', 'type': 'status'},
                        ],
                    }],
                }],
            },
        }
        client = _client(lambda r: httpx.Response(200, json=payload), captured)

        # Act
        item = await client.fetch_item('111', '5001')

        # Assert
        assert item.id == '5001'
        assert item.boardId == '111'
        assert item.columnValues[0].text == 'SaaS'
        assert captured[0]['headers']['authorization'] == 'secret-token'
        assert captured[0]['body']['variables'] == {'boardId': ['111'], 'itemId': ['5001']}

    async def test_fetch_item_missing_raises_404(self):
        captured: List[Dict[str, Any]] = []
        client = _client(lambda r: httpx.Response(200, json={'data': {'boards': [{'id': 1, 'items': []}]}}), captured)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.fetch_item('1', '2')

        assert exc_info.value.http_status == 404
        assert exc_info.value.retryable is False

    async def test_fetch_item_by_id_resolves_board(self):
        captured: List[Dict[str, Any]] = []
        payload = {'data': {'items': [{'id': '5001', 'name': 'Acme', 'board': {'id': '222'}, 'column_values': []}]}}
        client = _client(lambda r: httpx.Response(200, json=payload), captured)

        item = await client.fetch_item_by_id('5001')

        assert item.boardId == '222'

    async def test_fetch_users(self):
        captured: List[Dict[str, Any]] = []
        payload = {'data': {'users': [{'id': 1001, 'name': 'Alex Rivera', 'email': 'alex@example.com'},
                                      {'id': 1002, 'name': None, 'email': None}]}}
        client = _client(lambda r: httpx.Response(200, json=payload), captured)

        users = await client.fetch_users()

        assert [u.id for u in users] == ['1001', '1002']
        assert users[1].name == ''


class TestWrites:

    async def test_change_column_value_json_encodes_value(self):
        captured: List[Dict[str, Any]] = []
        client = _client(lambda r: httpx.Response(200, json={'data': {'change_column_value': {'id': '5001'}}}), captured)
        value = {'personsAndTeams': [{'id': 1001, 'kind': 'person'}]}

        await client.change_column_value('111', '5001', 'person', value)

        variables = captured[0]['body']['variables']
        assert variables['boardId'] == '111'
        assert variables['columnId'] == 'person'
        assert json.loads(variables['value']) == value


class TestErrors:

    async def test_rate_limit_carries_retry_after(self):
        captured: List[Dict[str, Any]] = []
        client = _client(lambda r: httpx.Response(429, headers={'Retry-After': '12'}, text='slow down'), captured)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.execute('query { me { id } }')

        error = exc_info.value
        assert error.http_status == 429
        assert error.retry_after == 12.0
        assert error.is_rate_limited is True
        assert error.code == 'E4003'

    async def test_server_error_is_retryable(self):
        captured: List[Dict[str, Any]] = []
        client = _client(lambda r: httpx.Response(503, text='unavailable'), captured)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.execute('query { me { id } }')

        assert exc_info.value.retryable is True
        assert exc_info.value.code == 'E4001'

    async def test_client_error_is_not_retryable(self):
        captured: List[Dict[str, Any]] = []
        client = _client(lambda r: httpx.Response(401, text='unauthorized'), captured)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.execute('query { me { id } }')

        assert exc_info.value.retryable is False

    @pytest.mark.parametrize('message,transient', [
        ('Complexity budget exhausted, try again later', True),
        ('Rate limit exceeded', True),
        ('Column not found', False),
    ])
    async def test_graphql_errors(self, message, transient):
        captured: List[Dict[str, Any]] = []
        client = _client(lambda r: httpx.Response(200, json={'errors': [{'message': message}]}), captured)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.execute('mutation { x }')

        assert exc_info.value.http_status is None
        assert exc_info.value.retryable is transient

    async def test_missing_data(self):
        captured: List[Dict[str, Any]] = []
        client = _client(lambda r: httpx.Response(200, json={}), captured)

        with pytest.raises(ExternalApiError):
            await client.execute('query { me { id } }')

    async def test_transport_errors_propagate(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('connection refused', request=request)

        client = MondayClient(token='t', http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(httpx.ConnectError):
            await client.execute('query { me { id } }')
