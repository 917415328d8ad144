"""
Assignee Resolution Service

Turns the human-entered assignee identifier on a rule action (a numeric
monday.com user id, an email address or a full name) into the canonical
monday.com person id.

Lookup order for non-numeric identifiers:
1. in-memory user list (valid for `ttl_seconds`)
2. monday_user_cache table
3. monday.com users query, persisted into the cache table

Email matches are tried before name matches; both are exact and
case-insensitive.
"""

import logging
import re
import time
from typing import Callable, List, Optional

from lead_router.core.exceptions import AssigneeResolutionError
from lead_router.models.schemas import ExternalUser
from lead_router.services.monday_client import MondayClient
from lead_router.services.routing_state import UserCacheRepository

logger = logging.getLogger(__name__)


_NUMERIC_ID = re.compile(r'^[0-9]+$')


class AssigneeResolver:
    """
    Resolve assignee identifiers against the cached user directory.

    Args:
        client: monday.com client used when the cache is empty or refreshed.
        user_repo: Persistent user cache.
        ttl_seconds: Lifetime of the in-memory copy.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        client: MondayClient,
        user_repo: UserCacheRepository,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._user_repo = user_repo
        self._ttl = ttl_seconds
        self._clock = clock
        self._users: Optional[List[ExternalUser]] = None
        self._loaded_at: float = 0.0

    async def resolve(self, identifier: Optional[str]) -> int:
        """
        Resolve an identifier to a monday.com person id.

        Raises:
            AssigneeResolutionError: When the identifier is empty, matches
                more than one user, or matches nobody.
        """
        value = str(identifier if identifier is not None else '').strip()
        if not value:
            raise AssigneeResolutionError('Empty assignee identifier', identifier=identifier)

        if _NUMERIC_ID.match(value):
            return int(value)

        users = await self._get_users()
        lowered = value.lower()

        by_email = [u for u in users if u.email and u.email.lower() == lowered]
        if len(by_email) == 1:
            return int(by_email[0].id)
        if len(by_email) > 1:
            raise AssigneeResolutionError(
                f"Ambiguous assignee email '{value}'",
                identifier=value,
                candidates=[u.id for u in by_email],
            )

        by_name = [u for u in users if u.name and u.name.lower() == lowered]
        if len(by_name) == 1:
            return int(by_name[0].id)
        if len(by_name) > 1:
            raise AssigneeResolutionError(
                f"Ambiguous assignee name '{value}'",
                identifier=value,
                candidates=[u.id for u in by_name],
            )

        raise AssigneeResolutionError(
            f"Assignee '{value}' not found in monday.com users cache",
            identifier=value,
        )

    async def refresh(self) -> int:
        """Reload users from monday.com into both caches. Returns the user count."""
        users = await self._client.fetch_users()
        await self._user_repo.upsert_many(users)
        self._remember(users)
        logger.info(f"Refreshed monday.com users cache ({len(users)} users)")
        return len(users)

    def invalidate(self) -> None:
        self._users = None

    async def _get_users(self) -> List[ExternalUser]:
        now = self._clock()
        if self._users is not None and now - self._loaded_at < self._ttl:
            return self._users

        cached = await self._user_repo.list_users()
        if cached:
            self._remember(cached)
            return cached

        users = await self._client.fetch_users()
        await self._user_repo.upsert_many(users)
        self._remember(users)
        return users

    def _remember(self, users: List[ExternalUser]) -> None:
        self._users = list(users)
        self._loaded_at = self._clock()


__all__ = ['AssigneeResolver']
