"""Run-scoped user accumulation with end-of-run profile backfill"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ghmirror_database.models import User

from .converters import convert_user
from .github_client import GitHubAPIError

if TYPE_CHECKING:
    from .cache import MirrorCache
    from .github_client import GitHubRestClient
    from .persistence import MirrorStore

logger = logging.getLogger(__name__)


class UserRegistry:
    """Merge-by-login map of every user seen during one sync run.

    observe() never awaits, so concurrent repository passes on one event loop
    cannot interleave inside a merge.
    """

    def __init__(self) -> None:
        self._observed: dict[str, User] = {}

    def observe(self, *users: User) -> None:
        for user in users:
            if user.user_login:
                self._observed[user.user_login] = user

    def get(self, login: str) -> User | None:
        return self._observed.get(login)

    def __contains__(self, login: str) -> bool:
        return login in self._observed

    def __len__(self) -> int:
        return len(self._observed)

    async def enrich(self, client: GitHubRestClient) -> dict[str, User]:
        """Returns a new mapping where stubs with an empty name carry the full profile.

        A failed lookup keeps the stub; the observed map is left untouched.
        """
        enriched: dict[str, User] = {}
        for login, user in list(self._observed.items()):
            if user.name:
                enriched[login] = user
                continue

            try:
                enriched[login] = convert_user(await client.get_user(login))
            except GitHubAPIError as e:
                logger.warning(f"Unable to backfill profile for user {login}: {e}", extra={"login": login})
                enriched[login] = user

        return enriched

    async def flush(self, store: MirrorStore | MirrorCache, client: GitHubRestClient) -> int:
        """Enriches and writes every user in one batch; a store failure propagates"""
        enriched = await self.enrich(client)
        users = list(enriched.values())
        await store.write_users(users)
        logger.info(f"Wrote {len(users)} users", extra={"users_written": len(users)})
        return len(users)
