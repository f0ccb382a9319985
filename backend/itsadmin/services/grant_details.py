"""Memoised user/group grant payloads for permission rows.

Entries are keyed by ``"{permissionType}-{permissionId}"`` within a scope
(``global`` or ``project:{id}``). A missing key means "not fetched yet", never
"empty". Keys being fetched are tracked in a requested set so overlapping
passes do not issue the same lookup twice; a failed lookup leaves that set so
the next pass retries it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from itsadmin.core.exceptions import PlatformError
from itsadmin.core.metrics import grant_detail_fetches_total
from itsadmin.schemas.permission import FilterFlags, GrantDetail, PermissionRow
from itsadmin.services.platform_client import PlatformClient

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"


def project_scope(project_id: int) -> str:
    return f"project:{project_id}"


def cache_key(permission_type: str, permission_id: int) -> str:
    return f"{permission_type}-{permission_id}"


def lookup_scope(flags: FilterFlags, project_id: int | None) -> str | None:
    """Scope a catalogue view reads grant details from, or ``None`` when it needs none."""
    if flags.show_only_project_grants:
        if flags.include_project_assignments and project_id is not None:
            return project_scope(project_id)
        return None
    return GLOBAL_SCOPE


class GrantDetailCache:
    def __init__(self) -> None:
        self._entries: dict[str, dict[str, GrantDetail]] = {}
        self._requested: set[tuple[str, str]] = set()

    def get(self, scope: str, key: str) -> GrantDetail | None:
        return self._entries.get(scope, {}).get(key)

    def entries(self, scope: str) -> dict[str, GrantDetail]:
        return dict(self._entries.get(scope, {}))

    def is_requested(self, scope: str, key: str) -> bool:
        return (scope, key) in self._requested

    def invalidate(self, scope: str | None = None) -> None:
        if scope is None:
            self._entries.clear()
            self._requested.clear()
            return
        self._entries.pop(scope, None)
        self._requested = {r for r in self._requested if r[0] != scope}

    def _store(self, scope: str, key: str, detail: GrantDetail) -> None:
        self._entries.setdefault(scope, {})[key] = detail

    async def ensure(
        self,
        client: PlatformClient,
        rows: Iterable[PermissionRow],
        flags: FilterFlags,
        project_id: int | None = None,
    ) -> dict[str, GrantDetail]:
        """Fetch, concurrently, the details missing for ``rows`` in the view's scope."""
        scope = lookup_scope(flags, project_id)
        if scope is None:
            return {}

        pending: list[PermissionRow] = []
        for row in rows:
            key = row.cache_key
            if key is None:
                continue
            # Global view: only rows that carry a grant have details to show
            if scope == GLOBAL_SCOPE and row.grant_id is None:
                continue
            if self.get(scope, key) is not None or self.is_requested(scope, key):
                continue
            self._requested.add((scope, key))
            pending.append(row)

        if pending:
            if scope == GLOBAL_SCOPE:
                await asyncio.gather(
                    *(self._load_global(client, r.permission_type, r.id) for r in pending)
                )
            else:
                await asyncio.gather(
                    *(
                        self._load_project(client, r.permission_type, r.id, project_id)
                        for r in pending
                    )
                )
        return self.entries(scope)

    async def _load_global(
        self, client: PlatformClient, permission_type: str, permission_id: int
    ) -> GrantDetail | None:
        key = cache_key(permission_type, permission_id)
        try:
            assignment = await client.get_permission_assignment(permission_type, permission_id)
        except PlatformError as exc:
            grant_detail_fetches_total.labels(scope="global", result="error").inc()
            logger.error("Error fetching grant details for %s: %s", key, exc.detail)
            self._requested.discard((GLOBAL_SCOPE, key))
            return None
        grant_detail_fetches_total.labels(scope="global", result="ok").inc()
        detail = GrantDetail.from_assignment(assignment)
        self._store(GLOBAL_SCOPE, key, detail)
        return detail

    async def _load_project(
        self, client: PlatformClient, permission_type: str, permission_id: int, project_id: int
    ) -> GrantDetail | None:
        scope = project_scope(project_id)
        key = cache_key(permission_type, permission_id)
        try:
            assignment = await client.get_project_permission_assignment(
                permission_type, permission_id, project_id
            )
        except PlatformError as exc:
            if exc.status_code == 404:
                grant_detail_fetches_total.labels(scope="project", result="not_found").inc()
                detail = GrantDetail(is_project_grant=False)
                self._store(scope, key, detail)
                return detail
            grant_detail_fetches_total.labels(scope="project", result="error").inc()
            logger.error(
                "Error fetching project grant details for %s in project %s: %s",
                key,
                project_id,
                exc.detail,
            )
            self._requested.discard((scope, key))
            return None
        grant_detail_fetches_total.labels(scope="project", result="ok").inc()
        detail = GrantDetail.from_assignment(assignment, project=True)
        self._store(scope, key, detail)
        return detail

    # ── On-demand lookups (impact report rows) ──────────────────────

    async def fetch_global(
        self, client: PlatformClient, permission_type: str, permission_id: int
    ) -> GrantDetail | None:
        cached = self.get(GLOBAL_SCOPE, cache_key(permission_type, permission_id))
        if cached is not None:
            return cached
        return await self._load_global(client, permission_type, permission_id)

    async def fetch_project(
        self, client: PlatformClient, permission_type: str, permission_id: int, project_id: int
    ) -> GrantDetail | None:
        cached = self.get(project_scope(project_id), cache_key(permission_type, permission_id))
        if cached is not None:
            return cached
        return await self._load_project(client, permission_type, permission_id, project_id)


class GrantCacheRegistry:
    """One ``GrantDetailCache`` per ItemTypeSet permission view."""

    def __init__(self) -> None:
        self._caches: dict[int, GrantDetailCache] = {}

    def for_item_type_set(self, item_type_set_id: int) -> GrantDetailCache:
        cache = self._caches.get(item_type_set_id)
        if cache is None:
            cache = self._caches[item_type_set_id] = GrantDetailCache()
        return cache

    def invalidate(self, item_type_set_id: int) -> None:
        self._caches.pop(item_type_set_id, None)
