"""Load an ItemTypeSet's permission catalogue, grouped by permission kind."""

from __future__ import annotations

import logging

from itsadmin.core.exceptions import PlatformError
from itsadmin.schemas.permission import PermissionRow
from itsadmin.services.platform_client import PlatformClient

logger = logging.getLogger(__name__)


def parse_catalogue(
    data: dict, include_project_assignments: bool = False
) -> dict[str, list[PermissionRow]]:
    grouped: dict[str, list[PermissionRow]] = {}
    for kind, rows in (data or {}).items():
        if not isinstance(rows, list):
            continue
        parsed = []
        for raw in rows:
            row = PermissionRow.model_validate(raw)
            row.has_project_grant = include_project_assignments and (
                bool(row.project_grant_id) or bool(row.project_grants)
            )
            parsed.append(row)
        grouped[kind] = parsed
    return grouped


async def load_permissions(
    client: PlatformClient,
    item_type_set_id: int,
    project_id: int | None = None,
    include_project_assignments: bool = False,
) -> dict[str, list[PermissionRow]]:
    """Fetch the catalogue. A 500 means it was never generated: create it once and reload."""
    try:
        data = await client.get_item_type_set_permissions(item_type_set_id, project_id)
    except PlatformError as exc:
        if exc.status_code != 500:
            raise
        logger.info(
            "Permissions of ItemTypeSet %s not available, regenerating",
            item_type_set_id,
            extra={"item_type_set_id": item_type_set_id},
        )
        await client.regenerate_permissions(item_type_set_id)
        data = await client.get_item_type_set_permissions(item_type_set_id, project_id)
    return parse_catalogue(data, include_project_assignments)
