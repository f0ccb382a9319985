"""Permission catalogue of an ItemTypeSet: filtering, stored filters, grant details."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from itsadmin.api.deps import (
    get_filter_store,
    get_grant_caches,
    get_platform_client,
    to_http_error,
)
from itsadmin.core.exceptions import PlatformError
from itsadmin.schemas.permission import (
    FilterFlags,
    FilterResult,
    FilterSpec,
    GrantDetailsResponse,
    PermissionQuery,
)
from itsadmin.services.filter_store import FilterStore
from itsadmin.services.grant_details import GrantCacheRegistry, lookup_scope
from itsadmin.services.permission_catalog import load_permissions
from itsadmin.services.permission_filtering import filter_permissions, flatten
from itsadmin.services.platform_client import PlatformClient

router = APIRouter(prefix="/item-type-sets", tags=["Permissions"])


@router.post("/{item_type_set_id}/permissions/query", response_model=FilterResult)
async def query_permissions(
    item_type_set_id: int,
    body: PermissionQuery,
    client: PlatformClient = Depends(get_platform_client),
    store: FilterStore = Depends(get_filter_store),
):
    """Filter and group the catalogue. Without ``filters`` the stored ones apply."""
    spec = body.filters
    if spec is None:
        spec = await store.load(item_type_set_id, body.project_id) or FilterSpec()
    try:
        grouped = await load_permissions(
            client,
            item_type_set_id,
            project_id=body.project_id,
            include_project_assignments=body.include_project_assignments,
        )
    except PlatformError as exc:
        raise to_http_error(exc) from exc

    result = filter_permissions(grouped, spec, body.flags)
    if body.filters is not None and body.remember_filters:
        await store.save(item_type_set_id, body.project_id, result.applied_filters)
    return result


# ---------------------------------------------------------------------------
# Stored filters
# ---------------------------------------------------------------------------


@router.get("/{item_type_set_id}/permission-filters", response_model=FilterSpec)
async def get_permission_filters(
    item_type_set_id: int,
    project_id: int | None = Query(None, alias="projectId"),
    store: FilterStore = Depends(get_filter_store),
):
    return await store.load(item_type_set_id, project_id) or FilterSpec()


@router.put("/{item_type_set_id}/permission-filters", response_model=FilterSpec)
async def save_permission_filters(
    item_type_set_id: int,
    body: FilterSpec,
    project_id: int | None = Query(None, alias="projectId"),
    store: FilterStore = Depends(get_filter_store),
):
    await store.save(item_type_set_id, project_id, body)
    return body


@router.delete("/{item_type_set_id}/permission-filters", status_code=204)
async def clear_permission_filters(
    item_type_set_id: int,
    project_id: int | None = Query(None, alias="projectId"),
    store: FilterStore = Depends(get_filter_store),
):
    await store.clear(item_type_set_id, project_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Grant details
# ---------------------------------------------------------------------------


@router.get("/{item_type_set_id}/permissions/grant-details", response_model=GrantDetailsResponse)
async def get_grant_details(
    item_type_set_id: int,
    project_id: int | None = Query(None, alias="projectId"),
    show_only_with_assignments: bool = Query(False, alias="showOnlyWithAssignments"),
    show_only_project_grants: bool = Query(False, alias="showOnlyProjectGrants"),
    include_project_assignments: bool = Query(False, alias="includeProjectAssignments"),
    client: PlatformClient = Depends(get_platform_client),
    store: FilterStore = Depends(get_filter_store),
    grant_caches: GrantCacheRegistry = Depends(get_grant_caches),
):
    """User/group details of the grants on the rows the stored filter shows."""
    flags = FilterFlags(
        show_only_with_assignments=show_only_with_assignments,
        show_only_project_grants=show_only_project_grants,
        include_project_assignments=include_project_assignments,
    )
    scope = lookup_scope(flags, project_id)
    if scope is None:
        return GrantDetailsResponse(scope="none", details={})

    spec = await store.load(item_type_set_id, project_id) or FilterSpec()
    try:
        grouped = await load_permissions(
            client,
            item_type_set_id,
            project_id=project_id,
            include_project_assignments=include_project_assignments,
        )
    except PlatformError as exc:
        raise to_http_error(exc) from exc

    visible = flatten(filter_permissions(grouped, spec, flags).filtered_roles)
    cache = grant_caches.for_item_type_set(item_type_set_id)
    details = await cache.ensure(client, visible, flags, project_id)
    return GrantDetailsResponse(scope=scope, details=details)
