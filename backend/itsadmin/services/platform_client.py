"""Async REST client for the workflow/permission platform."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from itsadmin.config import settings
from itsadmin.core.exceptions import PlatformError
from itsadmin.core.metrics import platform_request_duration_seconds, platform_requests_total

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Platform request failed"


def extract_error_message(exc: Exception, default: str = DEFAULT_ERROR_MESSAGE) -> str:
    """Pick the most specific message available from a failed platform call.

    Order: ``message`` of a JSON body, a plain string body, the exception text,
    then ``default``.
    """
    response = getattr(exc, "response", None)
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            body = response.text
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        if isinstance(body, str) and body.strip():
            return body
    text = str(exc)
    return text or default


class PlatformClient:
    """Thin async wrapper around the platform REST API.

    One client is held per editor session and carries the caller's bearer token.
    """

    def __init__(self, base_url: str | None = None, token: str | None = None):
        self.base_url = (base_url or settings.PLATFORM_API_URL).rstrip("/")
        self.token = token
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers: dict[str, str] = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(base_url=self.base_url, headers=headers)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        default_message: str = DEFAULT_ERROR_MESSAGE,
    ) -> Any:
        client = await self._get_client()
        start = time.perf_counter()
        status = "error"
        try:
            resp = await client.request(method, path, params=params, json=json)
            status = str(resp.status_code)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = extract_error_message(exc, default_message)
            logger.warning("%s %s failed (%s): %s", method, path, status, message)
            raise PlatformError(
                message, status_code=exc.response.status_code, operation=operation
            ) from exc
        except httpx.HTTPError as exc:
            message = extract_error_message(exc, default_message)
            logger.warning("%s %s failed: %s", method, path, message)
            raise PlatformError(message, operation=operation) from exc
        finally:
            platform_requests_total.labels(operation=operation, status=status).inc()
            platform_request_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - start
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    # ── ItemTypeSets ────────────────────────────────────────────────

    async def get_item_type_set(self, item_type_set_id: int) -> dict:
        return await self._request(
            "get_item_type_set",
            "GET",
            f"/item-type-sets/{item_type_set_id}",
            default_message="Error loading the ItemTypeSet",
        )

    async def update_item_type_set(
        self, item_type_set_id: int, payload: dict, project_id: int | None = None
    ) -> dict | None:
        if project_id is not None:
            path = f"/item-type-sets/project/{project_id}/{item_type_set_id}"
        else:
            path = f"/item-type-sets/{item_type_set_id}"
        return await self._request(
            "update_item_type_set",
            "PUT",
            path,
            json=payload,
            default_message="Error saving the ItemTypeSet",
        )

    # ── Migration impact ────────────────────────────────────────────

    async def get_migration_impact(
        self,
        configuration_id: int,
        new_field_set_id: int | None,
        new_workflow_id: int | None,
    ) -> dict:
        params: dict[str, Any] = {}
        if new_field_set_id:
            params["newFieldSetId"] = new_field_set_id
        if new_workflow_id:
            params["newWorkflowId"] = new_workflow_id
        return await self._request(
            "get_migration_impact",
            "GET",
            f"/item-type-configurations/{configuration_id}/migration-impact",
            params=params,
            default_message="Error analysing the migration impact",
        )

    async def migrate_permissions(
        self,
        configuration_id: int,
        new_field_set_id: int | None,
        new_workflow_id: int | None,
        preserve_permission_ids: list[int],
    ) -> Any:
        payload = {
            "itemTypeConfigurationId": configuration_id,
            "newFieldSetId": new_field_set_id,
            "newWorkflowId": new_workflow_id,
            "preservePermissionIds": list(preserve_permission_ids),
            "preserveAllPreservable": None,
            "removeAll": None,
        }
        return await self._request(
            "migrate_permissions",
            "POST",
            f"/item-type-configurations/{configuration_id}/migrate-permissions",
            json=payload,
            default_message="Error migrating permissions",
        )

    # ── Removal impact ──────────────────────────────────────────────

    async def analyze_removal_impact(
        self, item_type_set_id: int, removed_configuration_ids: list[int]
    ) -> dict:
        return await self._request(
            "analyze_removal_impact",
            "POST",
            f"/item-type-sets/{item_type_set_id}/analyze-itemtypeconfiguration-removal-impact",
            json=list(removed_configuration_ids),
            default_message="Error analysing the removal impact",
        )

    async def remove_orphaned_permissions(
        self,
        item_type_set_id: int,
        removed_configuration_ids: list[int],
        preserved_permission_ids: list[int],
    ) -> Any:
        payload = {
            "removedItemTypeConfigurationIds": list(removed_configuration_ids),
            "preservedPermissionIds": list(preserved_permission_ids),
        }
        return await self._request(
            "remove_orphaned_permissions",
            "POST",
            f"/item-type-sets/{item_type_set_id}/remove-itemtypeconfiguration-permissions",
            json=payload,
            default_message="Error removing orphaned permissions",
        )

    # ── Permission catalogue ────────────────────────────────────────

    async def regenerate_permissions(self, item_type_set_id: int) -> Any:
        return await self._request(
            "regenerate_permissions",
            "POST",
            f"/itemtypeset-permissions/create-for-itemtypeset/{item_type_set_id}",
            default_message="Error creating permissions",
        )

    async def get_item_type_set_permissions(
        self, item_type_set_id: int, project_id: int | None = None
    ) -> dict[str, list[dict]]:
        params = {"projectId": project_id} if project_id is not None else None
        data = await self._request(
            "get_item_type_set_permissions",
            "GET",
            f"/itemtypeset-permissions/itemtypeset/{item_type_set_id}",
            params=params,
            default_message="Error loading permissions",
        )
        return data or {}

    async def get_permission_assignment(self, permission_type: str, permission_id: int) -> Any:
        return await self._request(
            "get_permission_assignment",
            "GET",
            f"/permission-assignments/{permission_type}/{permission_id}",
        )

    async def get_project_permission_assignment(
        self, permission_type: str, permission_id: int, project_id: int
    ) -> Any:
        return await self._request(
            "get_project_permission_assignment",
            "GET",
            f"/project-permission-assignments/{permission_type}/{permission_id}"
            f"/project/{project_id}",
        )
