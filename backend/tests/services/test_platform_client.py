"""Tests for the platform REST client (httpx mocked at the client level)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from itsadmin.core.exceptions import PlatformError
from itsadmin.services.platform_client import PlatformClient, extract_error_message

BASE_URL = "http://platform.test/api"


def _response(status_code=200, *, json=None, text=None, method="GET", path="/x"):
    request = httpx.Request(method, f"{BASE_URL}{path}")
    if json is not None:
        return httpx.Response(status_code, json=json, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


def _status_error(response):
    return httpx.HTTPStatusError("error", request=response.request, response=response)


class TestExtractErrorMessage:
    def test_json_message(self):
        exc = _status_error(_response(400, json={"message": "Name taken", "code": "X"}))
        assert extract_error_message(exc) == "Name taken"

    def test_string_body(self):
        exc = _status_error(_response(500, text="Internal failure"))
        assert extract_error_message(exc) == "Internal failure"

    def test_exception_text(self):
        assert extract_error_message(httpx.ConnectError("refused")) == "refused"

    def test_default(self):
        assert extract_error_message(Exception(), "Fallback") == "Fallback"

    def test_json_without_message_falls_back(self):
        exc = _status_error(_response(400, json={"error": "bad"}))
        assert extract_error_message(exc) == "error"


class TestClientSetup:
    async def test_bearer_token_header(self):
        client = PlatformClient(base_url=BASE_URL, token="abc")
        http_client = await client._get_client()
        assert http_client.headers.get("Authorization") == "Bearer abc"
        assert str(http_client.base_url).rstrip("/") == BASE_URL
        await client.close()

    async def test_client_reused(self):
        client = PlatformClient(base_url=BASE_URL)
        assert await client._get_client() is await client._get_client()
        await client.close()


class TestRequests:
    async def _call(self, response, method_name, *args, **kwargs):
        client = PlatformClient(base_url=BASE_URL, token="abc")
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=response)
            mock_get.return_value = mock_http
            result = await getattr(client, method_name)(*args, **kwargs)
        return result, mock_http.request

    async def test_get_item_type_set(self):
        result, request = await self._call(_response(json={"id": 7}), "get_item_type_set", 7)
        assert result == {"id": 7}
        request.assert_awaited_once_with("GET", "/item-type-sets/7", params=None, json=None)

    async def test_update_tenant_scope(self):
        _, request = await self._call(_response(json={}), "update_item_type_set", 7, {"name": "A"})
        assert request.call_args.args == ("PUT", "/item-type-sets/7")
        assert request.call_args.kwargs["json"] == {"name": "A"}

    async def test_update_project_scope(self):
        _, request = await self._call(
            _response(json={}), "update_item_type_set", 7, {"name": "A"}, project_id=5
        )
        assert request.call_args.args == ("PUT", "/item-type-sets/project/5/7")

    async def test_migration_impact_omits_unset_ids(self):
        _, request = await self._call(_response(json={}), "get_migration_impact", 1, 11, None)
        assert request.call_args.args[1] == "/item-type-configurations/1/migration-impact"
        assert request.call_args.kwargs["params"] == {"newFieldSetId": 11}

    async def test_migrate_permissions_body(self):
        _, request = await self._call(
            _response(text=""), "migrate_permissions", 1, 11, None, [4, 5]
        )
        assert request.call_args.kwargs["json"] == {
            "itemTypeConfigurationId": 1,
            "newFieldSetId": 11,
            "newWorkflowId": None,
            "preservePermissionIds": [4, 5],
            "preserveAllPreservable": None,
            "removeAll": None,
        }

    async def test_removal_impact_body_is_id_list(self):
        _, request = await self._call(_response(json={}), "analyze_removal_impact", 7, [2, 3])
        assert request.call_args.args[1] == (
            "/item-type-sets/7/analyze-itemtypeconfiguration-removal-impact"
        )
        assert request.call_args.kwargs["json"] == [2, 3]

    async def test_remove_orphans_body(self):
        _, request = await self._call(
            _response(text=""), "remove_orphaned_permissions", 7, [2], []
        )
        assert request.call_args.kwargs["json"] == {
            "removedItemTypeConfigurationIds": [2],
            "preservedPermissionIds": [],
        }

    async def test_empty_body_returns_none(self):
        result, _ = await self._call(_response(text=""), "regenerate_permissions", 7)
        assert result is None

    async def test_catalogue_with_project(self):
        result, request = await self._call(
            _response(json=None, text="null"), "get_item_type_set_permissions", 7, 5
        )
        assert result == {}
        assert request.call_args.kwargs["params"] == {"projectId": 5}

    async def test_project_assignment_path(self):
        _, request = await self._call(
            _response(json={}), "get_project_permission_assignment", "WORKERS", 3, 5
        )
        assert request.call_args.args[1] == "/project-permission-assignments/WORKERS/3/project/5"


class TestErrors:
    async def test_status_error_raises_platform_error(self):
        client = PlatformClient(base_url=BASE_URL)
        response = _response(409, json={"message": "ITEMTYPESET_REMOVAL_IMPACT"}, method="PUT")
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=response)
            mock_get.return_value = mock_http

            with pytest.raises(PlatformError) as exc_info:
                await client.update_item_type_set(7, {})

        err = exc_info.value
        assert err.status_code == 409
        assert err.operation == "update_item_type_set"
        assert err.is_removal_impact_conflict

    async def test_transport_error_raises_platform_error(self):
        client = PlatformClient(base_url=BASE_URL)
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_get.return_value = mock_http

            with pytest.raises(PlatformError) as exc_info:
                await client.get_item_type_set(7)

        assert exc_info.value.status_code is None
        assert exc_info.value.detail == "refused"
