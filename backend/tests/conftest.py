"""Shared test fixtures for the ItemTypeSet console backend.

Provides:
- A mocked platform client (``AsyncMock`` with the ``PlatformClient`` spec)
- Editor factories wired to that client
- Platform payload factories for impacts and permission catalogue rows
- FastAPI test app + HTTP client with in-memory stores
- An in-memory SQLite session factory for the durable filter store
"""

from __future__ import annotations

import os

# Set test environment BEFORE any itsadmin imports so Settings() picks them up.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from itsadmin.models.base import Base
from itsadmin.schemas.configuration import Configuration
from itsadmin.schemas.permission import PermissionRow
from itsadmin.services.editor_session import ItemTypeSetEditor
from itsadmin.services.editor_state import EditorState
from itsadmin.services.platform_client import PlatformClient

ITEM_TYPE_SET_ID = 7
SESSION_ID = "0123456789abcdef0123456789abcdef"
TOKEN = "test-token"

# ---------------------------------------------------------------------------
# Platform client
# ---------------------------------------------------------------------------


@pytest.fixture
def platform():
    """A platform client whose mutating calls succeed with an empty body."""
    client = AsyncMock(spec=PlatformClient)
    client.update_item_type_set.return_value = None
    client.regenerate_permissions.return_value = None
    client.migrate_permissions.return_value = None
    client.remove_orphaned_permissions.return_value = None
    return client


# ---------------------------------------------------------------------------
# Editor factories
# ---------------------------------------------------------------------------


def make_config(
    id=1, *, item_type_id=None, category="STANDARD", field_set_id=10, workflow_id=20
) -> Configuration:
    return Configuration(
        id=id,
        item_type_id=item_type_id if item_type_id is not None else 100 + (id or 0),
        category=category,
        field_set_id=field_set_id,
        workflow_id=workflow_id,
    )


def make_editor(platform, configurations, *, project_id=None, name="Default set"):
    """Editor whose baseline equals ``configurations``."""
    state = EditorState(
        item_type_set_id=ITEM_TYPE_SET_ID,
        name=name,
        project_id=project_id,
        session_id=SESSION_ID,
        configurations=[c.model_copy(deep=True) for c in configurations],
    )
    state.replace_baseline(configurations)
    return ItemTypeSetEditor(state, platform)


def item_type_set_payload(configurations, *, id=ITEM_TYPE_SET_ID, name="Default set"):
    """``GET /item-type-sets/{id}`` response with nested entity references."""
    return {
        "id": id,
        "name": name,
        "description": "Standard item types",
        "scope": "TENANT",
        "itemTypeConfigurations": [
            {
                "id": c.id,
                "category": c.category,
                "itemType": {"id": c.item_type_id, "name": f"Type {c.item_type_id}"},
                "fieldSet": {"id": c.field_set_id} if c.field_set_id else None,
                "workflow": {"id": c.workflow_id} if c.workflow_id else None,
            }
            for c in configurations
        ],
    }


# ---------------------------------------------------------------------------
# Impact payload factories
# ---------------------------------------------------------------------------


def selectable_payload(
    permission_id,
    permission_type="FIELD_OWNERS",
    *,
    has_assignments=True,
    can_be_preserved=True,
    default_preserve=False,
    **extra,
) -> dict:
    return {
        "permissionId": permission_id,
        "permissionType": permission_type,
        "hasAssignments": has_assignments,
        "canBePreserved": can_be_preserved,
        "defaultPreserve": default_preserve,
        "assignedRoles": ["Developer"] if has_assignments else [],
        "itemTypeSetName": "Default set",
        **extra,
    }


def migration_impact_payload(configuration_id, *permissions, **extra) -> dict:
    field_owner = [p for p in permissions if p["permissionType"] == "FIELD_OWNERS"]
    executors = [p for p in permissions if p["permissionType"] == "EXECUTORS"]
    field_status = [
        p for p in permissions if p["permissionType"] not in ("FIELD_OWNERS", "EXECUTORS")
    ]
    return {
        "itemTypeConfigurationId": configuration_id,
        "itemTypeSetId": ITEM_TYPE_SET_ID,
        "itemTypeSetName": "Default set",
        "fieldSetChanged": True,
        "workflowChanged": False,
        "fieldOwnerPermissions": field_owner,
        "statusOwnerPermissions": None,
        "fieldStatusPermissions": field_status,
        "executorPermissions": executors,
        "totalNewPermissions": 0,
        **extra,
    }


def removal_permission_payload(
    permission_id, permission_type="FIELD_OWNERS", *, has_assignments=True, **extra
) -> dict:
    return {
        "permissionId": permission_id,
        "permissionType": permission_type,
        "hasAssignments": has_assignments,
        "assignedRoles": ["Developer"] if has_assignments else None,
        **extra,
    }


def removal_impact_payload(*permissions, removed_ids=()) -> dict:
    return {
        "itemTypeSetId": ITEM_TYPE_SET_ID,
        "itemTypeSetName": "Default set",
        "removedItemTypeConfigurationIds": list(removed_ids),
        "fieldOwnerPermissions": list(permissions),
        "workerPermissions": None,
        "totalRoleAssignments": sum(1 for p in permissions if p["hasAssignments"]),
    }


# ---------------------------------------------------------------------------
# Permission catalogue factories
# ---------------------------------------------------------------------------


def row_payload(
    id,
    kind="FIELD_OWNERS",
    *,
    item_type=(1, "Bug"),
    status=None,
    field=None,
    workflow=None,
    **extra,
) -> dict:
    def ref(value):
        return {"id": value[0], "name": value[1]} if value else None

    return {
        "id": id,
        "name": kind,
        "permissionType": kind,
        "itemType": ref(item_type),
        "workflowStatus": ref(status),
        "fieldConfiguration": ref(field),
        "workflow": ref(workflow),
        **extra,
    }


def make_row(id, kind="FIELD_OWNERS", **kwargs) -> PermissionRow:
    return PermissionRow.model_validate(row_payload(id, kind, **kwargs))


def group_rows(*rows: PermissionRow) -> dict[str, list[PermissionRow]]:
    grouped: dict[str, list[PermissionRow]] = {}
    for row in rows:
        grouped.setdefault(row.name, []).append(row)
    return grouped


# ---------------------------------------------------------------------------
# Database (filter preferences)
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def registry(platform):
    """Editor registry whose sessions all talk to the mocked platform."""
    from itsadmin.services.editor_session import EditorRegistry

    reg = EditorRegistry(ttl_seconds=3600, platform_url="http://platform.test")
    reg._client_for = lambda token: platform
    return reg


@pytest.fixture
async def app(platform, registry):
    """Minimal FastAPI test app with in-memory stores and the mocked platform."""
    from fastapi import FastAPI

    from itsadmin.api.deps import get_platform_client
    from itsadmin.api.v1.router import api_router
    from itsadmin.config import settings
    from itsadmin.services.filter_store import InMemoryFilterStore
    from itsadmin.services.grant_details import GrantCacheRegistry

    test_app = FastAPI()
    test_app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    test_app.state.platform_url = "http://platform.test"
    test_app.state.editor_registry = registry
    test_app.state.filter_store = InMemoryFilterStore()
    test_app.state.grant_caches = GrantCacheRegistry()

    async def _override_platform_client():
        yield platform

    test_app.dependency_overrides[get_platform_client] = _override_platform_client
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """HTTP test client for the test app, authenticated with a bearer token."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {TOKEN}"},
    ) as c:
        yield c
