"""Impact payloads computed by the platform for configuration migrations and removals."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from itsadmin.schemas.common import CamelModel, none_as_empty


class ProjectGrantInfo(CamelModel):
    project_id: int
    project_name: str | None = None
    assigned_roles: list[str] = []
    grant_id: int | None = None
    grant_name: str | None = None


# ---------------------------------------------------------------------------
# Migration (FieldSet / Workflow swap on one configuration)
# ---------------------------------------------------------------------------


class SelectablePermission(CamelModel):
    """A permission affected by a migration, with its preservability flags."""

    permission_id: int
    permission_type: str

    # Current entity (Field, WorkflowStatus, Transition)
    entity_id: int | None = None
    entity_name: str | None = None
    field_id: int | None = None
    field_name: str | None = None
    workflow_status_id: int | None = None
    workflow_status_name: str | None = None

    # Successor entity in the new configuration, when one exists
    matching_entity_id: int | None = None
    matching_entity_name: str | None = None

    assigned_roles: list[str] = []
    has_assignments: bool = False
    can_be_preserved: bool = False
    default_preserve: bool = False

    item_type_set_id: int | None = None
    item_type_set_name: str | None = None
    project_id: int | None = None
    project_name: str | None = None

    role_id: int | None = None
    role_name: str | None = None
    grant_id: int | None = None
    grant_name: str | None = None
    project_grants: list[ProjectGrantInfo] = []

    from_status_name: str | None = None
    to_status_name: str | None = None
    transition_name: str | None = None

    suggested_action: str | None = None  # PRESERVE / REMOVE / NEW

    @field_validator("assigned_roles", "project_grants", mode="before")
    @classmethod
    def coerce_null_lists(cls, v: Any) -> Any:
        return none_as_empty(v)

    @property
    def is_preservable(self) -> bool:
        return self.has_assignments and self.can_be_preserved


class MigrationImpact(CamelModel):
    item_type_configuration_id: int
    item_type_configuration_name: str | None = None
    item_type_set_id: int | None = None
    item_type_set_name: str | None = None
    item_type_id: int | None = None
    item_type_name: str | None = None

    old_field_set: dict[str, Any] | None = None
    new_field_set: dict[str, Any] | None = None
    field_set_changed: bool = False
    old_workflow: dict[str, Any] | None = None
    new_workflow: dict[str, Any] | None = None
    workflow_changed: bool = False

    field_owner_permissions: list[SelectablePermission] = []
    status_owner_permissions: list[SelectablePermission] = []
    field_status_permissions: list[SelectablePermission] = []
    executor_permissions: list[SelectablePermission] = []

    total_preservable_permissions: int = 0
    total_removable_permissions: int = 0
    total_new_permissions: int = 0
    total_permissions_with_roles: int = 0

    @field_validator(
        "field_owner_permissions",
        "status_owner_permissions",
        "field_status_permissions",
        "executor_permissions",
        mode="before",
    )
    @classmethod
    def coerce_null_lists(cls, v: Any) -> Any:
        return none_as_empty(v)

    def all_permissions(self) -> list[SelectablePermission]:
        return [
            *self.field_owner_permissions,
            *self.status_owner_permissions,
            *self.field_status_permissions,
            *self.executor_permissions,
        ]

    def permissions_with_assignments(self) -> list[SelectablePermission]:
        return [p for p in self.all_permissions() if p.has_assignments]

    @property
    def has_assignments(self) -> bool:
        return any(p.has_assignments for p in self.all_permissions())


# ---------------------------------------------------------------------------
# Removal (one or more configurations dropped from the ItemTypeSet)
# ---------------------------------------------------------------------------


class RemovalPermissionImpact(CamelModel):
    permission_id: int | None = None
    permission_type: str
    item_type_set_id: int | None = None
    item_type_set_name: str | None = None
    project_id: int | None = None
    project_name: str | None = None
    item_type_configuration_id: int | None = None
    item_type_name: str | None = None
    item_type_category: str | None = None
    field_configuration_id: int | None = None
    field_configuration_name: str | None = None
    workflow_status_id: int | None = None
    workflow_status_name: str | None = None
    transition_id: int | None = None
    transition_name: str | None = None
    from_status_name: str | None = None
    to_status_name: str | None = None
    role_id: int | None = None
    role_name: str | None = None
    grant_id: int | None = None
    grant_name: str | None = None
    assigned_roles: list[str] = []
    assigned_grants: list[str] = []
    has_assignments: bool = False

    @field_validator("assigned_roles", "assigned_grants", mode="before")
    @classmethod
    def coerce_null_lists(cls, v: Any) -> Any:
        return none_as_empty(v)


REMOVAL_CATEGORIES = (
    "field_owner_permissions",
    "status_owner_permissions",
    "field_status_permissions",
    "executor_permissions",
    "worker_permissions",
    "creator_permissions",
)


class RemovalImpact(CamelModel):
    item_type_set_id: int | None = None
    item_type_set_name: str | None = None
    removed_item_type_configuration_ids: list[int] = []
    removed_item_type_configuration_names: list[str] = []

    field_owner_permissions: list[RemovalPermissionImpact] = []
    status_owner_permissions: list[RemovalPermissionImpact] = []
    field_status_permissions: list[RemovalPermissionImpact] = []
    executor_permissions: list[RemovalPermissionImpact] = []
    worker_permissions: list[RemovalPermissionImpact] = []
    creator_permissions: list[RemovalPermissionImpact] = []

    total_grant_assignments: int = 0
    total_role_assignments: int = 0

    @field_validator(
        "removed_item_type_configuration_ids",
        "removed_item_type_configuration_names",
        *REMOVAL_CATEGORIES,
        mode="before",
    )
    @classmethod
    def coerce_null_lists(cls, v: Any) -> Any:
        return none_as_empty(v)

    def categories(self) -> dict[str, list[RemovalPermissionImpact]]:
        return {name: getattr(self, name) for name in REMOVAL_CATEGORIES}

    def all_permissions(self) -> list[RemovalPermissionImpact]:
        return [p for perms in self.categories().values() for p in perms]

    @property
    def has_assignments(self) -> bool:
        return any(p.has_assignments for p in self.all_permissions())

    def assigned_permission_ids(self) -> set[int]:
        return {
            p.permission_id
            for p in self.all_permissions()
            if p.has_assignments and p.permission_id is not None
        }
