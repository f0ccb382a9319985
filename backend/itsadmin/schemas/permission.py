"""Permission catalogue rows, filter specifications and grant details."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict, field_validator

from itsadmin.schemas.common import CamelModel, none_as_empty

ALL = "All"
NONE = "None"


class EntityRef(CamelModel):
    """A ``{id, name}`` reference to a platform entity embedded in a permission row."""

    id: int | str | None = None
    name: str | None = None

    @property
    def key(self) -> str:
        return "" if self.id is None else str(self.id)


class PermissionRow(CamelModel):
    """One row of ``GET /itemtypeset-permissions/itemtypeset/{id}``.

    ``name`` is the permission kind (``FIELD_OWNERS``, ``EXECUTORS`` ...).
    Unknown platform attributes are kept so the row can be echoed back as-is.
    """

    model_config = ConfigDict(extra="allow")

    id: int | None = None
    name: str = ""
    permission_type: str | None = None

    item_type: EntityRef | None = None
    workflow_status: EntityRef | None = None
    field_configuration: EntityRef | None = None
    workflow: EntityRef | None = None
    transition: EntityRef | None = None
    from_status: EntityRef | None = None
    to_status: EntityRef | None = None

    assigned_roles: list[Any] = []
    project_assigned_roles: list[Any] = []
    has_assignments: bool | None = None
    has_project_roles: bool | None = None

    grant_id: int | None = None
    grant_name: str | None = None
    assignment_type: str | None = None
    project_grant_id: int | None = None
    project_grants: list[Any] = []
    has_project_grant: bool = False

    @field_validator("assigned_roles", "project_assigned_roles", "project_grants", mode="before")
    @classmethod
    def coerce_null_lists(cls, v: Any) -> Any:
        return none_as_empty(v)

    @property
    def cache_key(self) -> str | None:
        if self.id is None or not self.permission_type:
            return None
        return f"{self.permission_type}-{self.id}"


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class FilterSpec(CamelModel):
    permission: str = ALL
    item_types: list[str] = [ALL]
    status: str = ALL
    field: str = ALL
    workflow: str = ALL
    grant: Literal["All", "Y", "N"] = ALL

    @field_validator("item_types", mode="before")
    @classmethod
    def default_item_types(cls, v: Any) -> Any:
        if not v:
            return [ALL]
        return [str(x) for x in v]

    @field_validator("status", "field", "workflow", "permission", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        if v is None:
            return ALL
        return str(v)


class FilterFlags(CamelModel):
    show_only_with_assignments: bool = False
    show_only_project_grants: bool = False
    include_project_assignments: bool = False


class FilterOption(CamelModel):
    id: str
    name: str


class FilterOptions(CamelModel):
    permissions: list[str] = [ALL]
    item_types: list[FilterOption] = []
    statuses: list[FilterOption] = []
    fields: list[FilterOption] = []
    workflows: list[FilterOption] = []


class DynamicFilterOptions(CamelModel):
    statuses: list[FilterOption] = []
    fields: list[FilterOption] = []
    workflows: list[FilterOption] = []


class FilterResult(CamelModel):
    grouped_roles: dict[str, list[PermissionRow]]
    filtered_roles: dict[str, list[PermissionRow]]
    total_count: int
    filtered_count: int
    options: FilterOptions
    dynamic_options: DynamicFilterOptions
    applied_filters: FilterSpec


class PermissionQuery(CamelModel):
    """Body of ``POST /item-type-sets/{id}/permissions/query``.

    When ``filters`` is omitted the stored preference for the ItemTypeSet is used.
    """

    project_id: int | None = None
    filters: FilterSpec | None = None
    show_only_with_assignments: bool = False
    show_only_project_grants: bool = False
    include_project_assignments: bool = False
    remember_filters: bool = True

    @property
    def flags(self) -> FilterFlags:
        return FilterFlags(
            show_only_with_assignments=self.show_only_with_assignments,
            show_only_project_grants=self.show_only_project_grants,
            include_project_assignments=self.include_project_assignments,
        )


# ---------------------------------------------------------------------------
# Grant details
# ---------------------------------------------------------------------------


class GrantDetail(CamelModel):
    users: list[Any] = []
    groups: list[Any] = []
    negated_users: list[Any] = []
    negated_groups: list[Any] = []
    is_project_grant: bool | None = None

    @classmethod
    def from_assignment(cls, assignment: dict | None, project: bool = False) -> GrantDetail:
        """Build from a permission-assignment payload; a missing grant yields empty lists."""
        grant = (assignment or {}).get("grant") or {}
        detail = cls(
            users=list(grant.get("users") or []),
            groups=list(grant.get("groups") or []),
            negated_users=list(grant.get("negatedUsers") or []),
            negated_groups=list(grant.get("negatedGroups") or []),
        )
        if project:
            detail.is_project_grant = bool(grant)
        return detail


class GrantDetailsResponse(CamelModel):
    scope: str
    details: dict[str, GrantDetail]
