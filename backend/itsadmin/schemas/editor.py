"""Request and response bodies of the editor-session API."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from itsadmin.schemas.common import CamelModel
from itsadmin.schemas.configuration import Configuration
from itsadmin.schemas.impact import MigrationImpact, RemovalImpact


class OpenSessionRequest(CamelModel):
    item_type_set_id: int
    project_id: int | None = None


class ConfigurationInput(CamelModel):
    item_type_id: int
    category: str = Field(min_length=1)
    field_set_id: int | None = None
    workflow_id: int | None = None


class ConfigurationUpdate(CamelModel):
    item_type_id: int | None = None
    category: str | None = Field(default=None, min_length=1)
    field_set_id: int | None = None
    workflow_id: int | None = None


class DetailsUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class ToggleRequest(CamelModel):
    configuration_id: int
    permission_id: int


class MigrationConfirmRequest(CamelModel):
    """``preservedPermissionIds`` maps configuration id to ids; omitted means the held selection."""

    preserved_permission_ids: dict[int, list[int]] | None = None


class RemovalConfirmRequest(CamelModel):
    preserved_permission_ids: list[int] = []


class SelectionView(CamelModel):
    preserved_permission_ids: dict[int, list[int]] = {}
    preserve_all_active: bool = False
    remove_all_active: bool = False
    preservable: int = 0
    removable: int = 0
    new: int = 0
    with_roles: int = 0
    selected: int = 0
    configurations_count: int = 0


class StageView(CamelModel):
    stage: str
    status: str
    detail: str | None = None
    at: datetime


class EditorView(CamelModel):
    session_id: str
    item_type_set_id: int
    project_id: int | None = None
    scope: str
    name: str
    description: str | None = None
    configurations: list[Configuration]
    saving: bool
    error: str | None = None
    show_migration_modal: bool
    migration_loading: bool
    migration_impacts: list[MigrationImpact] = []
    selection: SelectionView
    permission_names: dict[int, str] = {}
    show_removal_modal: bool
    removal_loading: bool
    removal_impact: RemovalImpact | None = None
    pipeline: list[StageView] = []
    redirect_to: str | None = None


class SubmitResponse(CamelModel):
    outcome: str
    editor: EditorView
