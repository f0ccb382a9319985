"""Editor sessions: one administrator's in-progress edit of one ItemTypeSet.

``ItemTypeSetEditor`` wires the save, removal and migration orchestrators
around a shared ``EditorState``. ``EditorRegistry`` keeps open editors in
memory, keyed by an opaque session id.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from itsadmin.config import settings
from itsadmin.core.exceptions import InvalidState, SessionNotFound, ValidationFailed
from itsadmin.core.metrics import editor_sessions_open
from itsadmin.schemas.configuration import Configuration, ItemTypeSet
from itsadmin.schemas.editor import EditorView, SelectionView, StageView
from itsadmin.services.editor_state import EditorState
from itsadmin.services.migration_service import MigrationOrchestrator
from itsadmin.services.platform_client import PlatformClient
from itsadmin.services.preservation import permission_display_name
from itsadmin.services.removal_service import RemovalOrchestrator
from itsadmin.services.save_pipeline import SubmitOutcome
from itsadmin.services.save_service import EMPTY_SET_MESSAGE, SaveOrchestrator

logger = logging.getLogger(__name__)


class ItemTypeSetEditor:
    def __init__(self, state: EditorState, client: PlatformClient):
        self.state = state
        self.client = client
        self.save = SaveOrchestrator(
            state,
            client,
            analyze_removal=lambda removed, changes: self.removal.analyze(removed, changes),
            analyze_migration=lambda changes: self.migration.analyze(changes),
        )
        self.migration = MigrationOrchestrator(
            state,
            client,
            perform_save=lambda force: self.save.perform_save(force),
            resume_removal=lambda removed: self.removal.resume_after_migration(removed),
        )
        self.removal = RemovalOrchestrator(
            state,
            client,
            perform_save=lambda force: self.save.perform_save(force),
            analyze_migration=lambda changes: self.migration.analyze(changes),
        )

    @classmethod
    async def load(
        cls,
        client: PlatformClient,
        item_type_set_id: int,
        project_id: int | None = None,
        session_id: str | None = None,
    ) -> ItemTypeSetEditor:
        data = await client.get_item_type_set(item_type_set_id)
        item_type_set = ItemTypeSet.from_platform(data)
        state = EditorState(
            item_type_set_id=item_type_set.id,
            name=item_type_set.name,
            description=item_type_set.description,
            project_id=project_id,
            session_id=session_id,
            configurations=[c.model_copy(deep=True) for c in item_type_set.item_type_configurations],
        )
        state.replace_baseline(item_type_set.item_type_configurations)
        return cls(state, client)

    # ── Form edits ──────────────────────────────────────────────────

    def _require_editable(self) -> None:
        if self.state.saving:
            raise InvalidState("The ItemTypeSet is being saved")

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.state.configurations):
            raise ValidationFailed(
                f"No configuration at position {index}", context={"index": index}
            )

    def _check_unique_item_type(self, item_type_id: int, skip_index: int | None = None) -> None:
        for i, config in enumerate(self.state.configurations):
            if i != skip_index and config.item_type_id == item_type_id:
                raise ValidationFailed(
                    "The ItemTypeSet already has a configuration for this item type",
                    context={"item_type_id": item_type_id},
                )

    def update_details(self, name: str | None = None, description: str | None = None) -> None:
        self._require_editable()
        if name is not None:
            self.state.name = name
        if description is not None:
            self.state.description = description

    def add_configuration(self, config: Configuration) -> int:
        self._require_editable()
        self._check_unique_item_type(config.item_type_id)
        # New entries get their id from the platform on save
        self.state.configurations.append(config.model_copy(update={"id": None}))
        return len(self.state.configurations) - 1

    def update_configuration(self, index: int, changes: dict[str, Any]) -> Configuration:
        self._require_editable()
        self._check_index(index)
        if "item_type_id" in changes:
            self._check_unique_item_type(changes["item_type_id"], skip_index=index)
        current = self.state.configurations[index]
        updated = current.model_copy(update={k: v for k, v in changes.items() if k != "id"})
        self.state.configurations[index] = updated
        return updated

    def remove_configuration(self, index: int) -> Configuration:
        self._require_editable()
        self._check_index(index)
        if len(self.state.configurations) == 1:
            raise ValidationFailed(EMPTY_SET_MESSAGE)
        return self.state.configurations.pop(index)

    # ── Save flow ───────────────────────────────────────────────────

    async def submit(self) -> SubmitOutcome:
        return await self.save.handle_submit()

    def view(self) -> EditorView:
        state = self.state
        stats = self.migration.stats()
        return EditorView(
            session_id=state.session_id or "",
            item_type_set_id=state.item_type_set_id,
            project_id=state.project_id,
            scope=state.scope,
            name=state.name,
            description=state.description,
            configurations=list(state.configurations),
            saving=state.saving,
            error=state.error,
            show_migration_modal=state.show_migration_modal,
            migration_loading=state.migration_loading,
            migration_impacts=list(state.migration_impacts),
            selection=SelectionView(
                preserved_permission_ids=state.selection.as_request_map(),
                preserve_all_active=state.selection.preserve_all_active,
                remove_all_active=state.selection.remove_all_active,
                preservable=stats.preservable,
                removable=stats.removable,
                new=stats.new,
                with_roles=stats.with_roles,
                selected=stats.selected,
                configurations_count=stats.configurations_count,
            ),
            permission_names={
                p.permission_id: permission_display_name(p)
                for impact in state.migration_impacts
                for p in impact.permissions_with_assignments()
            },
            show_removal_modal=state.show_removal_modal,
            removal_loading=state.removal_loading,
            removal_impact=state.removal_impact,
            pipeline=[
                StageView(stage=r.stage.value, status=r.status.value, detail=r.detail, at=r.at)
                for r in (state.pipeline.records if state.pipeline else [])
            ],
            redirect_to=state.redirect_to,
        )

    async def close(self) -> None:
        if self.state.pipeline is not None:
            self.state.pipeline.token.cancel()
        await self.client.close()


class _Entry:
    __slots__ = ("editor", "last_access")

    def __init__(self, editor: ItemTypeSetEditor):
        self.editor = editor
        self.last_access = time.monotonic()


class EditorRegistry:
    """In-memory store of open editors. Idle sessions expire after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: int | None = None, platform_url: str | None = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.SESSION_TTL_SECONDS
        self.platform_url = platform_url
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _client_for(self, token: str | None) -> PlatformClient:
        return PlatformClient(base_url=self.platform_url, token=token)

    async def open(
        self,
        item_type_set_id: int,
        project_id: int | None = None,
        token: str | None = None,
        client: PlatformClient | None = None,
    ) -> tuple[str, ItemTypeSetEditor]:
        await self.evict_expired()
        session_id = uuid.uuid4().hex
        client = client or self._client_for(token)
        try:
            editor = await ItemTypeSetEditor.load(
                client, item_type_set_id, project_id=project_id, session_id=session_id
            )
        except Exception:
            await client.close()
            raise
        self._entries[session_id] = _Entry(editor)
        editor_sessions_open.set(len(self._entries))
        logger.info(
            "Opened editor session for ItemTypeSet %s",
            item_type_set_id,
            extra={"session_id": session_id, "item_type_set_id": item_type_set_id},
        )
        return session_id, editor

    def get(self, session_id: str) -> ItemTypeSetEditor:
        entry = self._entries.get(session_id)
        if entry is None or self._expired(entry):
            raise SessionNotFound(session_id)
        entry.last_access = time.monotonic()
        return entry.editor

    async def close(self, session_id: str) -> None:
        entry = self._entries.pop(session_id, None)
        if entry is None:
            raise SessionNotFound(session_id)
        editor_sessions_open.set(len(self._entries))
        await entry.editor.close()

    async def close_all(self) -> None:
        entries = list(self._entries.values())
        self._entries.clear()
        editor_sessions_open.set(0)
        for entry in entries:
            await entry.editor.close()

    def _expired(self, entry: _Entry) -> bool:
        return time.monotonic() - entry.last_access > self.ttl_seconds

    async def evict_expired(self) -> int:
        expired = [sid for sid, entry in self._entries.items() if self._expired(entry)]
        for sid in expired:
            entry = self._entries.pop(sid)
            await entry.editor.close()
            logger.info("Editor session expired", extra={"session_id": sid})
        if expired:
            editor_sessions_open.set(len(self._entries))
        return len(expired)
