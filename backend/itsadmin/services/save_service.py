"""Top-level save sequencing for an ItemTypeSet edit.

``handle_submit`` validates, then branches: removed configurations go through
removal impact analysis, changed FieldSets/Workflows through migration impact
analysis, and everything else is persisted directly. The analysis branches end
either in a confirmation the user must answer or in a call back to
``perform_save``.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from itsadmin.core.exceptions import (
    ApplyError,
    InvalidState,
    PlatformError,
    RemovalImpactConflict,
    ValidationFailed,
)
from itsadmin.schemas.configuration import Configuration, build_update_payload
from itsadmin.services.change_detector import ChangeRecord
from itsadmin.services.editor_state import EditorState
from itsadmin.services.platform_client import PlatformClient
from itsadmin.services.save_pipeline import PipelineStage, StageStatus, SubmitOutcome

logger = logging.getLogger(__name__)

REMOVAL_IMPACT_MESSAGE = (
    "Permissions of the removed configurations still have assignments. "
    "Generate and confirm the impact report before saving."
)
EMPTY_SET_MESSAGE = "An ItemTypeSet must have at least one configuration."

AnalyzeRemoval = Callable[[list[int], list[ChangeRecord]], Awaitable[SubmitOutcome]]
AnalyzeMigration = Callable[[list[ChangeRecord]], Awaitable[SubmitOutcome]]


class SaveOrchestrator:
    def __init__(
        self,
        state: EditorState,
        client: PlatformClient,
        analyze_removal: AnalyzeRemoval,
        analyze_migration: AnalyzeMigration,
    ):
        self.state = state
        self.client = client
        self._analyze_removal = analyze_removal
        self._analyze_migration = analyze_migration

    async def handle_submit(self) -> SubmitOutcome:
        state = self.state
        if state.saving:
            raise InvalidState("A save is already in progress")

        pipeline = state.start_pipeline()
        state.error = None
        state.redirect_to = None
        state.saving = True
        return await state.settle(pipeline, self._submit())

    async def _submit(self) -> SubmitOutcome:
        state = self.state
        with state.pipeline.step(PipelineStage.VALIDATE):
            if not state.configurations:
                raise ValidationFailed(EMPTY_SET_MESSAGE)

        removed = state.pending_removals()
        changes = state.changes()
        logger.info(
            "Submitting ItemTypeSet %s: %d removed, %d changed configuration(s)",
            state.item_type_set_id,
            len(removed),
            len(changes),
            extra={"session_id": state.session_id, "item_type_set_id": state.item_type_set_id},
        )
        if removed:
            return await self._analyze_removal(removed, changes)
        if changes:
            return await self._analyze_migration(changes)
        return await self.perform_save()

    async def perform_save(self, force_removal: bool = False) -> SubmitOutcome:
        """Persist the full configuration list, regenerate permissions, refresh baseline."""
        state = self.state
        with state.applying_changes():
            pipeline = state.pipeline
            payload = build_update_payload(
                state.name, state.description, state.configurations, force_removal=force_removal
            )

            with pipeline.step(PipelineStage.PERSIST, "forceRemoval" if force_removal else None):
                try:
                    saved = await self.client.update_item_type_set(
                        state.item_type_set_id, payload, project_id=state.project_id
                    )
                except PlatformError as exc:
                    if exc.is_removal_impact_conflict:
                        raise RemovalImpactConflict(
                            REMOVAL_IMPACT_MESSAGE, context={"platform_message": exc.detail}
                        ) from exc
                    raise ApplyError(exc.detail, context={"status_code": exc.status_code}) from exc

            await self._regenerate_permissions()

            if isinstance(saved, dict) and saved.get("itemTypeConfigurations") is not None:
                confirmed = [Configuration.from_platform(c) for c in saved["itemTypeConfigurations"]]
            else:
                confirmed = [c.model_copy(deep=True) for c in state.configurations]
            state.replace_baseline(confirmed)
            state.configurations = [c.model_copy(deep=True) for c in confirmed]

            state.redirect_to = state.list_path
            state.saving = False
            state.clear_migration()
            state.clear_removal()
            pipeline.mark(PipelineStage.DONE)
            logger.info(
                "ItemTypeSet %s saved",
                state.item_type_set_id,
                extra={"session_id": state.session_id, "item_type_set_id": state.item_type_set_id},
            )
            return SubmitOutcome.SAVED

    async def _regenerate_permissions(self) -> None:
        pipeline = self.state.pipeline
        try:
            await self.client.regenerate_permissions(self.state.item_type_set_id)
        except PlatformError as exc:
            # Permissions can be regenerated later from the permission screen
            logger.warning(
                "Permission regeneration for ItemTypeSet %s failed: %s",
                self.state.item_type_set_id,
                exc.detail,
            )
            pipeline.record(PipelineStage.REGENERATE, StageStatus.FAILED, exc.detail)
        else:
            pipeline.record(PipelineStage.REGENERATE, StageStatus.COMPLETED)
        pipeline.token.raise_if_cancelled()
