"""Migration impact orchestration for configurations whose FieldSet or Workflow changed.

Impact is requested one configuration at a time; any failure aborts the whole
analysis. When nothing affected has assignments the confirmation is skipped.
Otherwise the user decides, per permission, what to preserve and confirms, and
the chosen migrations are applied before handing off to removal or save.

The baseline is not touched here: removal detection still needs the
pre-migration snapshot.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Mapping, Sequence

from itsadmin.core.exceptions import AnalysisError, ApplyError, InvalidState, PlatformError
from itsadmin.core.metrics import impact_analyses_total
from itsadmin.schemas.impact import MigrationImpact
from itsadmin.services.change_detector import ChangeRecord
from itsadmin.services.editor_state import EditorState
from itsadmin.services.platform_client import PlatformClient
from itsadmin.services.preservation import (
    PreservationSelection,
    SelectionStats,
    initial_selection,
    selection_from_map,
    selection_stats,
)
from itsadmin.services.save_pipeline import PipelineStage, SavePipeline, SubmitOutcome

logger = logging.getLogger(__name__)

PerformSave = Callable[[bool], Awaitable[SubmitOutcome]]
ResumeRemoval = Callable[[list[int]], Awaitable[SubmitOutcome]]


class MigrationOrchestrator:
    def __init__(
        self,
        state: EditorState,
        client: PlatformClient,
        perform_save: PerformSave,
        resume_removal: ResumeRemoval,
    ):
        self.state = state
        self.client = client
        self._perform_save = perform_save
        self._resume_removal = resume_removal

    # ── Analysis ────────────────────────────────────────────────────

    async def analyze(self, changes: Sequence[ChangeRecord]) -> SubmitOutcome:
        state = self.state
        pipeline = state.pipeline
        state.migration_loading = True
        state.error = None
        try:
            with pipeline.step(PipelineStage.MIGRATION_ANALYSIS, f"{len(changes)} configuration(s)"):
                impacts = await self._fetch_impacts(pipeline, changes)
        finally:
            state.migration_loading = False

        if not any(impact.has_assignments for impact in impacts):
            impact_analyses_total.labels(kind="migration", outcome="no_assignments").inc()
            logger.info(
                "No assigned permissions affected by migration of %d configuration(s)",
                len(impacts),
                extra={"session_id": state.session_id, "item_type_set_id": state.item_type_set_id},
            )
            return await self._continue()

        impact_analyses_total.labels(kind="migration", outcome="confirmation").inc()
        state.migration_impacts = list(impacts)
        state.selection = initial_selection(impacts)
        state.show_migration_modal = True
        pipeline.mark(PipelineStage.AWAITING_MIGRATION_CONFIRMATION)
        return SubmitOutcome.AWAITING_MIGRATION_CONFIRMATION

    async def _fetch_impacts(
        self, pipeline: SavePipeline, changes: Sequence[ChangeRecord]
    ) -> list[MigrationImpact]:
        impacts: list[MigrationImpact] = []
        for change in changes:
            config = change.config
            try:
                data = await self.client.get_migration_impact(
                    change.configuration_id, config.field_set_id, config.workflow_id
                )
            except PlatformError as exc:
                impact_analyses_total.labels(kind="migration", outcome="failed").inc()
                raise AnalysisError(
                    exc.detail, context={"configuration_id": change.configuration_id}
                ) from exc
            pipeline.token.raise_if_cancelled()
            impacts.append(MigrationImpact.model_validate(data or {}))
        return impacts

    async def _continue(self) -> SubmitOutcome:
        removed = self.state.pending_removals()
        if removed:
            return await self._resume_removal(removed)
        return await self._perform_save(False)

    # ── Selection ───────────────────────────────────────────────────

    def _require_pending(self) -> None:
        if not self.state.show_migration_modal:
            raise InvalidState("No migration is awaiting confirmation")

    def toggle(self, configuration_id: int, permission_id: int) -> PreservationSelection:
        self._require_pending()
        state = self.state
        state.selection = state.selection.toggle(
            state.migration_impacts, configuration_id, permission_id
        )
        return state.selection

    def preserve_all_preservable(self) -> PreservationSelection:
        self._require_pending()
        state = self.state
        state.selection = state.selection.preserve_all(state.migration_impacts)
        return state.selection

    def remove_all(self) -> PreservationSelection:
        self._require_pending()
        state = self.state
        state.selection = state.selection.remove_all(state.migration_impacts)
        return state.selection

    def stats(self) -> SelectionStats:
        return selection_stats(self.state.migration_impacts, self.state.selection)

    # ── Confirmation ────────────────────────────────────────────────

    async def confirm(
        self, selection_map: Mapping[int, Sequence[int]] | None = None
    ) -> SubmitOutcome:
        """Apply the migrations. ``selection_map`` overrides the held selection."""
        self._require_pending()
        state = self.state
        if selection_map is not None:
            state.selection = selection_from_map(state.migration_impacts, selection_map)
        with state.applying_changes():
            return await state.settle(state.pipeline, self._apply(state.selection))

    async def _apply(self, selection: PreservationSelection) -> SubmitOutcome:
        state = self.state
        pipeline = state.pipeline
        state.migration_loading = True
        try:
            for configuration_id, preserved in selection.as_request_map().items():
                config = state.find_configuration(configuration_id)
                if config is None:
                    logger.error("Configuration %s not found, skipping migration", configuration_id)
                    continue
                with pipeline.step(PipelineStage.MIGRATE, f"configuration {configuration_id}"):
                    try:
                        await self.client.migrate_permissions(
                            configuration_id,
                            config.field_set_id or None,
                            config.workflow_id or None,
                            preserved,
                        )
                    except PlatformError as exc:
                        raise ApplyError(
                            exc.detail, context={"configuration_id": configuration_id}
                        ) from exc
        finally:
            state.migration_loading = False

        state.clear_migration()
        return await self._continue()

    def cancel(self) -> None:
        """Dismiss the confirmation. Nothing was applied, so no server call is made."""
        state = self.state
        state.require_cancellable()
        state.clear_migration()
        state.deferred_removal_impact = None
        state.removed_ids = []
        if state.pipeline is not None:
            state.pipeline.cancel()
        state.saving = False
