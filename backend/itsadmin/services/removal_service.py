"""Removal impact orchestration for configurations dropped from an ItemTypeSet."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, Sequence

from itsadmin.core.exceptions import (
    AnalysisError,
    ApplyError,
    InvalidState,
    PlatformError,
    SelectionError,
)
from itsadmin.core.metrics import impact_analyses_total
from itsadmin.schemas.impact import RemovalImpact
from itsadmin.services.change_detector import ChangeRecord
from itsadmin.services.editor_state import EditorState
from itsadmin.services.platform_client import PlatformClient
from itsadmin.services.save_pipeline import PipelineStage, SubmitOutcome

logger = logging.getLogger(__name__)

PerformSave = Callable[[bool], Awaitable[SubmitOutcome]]
AnalyzeMigration = Callable[[list[ChangeRecord]], Awaitable[SubmitOutcome]]


class RemovalOrchestrator:
    def __init__(
        self,
        state: EditorState,
        client: PlatformClient,
        perform_save: PerformSave,
        analyze_migration: AnalyzeMigration,
    ):
        self.state = state
        self.client = client
        self._perform_save = perform_save
        self._analyze_migration = analyze_migration

    async def analyze(
        self, removed_ids: Sequence[int], changes: Sequence[ChangeRecord]
    ) -> SubmitOutcome:
        """One aggregate impact call for the whole batch of removed configurations.

        Pending migrations are always confirmed first; the removal impact is held
        back meanwhile and picked up again by ``resume_after_migration``.
        """
        state = self.state
        pipeline = state.pipeline
        state.removal_loading = True
        state.error = None
        try:
            with pipeline.step(PipelineStage.REMOVAL_ANALYSIS, f"{len(removed_ids)} configuration(s)"):
                try:
                    data = await self.client.analyze_removal_impact(
                        state.item_type_set_id, list(removed_ids)
                    )
                except PlatformError as exc:
                    impact_analyses_total.labels(kind="removal", outcome="failed").inc()
                    raise AnalysisError(exc.detail, context={"removed_ids": list(removed_ids)}) from exc
        finally:
            state.removal_loading = False

        impact = RemovalImpact.model_validate(data or {})
        state.removed_ids = list(removed_ids)
        impact_analyses_total.labels(
            kind="removal", outcome="confirmation" if impact.has_assignments else "no_assignments"
        ).inc()

        if changes:
            state.deferred_removal_impact = impact
            return await self._analyze_migration(list(changes))
        if impact.has_assignments:
            return self._show(impact)
        return await self.perform_save_with_removal(removed_ids, [], force_removal=False)

    async def resume_after_migration(self, removed_ids: Sequence[int]) -> SubmitOutcome:
        state = self.state
        deferred = state.deferred_removal_impact
        state.deferred_removal_impact = None
        if deferred is None:
            return await self.analyze(removed_ids, [])
        if deferred.has_assignments:
            return self._show(deferred)
        return await self.perform_save_with_removal(removed_ids, [], force_removal=False)

    def _show(self, impact: RemovalImpact) -> SubmitOutcome:
        state = self.state
        state.removal_impact = impact
        state.show_removal_modal = True
        state.pipeline.mark(PipelineStage.AWAITING_REMOVAL_CONFIRMATION)
        return SubmitOutcome.AWAITING_REMOVAL_CONFIRMATION

    async def perform_save_with_removal(
        self,
        removed_ids: Sequence[int],
        preserved_ids: Iterable[int],
        force_removal: bool,
    ) -> SubmitOutcome:
        """Clean up orphaned permissions, move the baseline to the current list, then save.

        The baseline moves before the save so the save's own diff sees no further
        removed configurations.
        """
        state = self.state
        with state.applying_changes():
            preserved = list(preserved_ids)
            with state.pipeline.step(
                PipelineStage.REMOVE_ORPHANS,
                f"{len(removed_ids)} removed, {len(preserved)} preserved",
            ):
                try:
                    await self.client.remove_orphaned_permissions(
                        state.item_type_set_id, list(removed_ids), preserved
                    )
                except PlatformError as exc:
                    raise ApplyError(
                        exc.detail, context={"removed_ids": list(removed_ids)}
                    ) from exc

            state.replace_baseline(state.configurations)
            return await self._perform_save(force_removal)

    async def confirm(self, preserved_ids: Iterable[int]) -> SubmitOutcome:
        """Remove with the user's preserved ids; the platform is told to proceed."""
        state = self.state
        if not state.show_removal_modal or state.removal_impact is None:
            raise InvalidState("No removal is awaiting confirmation")
        preserved = list(preserved_ids)
        known = {
            p.permission_id
            for p in state.removal_impact.all_permissions()
            if p.permission_id is not None
        }
        unknown = sorted(set(preserved) - known)
        if unknown:
            raise SelectionError(
                f"Permissions {unknown} are not part of the removal impact",
                context={"permission_ids": unknown},
            )

        removed = list(state.removed_ids)
        state.show_removal_modal = False
        state.removal_loading = True
        try:
            with state.applying_changes():
                return await state.settle(
                    state.pipeline,
                    self.perform_save_with_removal(removed, preserved, force_removal=True),
                )
        finally:
            state.removal_loading = False

    def cancel(self) -> None:
        state = self.state
        state.require_cancellable()
        state.clear_removal()
        if state.pipeline is not None:
            state.pipeline.cancel()
        state.saving = False
