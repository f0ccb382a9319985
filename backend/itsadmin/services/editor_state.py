"""Mutable state of one ItemTypeSet edit, shared by the save orchestrators."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Iterator, Sequence

from itsadmin.core.exceptions import (
    ConsoleError,
    InvalidState,
    OperationCancelled,
    ValidationFailed,
)
from itsadmin.schemas.configuration import Configuration
from itsadmin.schemas.impact import MigrationImpact, RemovalImpact
from itsadmin.services.change_detector import ChangeRecord, detect_changes, detect_removed
from itsadmin.services.preservation import PreservationSelection
from itsadmin.services.save_pipeline import PipelineStage, SavePipeline, SubmitOutcome

logger = logging.getLogger(__name__)


@dataclass
class EditorState:
    item_type_set_id: int
    name: str = ""
    description: str | None = None
    project_id: int | None = None
    session_id: str | None = None

    configurations: list[Configuration] = field(default_factory=list)
    baseline: tuple[Configuration, ...] = ()

    saving: bool = False
    # Set while platform writes are issued; they can no longer be cancelled
    applying: bool = False
    error: str | None = None
    redirect_to: str | None = None
    pipeline: SavePipeline | None = None

    # Migration confirmation
    show_migration_modal: bool = False
    migration_loading: bool = False
    migration_impacts: list[MigrationImpact] = field(default_factory=list)
    selection: PreservationSelection = field(default_factory=PreservationSelection)

    # Removal confirmation
    show_removal_modal: bool = False
    removal_loading: bool = False
    removal_impact: RemovalImpact | None = None
    # Removal impact held back while pending migrations are confirmed first
    deferred_removal_impact: RemovalImpact | None = None
    removed_ids: list[int] = field(default_factory=list)

    @property
    def scope(self) -> str:
        return "project" if self.project_id is not None else "tenant"

    @property
    def list_path(self) -> str:
        if self.project_id is not None:
            return f"/projects/{self.project_id}/item-type-sets"
        return "/tenant/item-type-sets"

    def replace_baseline(self, configurations: Sequence[Configuration]) -> None:
        self.baseline = tuple(c.model_copy(deep=True) for c in configurations)

    def changes(self) -> list[ChangeRecord]:
        return detect_changes(self.configurations, self.baseline)

    def pending_removals(self) -> list[int]:
        return detect_removed(self.configurations, self.baseline)

    def find_configuration(self, configuration_id: int) -> Configuration | None:
        return next((c for c in self.configurations if c.id == configuration_id), None)

    def start_pipeline(self) -> SavePipeline:
        if self.pipeline is not None:
            self.pipeline.token.cancel()
        self.pipeline = SavePipeline(self.item_type_set_id, session_id=self.session_id)
        return self.pipeline

    @contextmanager
    def applying_changes(self) -> Iterator[None]:
        previous, self.applying = self.applying, True
        try:
            yield
        finally:
            self.applying = previous

    def require_cancellable(self) -> None:
        if self.applying:
            raise InvalidState(
                "Changes are already being applied to the platform and can no longer be cancelled"
            )

    def clear_migration(self) -> None:
        self.show_migration_modal = False
        self.migration_loading = False
        self.migration_impacts = []
        self.selection = PreservationSelection()

    def clear_removal(self) -> None:
        self.show_removal_modal = False
        self.removal_loading = False
        self.removal_impact = None
        self.deferred_removal_impact = None
        self.removed_ids = []

    async def settle(
        self, pipeline: SavePipeline, work: Awaitable[SubmitOutcome]
    ) -> SubmitOutcome:
        """Await one user-triggered step and fold its failure into the editor state.

        Errors end up in ``error`` as a user-facing string; ``saving`` is reset
        so the form becomes editable again.
        """
        try:
            return await work
        except OperationCancelled:
            logger.info(
                "Discarding results of cancelled pipeline",
                extra={"session_id": self.session_id, "item_type_set_id": self.item_type_set_id},
            )
            return SubmitOutcome.CANCELLED
        except ValidationFailed as exc:
            outcome = SubmitOutcome.REJECTED
            failure: ConsoleError = exc
        except ConsoleError as exc:
            outcome = SubmitOutcome.FAILED
            failure = exc
        if pipeline.token.cancelled:
            return SubmitOutcome.CANCELLED
        logger.warning(
            "Save of ItemTypeSet %s %s: %s",
            self.item_type_set_id,
            outcome.value,
            failure.detail,
            extra={"session_id": self.session_id, "item_type_set_id": self.item_type_set_id},
        )
        pipeline.mark_failed(PipelineStage.FAILED, failure.detail)
        self.error = failure.detail
        self.saving = False
        self.clear_migration()
        self.clear_removal()
        return outcome
