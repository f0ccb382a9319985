"""Save pipeline: the recorded sequence of stages of one save attempt.

A save can issue several platform calls in order::

    migrate (per configuration) -> remove orphans -> persist -> regenerate

These calls are NOT atomic. When a later call fails the earlier ones are not
rolled back, so the platform can be left with some configurations migrated
and the ItemTypeSet itself unsaved. The pipeline records every issued call so
the editor can report exactly how far an attempt got.
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

from itsadmin.core.exceptions import OperationCancelled
from itsadmin.core.metrics import pipeline_stages_total

logger = logging.getLogger(__name__)


class PipelineStage(str, enum.Enum):
    VALIDATE = "validate"
    REMOVAL_ANALYSIS = "removal_analysis"
    MIGRATION_ANALYSIS = "migration_analysis"
    AWAITING_REMOVAL_CONFIRMATION = "awaiting_removal_confirmation"
    AWAITING_MIGRATION_CONFIRMATION = "awaiting_migration_confirmation"
    MIGRATE = "migrate"
    REMOVE_ORPHANS = "remove_orphans"
    PERSIST = "persist"
    REGENERATE = "regenerate"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Stages that change data on the platform
MUTATING_STAGES = frozenset(
    {
        PipelineStage.MIGRATE,
        PipelineStage.REMOVE_ORPHANS,
        PipelineStage.PERSIST,
        PipelineStage.REGENERATE,
    }
)


class StageStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    REACHED = "reached"


class SubmitOutcome(str, enum.Enum):
    SAVED = "saved"
    AWAITING_MIGRATION_CONFIRMATION = "awaiting_migration_confirmation"
    AWAITING_REMOVAL_CONFIRMATION = "awaiting_removal_confirmation"
    REJECTED = "rejected"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StageRecord:
    stage: PipelineStage
    status: StageStatus
    detail: str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CancelToken:
    """Marks a pipeline as abandoned. Results that arrive afterwards are discarded."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled()


class SavePipeline:
    def __init__(self, item_type_set_id: int, session_id: str | None = None):
        self.item_type_set_id = item_type_set_id
        self.session_id = session_id
        self.token = CancelToken()
        self.records: list[StageRecord] = []

    def record(self, stage: PipelineStage, status: StageStatus, detail: str | None = None) -> None:
        self.records.append(StageRecord(stage=stage, status=status, detail=detail))
        pipeline_stages_total.labels(stage=stage.value, status=status.value).inc()
        logger.debug(
            "Pipeline stage %s %s%s",
            stage.value,
            status.value,
            f" ({detail})" if detail else "",
            extra={
                "session_id": self.session_id,
                "item_type_set_id": self.item_type_set_id,
                "stage": stage.value,
            },
        )

    @contextmanager
    def step(self, stage: PipelineStage, detail: str | None = None) -> Iterator[None]:
        """Run one stage.

        Refuses to start once the pipeline has been cancelled, and raises
        ``OperationCancelled`` on exit when it was cancelled while the stage ran.
        """
        self.token.raise_if_cancelled()
        self.record(stage, StageStatus.STARTED, detail)
        try:
            yield
        except OperationCancelled:
            raise
        except Exception as exc:
            self.record(stage, StageStatus.FAILED, str(exc))
            raise
        self.record(stage, StageStatus.COMPLETED, detail)
        self.token.raise_if_cancelled()

    def mark(self, stage: PipelineStage, detail: str | None = None) -> None:
        """Record a terminal or waiting state that issues no call."""
        self.record(stage, StageStatus.REACHED, detail)

    def mark_failed(self, stage: PipelineStage, detail: str | None = None) -> None:
        self.record(stage, StageStatus.FAILED, detail)

    def cancel(self) -> None:
        if not self.token.cancelled:
            self.token.cancel()
            self.mark(PipelineStage.CANCELLED)

    @property
    def current_stage(self) -> PipelineStage | None:
        return self.records[-1].stage if self.records else None

    def issued_calls(self) -> list[StageRecord]:
        """Mutating calls that completed; these stay applied if a later stage fails."""
        return [
            r
            for r in self.records
            if r.stage in MUTATING_STAGES and r.status is StageStatus.COMPLETED
        ]
