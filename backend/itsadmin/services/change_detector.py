"""Diff the editable configuration list against the last server-confirmed baseline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from itsadmin.schemas.configuration import Configuration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeRecord:
    """A persisted configuration whose FieldSet or Workflow differs from baseline."""

    config: Configuration
    original_config: Configuration
    index: int

    @property
    def configuration_id(self) -> int:
        return self.config.id  # type: ignore[return-value]

    @property
    def field_set_changed(self) -> bool:
        return _normalise(self.config.field_set_id) != _normalise(self.original_config.field_set_id)

    @property
    def workflow_changed(self) -> bool:
        return _normalise(self.config.workflow_id) != _normalise(self.original_config.workflow_id)


def _normalise(value: int | None) -> int | None:
    # 0 and "" come from cleared form selects and mean "no selection"
    return value or None


def detect_changes(
    current: Sequence[Configuration], baseline: Sequence[Configuration]
) -> list[ChangeRecord]:
    by_id = {c.id: c for c in baseline if c.id is not None}
    changes: list[ChangeRecord] = []
    for index, config in enumerate(current):
        if config.id is None:
            continue
        original = by_id.get(config.id)
        if original is None:
            continue
        record = ChangeRecord(config=config, original_config=original, index=index)
        if record.field_set_changed or record.workflow_changed:
            logger.debug(
                "Configuration %s changed: fieldSet %s -> %s, workflow %s -> %s",
                config.id,
                original.field_set_id,
                config.field_set_id,
                original.workflow_id,
                config.workflow_id,
            )
            changes.append(record)
    return changes


def detect_removed(
    current: Sequence[Configuration], baseline: Sequence[Configuration]
) -> list[int]:
    """Baseline ids no longer present in the current list, in baseline order."""
    current_ids = {c.id for c in current if c.id is not None}
    return [c.id for c in baseline if c.id is not None and c.id not in current_ids]
