"""Unit tests for preserve/discard selection during a migration."""

from __future__ import annotations

import pytest

from itsadmin.core.exceptions import SelectionError
from itsadmin.schemas.impact import MigrationImpact
from itsadmin.services.preservation import (
    NO_DECISION,
    Decided,
    PreservationSelection,
    initial_selection,
    permission_display_name,
    selection_from_map,
    selection_stats,
)
from tests.conftest import migration_impact_payload, selectable_payload


def _impacts():
    return [
        MigrationImpact.model_validate(
            migration_impact_payload(
                1,
                selectable_payload(11, default_preserve=True),
                selectable_payload(12),
                selectable_payload(13, can_be_preserved=False),
                selectable_payload(14, has_assignments=False),
            )
        ),
        MigrationImpact.model_validate(
            migration_impact_payload(
                2,
                selectable_payload(21, "EXECUTORS", fromStatusName="Open", toStatusName="Done"),
                totalNewPermissions=3,
            )
        ),
    ]


class TestInitialSelection:
    def test_every_configuration_decided(self):
        selection = initial_selection(_impacts())
        assert selection.decision(1) == Decided(frozenset({11}))
        assert selection.decision(2) == Decided(frozenset())

    def test_unknown_configuration_has_no_decision(self):
        assert initial_selection(_impacts()).decision(99) is NO_DECISION

    def test_default_preserve_ignored_without_assignments(self):
        impacts = [
            MigrationImpact.model_validate(
                migration_impact_payload(
                    1, selectable_payload(11, has_assignments=False, default_preserve=True)
                )
            )
        ]
        assert initial_selection(impacts).selected_ids() == set()

    def test_flags_start_cleared(self):
        selection = initial_selection(_impacts())
        assert selection.preserve_all_active is False
        assert selection.remove_all_active is False


class TestToggle:
    def test_select_then_deselect_restores_membership(self):
        impacts = _impacts()
        before = initial_selection(impacts)

        selected = before.toggle(impacts, 1, 12)
        assert selected.is_selected(1, 12)

        restored = selected.toggle(impacts, 1, 12)
        assert restored.decision(1) == before.decision(1)
        assert restored.selected_ids() == before.selected_ids()

    def test_selection_is_copy_on_write(self):
        impacts = _impacts()
        before = initial_selection(impacts)
        after = before.toggle(impacts, 1, 12)
        assert after is not before
        assert not before.is_selected(1, 12)

    def test_deselecting_last_keeps_empty_decision(self):
        impacts = _impacts()
        selection = initial_selection(impacts).toggle(impacts, 1, 11)
        assert selection.decision(1) == Decided(frozenset())

    def test_non_preservable_rejected(self):
        impacts = _impacts()
        with pytest.raises(SelectionError):
            initial_selection(impacts).toggle(impacts, 1, 13)

    def test_unassigned_rejected(self):
        impacts = _impacts()
        with pytest.raises(SelectionError):
            initial_selection(impacts).toggle(impacts, 1, 14)

    def test_unknown_permission_rejected(self):
        impacts = _impacts()
        with pytest.raises(SelectionError, match="not found"):
            initial_selection(impacts).toggle(impacts, 2, 11)


class TestBulkOperations:
    def test_preserve_all_selects_every_preservable(self):
        impacts = _impacts()
        selection = initial_selection(impacts).preserve_all(impacts)
        assert selection.preserve_all_active is True
        assert selection.remove_all_active is False
        assert selection.as_request_map() == {1: [11, 12], 2: [21]}

    def test_preserve_all_then_one_deselection(self):
        impacts = _impacts()
        selection = initial_selection(impacts).preserve_all(impacts).toggle(impacts, 1, 12)
        assert selection.preserve_all_active is False
        assert selection.as_request_map() == {1: [11], 2: [21]}

    def test_remove_all_decides_empty_everywhere(self):
        impacts = _impacts()
        selection = initial_selection(impacts).preserve_all(impacts).remove_all(impacts)
        assert selection.remove_all_active is True
        assert selection.preserve_all_active is False
        assert selection.as_request_map() == {1: [], 2: []}

    def test_toggle_after_remove_all_clears_flag(self):
        impacts = _impacts()
        selection = initial_selection(impacts).remove_all(impacts).toggle(impacts, 2, 21)
        assert selection.remove_all_active is False
        assert selection.as_request_map() == {1: [], 2: [21]}


class TestSelectionFromMap:
    def test_valid_map(self):
        selection = selection_from_map(_impacts(), {1: [12], 2: []})
        assert selection.as_request_map() == {1: [12], 2: []}

    def test_unknown_configuration(self):
        with pytest.raises(SelectionError, match="not part of the pending migration"):
            selection_from_map(_impacts(), {5: []})

    def test_non_preservable_id(self):
        with pytest.raises(SelectionError) as exc_info:
            selection_from_map(_impacts(), {1: [11, 13]})
        assert exc_info.value.context["permission_ids"] == [13]

    def test_omitted_configuration_left_undecided(self):
        selection = selection_from_map(_impacts(), {1: [11]})
        assert selection.decision(2) is NO_DECISION


class TestSelectionStats:
    def test_counts(self):
        impacts = _impacts()
        stats = selection_stats(impacts, initial_selection(impacts))
        assert stats.with_roles == 4
        assert stats.preservable == 3
        assert stats.removable == 1
        assert stats.selected == 1
        assert stats.new == 3
        assert stats.configurations_count == 2

    def test_empty(self):
        stats = selection_stats([], PreservationSelection())
        assert stats.with_roles == 0
        assert stats.configurations_count == 0


class TestDisplayName:
    def test_field_owner(self):
        impact = MigrationImpact.model_validate(
            migration_impact_payload(1, selectable_payload(1, fieldName="Priority"))
        )
        assert permission_display_name(impact.all_permissions()[0]) == "Field Owner - Priority"

    def test_executor_with_transition(self):
        impact = MigrationImpact.model_validate(
            migration_impact_payload(
                1,
                selectable_payload(
                    1,
                    "EXECUTORS",
                    fromStatusName="Open",
                    toStatusName="Done",
                    transitionName="Close",
                ),
            )
        )
        assert permission_display_name(impact.all_permissions()[0]) == "Executor - Open -> Done (Close)"

    def test_editor(self):
        impact = MigrationImpact.model_validate(
            migration_impact_payload(
                1,
                selectable_payload(
                    1, "FIELD_EDITORS", fieldName="Summary", workflowStatusName="Open"
                ),
            )
        )
        assert permission_display_name(impact.all_permissions()[0]) == "Editor - Summary @ Open"
