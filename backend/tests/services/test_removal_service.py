"""Tests for removal impact analysis and confirmation."""

from __future__ import annotations

import pytest

from itsadmin.core.exceptions import InvalidState, PlatformError, SelectionError
from itsadmin.services.save_pipeline import PipelineStage, SubmitOutcome
from tests.conftest import (
    ITEM_TYPE_SET_ID,
    make_config,
    make_editor,
    migration_impact_payload,
    removal_impact_payload,
    removal_permission_payload,
    selectable_payload,
)


def _editor_with_removal(platform):
    editor = make_editor(platform, [make_config(1), make_config(2)])
    editor.remove_configuration(1)
    return editor


class TestRemovalWithoutAssignments:
    async def test_saved_without_confirmation(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31, has_assignments=False), removed_ids=[2]
        )
        editor = _editor_with_removal(platform)

        outcome = await editor.submit()

        assert outcome is SubmitOutcome.SAVED
        assert editor.state.show_removal_modal is False
        platform.analyze_removal_impact.assert_awaited_once_with(ITEM_TYPE_SET_ID, [2])
        platform.remove_orphaned_permissions.assert_awaited_once_with(ITEM_TYPE_SET_ID, [2], [])
        payload = platform.update_item_type_set.call_args.args[1]
        assert "forceRemoval" not in payload
        assert [c["id"] for c in payload["itemTypeConfigurations"]] == [1]

    async def test_empty_impact_saved_without_confirmation(self, platform):
        platform.analyze_removal_impact.return_value = {}
        editor = _editor_with_removal(platform)

        assert await editor.submit() is SubmitOutcome.SAVED


class TestRemovalConfirmation:
    async def test_assigned_permission_requires_confirmation(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        editor = _editor_with_removal(platform)

        outcome = await editor.submit()

        state = editor.state
        assert outcome is SubmitOutcome.AWAITING_REMOVAL_CONFIRMATION
        assert state.show_removal_modal is True
        assert state.removal_loading is False
        assert state.removal_impact.assigned_permission_ids() == {31}
        assert state.pipeline.current_stage is PipelineStage.AWAITING_REMOVAL_CONFIRMATION
        platform.remove_orphaned_permissions.assert_not_called()
        platform.update_item_type_set.assert_not_called()

    async def test_confirm_with_nothing_preserved_forces_removal(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        editor = _editor_with_removal(platform)
        await editor.submit()

        outcome = await editor.removal.confirm([])

        assert outcome is SubmitOutcome.SAVED
        platform.remove_orphaned_permissions.assert_awaited_once_with(ITEM_TYPE_SET_ID, [2], [])
        payload = platform.update_item_type_set.call_args.args[1]
        assert payload["forceRemoval"] is True
        names = [c[0] for c in platform.mock_calls]
        assert names.index("remove_orphaned_permissions") < names.index("update_item_type_set")

    async def test_confirm_with_preserved_ids(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removal_permission_payload(32), removed_ids=[2]
        )
        editor = _editor_with_removal(platform)
        await editor.submit()

        await editor.removal.confirm([32])

        platform.remove_orphaned_permissions.assert_awaited_once_with(ITEM_TYPE_SET_ID, [2], [32])

    async def test_baseline_moves_before_persist(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        platform.update_item_type_set.side_effect = PlatformError("down", status_code=503)
        editor = _editor_with_removal(platform)
        await editor.submit()

        outcome = await editor.removal.confirm([])

        assert outcome is SubmitOutcome.FAILED
        # Orphans were already removed; a retry must not analyse the removal again
        assert editor.state.pending_removals() == []

    async def test_unknown_preserved_id_rejected(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        editor = _editor_with_removal(platform)
        await editor.submit()

        with pytest.raises(SelectionError):
            await editor.removal.confirm([99])
        platform.remove_orphaned_permissions.assert_not_called()

    async def test_confirm_requires_pending_removal(self, platform):
        editor = make_editor(platform, [make_config(1)])
        with pytest.raises(InvalidState):
            await editor.removal.confirm([])

    async def test_cancel_keeps_edit(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        editor = _editor_with_removal(platform)
        await editor.submit()

        editor.removal.cancel()

        state = editor.state
        assert state.show_removal_modal is False
        assert state.removal_impact is None
        assert state.saving is False
        assert state.pending_removals() == [2]
        platform.remove_orphaned_permissions.assert_not_called()

    async def test_cancel_refused_while_cleanup_runs(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        editor = _editor_with_removal(platform)
        await editor.submit()

        async def _cleanup_then_cancel(*args):
            with pytest.raises(InvalidState):
                editor.removal.cancel()

        platform.remove_orphaned_permissions.side_effect = _cleanup_then_cancel

        outcome = await editor.removal.confirm([])

        assert outcome is SubmitOutcome.SAVED
        platform.update_item_type_set.assert_awaited_once()
        assert editor.state.pending_removals() == []


class TestRemovalFailures:
    async def test_analysis_failure_applies_nothing(self, platform):
        platform.analyze_removal_impact.side_effect = PlatformError(
            "Impact service unavailable", status_code=503
        )
        editor = _editor_with_removal(platform)

        outcome = await editor.submit()

        assert outcome is SubmitOutcome.FAILED
        assert editor.state.error == "Impact service unavailable"
        assert editor.state.removal_loading is False
        platform.remove_orphaned_permissions.assert_not_called()
        platform.update_item_type_set.assert_not_called()

    async def test_cleanup_failure_stops_before_persist(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        platform.remove_orphaned_permissions.side_effect = PlatformError(
            "Cleanup failed", status_code=500
        )
        editor = _editor_with_removal(platform)
        await editor.submit()

        outcome = await editor.removal.confirm([])

        assert outcome is SubmitOutcome.FAILED
        assert editor.state.error == "Cleanup failed"
        assert editor.state.removal_loading is False
        platform.update_item_type_set.assert_not_called()


class TestRemovalWithMigration:
    async def test_migration_confirmed_before_removal(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        platform.get_migration_impact.return_value = migration_impact_payload(
            1, selectable_payload(11, default_preserve=True)
        )
        editor = make_editor(platform, [make_config(1), make_config(2)])
        editor.remove_configuration(1)
        editor.update_configuration(0, {"field_set_id": 99})

        first = await editor.submit()
        assert first is SubmitOutcome.AWAITING_MIGRATION_CONFIRMATION
        assert editor.state.show_removal_modal is False

        second = await editor.migration.confirm()
        assert second is SubmitOutcome.AWAITING_REMOVAL_CONFIRMATION
        assert editor.state.show_removal_modal is True
        platform.analyze_removal_impact.assert_awaited_once()

        third = await editor.removal.confirm([])
        assert third is SubmitOutcome.SAVED

        names = [c[0] for c in platform.mock_calls]
        assert names[:5] == [
            "analyze_removal_impact",
            "get_migration_impact",
            "migrate_permissions",
            "remove_orphaned_permissions",
            "update_item_type_set",
        ]

    async def test_unassigned_removal_saves_after_migration(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31, has_assignments=False), removed_ids=[2]
        )
        platform.get_migration_impact.return_value = migration_impact_payload(
            1, selectable_payload(11)
        )
        editor = make_editor(platform, [make_config(1), make_config(2)])
        editor.remove_configuration(1)
        editor.update_configuration(0, {"field_set_id": 99})
        await editor.submit()

        outcome = await editor.migration.confirm()

        assert outcome is SubmitOutcome.SAVED
        platform.remove_orphaned_permissions.assert_awaited_once_with(ITEM_TYPE_SET_ID, [2], [])
        assert "forceRemoval" not in platform.update_item_type_set.call_args.args[1]

    async def test_migration_without_assignments_goes_straight_to_removal(self, platform):
        platform.analyze_removal_impact.return_value = removal_impact_payload(
            removal_permission_payload(31), removed_ids=[2]
        )
        platform.get_migration_impact.return_value = migration_impact_payload(
            1, selectable_payload(11, has_assignments=False)
        )
        editor = make_editor(platform, [make_config(1), make_config(2)])
        editor.remove_configuration(1)
        editor.update_configuration(0, {"field_set_id": 99})

        outcome = await editor.submit()

        assert outcome is SubmitOutcome.AWAITING_REMOVAL_CONFIRMATION
        platform.migrate_permissions.assert_not_called()
