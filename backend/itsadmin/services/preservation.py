"""Per-configuration preserve/discard choices for a pending migration.

A configuration is either undecided (``NoDecision``) or ``Decided`` with the set
of permission ids to keep. ``Decided(frozenset())`` is a real decision: migrate
and preserve nothing. Only permissions that have assignments and can be
preserved may be selected.

``PreservationSelection`` is immutable; every operation returns a new instance
so the owner swaps its reference in one assignment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence, Union

from itsadmin.core import permission_kinds as kinds
from itsadmin.core.exceptions import SelectionError
from itsadmin.schemas.impact import MigrationImpact, SelectablePermission


@dataclass(frozen=True)
class NoDecision:
    pass


@dataclass(frozen=True)
class Decided:
    permission_ids: frozenset[int] = frozenset()


Decision = Union[NoDecision, Decided]

NO_DECISION = NoDecision()


@dataclass(frozen=True)
class PreservationSelection:
    decisions: Mapping[int, Decided] = field(default_factory=lambda: MappingProxyType({}))
    preserve_all_active: bool = False
    remove_all_active: bool = False

    def decision(self, configuration_id: int) -> Decision:
        return self.decisions.get(configuration_id, NO_DECISION)

    def is_selected(self, configuration_id: int, permission_id: int) -> bool:
        decided = self.decisions.get(configuration_id)
        return decided is not None and permission_id in decided.permission_ids

    def selected_ids(self) -> set[int]:
        return {pid for d in self.decisions.values() for pid in d.permission_ids}

    def as_request_map(self) -> dict[int, list[int]]:
        """Configuration id -> preserved permission ids, for every decided configuration."""
        return {cid: sorted(d.permission_ids) for cid, d in self.decisions.items()}

    def _replace(
        self,
        decisions: Mapping[int, Decided],
        preserve_all_active: bool = False,
        remove_all_active: bool = False,
    ) -> PreservationSelection:
        return PreservationSelection(
            decisions=MappingProxyType(dict(decisions)),
            preserve_all_active=preserve_all_active,
            remove_all_active=remove_all_active,
        )

    # ── Operations ──────────────────────────────────────────────────

    def toggle(
        self,
        impacts: Sequence[MigrationImpact],
        configuration_id: int,
        permission_id: int,
    ) -> PreservationSelection:
        """Flip one permission. Clears both bulk flags."""
        permission = _find_permission(impacts, configuration_id, permission_id)
        if not permission.is_preservable:
            raise SelectionError(
                f"Permission {permission_id} cannot be preserved",
                context={"configuration_id": configuration_id, "permission_id": permission_id},
            )
        current = self.decisions.get(configuration_id, Decided()).permission_ids
        updated = current - {permission_id} if permission_id in current else current | {permission_id}
        decisions = dict(self.decisions)
        decisions[configuration_id] = Decided(frozenset(updated))
        return self._replace(decisions)

    def preserve_all(self, impacts: Sequence[MigrationImpact]) -> PreservationSelection:
        decisions = {
            impact.item_type_configuration_id: Decided(
                frozenset(p.permission_id for p in impact.all_permissions() if p.is_preservable)
            )
            for impact in impacts
        }
        return self._replace(decisions, preserve_all_active=True)

    def remove_all(self, impacts: Sequence[MigrationImpact]) -> PreservationSelection:
        decisions = {impact.item_type_configuration_id: Decided() for impact in impacts}
        return self._replace(decisions, remove_all_active=True)


def initial_selection(impacts: Sequence[MigrationImpact]) -> PreservationSelection:
    """Decide every configuration, pre-selecting assigned ``defaultPreserve`` permissions."""
    decisions = {
        impact.item_type_configuration_id: Decided(
            frozenset(
                p.permission_id
                for p in impact.all_permissions()
                if p.is_preservable and p.default_preserve
            )
        )
        for impact in impacts
    }
    return PreservationSelection(decisions=MappingProxyType(decisions))


def selection_from_map(
    impacts: Sequence[MigrationImpact], selection_map: Mapping[int, Iterable[int]]
) -> PreservationSelection:
    """Validate a caller-supplied configuration -> ids map against the impacts."""
    by_id = {impact.item_type_configuration_id: impact for impact in impacts}
    decisions: dict[int, Decided] = {}
    for configuration_id, permission_ids in selection_map.items():
        impact = by_id.get(configuration_id)
        if impact is None:
            raise SelectionError(
                f"Configuration {configuration_id} is not part of the pending migration",
                context={"configuration_id": configuration_id},
            )
        allowed = {p.permission_id for p in impact.all_permissions() if p.is_preservable}
        chosen = frozenset(permission_ids)
        invalid = sorted(chosen - allowed)
        if invalid:
            raise SelectionError(
                f"Permissions {invalid} cannot be preserved for configuration {configuration_id}",
                context={"configuration_id": configuration_id, "permission_ids": invalid},
            )
        decisions[configuration_id] = Decided(chosen)
    return PreservationSelection(decisions=MappingProxyType(decisions))


def _find_permission(
    impacts: Sequence[MigrationImpact], configuration_id: int, permission_id: int
) -> SelectablePermission:
    for impact in impacts:
        if impact.item_type_configuration_id != configuration_id:
            continue
        for permission in impact.all_permissions():
            if permission.permission_id == permission_id:
                return permission
        break
    raise SelectionError(
        f"Permission {permission_id} not found for configuration {configuration_id}",
        context={"configuration_id": configuration_id, "permission_id": permission_id},
    )


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectionStats:
    preservable: int = 0
    removable: int = 0
    new: int = 0
    with_roles: int = 0
    selected: int = 0
    configurations_count: int = 0


def selection_stats(
    impacts: Sequence[MigrationImpact], selection: PreservationSelection
) -> SelectionStats:
    if not impacts:
        return SelectionStats()
    preservable = removable = selected = with_roles = 0
    for impact in impacts:
        for permission in impact.permissions_with_assignments():
            with_roles += 1
            if permission.can_be_preserved:
                preservable += 1
            else:
                removable += 1
            if selection.is_selected(impact.item_type_configuration_id, permission.permission_id):
                selected += 1
    return SelectionStats(
        preservable=preservable,
        removable=removable,
        new=sum(impact.total_new_permissions for impact in impacts),
        with_roles=with_roles,
        selected=selected,
        configurations_count=len(impacts),
    )


def permission_display_name(permission: SelectablePermission) -> str:
    kind = permission.permission_type
    field_name = permission.field_name or "N/A"
    status_name = permission.workflow_status_name or "N/A"
    if kind == kinds.FIELD_OWNERS:
        return f"Field Owner - {permission.field_name or permission.entity_name or 'N/A'}"
    if kind == kinds.STATUS_OWNERS:
        return f"Status Owner - {permission.entity_name or 'N/A'}"
    if kind in (kinds.FIELD_EDITORS, kinds.EDITORS):
        return f"Editor - {field_name} @ {status_name}"
    if kind in (kinds.FIELD_VIEWERS, kinds.VIEWERS):
        return f"Viewer - {field_name} @ {status_name}"
    if kind == kinds.EXECUTORS:
        transition = f" ({permission.transition_name})" if permission.transition_name else ""
        return (
            f"Executor - {permission.from_status_name or 'N/A'} -> "
            f"{permission.to_status_name or 'N/A'}{transition}"
        )
    return f"{kind} - {permission.item_type_set_name or 'N/A'}"
