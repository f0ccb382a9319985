"""Filtering and grouping of an ItemTypeSet's permission catalogue.

Everything here is a pure function of the grouped rows, a ``FilterSpec`` and
the scope flags. Filters apply in order: permission kind, item types
(multi-select), status, field, workflow, then assignment presence. The status,
field and workflow dropdowns only offer values found among the rows that pass
the kind and item-type filters; a selection that falls outside its recomputed
options is reset to ``All`` before filtering.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from itsadmin.core.permission_kinds import EXECUTORS, kind_sort_key
from itsadmin.schemas.permission import (
    ALL,
    NONE,
    DynamicFilterOptions,
    EntityRef,
    FilterFlags,
    FilterOption,
    FilterOptions,
    FilterResult,
    FilterSpec,
    PermissionRow,
)

_ALL_OPTION = FilterOption(id=ALL, name=ALL)
_NONE_OPTION = FilterOption(id=NONE, name=NONE)


def flatten(grouped: Mapping[str, Sequence[PermissionRow]]) -> list[PermissionRow]:
    return [row for rows in grouped.values() for row in rows]


def row_statuses(row: PermissionRow) -> list[EntityRef]:
    """Statuses a row is attached to. Executors also count their transition ends."""
    statuses = [row.workflow_status] if row.workflow_status else []
    if row.name == EXECUTORS:
        # Wider than a plain workflowStatus match: an executor is listed under
        # either end of its transition
        statuses.extend(s for s in (row.from_status, row.to_status) if s is not None)
    return statuses


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def _matches_kind(row: PermissionRow, spec: FilterSpec) -> bool:
    return spec.permission == ALL or row.name == spec.permission


def _matches_item_types(row: PermissionRow, spec: FilterSpec) -> bool:
    if ALL in spec.item_types:
        return True
    return row.item_type is not None and row.item_type.key in spec.item_types


def _matches_upstream(row: PermissionRow, spec: FilterSpec) -> bool:
    return _matches_kind(row, spec) and _matches_item_types(row, spec)


def _matches_status(row: PermissionRow, selected: str) -> bool:
    statuses = row_statuses(row)
    if selected == ALL:
        return True
    if selected == NONE:
        return not statuses
    return any(s.key == selected or s.name == selected for s in statuses)


def _matches_ref(ref: EntityRef | None, selected: str) -> bool:
    if selected == ALL:
        return True
    if selected == NONE:
        return ref is None
    return ref is not None and ref.key == selected


def has_project_assignments(row: PermissionRow) -> bool:
    return bool(row.has_project_grant or row.has_project_roles or row.project_assigned_roles)


def has_assignments(row: PermissionRow, include_project_assignments: bool) -> bool:
    """Whether a row counts as assigned in the global view."""
    has_global_roles = row.has_assignments is True or bool(row.assigned_roles)
    has_project_roles = row.has_project_roles is True or bool(row.project_assigned_roles)
    direct_grant = row.grant_id is not None or row.assignment_type == "GRANT"
    if include_project_assignments:
        return has_global_roles or has_project_roles or direct_grant or row.has_project_grant
    return has_global_roles or direct_grant


def _matches_grant(row: PermissionRow, spec: FilterSpec, flags: FilterFlags) -> bool:
    if not flags.show_only_with_assignments and spec.grant == ALL:
        return True
    if flags.show_only_project_grants and spec.grant != ALL:
        assigned = has_project_assignments(row)
    else:
        assigned = has_assignments(row, flags.include_project_assignments)
        if flags.show_only_with_assignments and not assigned:
            return False
    if spec.grant == "Y":
        return assigned
    if spec.grant == "N":
        return not assigned
    return True


def matches(row: PermissionRow, spec: FilterSpec, flags: FilterFlags) -> bool:
    return (
        _matches_kind(row, spec)
        and _matches_item_types(row, spec)
        and _matches_status(row, spec.status)
        and _matches_ref(row.field_configuration, spec.field)
        and _matches_ref(row.workflow, spec.workflow)
        and _matches_grant(row, spec, flags)
    )


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def _sorted_refs(refs: Iterable[EntityRef]) -> list[FilterOption]:
    seen: dict[str, str] = {}
    for ref in refs:
        if ref.key and ref.key not in seen:
            seen[ref.key] = ref.name or ref.key
    return sorted(
        (FilterOption(id=k, name=v) for k, v in seen.items()), key=lambda o: o.name.lower()
    )


def _status_names(rows: Iterable[PermissionRow]) -> list[FilterOption]:
    # Statuses of different workflows share names; options are de-duplicated by name
    names = {s.name for row in rows for s in row_statuses(row) if s.name}
    return [FilterOption(id=n, name=n) for n in sorted(names, key=str.lower)]


def build_options(rows: Sequence[PermissionRow]) -> FilterOptions:
    kinds = sorted({row.name for row in rows if row.name}, key=kind_sort_key)
    return FilterOptions(
        permissions=[ALL, *kinds],
        item_types=[_ALL_OPTION, *_sorted_refs(r.item_type for r in rows if r.item_type)],
        statuses=[_ALL_OPTION, _NONE_OPTION, *_status_names(rows)],
        fields=[
            _ALL_OPTION,
            _NONE_OPTION,
            *_sorted_refs(r.field_configuration for r in rows if r.field_configuration),
        ],
        workflows=[_ALL_OPTION, _NONE_OPTION, *_sorted_refs(r.workflow for r in rows if r.workflow)],
    )


def _dimension(values: list[FilterOption]) -> list[FilterOption]:
    if values:
        return [_ALL_OPTION, *values]
    return [_ALL_OPTION, _NONE_OPTION]


def build_dynamic_options(rows: Sequence[PermissionRow], spec: FilterSpec) -> DynamicFilterOptions:
    subset = [row for row in rows if _matches_upstream(row, spec)]
    return DynamicFilterOptions(
        statuses=_dimension(_status_names(subset)),
        fields=_dimension(
            _sorted_refs(r.field_configuration for r in subset if r.field_configuration)
        ),
        workflows=_dimension(_sorted_refs(r.workflow for r in subset if r.workflow)),
    )


def reconcile(spec: FilterSpec, dynamic: DynamicFilterOptions) -> FilterSpec:
    """Reset downstream selections that are no longer offered to ``All``.

    ``None`` is only offered when the upstream subset has no values for the
    dimension, so it is reset like any concrete id once values appear.
    """
    updates = {}
    for attr, options in (
        ("status", dynamic.statuses),
        ("field", dynamic.fields),
        ("workflow", dynamic.workflows),
    ):
        selected = getattr(spec, attr)
        if selected == ALL:
            continue
        if selected not in {o.id for o in options}:
            updates[attr] = ALL
    return spec.model_copy(update=updates) if updates else spec


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def filter_permissions(
    grouped: Mapping[str, Sequence[PermissionRow]],
    spec: FilterSpec | None = None,
    flags: FilterFlags | None = None,
) -> FilterResult:
    spec = spec or FilterSpec()
    flags = flags or FilterFlags()
    rows = flatten(grouped)

    dynamic = build_dynamic_options(rows, spec)
    applied = reconcile(spec, dynamic)

    filtered: dict[str, list[PermissionRow]] = {}
    for kind, kind_rows in grouped.items():
        kept = [row for row in kind_rows if matches(row, applied, flags)]
        if kept:
            filtered[kind] = kept

    return FilterResult(
        grouped_roles={kind: list(kind_rows) for kind, kind_rows in grouped.items()},
        filtered_roles=filtered,
        total_count=len(rows),
        filtered_count=sum(len(v) for v in filtered.values()),
        options=build_options(rows),
        dynamic_options=dynamic,
        applied_filters=applied,
    )
