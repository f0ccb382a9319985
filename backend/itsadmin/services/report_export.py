"""CSV export of a pending migration's impact, with the current preserve choices."""

from __future__ import annotations

import csv
import io
from typing import Sequence

from itsadmin.core import permission_kinds as kinds
from itsadmin.schemas.impact import MigrationImpact, SelectablePermission
from itsadmin.services.preservation import PreservationSelection

CSV_HEADER = [
    "Permission",
    "Item Type Set",
    "Action",
    "Field",
    "Status",
    "Transition",
    "Roles",
    "Grant",
    "Project Grants",
]


def _field_name(p: SelectablePermission) -> str:
    if p.permission_type == kinds.FIELD_OWNERS:
        return p.field_name or p.entity_name or ""
    if p.permission_type in kinds.FIELD_STATUS_KINDS:
        return p.field_name or ""
    return ""


def _status_name(p: SelectablePermission) -> str:
    if p.permission_type == kinds.STATUS_OWNERS:
        return p.entity_name or p.workflow_status_name or ""
    return p.workflow_status_name or ""


def _transition(p: SelectablePermission) -> str:
    if not p.from_status_name or not p.to_status_name:
        return ""
    label = f"{p.from_status_name} -> {p.to_status_name}"
    return f"{label} ({p.transition_name})" if p.transition_name else label


def _project_grants(p: SelectablePermission) -> str:
    parts = []
    for pg in p.project_grants:
        label = pg.project_name or str(pg.project_id)
        details = [*pg.assigned_roles]
        if pg.grant_name or pg.grant_id:
            details.append(pg.grant_name or f"grant {pg.grant_id}")
        parts.append(f"{label}: {', '.join(details)}" if details else label)
    return "; ".join(parts)


def export_migration_report(
    impacts: Sequence[MigrationImpact], selection: PreservationSelection
) -> str:
    """One row per permission that has assignments; ``PRESERVE`` when selected."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for impact in impacts:
        for p in impact.permissions_with_assignments():
            selected = selection.is_selected(impact.item_type_configuration_id, p.permission_id)
            writer.writerow(
                [
                    kinds.PERMISSION_KIND_ENTITY.get(p.permission_type, p.permission_type),
                    p.item_type_set_name or impact.item_type_set_name or "",
                    "PRESERVE" if selected else "REMOVE",
                    _field_name(p),
                    _status_name(p),
                    _transition(p),
                    ", ".join(p.assigned_roles),
                    p.grant_name or (str(p.grant_id) if p.grant_id else ""),
                    _project_grants(p),
                ]
            )
    return buf.getvalue()
