"""Registry of the permission kinds the platform derives for an ItemTypeSet."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Kind names as the platform reports them
# ---------------------------------------------------------------------------

WORKERS = "WORKERS"
CREATORS = "CREATORS"
STATUS_OWNERS = "STATUS_OWNERS"
EXECUTORS = "EXECUTORS"
FIELD_OWNERS = "FIELD_OWNERS"
FIELD_EDITORS = "FIELD_EDITORS"
FIELD_VIEWERS = "FIELD_VIEWERS"

# Legacy names still returned by older impact endpoints
EDITORS = "EDITORS"
VIEWERS = "VIEWERS"

# Display order for filter dropdowns; unknown kinds sort after these, by name.
PERMISSION_KIND_ORDER: tuple[str, ...] = (
    WORKERS,
    CREATORS,
    STATUS_OWNERS,
    EXECUTORS,
    FIELD_OWNERS,
    FIELD_EDITORS,
    FIELD_VIEWERS,
)

PERMISSION_KIND_LABELS: dict[str, str] = {
    WORKERS: "Worker",
    CREATORS: "Creator",
    STATUS_OWNERS: "Status Owner",
    EXECUTORS: "Executor",
    FIELD_OWNERS: "Field Owner",
    FIELD_EDITORS: "Editor",
    FIELD_VIEWERS: "Viewer",
    EDITORS: "Editor",
    VIEWERS: "Viewer",
}

# Platform entity class behind each kind (used in exported reports)
PERMISSION_KIND_ENTITY: dict[str, str] = {
    FIELD_OWNERS: "FieldOwnerPermission",
    FIELD_EDITORS: "FieldStatusPermission",
    FIELD_VIEWERS: "FieldStatusPermission",
    EDITORS: "FieldStatusPermission",
    VIEWERS: "FieldStatusPermission",
    STATUS_OWNERS: "StatusOwnerPermission",
    EXECUTORS: "ExecutorPermission",
    WORKERS: "WorkerPermission",
    CREATORS: "CreatorPermission",
}

FIELD_STATUS_KINDS = frozenset({FIELD_EDITORS, FIELD_VIEWERS, EDITORS, VIEWERS})


def kind_sort_key(kind: str) -> tuple[int, str]:
    """Sort key placing known kinds in display order, unknown ones alphabetically after."""
    try:
        return (PERMISSION_KIND_ORDER.index(kind), "")
    except ValueError:
        return (len(PERMISSION_KIND_ORDER), kind)
