"""Editor sessions: edit an ItemTypeSet and drive its save through impact confirmation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from itsadmin.api.deps import (
    get_bearer_token,
    get_editor,
    get_grant_caches,
    get_registry,
    to_http_error,
)
from itsadmin.core.exceptions import ConsoleError, PlatformError, SessionNotFound
from itsadmin.schemas.configuration import Configuration
from itsadmin.schemas.editor import (
    ConfigurationInput,
    ConfigurationUpdate,
    DetailsUpdate,
    EditorView,
    MigrationConfirmRequest,
    OpenSessionRequest,
    RemovalConfirmRequest,
    SubmitResponse,
    ToggleRequest,
)
from itsadmin.services.editor_session import EditorRegistry, ItemTypeSetEditor
from itsadmin.services.grant_details import GrantCacheRegistry
from itsadmin.services.report_export import export_migration_report
from itsadmin.services.save_pipeline import SubmitOutcome

router = APIRouter(prefix="/editor-sessions", tags=["Editor Sessions"])


def _submitted(
    editor: ItemTypeSetEditor, outcome: SubmitOutcome, grant_caches: GrantCacheRegistry
) -> SubmitResponse:
    if outcome is SubmitOutcome.SAVED:
        # Permissions were regenerated; cached grant lookups may be stale
        grant_caches.invalidate(editor.state.item_type_set_id)
    return SubmitResponse(outcome=outcome.value, editor=editor.view())


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@router.post("", status_code=201, response_model=EditorView)
async def open_session(
    body: OpenSessionRequest,
    registry: EditorRegistry = Depends(get_registry),
    token: str = Depends(get_bearer_token),
):
    try:
        _, editor = await registry.open(body.item_type_set_id, body.project_id, token=token)
    except PlatformError as exc:
        if exc.status_code == 404:
            raise HTTPException(404, "ItemTypeSet not found") from exc
        raise to_http_error(exc) from exc
    return editor.view()


@router.get("/{session_id}", response_model=EditorView)
async def get_session(editor: ItemTypeSetEditor = Depends(get_editor)):
    return editor.view()


@router.delete("/{session_id}", status_code=204)
async def close_session(session_id: str, registry: EditorRegistry = Depends(get_registry)):
    try:
        await registry.close(session_id)
    except SessionNotFound as exc:
        raise HTTPException(404, exc.detail) from exc
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Form edits
# ---------------------------------------------------------------------------


@router.patch("/{session_id}", response_model=EditorView)
async def update_details(body: DetailsUpdate, editor: ItemTypeSetEditor = Depends(get_editor)):
    try:
        editor.update_details(name=body.name, description=body.description)
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


@router.post("/{session_id}/configurations", status_code=201, response_model=EditorView)
async def add_configuration(
    body: ConfigurationInput, editor: ItemTypeSetEditor = Depends(get_editor)
):
    try:
        editor.add_configuration(Configuration(**body.model_dump()))
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


@router.put("/{session_id}/configurations/{index}", response_model=EditorView)
async def update_configuration(
    index: int, body: ConfigurationUpdate, editor: ItemTypeSetEditor = Depends(get_editor)
):
    changes = body.model_dump(exclude_unset=True)
    # FieldSet and Workflow may be cleared; item type and category may not
    for required in ("item_type_id", "category"):
        if changes.get(required, "") is None:
            del changes[required]
    try:
        editor.update_configuration(index, changes)
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


@router.delete("/{session_id}/configurations/{index}", response_model=EditorView)
async def remove_configuration(index: int, editor: ItemTypeSetEditor = Depends(get_editor)):
    try:
        editor.remove_configuration(index)
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


@router.post("/{session_id}/submit", response_model=SubmitResponse)
async def submit(
    editor: ItemTypeSetEditor = Depends(get_editor),
    grant_caches: GrantCacheRegistry = Depends(get_grant_caches),
):
    try:
        outcome = await editor.submit()
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return _submitted(editor, outcome, grant_caches)


# ── Migration confirmation ──────────────────────────────────────────


@router.post("/{session_id}/migration/toggle", response_model=EditorView)
async def toggle_preservation(body: ToggleRequest, editor: ItemTypeSetEditor = Depends(get_editor)):
    try:
        editor.migration.toggle(body.configuration_id, body.permission_id)
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


@router.post("/{session_id}/migration/preserve-all", response_model=EditorView)
async def preserve_all(editor: ItemTypeSetEditor = Depends(get_editor)):
    try:
        editor.migration.preserve_all_preservable()
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


@router.post("/{session_id}/migration/remove-all", response_model=EditorView)
async def remove_all(editor: ItemTypeSetEditor = Depends(get_editor)):
    try:
        editor.migration.remove_all()
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


@router.post("/{session_id}/migration/confirm", response_model=SubmitResponse)
async def confirm_migration(
    body: MigrationConfirmRequest | None = None,
    editor: ItemTypeSetEditor = Depends(get_editor),
    grant_caches: GrantCacheRegistry = Depends(get_grant_caches),
):
    selection_map = body.preserved_permission_ids if body is not None else None
    try:
        outcome = await editor.migration.confirm(selection_map)
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return _submitted(editor, outcome, grant_caches)


@router.post("/{session_id}/migration/cancel", response_model=EditorView)
async def cancel_migration(editor: ItemTypeSetEditor = Depends(get_editor)):
    try:
        editor.migration.cancel()
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()


@router.get("/{session_id}/migration/report.csv")
async def migration_report(editor: ItemTypeSetEditor = Depends(get_editor)):
    state = editor.state
    if not state.show_migration_modal:
        raise HTTPException(409, "No migration is awaiting confirmation")
    content = export_migration_report(state.migration_impacts, state.selection)
    filename = f"itemtypeset-{state.item_type_set_id}-migration-impact.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── Removal confirmation ────────────────────────────────────────────


@router.post("/{session_id}/removal/confirm", response_model=SubmitResponse)
async def confirm_removal(
    body: RemovalConfirmRequest,
    editor: ItemTypeSetEditor = Depends(get_editor),
    grant_caches: GrantCacheRegistry = Depends(get_grant_caches),
):
    try:
        outcome = await editor.removal.confirm(body.preserved_permission_ids)
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return _submitted(editor, outcome, grant_caches)


@router.post("/{session_id}/removal/cancel", response_model=EditorView)
async def cancel_removal(editor: ItemTypeSetEditor = Depends(get_editor)):
    try:
        editor.removal.cancel()
    except ConsoleError as exc:
        raise to_http_error(exc) from exc
    return editor.view()
