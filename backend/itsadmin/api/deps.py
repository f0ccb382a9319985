from __future__ import annotations

from typing import AsyncIterator

from fastapi import Depends, HTTPException, Request

from itsadmin.core.exceptions import (
    ConsoleError,
    InvalidState,
    PlatformError,
    RemovalImpactConflict,
    SelectionError,
    SessionNotFound,
    ValidationFailed,
)
from itsadmin.services.editor_session import EditorRegistry, ItemTypeSetEditor
from itsadmin.services.filter_store import FilterStore
from itsadmin.services.grant_details import GrantCacheRegistry
from itsadmin.services.platform_client import PlatformClient


def get_bearer_token(request: Request) -> str:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = auth[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return token


def get_registry(request: Request) -> EditorRegistry:
    return request.app.state.editor_registry


def get_filter_store(request: Request) -> FilterStore:
    return request.app.state.filter_store


def get_grant_caches(request: Request) -> GrantCacheRegistry:
    return request.app.state.grant_caches


async def get_platform_client(
    request: Request, token: str = Depends(get_bearer_token)
) -> AsyncIterator[PlatformClient]:
    """Request-scoped platform client carrying the caller's token."""
    client = PlatformClient(base_url=request.app.state.platform_url, token=token)
    try:
        yield client
    finally:
        await client.close()


def get_editor(
    session_id: str, registry: EditorRegistry = Depends(get_registry)
) -> ItemTypeSetEditor:
    try:
        return registry.get(session_id)
    except SessionNotFound as exc:
        raise HTTPException(404, exc.detail) from exc


def to_http_error(exc: ConsoleError) -> HTTPException:
    """Map a service-layer error onto the HTTP status the API reports it with."""
    if isinstance(exc, SessionNotFound):
        status = 404
    elif isinstance(exc, (InvalidState, RemovalImpactConflict)):
        status = 409
    elif isinstance(exc, (ValidationFailed, SelectionError)):
        status = 422
    elif isinstance(exc, PlatformError):
        status = 502
    else:
        status = 400
    return HTTPException(status, {"message": exc.detail, "code": exc.error_code})
