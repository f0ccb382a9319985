from fastapi import APIRouter

from itsadmin.api.v1 import editor_sessions, permissions

api_router = APIRouter()
api_router.include_router(editor_sessions.router)
api_router.include_router(permissions.router)
