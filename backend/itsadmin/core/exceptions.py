"""Exception hierarchy for the console's service layer.

Services raise these; the HTTP layer translates them into ``HTTPException``.
"""

from __future__ import annotations

from typing import Any

REMOVAL_IMPACT_MARKER = "ITEMTYPESET_REMOVAL_IMPACT"


class ConsoleError(Exception):
    """Base class for all console errors. ``detail`` is user-facing."""

    def __init__(
        self,
        detail: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}


class PlatformError(ConsoleError):
    """A call to the workflow/permission platform failed."""

    def __init__(
        self,
        detail: str,
        status_code: int | None = None,
        operation: str | None = None,
    ):
        super().__init__(
            detail,
            error_code="PLATFORM_ERROR",
            context={"status_code": status_code, "operation": operation},
        )
        self.status_code = status_code
        self.operation = operation

    @property
    def is_removal_impact_conflict(self) -> bool:
        return REMOVAL_IMPACT_MARKER in self.detail


class ValidationFailed(ConsoleError):
    """Rejected before any network call was made."""

    def __init__(self, detail: str, context: dict[str, Any] | None = None):
        super().__init__(detail, error_code="VALIDATION_FAILED", context=context)


class AnalysisError(ConsoleError):
    """Impact analysis aborted; nothing was applied."""

    def __init__(self, detail: str, context: dict[str, Any] | None = None):
        super().__init__(detail, error_code="ANALYSIS_FAILED", context=context)


class ApplyError(ConsoleError):
    """A migrate/remove/persist call failed. Earlier calls are not rolled back."""

    def __init__(
        self,
        detail: str,
        error_code: str = "APPLY_FAILED",
        context: dict[str, Any] | None = None,
    ):
        super().__init__(detail, error_code=error_code, context=context)


class RemovalImpactConflict(ApplyError):
    """The platform refused the save: removed configurations still have assignments."""

    def __init__(self, detail: str, context: dict[str, Any] | None = None):
        super().__init__(detail, error_code=REMOVAL_IMPACT_MARKER, context=context)


class SelectionError(ConsoleError, ValueError):
    """An invalid preserve/discard choice."""

    def __init__(self, detail: str, context: dict[str, Any] | None = None):
        super().__init__(detail, error_code="INVALID_SELECTION", context=context)


class SessionNotFound(ConsoleError):
    def __init__(self, session_id: str):
        super().__init__(
            f"Editor session {session_id} not found",
            error_code="SESSION_NOT_FOUND",
            context={"session_id": session_id},
        )


class InvalidState(ConsoleError):
    """The editor is not in a state that allows the requested operation."""

    def __init__(self, detail: str, context: dict[str, Any] | None = None):
        super().__init__(detail, error_code="INVALID_STATE", context=context)


class OperationCancelled(ConsoleError):
    """Raised when results arrive for a pipeline that was cancelled meanwhile."""

    def __init__(self, detail: str = "Operation cancelled"):
        super().__init__(detail, error_code="CANCELLED")
