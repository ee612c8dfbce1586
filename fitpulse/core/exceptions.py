"""
Custom exception classes and error handling.

Every domain error maps to one HTTP status and a stable error_code. The
optional `context` dict (user_id, goal_id, ...) is not sent to clients; the
API exception handler logs it as structured extra_fields.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.context = context or {}


class NotFoundError(APIException):
    """User or goal missing (or owned by someone else)."""

    def __init__(self, resource: str, identifier: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND",
            context={"resource": resource, "identifier": identifier, **(context or {})},
        )


class ValidationError(APIException):
    """Rejected input; error_code names the offending field."""

    def __init__(self, detail: str, field: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code,
            context=context,
        )
        self.field = field


class ConflictError(APIException):
    """Request clashes with the current state of a resource."""

    def __init__(self, detail: str, error_code: str = "CONFLICT", context: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code,
            context=context,
        )


class InvalidGoalTransition(ConflictError):
    """Requested status change is not allowed from the goal's current status."""

    def __init__(self, goal_id: int, current: str, requested: str):
        super().__init__(
            detail=f"Goal {goal_id} cannot move from '{current}' to '{requested}'",
            error_code="INVALID_GOAL_TRANSITION",
            context={"goal_id": goal_id, "from_status": current, "to_status": requested},
        )
        self.goal_id = goal_id
        self.current = current
        self.requested = requested


class GoalNotActiveError(ConflictError):
    """Progress sent to a paused or completed goal."""

    def __init__(self, goal_id: int, goal_status: str):
        super().__init__(
            detail=f"Goal {goal_id} is {goal_status} and does not accept progress",
            error_code="GOAL_NOT_ACTIVE",
            context={"goal_id": goal_id, "status": goal_status},
        )
        self.goal_id = goal_id
        self.status = goal_status
