"""
Custom exception hierarchy for LevelUp.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

DuplicateAwardError and RevokeNotFoundError are raised inside the reward
orchestrator and turned into no-op outcomes there; they only reach the
HTTP layer if a caller re-raises them.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class LevelUpException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class RewardValidationError(LevelUpException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_REWARD_REQUEST"

    def __init__(self, field: str, message: str):
        super().__init__(
            message=message,
            details={"field": field},
        )


class DuplicateAwardError(LevelUpException):
    http_status = status.HTTP_409_CONFLICT
    code = "DUPLICATE_AWARD"

    def __init__(self, subject_id: str, task_id: str):
        super().__init__(
            message=f"Task {task_id!r} was already rewarded.",
            details={"subject_id": subject_id, "task_id": task_id},
        )


class RevokeNotFoundError(LevelUpException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "REVOKE_NOT_FOUND"

    def __init__(self, subject_id: str, task_id: str):
        super().__init__(
            message=f"No outstanding reward for task {task_id!r}.",
            details={"subject_id": subject_id, "task_id": task_id},
        )


class CommitFailureError(LevelUpException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "COMMIT_FAILED"

    def __init__(self, subject_id: str, reason: str | None = None):
        super().__init__(
            message="Progress could not be saved. Your totals were restored.",
            details={"subject_id": subject_id, "reason": reason} if reason else {"subject_id": subject_id},
        )


class AchievementPersistError(LevelUpException):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "ACHIEVEMENT_PERSIST_FAILED"

    def __init__(self, subject_id: str, achievement_ids: list[str]):
        super().__init__(
            message="Unlocked achievements could not be saved.",
            details={"subject_id": subject_id, "achievement_ids": achievement_ids},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def levelup_exception_handler(request: Request, exc: LevelUpException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
