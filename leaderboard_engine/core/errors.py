"""
Custom exception hierarchy for the leaderboard engine.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Some of these never reach HTTP: StoreUnavailableError and
IdentityResolutionError are absorbed by the engine into soft-failure
result shapes so gameplay is never blocked by leaderboard problems.
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

class EngineException(Exception):
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


class InvalidPeriodError(EngineException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_PERIOD"

    def __init__(self, period: str):
        super().__init__(
            message=f"Unknown period '{period}'. Use 'global' or 'weekly:<YYYY-MM-DD>'.",
            details={"period": period},
        )


class InvalidRangeError(EngineException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_RANGE"

    def __init__(self, start: int, end: int):
        super().__init__(
            message=f"Invalid rank range {start}..{end}. Ranks are 1-indexed and start <= end.",
            details={"start": start, "end": end},
        )


class StandingNotFoundError(EngineException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "STANDING_NOT_FOUND"

    def __init__(self, period: str, user_id: str):
        super().__init__(
            message=f"User {user_id} has no entry in {period}.",
            details={"period": period, "user_id": user_id},
        )


class PrizePoolNotFoundError(EngineException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "PRIZE_POOL_NOT_FOUND"

    def __init__(self, period: str):
        super().__init__(
            message=f"No prize pool configured for {period}.",
            details={"period": period},
        )


class PrizePoolCompletedError(EngineException):
    http_status = status.HTTP_409_CONFLICT
    code = "PRIZE_POOL_COMPLETED"

    def __init__(self, period: str):
        super().__init__(
            message=f"Prize pool for {period} is already finalized and cannot be changed.",
            details={"period": period},
        )


class TokenPoolConflictError(EngineException):
    http_status = status.HTTP_409_CONFLICT
    code = "TOKEN_POOL_CONFLICT"

    def __init__(self, snapshot_id: str):
        super().__init__(
            message=f"Token pool snapshot {snapshot_id} already exists with different contents.",
            details={"snapshot_id": snapshot_id},
        )


class UnauthorizedError(EngineException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(self):
        super().__init__(message="Missing or invalid admin credentials.")


class StoreUnavailableError(EngineException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "LEADERBOARD_UNAVAILABLE"

    def __init__(self, operation: str, reason: str | None = None):
        super().__init__(
            message="Leaderboard temporarily unavailable.",
            details={"operation": operation, "reason": reason} if reason else {"operation": operation},
        )


class IdentityResolutionError(EngineException):
    code = "IDENTITY_RESOLUTION_FAILED"

    def __init__(self, user_id: str, reason: str):
        super().__init__(
            message=f"Could not resolve identity for {user_id}: {reason}",
            details={"user_id": user_id},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def engine_exception_handler(request: Request, exc: EngineException) -> JSONResponse:
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
