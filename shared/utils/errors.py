"""
shared/utils/errors.py
Domain error taxonomy and the FastAPI handlers that render it.
Every AppError becomes {"detail", "code"} JSON; schedule conflicts
also carry the colliding schedules.
"""

import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from config.settings import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "APP_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(AppError):
    code = "VALIDATION_ERROR"


class ScheduleConflict(AppError):
    code = "SCHEDULE_CONFLICT"

    def __init__(self, conflicts: List[Any], message: str = "Schedule conflicts with existing schedules"):
        super().__init__(message)
        self.conflicts = conflicts

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["conflicts"] = jsonable_encoder(self.conflicts, by_alias=True)
        return body


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ReferenceConflict(AppError):
    """Write refused because of other rows: duplicates or dependent records."""
    code = "REFERENCE_CONFLICT"


class InvalidCredentials(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"


# ── Handlers ──────────────────────────────────────────────────

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all. Full detail goes to the log, never to the client outside DEBUG."""
    request_id = getattr(request.state, "request_id", None)
    logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True)

    detail = str(exc) if settings.DEBUG else "An internal server error occurred"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": detail, "code": "INTERNAL_ERROR", "request_id": request_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
