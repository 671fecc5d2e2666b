# Error taxonomy shared by the game service, the reward distributor and the
# HTTP layer. Each error knows its stable code and HTTP status so routes can
# raise them directly and a single handler renders the JSON body.

from __future__ import annotations
import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


class Unauthenticated(AppError):
    code = "unauthenticated"
    status_code = 401


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class SessionNotFound(AppError):
    code = "session_not_found"
    status_code = 404

    def __init__(self, message: str = "Game session not found or expired. Please start a new game."):
        super().__init__(message)


class Forbidden(AppError):
    code = "forbidden"
    status_code = 403


class NoAttemptsRemaining(AppError):
    code = "no_attempts_remaining"
    status_code = 409


class GameNotFinished(AppError):
    code = "game_not_finished"
    status_code = 409


class HintAlreadyUsed(AppError):
    code = "hint_already_used"
    status_code = 409


class UpstreamFailure(AppError):
    code = "upstream_failure"
    status_code = 502


class UpstreamTimeout(UpstreamFailure):
    """Collaborator did not answer in time; safe to retry."""
    code = "upstream_timeout"
    status_code = 504


def error_payload(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}, "detail": message}


async def app_error_handler(request: Request, exc: AppError):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc.code, exc.message))
