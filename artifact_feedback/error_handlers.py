"""Consistent error responses for feedback errors."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .feedback.errors import (
    CommentNotFoundError,
    DatabaseError,
    FeedbackError,
    InvalidParentError,
    InvalidTransitionError,
    MaxDepthExceededError,
    ValidationError,
)
from .logging_config import get_logger

logger = get_logger("error_handlers")

STATUS_CODES = {
    ValidationError: 422,
    InvalidParentError: 422,
    MaxDepthExceededError: 422,
    CommentNotFoundError: 404,
    InvalidTransitionError: 409,
}


def status_for(exc: FeedbackError) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def register_error_handlers(app: FastAPI) -> None:
    """Register feedback error handlers on the app."""

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        # Backend detail goes to the log only
        logger.error(
            "database_error",
            error=exc.message,
            path=str(request.url.path),
            method=request.method,
        )
        return JSONResponse(status_code=500, content=exc.to_dict())

    @app.exception_handler(FeedbackError)
    async def feedback_error_handler(request: Request, exc: FeedbackError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("feedback_error", error=exc.message, path=str(request.url.path))
            return JSONResponse(
                status_code=500,
                content={"error": "INTERNAL_ERROR", "message": "Internal server error"},
            )
        return JSONResponse(status_code=status_code, content=exc.to_dict())
