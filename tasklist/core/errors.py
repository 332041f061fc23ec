from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import logging

logger = logging.getLogger(__name__)


class TaskListError(Exception):
    """Base class for errors that map to a stable, caller-visible kind."""

    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": {"kind": self.kind, "message": self.message}}


class AuthenticationError(TaskListError):
    kind = "authentication_error"
    status_code = status.HTTP_401_UNAUTHORIZED


class ValidationError(TaskListError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(TaskListError):
    """Task is absent or owned by someone else; callers cannot tell which."""

    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(TaskListError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InternalError(TaskListError):
    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(exc: TaskListError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers
    )


async def task_list_error_handler(request: Request, exc: TaskListError):
    if isinstance(exc, InternalError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error_response(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "invalid request")
    if field:
        message = f"{field}: {message}"
    return _error_response(ValidationError(message))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_response(InternalError("Internal server error"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskListError, task_list_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
