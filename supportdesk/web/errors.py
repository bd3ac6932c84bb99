"""Translate the SupportDesk exception hierarchy into HTTP responses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi.responses import JSONResponse

from supportdesk.exceptions import (
    AlreadyExists,
    ConcurrentModification,
    EntityNotFound,
    IllegalTransition,
    InsufficientPermissions,
    InvalidState,
    InvalidToken,
    ScopeMismatch,
    SupportDeskError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = structlog.get_logger(__name__)

_STATUS_CODES: dict[type[SupportDeskError], int] = {
    InvalidToken: 401,
    EntityNotFound: 404,
    ScopeMismatch: 403,
    InsufficientPermissions: 403,
    InvalidState: 422,
    IllegalTransition: 409,
    ConcurrentModification: 409,
    AlreadyExists: 409,
}


def _status_for(exc: SupportDeskError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in _STATUS_CODES:
            return _STATUS_CODES[exc_type]
    return 500


async def supportdesk_error_handler(request: Request, exc: SupportDeskError) -> JSONResponse:
    status_code = _status_for(exc)
    logger.warning(
        "request_failed",
        error=type(exc).__name__,
        status_code=status_code,
        path=request.url.path,
    )
    if isinstance(exc, InsufficientPermissions):
        return JSONResponse(status_code=403, content={"detail": "Forbidden"})
    if isinstance(exc, InvalidToken):
        return JSONResponse(
            status_code=401,
            content={"detail": str(exc)},
            headers={"WWW-Authenticate": "Bearer"},
        )
    content: dict[str, object] = {"detail": str(exc)}
    if isinstance(exc, ConcurrentModification):
        content["retryable"] = True
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SupportDeskError, supportdesk_error_handler)  # type: ignore[arg-type]
