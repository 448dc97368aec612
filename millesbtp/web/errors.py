"""Map core exceptions onto HTTP responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from millesbtp.errors import (
    IllegalStateTransition,
    MillesBTPError,
    NotFound,
    StaleDerivationWarning,
    StoragePermissionError,
    TransientStorageError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

STATUS_CODES: list[tuple[type[MillesBTPError], int]] = [
    (ValidationError, 422),
    (NotFound, 404),
    (IllegalStateTransition, 409),
    (StaleDerivationWarning, 409),
    (StoragePermissionError, 403),
    (TransientStorageError, 503),
]


def status_code_for(exc: MillesBTPError) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return 500


async def core_error_handler(request: Request, exc: MillesBTPError) -> JSONResponse:
    code = status_code_for(exc)
    content: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field

    log = logger.warning if code < 500 else logger.error
    log("request_rejected", path=request.url.path, status_code=code, error=content["error"])
    return JSONResponse(status_code=code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MillesBTPError, core_error_handler)
