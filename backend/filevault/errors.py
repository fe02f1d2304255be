"""Vault error taxonomy.

Every failure a request can hit is one of these. They are terminal for the
request and rendered by ``register_error_handlers`` as
``{"detail": ..., "reason": ...}`` with the mapped status code.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class VaultError(Exception):
    status_code = 500
    reason = "error"
    default_detail = "Request failed"

    def __init__(self, detail: str | None = None, reason: str | None = None):
        self.detail = detail or self.default_detail
        if reason is not None:
            self.reason = reason
        super().__init__(self.detail)


class Unauthenticated(VaultError):
    """Missing or invalid caller identity."""
    status_code = 401
    reason = "unauthenticated"
    default_detail = "No valid token, authorization denied"


class Unauthorized(VaultError):
    """Authenticated, but not the owner of the record."""
    status_code = 403
    reason = "unauthorized"
    default_detail = "Not authorized"


class NotFound(VaultError):
    status_code = 404
    reason = "file_not_found"
    default_detail = "File not found"


class Expired(VaultError):
    status_code = 410
    reason = "expired"
    default_detail = "Link has expired"


class ValidationError(VaultError):
    status_code = 422
    reason = "validation_error"
    default_detail = "Malformed request"


class StorageError(VaultError):
    status_code = 500
    reason = "storage_error"
    default_detail = "Storage failure"


def ciphertext_missing() -> NotFound:
    """Record exists but its backing file is gone."""
    return NotFound("File not found on server", reason="ciphertext_missing")


def error_body(exc: VaultError) -> dict:
    return {"detail": exc.detail, "reason": exc.reason}


async def vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content=error_body(exc), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Field locations only; never echo the submitted input back
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    logger.info("Rejected malformed request to %s: %s", request.url.path, fields)
    detail = f"Invalid request: {', '.join(fields)}" if fields else ValidationError.default_detail
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": detail, "reason": ValidationError.reason},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VaultError, vault_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
