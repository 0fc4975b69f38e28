"""
Custom exceptions and error handlers.
"""
import logging
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from signdesk.document.fields import FieldError
from signdesk.document.layout import LayoutError
from signdesk.document.signing_flow import CaptureError
from signdesk.pdf.capture import CaptureRenderError
from signdesk.pdf.loader import DocumentLoadError, InvalidInputError
from signdesk.pdf.pages import RenderError
from signdesk.services.workspace import NoDocumentError, WorkspaceError
from signdesk.upload import UploadError
from signdesk.utils.logging import get_request_id

logger = logging.getLogger(__name__)

# Errors raised below the HTTP layer that translate_error() knows about
LIBRARY_ERRORS = (
    WorkspaceError,
    DocumentLoadError,
    LayoutError,
    FieldError,
    CaptureError,
    CaptureRenderError,
    RenderError,
    UploadError,
)


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            status_code=404,
            code="NOT_FOUND",
            message=f"{resource} not found: {resource_id}",
        )


class ValidationException(AppException):
    """Input validation error (wrong file type, malformed layout)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            status_code=400,
            code="VALIDATION_ERROR",
            message=message,
            details=details,
        )


class DocumentException(AppException):
    """PDF decode or render error."""

    def __init__(self, message: str):
        super().__init__(
            status_code=422,
            code="DOCUMENT_ERROR",
            message=message,
        )


class ConflictException(AppException):
    """Operation refused because another one is in flight or the mode is wrong."""

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(
            status_code=409,
            code=code,
            message=message,
        )


class UploadException(AppException):
    """Signed document could not be uploaded."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            status_code=502,
            code="UPLOAD_ERROR",
            message=message,
            details=details,
        )


def translate_error(exc: Exception) -> AppException:
    """
    Map a library-level error to the HTTP error the client sees.

    Used by the routers in `except LIBRARY_ERRORS` blocks.
    """
    if isinstance(exc, AppException):
        return exc
    if isinstance(exc, NoDocumentError):
        return NotFoundError("Document", "current")
    if isinstance(exc, WorkspaceError):
        return ConflictException(exc.message, code=exc.code)
    if isinstance(exc, InvalidInputError):
        return ValidationException(exc.message)
    if isinstance(exc, DocumentLoadError):
        return DocumentException(exc.message)
    if isinstance(exc, LayoutError):
        return ValidationException(exc.message, details=exc.details)
    if isinstance(exc, FieldError):
        return ValidationException(exc.message, details={"code": exc.code})
    if isinstance(exc, CaptureError):
        if exc.code == "NO_CAPTURE":
            return ConflictException(exc.message, code=exc.code)
        return ValidationException(exc.message)
    if isinstance(exc, CaptureRenderError):
        return ValidationException(str(exc))
    if isinstance(exc, RenderError):
        return DocumentException(exc.message)
    if isinstance(exc, UploadError):
        return UploadException(
            exc.message,
            details={"status_code": exc.status_code, "attempts": exc.attempts},
        )
    raise exc


def build_error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """Build standardized error response."""
    response = {
        "error": True,
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        response["details"] = details
    return response


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handle application exceptions."""
    logger.warning(f"AppException: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            exc.status_code,
            exc.code,
            exc.message,
            exc.details,
        ),
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(f"HTTPException: {exc.status_code} - {exc.detail}")

    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", "HTTP_ERROR")
        message = exc.detail.get("message", str(exc.detail))
    else:
        code = "HTTP_ERROR"
        message = str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(exc.status_code, code, message),
    )


async def validation_exception_handler(
    request: Request,
    exc: ValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors (request bodies and models)."""
    logger.warning(f"ValidationError: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=422,
        content=build_error_response(
            422,
            "VALIDATION_ERROR",
            "Request validation failed",
            {"errors": errors},
        ),
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")

    return JSONResponse(
        status_code=500,
        content=build_error_response(
            500,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
        ),
    )
