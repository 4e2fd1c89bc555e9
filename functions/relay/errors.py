"""
Error taxonomy for the relay and the handlers that turn it into responses.

Every collaborator call is attempted exactly once; nothing here retries.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base class for failures reported to clients."""

    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def as_payload(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        if self.detail:
            payload["details"] = self.detail
        return payload


# Auth layer (401)


class MissingCredential(RelayError):
    status_code = 401
    default_message = "No token provided"


class InvalidCredential(RelayError):
    status_code = 401
    default_message = "Invalid token"


# Input validation (400)


class MissingFile(RelayError):
    status_code = 400
    default_message = "No file uploaded"


class PayloadTooLarge(RelayError):
    status_code = 400
    default_message = "File exceeds the upload size limit"


class ValidationFailed(RelayError):
    status_code = 400
    default_message = "Invalid request"


# Downstream failures (500)


class StagingIOError(RelayError):
    default_message = "Failed to stage uploaded file"


class BlobStoreUnavailable(RelayError):
    default_message = "Failed to upload file"


class BlobStoreRejected(RelayError):
    default_message = "Blob store rejected the request"


class MetadataWriteError(RelayError):
    default_message = "Failed to record upload"


class MetadataReadError(RelayError):
    default_message = "Failed to fetch uploads"


# Empty results (404)


class NoVideosFound(RelayError):
    status_code = 404
    default_message = "No videos found in the folder"


class UserNotFound(RelayError):
    status_code = 404
    default_message = "User data not found"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayError)
    async def _relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s (%s)",
                request.method,
                request.url.path,
                exc.kind,
                exc.detail or exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.as_payload())

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        error = ValidationFailed(detail=first.get("msg"))
        return JSONResponse(status_code=error.status_code, content=error.as_payload())
