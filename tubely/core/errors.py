"""Failure taxonomy for the ingestion pipeline.

Every error carries the category reported to callers and the HTTP status the
API maps it to. Errors are terminal for the request; nothing is retried.
"""

from __future__ import annotations

from typing import Any


class IngestError(Exception):
    category = "internal"
    status_code = 500

    def __init__(self, detail: str, *, status_code: int | None = None, diagnostics: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.diagnostics = diagnostics
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.category, "detail": self.detail}
        if self.diagnostics:
            payload["diagnostics"] = self.diagnostics
        return payload


class ValidationError(IngestError):
    category = "validation"
    status_code = 400


class NotFoundError(ValidationError):
    status_code = 404


class AuthorizationError(IngestError):
    category = "authorization"
    status_code = 403


class ResourceLimitError(IngestError):
    category = "resource_limit"
    status_code = 413


class ProcessingError(IngestError):
    category = "processing"
    status_code = 422


class StorageError(IngestError):
    category = "storage"
    status_code = 502


__all__ = [
    "IngestError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "ResourceLimitError",
    "ProcessingError",
    "StorageError",
]
