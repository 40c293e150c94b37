"""
Exception taxonomy shared by the stores, file storage and routes.

Every error carries the HTTP status it maps to; the app registers a single
handler that renders them as ``{"error": message}``.
"""

from __future__ import annotations


class PortfolioError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortfolioError):
    """Bad enum value, out-of-range number or missing required field."""

    status_code = 422


class UploadTooLarge(ValidationError):
    status_code = 413


class Unauthenticated(PortfolioError):
    status_code = 401


class Forbidden(PortfolioError):
    status_code = 403


class NotFoundError(PortfolioError):
    status_code = 404


class StorageError(PortfolioError):
    """The database or the file system refused an operation."""

    status_code = 500


class UpstreamError(PortfolioError):
    """A hosted backend (Appwrite, S3) call failed."""

    status_code = 500
