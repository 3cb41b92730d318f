"""
HTTP translation of service errors.
"""

from fastapi import HTTPException

from sports_buddy.utils.errors import ServiceError


class TaggedHTTPException(HTTPException):
    """HTTPException that carries the machine-readable error code to the handlers."""

    def __init__(self, status_code: int, detail: str, code: str, headers: dict = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code


def http_error(exc: ServiceError) -> TaggedHTTPException:
    """Translate a service error into the HTTP error the API returns."""
    return TaggedHTTPException(status_code=exc.status_code, detail=exc.message, code=exc.code)
