"""
Tagged error kinds raised by the service layer.

Each error carries a machine-readable ``code`` and the HTTP status the API
maps it to. Route handlers translate them into ``HTTPException`` and the
application-wide handlers render ``{"error": message, "code": code}``.

Codes:
- validation_error (400): malformed or missing input
- unauthorized (401): missing, invalid or expired token
- forbidden (403): ownership or creator mismatch
- not_found (404): entity does not exist or is not in the required state
- conflict (409): duplicate relationship or membership
- match_full (409): match capacity reached
- rate_limited (429): too many attempts
- internal_error (500): anything unexpected
"""

from typing import Dict


class ServiceError(ValueError):
    """Base class for service errors.

    Subclasses ``ValueError`` so callers that only care about "bad request"
    style failures can keep catching ``ValueError``.
    """

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ServiceError):
    code = "validation_error"
    status_code = 400


class AuthenticationError(ServiceError):
    code = "unauthorized"
    status_code = 401


class ForbiddenError(ServiceError):
    code = "forbidden"
    status_code = 403


class NotFoundError(ServiceError):
    code = "not_found"
    status_code = 404


class ConflictError(ServiceError):
    code = "conflict"
    status_code = 409


class CapacityError(ConflictError):
    code = "match_full"


class RateLimitedError(ServiceError):
    code = "rate_limited"
    status_code = 429


STATUS_CODES: Dict[int, str] = {
    400: ValidationError.code,
    401: AuthenticationError.code,
    403: ForbiddenError.code,
    404: NotFoundError.code,
    409: ConflictError.code,
    422: ValidationError.code,
    429: RateLimitedError.code,
}


def code_for_status(status_code: int) -> str:
    """Machine-readable code for an HTTP status that was raised without a tagged error."""
    return STATUS_CODES.get(status_code, ServiceError.code)
