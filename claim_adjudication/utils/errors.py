"""
Custom Exceptions
Adjudication error taxonomy shared by services and the HTTP layer.
"""

from typing import Optional

from fastapi import status


class AdjudicationError(Exception):
    """Base class for all errors raised by the adjudication core."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "adjudication_error"
    default_detail: str = "Claim adjudication failed"
    headers: Optional[dict[str, str]] = None

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AdjudicationError):
    """Raised when input fields are malformed or missing"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"
    default_detail = "Validation error"

    def __init__(self, detail: Optional[str] = None, errors: Optional[list[str]] = None):
        super().__init__(detail)
        self.errors = errors or []


class NotFoundError(AdjudicationError):
    """Raised when a claim or patient does not exist"""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Resource not found"


class ForbiddenError(AdjudicationError):
    """Raised when the principal's role is insufficient"""

    status_code = status.HTTP_403_FORBIDDEN
    code = "insufficient_permissions"
    default_detail = "Insufficient permissions"


class InvalidStateTransitionError(AdjudicationError):
    """Raised when a status change is not permitted from the current state"""

    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state_transition"
    default_detail = "Invalid status transition"


class ConflictError(AdjudicationError):
    """Raised when a concurrent modification survives bounded retry"""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_detail = "Claim was modified concurrently"


class DependencyError(AdjudicationError):
    """Raised when the repository, cache or medical record store fails"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "dependency_unavailable"
    default_detail = "A required dependency is unavailable"

    def __init__(
        self,
        detail: Optional[str] = None,
        dependency: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(detail)
        self.dependency = dependency
        self.original_error = original_error


class RateLimitExceededError(AdjudicationError):
    """Raised when a principal exhausts its request budget"""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"
    default_detail = "Too many requests"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict[str, str]] = None):
        super().__init__(detail)
        self.headers = headers
