"""Exceptions raised by the SoleMate client."""

from typing import Any, Optional


class SoleMateError(Exception):
    """Base class for all SoleMate client errors."""


class NetworkError(SoleMateError):
    """The request timed out or never reached the API."""


class RefreshFailed(SoleMateError):
    """The refresh token was missing, expired or rejected."""


class ApiError(SoleMateError):
    """The API answered with an error status."""

    def __init__(self, status_code: int, detail: Any = None) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}" if detail else str(status_code))


class InvalidCredentials(ApiError):
    """Login was rejected."""


class AuthorizationError(ApiError):
    """The request was still unauthorized after a token refresh."""


class NotFound(ApiError):
    """Unknown product, variant or cart line."""


class ValidationError(ApiError):
    """Malformed or rejected input."""

    def __init__(self, detail: Any = None, status_code: int = 400) -> None:
        super().__init__(status_code, detail)


def error_for_status(status_code: int, detail: Optional[Any] = None) -> ApiError:
    """Map an HTTP error status to the matching exception."""
    if status_code == 404:
        return NotFound(status_code, detail)
    if status_code in (400, 409, 422):
        return ValidationError(detail, status_code=status_code)
    if status_code in (401, 403):
        return AuthorizationError(status_code, detail)
    return ApiError(status_code, detail)
