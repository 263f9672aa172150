"""Service-layer exceptions for the auth core.

Each exception carries the HTTP status and the client-facing message it maps
to. Messages are deliberately generic: they never carry store error text or
say which part of a credential was wrong.
"""

from fastapi import status


class AuthError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationFailed(AuthError):
    default_message = "Validation failed"


class DuplicateEmail(AuthError):
    default_message = "User with this email already exists"


class WeakPassword(AuthError):
    default_message = "Password does not meet the strength requirements"


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid credentials"


class AccountLocked(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Account is temporarily locked due to too many failed attempts"


class AccountDeactivated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Account is deactivated"


class InvalidTwoFactorCode(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid two-factor authentication code"


class TooManyAttempts(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many attempts, please try again later"

    def __init__(self, message: str | None = None, *, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InvalidRefreshToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid refresh token"


class InvalidOrExpiredToken(AuthError):
    default_message = "Invalid or expired token"


class InvalidPassword(AuthError):
    default_message = "Invalid password"


class NotAuthenticated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class EmailNotVerified(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Email verification required"


class UserNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User not found"


class DependencyUnavailable(AuthError):
    """A backing store or collaborator could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class DependencyTimeout(DependencyUnavailable):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Service timed out"
