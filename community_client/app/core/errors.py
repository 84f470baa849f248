"""
Structured error taxonomy for the client.

Every failure surfaced by the gateway or the services is a
``ClientError`` subclass carrying an ``ErrorKind``.  Callers branch on
the exception class (or on ``error.kind``) and only use ``message`` for
display; no caller inspects message text to decide what happened.

The gateway is the single place where server responses are turned into
these exceptions, see :func:`community_client.app.api.gateway.error_from_response`.
"""

from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    """Machine-readable error codes."""

    VALIDATION = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    NETWORK = "NETWORK_ERROR"
    SERVER = "SERVER_ERROR"

    # Authentication
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    INVALID_CODE = "INVALID_OTP"
    VERIFICATION_EXPIRED = "OTP_EXPIRED"
    RESEND_COOLDOWN = "RESEND_COOLDOWN"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    USERNAME_TAKEN = "USERNAME_TAKEN"

    # Event registration
    EVENT_FULL = "EVENT_FULL"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    NOT_REGISTERED = "NOT_REGISTERED"


class ClientError(Exception):
    """Base class for all errors raised by the client."""

    kind: ErrorKind = ErrorKind.SERVER
    default_message = "An error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        kind: Optional[ErrorKind] = None,
    ) -> None:
        self.message = message or self.default_message
        self.status_code = status_code
        self.code = code
        self.errors = errors or []
        if kind is not None:
            self.kind = kind
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        """Whether repeating the same request may succeed."""
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, status_code={self.status_code!r}, message={self.message!r})"


class ValidationError(ClientError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid input"


class Unauthorized(ClientError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Authentication required"


class Forbidden(ClientError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Insufficient permissions"


class NotFound(ClientError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class Conflict(ClientError):
    kind = ErrorKind.CONFLICT
    default_message = "Request conflicts with the current state"


class NetworkError(ClientError):
    kind = ErrorKind.NETWORK
    default_message = "Unable to connect to the server. Please check your internet connection and try again."

    @property
    def retryable(self) -> bool:
        return True


class ServerError(ClientError):
    kind = ErrorKind.SERVER
    default_message = "An error occurred"

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class InvalidCredentials(Unauthorized):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Invalid email or password"


class EmailNotVerified(Forbidden):
    """Login refused because the account has not confirmed its email.

    Callers may offer ``resend()`` followed by ``verify()``.
    """

    kind = ErrorKind.EMAIL_NOT_VERIFIED
    default_message = "Please verify your email before logging in"


class InvalidCode(ValidationError):
    kind = ErrorKind.INVALID_CODE
    default_message = "Invalid verification code. Please try again."

    @property
    def retryable(self) -> bool:
        return True


class VerificationExpired(ValidationError):
    kind = ErrorKind.VERIFICATION_EXPIRED
    default_message = "Verification code expired. Request a new code first."


class ResendCooldown(ValidationError):
    kind = ErrorKind.RESEND_COOLDOWN
    default_message = "A new code can be requested once the current one expires"

    def __init__(self, message: Optional[str] = None, *, remaining: int = 0, **kwargs: Any) -> None:
        self.remaining = remaining
        super().__init__(message, **kwargs)


# ---------------------------------------------------------------------------
# Event registration
# ---------------------------------------------------------------------------


class EventFull(Conflict):
    kind = ErrorKind.EVENT_FULL
    default_message = "This event is full"


class AlreadyRegistered(Conflict):
    kind = ErrorKind.ALREADY_REGISTERED
    default_message = "You are already registered for this event"


class RegistrationClosed(Conflict):
    kind = ErrorKind.REGISTRATION_CLOSED
    default_message = "Registration for this event is closed"


# Kind -> exception class, used by the gateway when the server supplies a
# machine-readable ``code``.
ERROR_CLASSES = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.UNAUTHORIZED: Unauthorized,
    ErrorKind.FORBIDDEN: Forbidden,
    ErrorKind.NOT_FOUND: NotFound,
    ErrorKind.CONFLICT: Conflict,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.SERVER: ServerError,
    ErrorKind.INVALID_CREDENTIALS: InvalidCredentials,
    ErrorKind.EMAIL_NOT_VERIFIED: EmailNotVerified,
    ErrorKind.INVALID_CODE: InvalidCode,
    ErrorKind.VERIFICATION_EXPIRED: VerificationExpired,
    ErrorKind.RESEND_COOLDOWN: ResendCooldown,
    ErrorKind.EMAIL_TAKEN: Conflict,
    ErrorKind.USERNAME_TAKEN: Conflict,
    ErrorKind.EVENT_FULL: EventFull,
    ErrorKind.ALREADY_REGISTERED: AlreadyRegistered,
    ErrorKind.REGISTRATION_CLOSED: RegistrationClosed,
    ErrorKind.NOT_REGISTERED: NotFound,
}
