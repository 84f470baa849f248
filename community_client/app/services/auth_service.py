"""
Authentication and session lifecycle.

The ``AuthSessionManager`` implements the account state machine::

    ANONYMOUS --login--> AUTHENTICATED | error
    ANONYMOUS --register--> PENDING_VERIFICATION | error
    PENDING_VERIFICATION --verify--> AUTHENTICATED | error (retryable)
    PENDING_VERIFICATION --resend--> PENDING_VERIFICATION (timer reset) | error
    AUTHENTICATED --logout--> ANONYMOUS

The state is derived, never stored: ``AUTHENTICATED`` means the
credential store holds a session, ``PENDING_VERIFICATION`` means an
email-verification code is outstanding, and anything else is
``ANONYMOUS``.  Sessions are only ever created from a response that
carries both a token and a user, and only through the credential store.

A freshly registered account never receives a session: the server's
registration response is used for its user record only, and a session
appears only after the emailed one-time code has been verified.

Each outstanding code has a local countdown (600 seconds by default).
While it runs a new code may not be requested; once it reaches zero the
code may not be submitted until a new one is requested.  The server
stays authoritative for both rules.  Failed submissions are counted but
not capped on the client.

Nothing here retries automatically; every operation raises a
:class:`~community_client.app.core.errors.ClientError` subclass and the
caller decides what to offer the user next.
"""

import logging
import math
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from community_client.app.api.gateway import ApiGateway
from community_client.app.core.config import Settings, settings as default_settings
from community_client.app.core.errors import (
    ClientError,
    EmailNotVerified,
    ErrorKind,
    InvalidCode,
    InvalidCredentials,
    ResendCooldown,
    ServerError,
    ValidationError,
    VerificationExpired,
)
from community_client.app.schemas.auth import (
    AuthResult,
    LoginRequest,
    OTPPurpose,
    OTPVerification,
    RegisterProfile,
    RegisterRequest,
    ResendOTPRequest,
    ResetPasswordRequest,
)
from community_client.app.schemas.user import User
from community_client.app.services.credential_store import CredentialStore
from community_client.app.services.timers import Countdown


logger = logging.getLogger(__name__)

_USERNAME_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_]")


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    PENDING_VERIFICATION = "pending_verification"
    AUTHENTICATED = "authenticated"


@dataclass
class PendingVerification:
    """An outstanding one-time code for ``email``.

    ``expires_at`` is the wall-clock end of the code window.  It bounds
    the countdown, so a window restored in a later process (where the
    countdown may not tick) still runs out on time.
    """

    email: str
    purpose: OTPPurpose
    countdown: Countdown = field(default_factory=Countdown)
    attempts: int = 0
    expires_at: float = 0.0

    @property
    def remaining(self) -> int:
        left = math.ceil(self.expires_at - time.time())
        return max(min(self.countdown.remaining, left), 0)

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    def restart(self, seconds: int) -> None:
        self.expires_at = time.time() + seconds
        self.countdown.start(seconds)

    def expire(self) -> None:
        self.countdown.cancel()
        self.countdown.remaining = 0
        self.expires_at = 0.0

    def to_record(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "purpose": self.purpose.value,
            "expiresAt": self.expires_at,
            "attempts": self.attempts,
        }


def derive_username(
    email: str,
    *,
    min_length: int = 3,
    max_length: int = 20,
    pad_suffix: str = "123",
) -> str:
    """Build a username from the local part of ``email``.

    Only ASCII letters, digits and underscores are kept.  A result shorter
    than ``min_length`` is padded with ``pad_suffix`` and the whole is
    truncated to ``max_length``.

    >>> derive_username("john.doe+events@example.com")
    'johndoeevents'
    >>> derive_username("a@example.com")
    'a123'
    """
    local_part = email.split("@", 1)[0]
    username = _USERNAME_INVALID_CHARS.sub("", local_part)
    while len(username) < min_length:
        username += pad_suffix
    return username[:max_length]


def _is_otp(value: str, length: int) -> bool:
    return len(value) == length and value.isascii() and value.isdigit()


class AuthSessionManager:
    """Orchestrates login, registration, verification and logout.

    Parameters
    ----------
    gateway : ApiGateway
        Gateway used for every request.
    credentials : CredentialStore
        The store that receives sessions; the same instance the gateway
        reads its token from.
    settings : Settings, optional
        Client settings (code window, password rules, username rules).
    on_state_change : callable, optional
        Called with the new :class:`AuthState` after every transition.
    """

    def __init__(
        self,
        gateway: ApiGateway,
        credentials: CredentialStore,
        settings: Optional[Settings] = None,
        *,
        on_state_change: Optional[Callable[[AuthState], None]] = None,
    ) -> None:
        self.gateway = gateway
        self.credentials = credentials
        self.settings = settings or default_settings
        self.on_state_change = on_state_change
        self._pending: Optional[PendingVerification] = None
        self._last_state = self.state
        credentials.add_listener(lambda session: self._emit())

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> AuthState:
        if self.credentials.is_authenticated():
            return AuthState.AUTHENTICATED
        if self._pending is not None and self._pending.purpose is OTPPurpose.EMAIL_VERIFICATION:
            return AuthState.PENDING_VERIFICATION
        return AuthState.ANONYMOUS

    @property
    def pending(self) -> Optional[PendingVerification]:
        return self._pending

    @property
    def user(self) -> Optional[User]:
        return self.credentials.user

    def is_authenticated(self) -> bool:
        return self.credentials.is_authenticated()

    def _emit(self) -> None:
        state = self.state
        if state is self._last_state:
            return
        logger.info("Auth state changed: %s -> %s", self._last_state.value, state.value)
        self._last_state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    def hydrate(self) -> AuthState:
        """Restore a persisted session at start-up."""
        self._restore_pending()
        self.credentials.hydrate()
        self._emit()
        return self.state

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _open_pending(self, email: str, purpose: OTPPurpose, *, start: bool) -> PendingVerification:
        self._drop_pending()
        pending = PendingVerification(
            email=email,
            purpose=purpose,
            countdown=Countdown(on_expire=lambda: logger.info("One-time code for %s expired", email)),
        )
        if start:
            pending.restart(self.settings.otp_window_seconds)
        self._pending = pending
        self._save_pending()
        return pending

    def _drop_pending(self) -> None:
        if self._pending is not None:
            self._pending.countdown.cancel()
            self._pending = None
        self.credentials.clear_pending()

    def _save_pending(self) -> None:
        if self._pending is not None:
            self.credentials.save_pending(self._pending.to_record())

    def _restore_pending(self) -> None:
        record = self.credentials.load_pending()
        if record is None:
            return
        try:
            email = self._normalise_email(record.get("email"))
            purpose = OTPPurpose(record.get("purpose"))
            expires_at = float(record.get("expiresAt") or 0)
            attempts = int(record.get("attempts") or 0)
        except (ClientError, TypeError, ValueError):
            logger.warning("Discarding unreadable pending verification")
            self.credentials.clear_pending()
            return
        if self._pending is not None:
            self._pending.countdown.cancel()
        pending = PendingVerification(
            email=email,
            purpose=purpose,
            countdown=Countdown(on_expire=lambda: logger.info("One-time code for %s expired", email)),
            attempts=attempts,
            expires_at=expires_at,
        )
        pending.countdown.start(math.ceil(expires_at - time.time()))
        self._pending = pending
        logger.debug("Restored pending %s code for %s (%ss left)", purpose.value, email, pending.remaining)

    def _matching_pending(self, email: str, purpose: OTPPurpose) -> Optional[PendingVerification]:
        pending = self._pending
        if pending is not None and pending.email == email and pending.purpose is purpose:
            return pending
        return None

    def _check_otp(self, otp: str) -> str:
        otp = (otp or "").strip()
        if not _is_otp(otp, self.settings.otp_length):
            raise ValidationError(f"Please enter a valid {self.settings.otp_length}-digit code")
        return otp

    def _check_new_password(self, password: str, confirm_password: Optional[str]) -> None:
        if len(password or "") < self.settings.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.settings.password_min_length} characters long"
            )
        if confirm_password is not None and confirm_password != password:
            raise ValidationError("Passwords do not match")

    @staticmethod
    def _normalise_email(email: str) -> str:
        email = (email or "").strip().lower()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("Please enter a valid email address")
        return email

    @staticmethod
    def _session_from(data: Any) -> AuthResult:
        if not isinstance(data, dict) or not data.get("token") or not data.get("user"):
            raise ServerError("Authentication response did not include a token and user")
        try:
            return AuthResult(user=User.model_validate(data["user"]), token=data["token"])
        except PydanticValidationError as exc:
            raise ServerError("Authentication response contained an invalid user") from exc

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def login(self, email: str, password: str) -> AuthResult:
        """Log in with email and password.

        Raises:
            ValidationError: Empty email or password.
            InvalidCredentials: The server rejected the credentials.
            EmailNotVerified: The account exists but is unverified.  The
                manager moves to ``PENDING_VERIFICATION`` with an expired
                countdown so that :meth:`resend` may be called at once.
            NetworkError: The server could not be reached.
        """
        if not password:
            raise ValidationError("Please enter your password")
        request = LoginRequest(email=self._normalise_email(email), password=password)
        logger.info("Logging in %s", request.email)
        try:
            response = await self.gateway.post("/auth/login", request.model_dump(), auth=False)
        except EmailNotVerified:
            self._open_pending(request.email, OTPPurpose.EMAIL_VERIFICATION, start=False)
            self._emit()
            raise
        except ClientError as exc:
            if exc.kind is ErrorKind.UNAUTHORIZED:
                raise InvalidCredentials(exc.message, status_code=exc.status_code, code=exc.code) from exc
            raise

        result = self._session_from(response.data)
        self.credentials.set(result.token, result.user)
        self._drop_pending()
        self._emit()
        return result

    async def register(self, profile: Union[RegisterProfile, Dict[str, Any]]) -> AuthResult:
        """Create an account.

        The returned result always has ``token=None``; when
        ``requires_verification`` is set the manager is in
        ``PENDING_VERIFICATION`` with a running countdown.

        Raises:
            ValidationError: Missing name/email, password shorter than the
                minimum or not matching its confirmation.
            Conflict: Email or username already taken.
        """
        if isinstance(profile, dict):
            try:
                profile = RegisterProfile.model_validate(profile)
            except PydanticValidationError as exc:
                raise ValidationError("Please fill in all required fields", errors=exc.errors()) from exc
        if self.credentials.is_authenticated():
            raise ValidationError("Log out before creating a new account")
        if not profile.name:
            raise ValidationError("Please enter your name")
        email = self._normalise_email(profile.email)
        self._check_new_password(profile.password, profile.confirm_password)
        username = profile.username or derive_username(
            email,
            min_length=self.settings.username_min_length,
            max_length=self.settings.username_max_length,
            pad_suffix=self.settings.username_pad_suffix,
        )
        request = RegisterRequest(name=profile.name, email=email, password=profile.password, username=username)
        logger.info("Registering account %s (username %s)", email, username)
        response = await self.gateway.post("/auth/register", request.model_dump(), auth=False)

        data = response.data if isinstance(response.data, dict) else {}
        if data.get("token"):
            logger.warning("Ignoring token returned by registration for %s", email)
        try:
            user = User.model_validate(data.get("user") or {})
        except PydanticValidationError as exc:
            raise ServerError("Registration response contained an invalid user") from exc
        requires_verification = bool(data.get("requiresVerification", True))
        if requires_verification:
            self._open_pending(email, OTPPurpose.EMAIL_VERIFICATION, start=True)
        self._emit()
        return AuthResult(user=user, token=None, requires_verification=requires_verification)

    async def verify(self, email: str, otp: str) -> AuthResult:
        """Submit the emailed code and start a session.

        Raises:
            ValidationError: ``otp`` is not a 6-digit code.
            VerificationExpired: The local countdown reached zero; call
                :meth:`resend` first.
            InvalidCode: The server rejected the code (retryable).
        """
        email = self._normalise_email(email)
        otp = self._check_otp(otp)
        pending = self._matching_pending(email, OTPPurpose.EMAIL_VERIFICATION)
        if pending is not None:
            if pending.expired:
                raise VerificationExpired()
            pending.attempts += 1
            self._save_pending()

        body = OTPVerification(email=email, otp=otp).model_dump()
        try:
            response = await self.gateway.post("/auth/verify-email", body, auth=False)
        except VerificationExpired:
            if pending is not None:
                pending.expire()
                self._save_pending()
            raise
        except ClientError as exc:
            if exc.kind in (ErrorKind.VALIDATION, ErrorKind.UNAUTHORIZED):
                raise InvalidCode(exc.message, status_code=exc.status_code, code=exc.code) from exc
            raise

        result = self._session_from(response.data)
        if pending is not None and self._pending is not pending:
            # The verification was abandoned (or replaced) while the
            # request was in flight.  The account is verified server-side;
            # the user can simply log in.
            logger.warning("Discarding late verification response for %s", email)
            return AuthResult(user=result.user, token=None)
        self.credentials.set(result.token, result.user)
        self._drop_pending()
        self._emit()
        return result

    async def resend(self, email: Optional[str] = None, purpose: OTPPurpose = OTPPurpose.EMAIL_VERIFICATION) -> None:
        """Request a new one-time code and restart the countdown.

        Raises:
            ResendCooldown: The countdown for this email is still running.
        """
        if email is None:
            if self._pending is None:
                raise ValidationError("No email address to send a code to")
            email = self._pending.email
        email = self._normalise_email(email)
        purpose = OTPPurpose(purpose)
        pending = self._matching_pending(email, purpose)
        if pending is not None and not pending.expired:
            raise ResendCooldown(remaining=pending.remaining)

        body = ResendOTPRequest(email=email, type=purpose).model_dump(mode="json")
        await self.gateway.post("/auth/resend-otp", body, auth=False)
        logger.info("Sent a new %s code to %s", purpose.value, email)
        if pending is not None:
            pending.restart(self.settings.otp_window_seconds)
            self._save_pending()
        else:
            self._open_pending(email, purpose, start=True)
        self._emit()

    async def logout(self) -> None:
        """End the session.

        The server is told on a best-effort basis; local credentials are
        cleared whatever the outcome.
        """
        try:
            if self.credentials.is_authenticated():
                await self.gateway.post("/auth/logout")
        except ClientError as exc:
            logger.warning("Logout request failed: %s", exc.message)
        finally:
            self._drop_pending()
            self.credentials.clear()
            self._emit()

    def abandon_verification(self) -> None:
        """Forget the outstanding code (the verification view was closed)."""
        self._drop_pending()
        self._emit()

    async def forgot_password(self, email: str) -> None:
        """Ask the server to email a password-reset code."""
        email = self._normalise_email(email)
        pending = self._matching_pending(email, OTPPurpose.PASSWORD_RESET)
        if pending is not None and not pending.expired:
            raise ResendCooldown(remaining=pending.remaining)
        await self.gateway.post("/auth/forgot-password", {"email": email}, auth=False)
        self._open_pending(email, OTPPurpose.PASSWORD_RESET, start=True)
        self._emit()

    async def reset_password(
        self,
        email: str,
        otp: str,
        password: str,
        confirm_password: Optional[str] = None,
    ) -> None:
        """Set a new password using a reset code.  No session is created."""
        email = self._normalise_email(email)
        otp = self._check_otp(otp)
        self._check_new_password(password, confirm_password)
        pending = self._matching_pending(email, OTPPurpose.PASSWORD_RESET)
        if pending is not None:
            if pending.expired:
                raise VerificationExpired()
            pending.attempts += 1
            self._save_pending()
        body = ResetPasswordRequest(email=email, otp=otp, password=password).model_dump()
        try:
            await self.gateway.post("/auth/reset-password", body, auth=False)
        except ClientError as exc:
            if exc.kind is ErrorKind.VALIDATION:
                raise InvalidCode(exc.message, status_code=exc.status_code, code=exc.code) from exc
            raise
        logger.info("Password reset for %s", email)
        if self._pending is pending:
            self._drop_pending()
        self._emit()

    def teardown(self) -> None:
        """Stop timers owned by the manager.  Pending state is kept."""
        if self._pending is not None:
            self._pending.countdown.cancel()
