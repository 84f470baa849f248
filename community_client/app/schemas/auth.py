"""
Pydantic models for the authentication endpoints.

``RegisterProfile`` is what a sign-up form collects; ``RegisterRequest``
is what is actually sent to ``POST /auth/register`` once the profile
has been validated and a username derived from it.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .user import User


class OTPPurpose(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class RegisterProfile(BaseModel):
    """Sign-up form input.

    Length and confirmation rules depend on the client settings and are
    enforced by the auth service before anything is sent.
    """

    name: str
    email: str
    password: str
    confirm_password: Optional[str] = None
    username: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    username: str


class OTPVerification(BaseModel):
    email: str
    otp: str


class ResendOTPRequest(BaseModel):
    email: str
    type: OTPPurpose = OTPPurpose.EMAIL_VERIFICATION


class ResetPasswordRequest(BaseModel):
    email: str
    otp: str
    password: str


class AuthResult(BaseModel):
    """Outcome of ``login``, ``register`` and ``verify``.

    ``token`` is always ``None`` when ``requires_verification`` is set.
    """

    user: User
    token: Optional[str] = None
    requires_verification: bool = Field(False, alias="requiresVerification")

    model_config = {"populate_by_name": True}
