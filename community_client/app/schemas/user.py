"""
Pydantic models for user data.

The backend speaks camelCase JSON and identifies documents with
``_id``; the models expose snake_case attributes and accept either
spelling on input (``populate_by_name``).  ``User.to_snapshot`` is the
JSON form kept by the credential store, and ``User.model_validate``
reads it back.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class PrivacySettings(BaseModel):
    profile_visibility: Literal["public", "community", "private"] = Field("public", alias="profileVisibility")
    show_email: bool = Field(False, alias="showEmail")
    show_location: bool = Field(True, alias="showLocation")

    model_config = {"populate_by_name": True}


class UserPreferences(BaseModel):
    email_notifications: bool = Field(True, alias="emailNotifications")
    event_notifications: bool = Field(True, alias="eventNotifications")
    newsletter: bool = False
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)

    model_config = {"populate_by_name": True}


class User(BaseModel):
    """Session identity as returned by ``/auth/*`` and ``/users/:id``."""

    id: str = Field(..., alias="_id")
    email: str
    name: str = ""
    username: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    job_title: Optional[str] = Field(None, alias="jobTitle")
    skills: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    is_email_verified: bool = Field(False, alias="isEmailVerified")
    is_active: bool = Field(True, alias="isActive")
    is_admin: bool = Field(False, alias="isAdmin")
    is_moderator: bool = Field(False, alias="isModerator")
    preferences: Optional[UserPreferences] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    def to_snapshot(self) -> Dict[str, Any]:
        """Return the wire-shaped JSON dictionary for persistence."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class UpdateProfile(BaseModel):
    """Partial profile update sent to ``PUT /users/:id``."""

    name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    company: Optional[str] = None
    job_title: Optional[str] = Field(None, alias="jobTitle")
    experience: Optional[str] = None
    skills: Optional[List[str]] = None
    interests: Optional[List[str]] = None

    model_config = {"populate_by_name": True}


class UpdatePreferences(BaseModel):
    """Partial preferences update sent to ``PUT /users/:id/preferences``."""

    email_notifications: Optional[bool] = Field(None, alias="emailNotifications")
    event_notifications: Optional[bool] = Field(None, alias="eventNotifications")
    newsletter: Optional[bool] = None
    privacy: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}


class ChangePassword(BaseModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")

    model_config = {"populate_by_name": True}
