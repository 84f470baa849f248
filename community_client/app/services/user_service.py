"""
Profile operations for the logged-in user.

Every method here requires a session.  Successful updates replace the
user snapshot held by the credential store, so the persisted ``user``
entry always matches what the server last returned.  A response that
arrives after the session has ended (or changed hands) is not written
back.
"""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from community_client.app.api.gateway import ApiGateway
from community_client.app.core.config import Settings, settings as default_settings
from community_client.app.core.errors import ClientError, ServerError, Unauthorized, ValidationError
from community_client.app.schemas.user import ChangePassword, UpdatePreferences, UpdateProfile, User, UserPreferences
from community_client.app.services.credential_store import CredentialStore


logger = logging.getLogger(__name__)


class ProfileService:
    """Read and update the current user's profile."""

    def __init__(self, gateway: ApiGateway, credentials: CredentialStore, settings: Optional[Settings] = None) -> None:
        self.gateway = gateway
        self.credentials = credentials
        self.settings = settings or default_settings

    def _require_user(self) -> User:
        user = self.credentials.user
        if user is None:
            raise Unauthorized("Please log in first")
        return user

    def _store_user(self, expected_id: str, data: Any) -> User:
        raw = data.get("user") if isinstance(data, dict) else None
        try:
            user = User.model_validate(raw or {})
        except PydanticValidationError as exc:
            raise ServerError("Server returned an invalid user") from exc
        current = self.credentials.user
        if current is not None and current.id == expected_id == user.id:
            self.credentials.update_user(user)
        else:
            logger.info("Session changed while %s was being refreshed; not storing the result", expected_id)
        return user

    async def refresh_user(self) -> Optional[User]:
        """Re-read the user from ``GET /auth/me``.

        Returns ``None`` without any request when logged out.  If the
        server cannot be reached the stored user is returned unchanged;
        a rejected session propagates as ``Unauthorized`` (the gateway
        has already cleared the store by then).
        """
        user = self.credentials.user
        if user is None:
            return None
        try:
            response = await self.gateway.get("/auth/me")
        except Unauthorized:
            raise
        except ClientError as exc:
            logger.warning("Could not refresh user %s, keeping stored copy: %s", user.id, exc.message)
            return user
        return self._store_user(user.id, response.data)

    async def update_profile(self, changes: Union[UpdateProfile, Dict[str, Any]]) -> User:
        user = self._require_user()
        if isinstance(changes, dict):
            changes = UpdateProfile.model_validate(changes)
        body = changes.model_dump(by_alias=True, exclude_none=True)
        if not body:
            return user
        response = await self.gateway.put(f"/users/{user.id}", body)
        return self._store_user(user.id, response.data)

    async def update_preferences(self, changes: Union[UpdatePreferences, Dict[str, Any]]) -> UserPreferences:
        user = self._require_user()
        if isinstance(changes, dict):
            changes = UpdatePreferences.model_validate(changes)
        body = changes.model_dump(by_alias=True, exclude_none=True)
        response = await self.gateway.put(f"/users/{user.id}/preferences", body)
        data = response.data if isinstance(response.data, dict) else {}
        try:
            preferences = UserPreferences.model_validate(data.get("preferences") or {})
        except PydanticValidationError as exc:
            raise ServerError("Server returned invalid preferences") from exc
        current = self.credentials.user
        if current is not None and current.id == user.id:
            self.credentials.update_user(current.model_copy(update={"preferences": preferences}))
        return preferences

    async def change_password(self, current_password: str, new_password: str, confirm_password: Optional[str] = None) -> None:
        user = self._require_user()
        if not current_password:
            raise ValidationError("Please enter your current password")
        if len(new_password or "") < self.settings.password_min_length:
            raise ValidationError(f"Password must be at least {self.settings.password_min_length} characters long")
        if confirm_password is not None and confirm_password != new_password:
            raise ValidationError("Passwords do not match")
        body = ChangePassword(current_password=current_password, new_password=new_password)
        await self.gateway.put(f"/users/{user.id}/password", body.model_dump(by_alias=True))
        logger.info("Password changed for user %s", user.id)
