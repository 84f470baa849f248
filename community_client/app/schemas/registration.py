"""
Pydantic models for event registrations.

The backend may return the ``event`` and ``user`` references either as
plain identifiers or as populated documents; both are reduced to
``event_id`` / ``user_id`` here.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no_show"


class EventRegistration(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    event_id: str = Field(..., alias="event")
    user_id: Optional[str] = Field(None, alias="user")
    registration_data: Dict[str, Any] = Field(default_factory=dict, alias="registrationData")
    status: RegistrationStatus = RegistrationStatus.PENDING
    registered_at: Optional[datetime] = Field(None, alias="registeredAt")
    approved_at: Optional[datetime] = Field(None, alias="approvedAt")
    cancelled_at: Optional[datetime] = Field(None, alias="cancelledAt")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @model_validator(mode="before")
    @classmethod
    def flatten_references(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("event", "user"):
            ref = data.get(key)
            if isinstance(ref, dict):
                data[key] = ref.get("_id") or ref.get("id")
        return data

    @property
    def is_live(self) -> bool:
        """Every status except ``cancelled`` holds the user's place."""
        return self.status is not RegistrationStatus.CANCELLED
