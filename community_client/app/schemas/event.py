"""
Pydantic models for event data.

Events carry an optional list of custom registration fields.  Each
field is one member of a tagged union keyed on ``type``; the field
classes know how to check a submitted value, so registration payloads
are validated against the event before they are sent.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    TEXTAREA = "textarea"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9\s().-]{7,20}$")


class _FieldBase(BaseModel):
    name: str
    required: bool = False
    placeholder: Optional[str] = None

    @property
    def field_type(self) -> FieldType:
        return FieldType(getattr(self, "type"))

    def is_empty(self, value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    def check(self, value: Any) -> Any:
        """Return the normalised value or raise ``ValueError``."""
        if not isinstance(value, str):
            raise ValueError(f"{self.name} must be text")
        return value.strip()


class TextField(_FieldBase):
    type: Literal["text"] = "text"


class TextareaField(_FieldBase):
    type: Literal["textarea"] = "textarea"


class EmailField(_FieldBase):
    type: Literal["email"] = "email"

    def check(self, value: Any) -> Any:
        value = super().check(value)
        if not _EMAIL_RE.match(value):
            raise ValueError(f"{self.name} must be a valid email address")
        return value.lower()


class PhoneField(_FieldBase):
    type: Literal["phone"] = "phone"

    def check(self, value: Any) -> Any:
        value = super().check(value)
        if not _PHONE_RE.match(value):
            raise ValueError(f"{self.name} must be a valid phone number")
        return value


class _ChoiceField(_FieldBase):
    options: List[str] = Field(..., min_length=1)

    def check(self, value: Any) -> Any:
        value = super().check(value)
        if value not in self.options:
            raise ValueError(f"{self.name} must be one of: {', '.join(self.options)}")
        return value


class SelectField(_ChoiceField):
    type: Literal["select"] = "select"


class RadioField(_ChoiceField):
    type: Literal["radio"] = "radio"


class CheckboxField(_FieldBase):
    type: Literal["checkbox"] = "checkbox"

    def is_empty(self, value: Any) -> bool:
        # A required checkbox (e.g. "I accept the terms") must be ticked.
        return value is None or value is False

    def check(self, value: Any) -> Any:
        if not isinstance(value, bool):
            raise ValueError(f"{self.name} must be true or false")
        return value


RegistrationField = Annotated[
    Union[TextField, TextareaField, EmailField, PhoneField, SelectField, RadioField, CheckboxField],
    Field(discriminator="type"),
]


class Event(BaseModel):
    """An event as returned by ``GET /events`` and ``GET /events/:id``."""

    id: str = Field(..., alias="_id")
    title: str
    description: str = ""
    short_description: Optional[str] = Field(None, alias="shortDescription")
    category: str = "Other"
    event_type: str = Field("Online", alias="type")
    difficulty: Optional[str] = None
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    timezone: Optional[str] = None
    duration: Optional[int] = None
    location: Dict[str, Any] = Field(default_factory=dict)
    price: float = 0
    currency: str = "USD"
    max_attendees: int = Field(..., ge=0, alias="maxAttendees")
    current_attendees: int = Field(0, ge=0, alias="currentAttendees")
    status: str = "Published"
    is_featured: bool = Field(False, alias="isFeatured")
    is_public: bool = Field(True, alias="isPublic")
    registration_open: bool = Field(True, alias="registrationOpen")
    registration_deadline: Optional[datetime] = Field(None, alias="registrationDeadline")
    requires_approval: bool = Field(False, alias="requiresApproval")
    registration_fields: List[RegistrationField] = Field(default_factory=list, alias="registrationFields")
    cover_image: Optional[str] = Field(None, alias="coverImage")
    tags: List[str] = Field(default_factory=list)

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def spots_left(self) -> int:
        return max(self.max_attendees - self.current_attendees, 0)

    @property
    def is_full(self) -> bool:
        return self.current_attendees >= self.max_attendees


class EventFilters(BaseModel):
    """Query parameters accepted by ``GET /events``."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    category: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None
    upcoming: Optional[bool] = None
    past: Optional[bool] = None
    sort: Optional[Literal["date", "-date", "title", "-title", "createdAt", "-createdAt"]] = None

    @field_validator("search")
    @classmethod
    def strip_search(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None

    def to_params(self) -> Dict[str, str]:
        """Render as query parameters, dropping unset values."""
        params: Dict[str, str] = {}
        for key, value in self.model_dump(exclude_none=True).items():
            if isinstance(value, bool):
                params[key] = "true" if value else "false"
            else:
                params[key] = str(value)
        return params


class Pagination(BaseModel):
    page: int = 1
    limit: int = 10
    total: int = 0
    pages: int = 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class EventPage(BaseModel):
    """One page of events plus where it came from.

    ``source`` is ``"live"`` for a fresh server response, ``"cache"`` when
    the last good response for the same filters was reused, and
    ``"demo"`` when the built-in sample events were substituted.
    """

    events: List[Event]
    pagination: Pagination
    source: Literal["live", "cache", "demo"] = "live"
