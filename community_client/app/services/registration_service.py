"""
Client-side coordination of event registrations.

The ``RegistrationCoordinator`` keeps the last-known snapshot of each
event it has seen and the current user's registration for it.  It

* refuses to submit when there is no session, when the user already
  holds a live registration, when registration is closed or when the
  last-known attendee count has reached capacity (these checks are
  advisory, the server has the final word and its answer is honoured in
  the same way);
* validates registration payloads against the event's declared fields;
* updates the local attendee count only after the server has confirmed
  a registration or a cancellation, so a failed request never leaves a
  counter off by one;
* treats cancelling something that does not exist (or is already
  cancelled) as success.

A full event never puts the user on a waiting list: the attempt fails
with ``EventFull`` and the event is remembered as full until a
cancellation or a fresh snapshot says otherwise.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError

from community_client.app.api.gateway import ApiGateway
from community_client.app.core.errors import (
    AlreadyRegistered,
    Conflict,
    EventFull,
    NotFound,
    RegistrationClosed,
    ServerError,
    Unauthorized,
    ValidationError,
)
from community_client.app.schemas.event import Event, RegistrationField
from community_client.app.schemas.registration import EventRegistration, RegistrationStatus
from community_client.app.services.credential_store import CredentialStore, Session


logger = logging.getLogger(__name__)

_FREE_FORM_TYPES = (str, bool, int, float)


def validate_registration_data(
    fields: List[RegistrationField],
    data: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Check ``data`` against an event's registration fields.

    Returns the cleaned payload.  Optional fields left empty are dropped.
    When the event declares no fields, any flat mapping of scalar values
    is accepted.

    Raises:
        ValidationError: With one ``{"field", "message"}`` entry per
            problem in ``errors``.
    """
    data = dict(data or {})
    problems: List[Dict[str, str]] = []

    if not fields:
        for name, value in data.items():
            if value is not None and not isinstance(value, _FREE_FORM_TYPES):
                problems.append({"field": name, "message": f"{name} must be a simple value"})
        if problems:
            raise ValidationError("Please correct the registration form", errors=problems)
        return {name: value for name, value in data.items() if value is not None}

    known = {field.name for field in fields}
    for name in data:
        if name not in known:
            problems.append({"field": name, "message": f"Unknown registration field: {name}"})

    cleaned: Dict[str, Any] = {}
    for field in fields:
        value = data.get(field.name)
        if field.is_empty(value):
            if field.required:
                problems.append({"field": field.name, "message": f"{field.name} is required"})
            continue
        try:
            cleaned[field.name] = field.check(value)
        except ValueError as exc:
            problems.append({"field": field.name, "message": str(exc)})

    if problems:
        raise ValidationError("Please correct the registration form", errors=problems)
    return cleaned


class RegistrationCoordinator:
    """Registers the current user for events and keeps local counts honest."""

    def __init__(self, gateway: ApiGateway, credentials: CredentialStore) -> None:
        self.gateway = gateway
        self.credentials = credentials
        self._events: Dict[str, Event] = {}
        self._registrations: Dict[str, EventRegistration] = {}
        self._full: Set[str] = set()
        self._in_flight: Set[str] = set()
        self._owner: Optional[str] = credentials.user.id if credentials.user else None
        credentials.add_listener(self._session_changed)

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------
    def track(self, events: Union[Event, Iterable[Event]]) -> None:
        """Adopt fresh event snapshots from the server.

        A snapshot replaces whatever was known before; it also settles
        whether the event is full.
        """
        if isinstance(events, Event):
            events = [events]
        for event in events:
            self._events[event.id] = event
            if event.is_full:
                self._full.add(event.id)
            else:
                self._full.discard(event.id)

    def event(self, event_id: str) -> Optional[Event]:
        return self._events.get(event_id)

    def registration_for(self, event_id: str) -> Optional[EventRegistration]:
        return self._registrations.get(event_id)

    def is_registered(self, event_id: str) -> bool:
        registration = self._registrations.get(event_id)
        return registration is not None and registration.is_live

    def is_full(self, event_id: str) -> bool:
        return event_id in self._full

    def can_register(self, event: Union[Event, str]) -> bool:
        """Whether the register action should be offered for ``event``."""
        event_id = event if isinstance(event, str) else event.id
        snapshot = self._events.get(event_id) or (event if isinstance(event, Event) else None)
        if snapshot is None:
            return False
        return (
            self.credentials.is_authenticated()
            and snapshot.registration_open
            and not snapshot.is_full
            and event_id not in self._full
            and event_id not in self._in_flight
            and not self.is_registered(event_id)
        )

    def remember(self, registration: EventRegistration) -> None:
        """Adopt a registration reported by the server for the current user."""
        known = self._registrations.get(registration.event_id)
        if known is None or not known.is_live or registration.is_live:
            self._registrations[registration.event_id] = registration

    def reset(self) -> None:
        """Forget the user's registrations (after logout or user switch)."""
        self._registrations.clear()
        self._in_flight.clear()
        self._full = {event_id for event_id, event in self._events.items() if event.is_full}

    def _session_changed(self, session: Optional[Session]) -> None:
        owner = session.user.id if session is not None else None
        if owner == self._owner:
            return
        logger.debug("Session owner changed; dropping registrations of the previous user")
        self._owner = owner
        self.reset()

    def _adjust_attendees(self, event_id: str, delta: int) -> None:
        event = self._events.get(event_id)
        if event is None:
            return
        count = min(max(event.current_attendees + delta, 0), event.max_attendees)
        self.track(event.model_copy(update={"current_attendees": count}))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def register(
        self,
        event: Union[Event, str],
        fields: Optional[Mapping[str, Any]] = None,
    ) -> EventRegistration:
        """Register the current user for ``event``.

        Args:
            event: The event, or the id of an event previously passed to
                :meth:`track`.  A passed ``Event`` becomes the tracked
                snapshot.
            fields: Values for the event's registration fields.
        Returns:
            The registration, ``approved`` or ``pending`` depending on
            whether the event requires approval.
        Raises:
            Unauthorized: No session.
            NotFound: ``event`` is an id that was never tracked.
            AlreadyRegistered: A live registration exists (or is being
                submitted).
            RegistrationClosed: The event does not accept registrations.
            EventFull: No capacity left.
            ValidationError: ``fields`` do not match the event's form.
            NetworkError: The server could not be reached.
        """
        session = self.credentials.read()
        if session is None:
            raise Unauthorized("Please log in to register for this event")

        if isinstance(event, Event):
            self.track(event)
            event_id = event.id
        else:
            event_id = event
        snapshot = self._events.get(event_id)
        if snapshot is None:
            raise NotFound(f"Event {event_id} is not loaded")

        if event_id in self._in_flight or self.is_registered(event_id):
            raise AlreadyRegistered()
        if not snapshot.registration_open:
            raise RegistrationClosed()
        if snapshot.is_full or event_id in self._full:
            self._full.add(event_id)
            raise EventFull()

        payload = validate_registration_data(snapshot.registration_fields, fields)

        self._in_flight.add(event_id)
        try:
            response = await self.gateway.post(
                f"/events/{event_id}/register",
                {"registrationData": payload},
            )
        except EventFull:
            logger.info("Server reports event %s is full", event_id)
            self._full.add(event_id)
            raise
        finally:
            self._in_flight.discard(event_id)

        registration = self._parse_registration(response.data, snapshot, session.user.id, payload)
        self._registrations[event_id] = registration
        self._adjust_attendees(event_id, +1)
        logger.info("Registered for event %s with status %s", event_id, registration.status.value)
        return registration

    @staticmethod
    def _parse_registration(
        data: Any,
        event: Event,
        user_id: str,
        payload: Dict[str, Any],
    ) -> EventRegistration:
        expected = RegistrationStatus.PENDING if event.requires_approval else RegistrationStatus.APPROVED
        raw = data.get("registration") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            return EventRegistration(event_id=event.id, user_id=user_id, registration_data=payload, status=expected)
        raw = {"event": event.id, "user": user_id, "registrationData": payload, "status": expected.value, **raw}
        try:
            return EventRegistration.model_validate(raw)
        except PydanticValidationError as exc:
            raise ServerError("Registration response could not be read") from exc

    async def cancel_registration(self, event_id: str) -> bool:
        """Cancel the current user's registration for ``event_id``.

        Returns ``True`` when a live registration was cancelled and
        ``False`` when there was nothing to cancel.  Neither case raises;
        only transport and server failures do.
        """
        if not self.credentials.is_authenticated():
            logger.info("Not logged in; nothing to cancel for event %s", event_id)
            return False

        try:
            await self.gateway.delete(f"/events/{event_id}/register")
        except (NotFound, Conflict, ValidationError) as exc:
            if isinstance(exc, ValidationError) and not 400 <= (exc.status_code or 0) < 500:
                raise
            logger.info("No active registration to cancel for event %s (%s)", event_id, exc.kind.value)
            self._forget_registration(event_id)
            return False

        return self._forget_registration(event_id)

    def _forget_registration(self, event_id: str) -> bool:
        registration = self._registrations.get(event_id)
        if registration is None or not registration.is_live:
            return False
        self._registrations[event_id] = registration.model_copy(update={"status": RegistrationStatus.CANCELLED})
        self._adjust_attendees(event_id, -1)
        return True

    async def load_user_registrations(self, user_id: Optional[str] = None) -> List[EventRegistration]:
        """Fetch the user's registrations and index them by event.

        When an event has several registrations (for example a cancelled
        one followed by a new one) the live one wins.
        """
        if user_id is None:
            user = self.credentials.user
            if user is None:
                raise Unauthorized("Please log in to view your registrations")
            user_id = user.id
        response = await self.gateway.get(f"/users/{user_id}/registrations")
        data = response.data
        raw_items = data.get("registrations", []) if isinstance(data, dict) else data or []
        registrations: List[EventRegistration] = []
        for raw in raw_items:
            try:
                registrations.append(EventRegistration.model_validate(raw))
            except PydanticValidationError as exc:
                logger.warning("Skipping unreadable registration: %s", exc)

        for registration in registrations:
            self.remember(registration)
        return registrations
