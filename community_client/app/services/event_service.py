"""
Event catalogue: read access to events.

Reads favour availability.  When ``GET /events`` fails the catalogue
returns the last good page for the same filters, and failing that the
built-in demo events, marking the page's ``source`` accordingly.  This
applies to listing reads only; registration writes go through the
:class:`~community_client.app.services.registration_service.RegistrationCoordinator`
and never fall back to anything.

Featured events are a secondary, best-effort read: failures are logged
and an empty (or previously cached) list is returned.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from community_client.app.api.gateway import ApiGateway
from community_client.app.core.config import Settings, settings as default_settings
from community_client.app.core.errors import ClientError, ServerError, ValidationError
from community_client.app.schemas.event import Event, EventFilters, EventPage, Pagination
from community_client.app.schemas.registration import EventRegistration
from community_client.app.services.demo_events import demo_events
from community_client.app.services.registration_service import RegistrationCoordinator
from community_client.app.services.timers import PeriodicTask


logger = logging.getLogger(__name__)


def _parse_events(raw_items: Any) -> List[Event]:
    events: List[Event] = []
    for raw in raw_items or []:
        try:
            events.append(Event.model_validate(raw))
        except PydanticValidationError as exc:
            logger.warning("Skipping unreadable event %s: %s", raw.get("_id") if isinstance(raw, dict) else raw, exc)
    return events


class EventCatalog:
    """Lists and looks up events.

    If a coordinator is supplied, every live snapshot is handed to it so
    that capacity checks work from the freshest counts available.
    """

    def __init__(
        self,
        gateway: ApiGateway,
        coordinator: Optional[RegistrationCoordinator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.gateway = gateway
        self.coordinator = coordinator
        self.settings = settings or default_settings
        self._pages: Dict[Tuple[Tuple[str, str], ...], EventPage] = {}
        self._featured: List[Event] = []
        self._refresher: Optional[PeriodicTask] = None
        self.last_page: Optional[EventPage] = None

    @staticmethod
    def _cache_key(filters: EventFilters) -> Tuple[Tuple[str, str], ...]:
        return tuple(sorted(filters.to_params().items()))

    def _track(self, events: List[Event]) -> None:
        if self.coordinator is not None and events:
            self.coordinator.track(events)

    async def list_events(self, filters: Optional[EventFilters] = None, *, fallback: bool = True) -> EventPage:
        """Fetch one page of events.

        Args:
            filters: Query filters; defaults to the first page of ten.
            fallback: Serve cached or demo data when the request fails.
                Invalid filters (``ValidationError``) are always raised.
        """
        filters = filters or EventFilters()
        key = self._cache_key(filters)
        try:
            response = await self.gateway.get("/events", params=filters.to_params())
        except ValidationError:
            raise
        except ClientError as exc:
            if not fallback:
                raise
            logger.warning("Failed to load events (%s); serving fallback data", exc.kind.value)
            cached = self._pages.get(key)
            if cached is not None:
                page = cached.model_copy(update={"source": "cache"})
            else:
                events = demo_events(filters.limit)
                page = EventPage(
                    events=events,
                    pagination=Pagination(page=1, limit=filters.limit, total=len(events), pages=1),
                    source="demo",
                )
            self.last_page = page
            return page

        data = response.data if isinstance(response.data, dict) else {}
        events = _parse_events(data.get("events"))
        pagination = Pagination.model_validate(response.pagination or data.get("pagination") or {
            "page": filters.page,
            "limit": filters.limit,
            "total": len(events),
            "pages": 1 if events else 0,
        })
        page = EventPage(events=events, pagination=pagination, source="live")
        self._pages[key] = page
        self.last_page = page
        self._track(events)
        return page

    async def get_event(self, event_id: str) -> Tuple[Event, Optional[EventRegistration]]:
        """Fetch a single event and the current user's registration for it."""
        response = await self.gateway.get(f"/events/{event_id}")
        data = response.data if isinstance(response.data, dict) else {}
        try:
            event = Event.model_validate(data.get("event") or {})
        except PydanticValidationError as exc:
            raise ServerError(f"Event {event_id} could not be read") from exc
        registration: Optional[EventRegistration] = None
        raw_registration = data.get("userRegistration")
        if isinstance(raw_registration, dict):
            try:
                registration = EventRegistration.model_validate({"event": event.id, **raw_registration})
            except PydanticValidationError as exc:
                logger.warning("Ignoring unreadable registration for event %s: %s", event_id, exc)
        self._track([event])
        if registration is not None and self.coordinator is not None:
            self.coordinator.remember(registration)
        return event, registration

    async def featured_events(self) -> List[Event]:
        """Best-effort list of featured events."""
        try:
            response = await self.gateway.get("/events/featured")
        except ClientError as exc:
            logger.warning("Could not load featured events: %s", exc.message)
            return list(self._featured)
        data = response.data if isinstance(response.data, dict) else {}
        self._featured = _parse_events(data.get("events"))
        self._track(self._featured)
        return list(self._featured)

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------
    def start_auto_refresh(self, filters: Optional[EventFilters] = None, interval: Optional[float] = None) -> PeriodicTask:
        """Keep :attr:`last_page` fresh until :meth:`stop_auto_refresh`."""
        if self._refresher is not None and self._refresher.running:
            return self._refresher

        async def refresh() -> None:
            await self.list_events(filters)

        self._refresher = PeriodicTask(
            refresh,
            interval or self.settings.refresh_interval_seconds,
            name="event-refresh",
        )
        self._refresher.start()
        return self._refresher

    async def stop_auto_refresh(self) -> None:
        refresher, self._refresher = self._refresher, None
        if refresher is not None:
            await refresher.stop()
