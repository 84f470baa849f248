"""
Main entrypoint for the community client.

``create_client`` assembles the credential store, the API gateway and
the services that share them, and restores any persisted session.  It
returns a ``CommunityClient`` bundle; applications keep one per process
and call :meth:`CommunityClient.close` on shutdown so timers are
cancelled and the HTTP session is released.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .api.gateway import ApiGateway
from .core.config import Settings, settings as default_settings
from .services.auth_service import AuthSessionManager, AuthState
from .services.credential_store import (
    CredentialBackend,
    CredentialStore,
    MemoryCredentialBackend,
    SQLiteCredentialBackend,
)
from .services.event_service import EventCatalog
from .services.registration_service import RegistrationCoordinator
from .services.user_service import ProfileService


logger = logging.getLogger(__name__)


@dataclass
class CommunityClient:
    """The wired-up services sharing one credential store."""

    settings: Settings
    credentials: CredentialStore
    gateway: ApiGateway
    auth: AuthSessionManager
    registrations: RegistrationCoordinator
    events: EventCatalog
    profile: ProfileService
    _closed: bool = field(default=False, repr=False)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.auth.teardown()
        await self.events.stop_auto_refresh()
        self.gateway.close()
        close_backend = getattr(self.credentials.backend, "close", None)
        if close_backend is not None:
            close_backend()


def create_client(
    settings: Optional[Settings] = None,
    *,
    session: Optional[Any] = None,
    backend: Optional[CredentialBackend] = None,
    hydrate: bool = True,
    on_state_change: Optional[Callable[[AuthState], None]] = None,
) -> CommunityClient:
    """Create a fully configured client.

    Parameters
    ----------
    settings : Settings, optional
        Defaults to the module-level settings read from the environment.
    session : optional
        HTTP session handed to the gateway (a ``requests.Session`` or a
        compatible object).
    backend : CredentialBackend, optional
        Where the session is persisted.  Defaults to a SQLite file at
        ``settings.credentials_path`` (in memory for ``:memory:``).
    hydrate : bool
        Restore a persisted session immediately.
    on_state_change : callable, optional
        Called with the new :class:`AuthState` whenever it changes.
    """
    settings = settings or default_settings
    if backend is None:
        if settings.credentials_path == ":memory:":
            backend = MemoryCredentialBackend()
        else:
            backend = SQLiteCredentialBackend(settings.credentials_path)
    credentials = CredentialStore(backend)
    gateway = ApiGateway(
        base_url=settings.api_url,
        credentials=credentials,
        session=session,
        timeout=settings.request_timeout,
    )
    coordinator = RegistrationCoordinator(gateway, credentials)
    auth = AuthSessionManager(gateway, credentials, settings, on_state_change=on_state_change)
    client = CommunityClient(
        settings=settings,
        credentials=credentials,
        gateway=gateway,
        auth=auth,
        registrations=coordinator,
        events=EventCatalog(gateway, coordinator, settings),
        profile=ProfileService(gateway, credentials, settings),
    )
    if hydrate:
        state = auth.hydrate()
        logger.debug("Client ready against %s (%s)", settings.api_url, state.value)
    return client
