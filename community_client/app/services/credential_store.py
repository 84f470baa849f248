"""
Credential store: the single owner of the session token and user.

The store keeps the bearer token and the user snapshot as one unit.
``set`` writes both, ``clear`` removes both, and a pair that was only
half persisted (for example by an older client that crashed mid-write)
is discarded on ``hydrate``.  Every operation is synchronous and
finishes within one event-loop turn, so no locking is needed inside a
process.

Persistence is delegated to a backend.  ``SQLiteCredentialBackend``
keeps the ``authToken`` and ``user`` keys in the ``credentials`` table
and changes them inside a single transaction;
``MemoryCredentialBackend`` keeps them in a dictionary for the lifetime
of the process.

Listeners registered with ``add_listener`` are called with the new
session (or ``None``) after every ``hydrate``, ``set`` and ``clear``,
whoever triggered the change.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from community_client.app.core import db
from community_client.app.schemas.user import User


logger = logging.getLogger(__name__)

TOKEN_KEY = "authToken"
USER_KEY = "user"
KEYS = (TOKEN_KEY, USER_KEY)
# Outstanding one-time code, kept apart from the session pair.
PENDING_KEY = "pendingVerification"


class CredentialBackend(Protocol):
    def read(self, keys: Iterable[str]) -> Dict[str, str]: ...

    def write(self, values: Mapping[str, str]) -> None: ...

    def delete(self, keys: Iterable[str]) -> None: ...


class MemoryCredentialBackend:
    """Process-local backend."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self.values: Dict[str, str] = dict(initial or {})

    def read(self, keys: Iterable[str]) -> Dict[str, str]:
        return {key: self.values[key] for key in keys if key in self.values}

    def write(self, values: Mapping[str, str]) -> None:
        self.values.update(values)

    def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.values.pop(key, None)


class SQLiteCredentialBackend:
    """Backend storing the pair in a SQLite file.

    The connection is opened lazily and kept for the lifetime of the
    backend; ``:memory:`` is accepted for throwaway stores.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = db.get_connection(self.path)
            db.init_db(self._conn)
        return self._conn

    def read(self, keys: Iterable[str]) -> Dict[str, str]:
        return db.read_values(self.conn, keys)

    def write(self, values: Mapping[str, str]) -> None:
        db.write_values(self.conn, values)

    def delete(self, keys: Iterable[str]) -> None:
        db.delete_values(self.conn, keys)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


@dataclass(frozen=True)
class Session:
    """A bearer token and the user it authorizes."""

    token: str
    user: User


class CredentialStore:
    """Owner of the current :class:`Session`.

    Instantiate one per client and pass it to the gateway and the
    services that need it.
    """

    def __init__(self, backend: Optional[CredentialBackend] = None) -> None:
        self.backend = backend if backend is not None else MemoryCredentialBackend()
        self._session: Optional[Session] = None
        self._listeners: List[Callable[[Optional[Session]], None]] = []

    def add_listener(self, listener: Callable[[Optional[Session]], None]) -> None:
        """Call ``listener(session)`` after every change of session."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._session)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def hydrate(self) -> Optional[Session]:
        """Load the persisted pair, if any, into memory.

        Returns the restored session.  A token without a user (or the
        reverse), or a user snapshot that no longer parses, is removed
        from the backend and ``None`` is returned.
        """
        self._session = self._load()
        self._notify()
        return self._session

    def _load(self) -> Optional[Session]:
        stored = self.backend.read(KEYS)
        token = stored.get(TOKEN_KEY)
        raw_user = stored.get(USER_KEY)
        if not token and not raw_user:
            return None
        if not token or not raw_user:
            logger.warning("Discarding half-persisted credentials (token=%s, user=%s)", bool(token), bool(raw_user))
            self.backend.delete(KEYS)
            return None
        try:
            user = User.model_validate(json.loads(raw_user))
        except (ValueError, PydanticValidationError) as exc:
            logger.warning("Discarding unreadable stored user snapshot: %s", exc)
            self.backend.delete(KEYS)
            return None
        logger.info("Restored session for %s", user.email)
        return Session(token=token, user=user)

    def set(self, token: str, user: User) -> Session:
        """Atomically persist and adopt a new session."""
        if not token:
            raise ValueError("token must be a non-empty string")
        if user is None:
            raise ValueError("user is required")
        self.backend.write({TOKEN_KEY: token, USER_KEY: json.dumps(user.to_snapshot())})
        self._session = Session(token=token, user=user)
        self._notify()
        return self._session

    def clear(self) -> None:
        """Atomically forget the session.  Safe to call repeatedly."""
        self.backend.delete(KEYS)
        self._session = None
        self._notify()

    def update_user(self, user: User) -> Session:
        """Replace the user snapshot of the current session.

        Raises ``RuntimeError`` when no session is held: a user is never
        stored without a token.
        """
        if self._session is None:
            raise RuntimeError("Cannot update the user without an active session")
        return self.set(self._session.token, user)

    # ------------------------------------------------------------------
    # Outstanding verification
    # ------------------------------------------------------------------
    def save_pending(self, pending: Mapping[str, Any]) -> None:
        self.backend.write({PENDING_KEY: json.dumps(dict(pending))})

    def load_pending(self) -> Optional[Dict[str, Any]]:
        raw = self.backend.read([PENDING_KEY]).get(PENDING_KEY)
        if not raw:
            return None
        try:
            pending = json.loads(raw)
        except ValueError:
            pending = None
        if not isinstance(pending, dict):
            logger.warning("Discarding unreadable pending verification")
            self.clear_pending()
            return None
        return pending

    def clear_pending(self) -> None:
        self.backend.delete([PENDING_KEY])

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def read(self) -> Optional[Session]:
        return self._session

    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def token(self) -> Optional[str]:
        return self._session.token if self._session else None

    @property
    def user(self) -> Optional[User]:
        return self._session.user if self._session else None
