"""Community backend API gateway.

This module wraps the REST API consumed by the client.  Every request
goes through :meth:`ApiGateway.request`, which

* attaches ``Authorization: Bearer <token>`` when the credential store
  holds a session and the endpoint requires authentication,
* unwraps the ``{success, message, data, pagination}`` response envelope,
* converts transport failures, HTTP errors and ``success: false``
  envelopes into :class:`~community_client.app.core.errors.ClientError`
  subclasses, and
* clears the credential store exactly once when an authenticated request
  is rejected with ``401``.

The client uses the ``requests`` library internally.  Requests are
blocking, so each one is handed to a worker thread with
:func:`asyncio.to_thread`; the service layer only ever awaits the
gateway and never blocks the event loop.

Any object with a ``requests.Session`` compatible ``request`` method can
be supplied as ``session`` (the test-suite passes FastAPI's
``TestClient``).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

import requests

from community_client.app.core.errors import (
    ERROR_CLASSES,
    ClientError,
    ErrorKind,
    NetworkError,
    ServerError,
)

if TYPE_CHECKING:
    from community_client.app.services.credential_store import CredentialStore


logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """The unwrapped body of a successful response.

    Attributes:
        data: The ``data`` member of the envelope (or the whole body when
            the server did not use an envelope).
        message: Human readable message supplied by the server.
        pagination: Raw pagination block, if any.
        status_code: HTTP status of the response.
    """

    data: Any = None
    message: str = ""
    pagination: Optional[Dict[str, Any]] = None
    status_code: int = 200


# Older backend builds report some failures only in prose.  The wording
# is normalised to an ``ErrorKind`` here so that nothing outside this
# module ever looks at message text.
_LEGACY_MESSAGE_KINDS = (
    ("verify your email", ErrorKind.EMAIL_NOT_VERIFIED),
    ("not verified", ErrorKind.EMAIL_NOT_VERIFIED),
    ("already registered", ErrorKind.ALREADY_REGISTERED),
    ("event is full", ErrorKind.EVENT_FULL),
    ("registration is closed", ErrorKind.REGISTRATION_CLOSED),
    ("registration closed", ErrorKind.REGISTRATION_CLOSED),
)

_STATUS_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.VALIDATION,
}


def _kind_from_code(code: Any) -> Optional[ErrorKind]:
    if not isinstance(code, str):
        return None
    try:
        return ErrorKind(code.upper())
    except ValueError:
        return None


def error_from_response(status_code: Optional[int], payload: Any, reason: str = "") -> ClientError:
    """Build the structured error for a failed response.

    Args:
        status_code: HTTP status, ``None`` if unknown.
        payload: Decoded JSON body, or ``None`` when the body was not JSON.
        reason: HTTP reason phrase, used when the body carries no message.
    Returns:
        A :class:`ClientError` subclass instance (not raised).
    """
    body = payload if isinstance(payload, dict) else {}
    message = body.get("message") or body.get("detail") or body.get("error")
    if not isinstance(message, str):
        message = None
    if not message:
        message = f"HTTP {status_code}: {reason}".strip().rstrip(":") if status_code else None
    code = body.get("code") or body.get("errorCode")

    kind = _kind_from_code(code)
    if kind is None and message and status_code is not None and status_code < 500:
        lowered = message.lower()
        for needle, legacy_kind in _LEGACY_MESSAGE_KINDS:
            if needle in lowered:
                kind = legacy_kind
                break
    if kind is None:
        kind = _STATUS_KINDS.get(status_code, ErrorKind.SERVER)

    error_cls = ERROR_CLASSES.get(kind, ServerError)
    errors = body.get("errors") if isinstance(body.get("errors"), list) else None
    return error_cls(
        message,
        status_code=status_code,
        code=code if isinstance(code, str) else None,
        errors=errors,
        kind=kind,
    )


class ApiGateway:
    """Thin async client for the community backend."""

    def __init__(
        self,
        *,
        base_url: str,
        credentials: "CredentialStore",
        session: Optional[Any] = None,
        timeout: float = 15,
    ) -> None:
        """Initialise the gateway.

        Args:
            base_url: Base URL for the API, e.g. ``http://localhost:5000/api``.
            credentials: The credential store supplying the bearer token.
                It is cleared when an authenticated request gets ``401``.
            session: Optional requests session (or compatible object).  If
                not supplied a session is created automatically.
            timeout: Per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.session = session or requests.Session()
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Low level HTTP helpers
    # ------------------------------------------------------------------
    def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        json_body: Any,
        headers: Dict[str, str],
    ) -> Any:
        logger.debug("Sending %s request to %s", method, url)
        return self.session.request(
            method=method,
            url=url,
            params=params,
            json=json_body,
            headers=headers,
            timeout=self.timeout,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        auth: bool = True,
    ) -> ApiResponse:
        """Perform an HTTP request to the API.

        Args:
            method: HTTP method (``GET``, ``POST``, ``PUT``, ``DELETE``...).
            path: Path relative to :attr:`base_url` (e.g. ``/events``).
            params: Query parameters; ``None`` values are dropped.
            json_body: JSON body to send with the request.
            auth: Attach the bearer token if one is held.  Endpoints that
                establish a session (login, register, verify) pass
                ``False``.
        Returns:
            The unwrapped :class:`ApiResponse`.
        Raises:
            ClientError: A subclass describing the failure.
        """
        url = f"{self.base_url}{path}"
        headers: Dict[str, str] = {"Accept": "application/json"}
        sent_token = self.credentials.token if auth else None
        if sent_token:
            headers["Authorization"] = f"Bearer {sent_token}"
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        try:
            response = await asyncio.to_thread(self._send, method, url, params or None, json_body, headers)
        except requests.RequestException as exc:
            logger.error("API request %s %s failed: %s", method, path, exc)
            raise NetworkError() from exc

        status_code = response.status_code
        reason = getattr(response, "reason", None) or getattr(response, "reason_phrase", "") or ""
        payload: Any = None
        if response.content:
            try:
                payload = response.json()
            except ValueError as exc:
                if 200 <= status_code < 300:
                    logger.error("API request %s %s returned a non-JSON body", method, path)
                    raise NetworkError("Invalid response format", status_code=status_code) from exc
                payload = None

        failed = not (200 <= status_code < 300)
        if not failed and isinstance(payload, dict) and payload.get("success") is False:
            failed = True
        if failed:
            error = error_from_response(status_code, payload, reason)
            if status_code == 401 and sent_token:
                self._handle_unauthorized(sent_token)
            if status_code is not None and status_code >= 500:
                logger.error("API request %s %s failed (%s): %s", method, path, status_code, error.message)
            else:
                logger.warning("API request %s %s rejected (%s): %s", method, path, status_code, error.kind.value)
            raise error

        if isinstance(payload, dict) and ("data" in payload or "success" in payload):
            return ApiResponse(
                data=payload.get("data"),
                message=payload.get("message") or "",
                pagination=payload.get("pagination"),
                status_code=status_code,
            )
        return ApiResponse(data=payload, status_code=status_code)

    def _handle_unauthorized(self, sent_token: str) -> None:
        # Only the session that was actually rejected is dropped; a login
        # that completed while this request was in flight must survive.
        if self.credentials.token == sent_token:
            logger.warning("Session rejected by the server; clearing stored credentials")
            self.credentials.clear()
        else:
            logger.info("Ignoring 401 for a session that has already been replaced")

    async def get(self, path: str, *, params: Optional[Dict[str, Any]] = None, auth: bool = True) -> ApiResponse:
        return await self.request("GET", path, params=params, auth=auth)

    async def post(self, path: str, json_body: Any = None, *, auth: bool = True) -> ApiResponse:
        return await self.request("POST", path, json_body=json_body, auth=auth)

    async def put(self, path: str, json_body: Any = None, *, auth: bool = True) -> ApiResponse:
        return await self.request("PUT", path, json_body=json_body, auth=auth)

    async def delete(self, path: str, *, auth: bool = True) -> ApiResponse:
        return await self.request("DELETE", path, auth=auth)

    def close(self) -> None:
        close = getattr(self.session, "close", None)
        if close is not None:
            close()
