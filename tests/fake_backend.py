"""
In-process stand-in for the community backend.

The FastAPI application built by ``create_app`` implements the endpoints
the client talks to, backed by plain dictionaries on a ``FakeBackend``
instance.  Responses use the ``{success, message, data}`` envelope; some
failures carry a machine-readable ``code`` and some only the wording of
older server builds, so both mapping paths in the gateway get exercised.

Every one-time code issued by the fake is ``FakeBackend.OTP``.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Body, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApiFailure(Exception):
    def __init__(self, status_code: int, message: str, code: Optional[str] = None) -> None:
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(message)


def _ok(data: Any = None, message: str = "OK", status_code: int = 200, **extra: Any) -> JSONResponse:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return JSONResponse(body, status_code=status_code)


class FakeBackend:
    """Mutable state behind the fake API."""

    OTP = "123456"

    def __init__(self) -> None:
        self.users: Dict[str, Dict[str, Any]] = {}
        self.passwords: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}
        self.events: Dict[str, Dict[str, Any]] = {}
        self.registrations: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.requests: List[Tuple[str, str, bool]] = []
        self.fail_events = False
        self.fail_featured = False
        self.leak_register_token = False
        self._seed_events()

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def _seed_events(self) -> None:
        self.add_event("evt-open", title="Python Meetup", maxAttendees=50, currentAttendees=10, isFeatured=True)
        self.add_event("evt-full", title="Sold Out Summit", maxAttendees=1, currentAttendees=1)
        self.add_event("evt-closed", title="Closed Workshop", maxAttendees=20, registrationOpen=False)
        self.add_event(
            "evt-approval",
            title="Invite Only Hackathon",
            maxAttendees=30,
            requiresApproval=True,
            registrationFields=[
                {"name": "team", "type": "text", "required": True},
                {"name": "contact", "type": "email", "required": False},
                {"name": "track", "type": "select", "required": True, "options": ["web", "data"]},
                {"name": "terms", "type": "checkbox", "required": True},
            ],
        )

    def add_event(self, event_id: str, **fields: Any) -> Dict[str, Any]:
        event = {
            "_id": event_id,
            "title": fields.pop("title", event_id),
            "description": "",
            "category": "Meetup",
            "type": "Online",
            "startDate": "2030-01-01T10:00:00Z",
            "maxAttendees": 10,
            "currentAttendees": 0,
            "registrationOpen": True,
            "requiresApproval": False,
            "isFeatured": False,
            "registrationFields": [],
        }
        event.update(fields)
        self.events[event_id] = event
        return event

    def add_user(self, email: str, password: str, *, verified: bool = True, name: str = "Test User") -> Dict[str, Any]:
        user = {
            "_id": uuid.uuid4().hex[:24],
            "email": email,
            "name": name,
            "username": email.split("@")[0],
            "isEmailVerified": verified,
            "isActive": True,
            "createdAt": _now(),
        }
        self.users[email] = user
        self.passwords[email] = password
        return user

    def issue_token(self, email: str) -> str:
        token = uuid.uuid4().hex
        self.tokens[token] = email
        return token

    def revoke_all_tokens(self) -> None:
        self.tokens.clear()

    def calls(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.requests if m == method and p == path)

    def current_user(self, authorization: Optional[str]) -> Dict[str, Any]:
        if not authorization or not authorization.startswith("Bearer "):
            raise ApiFailure(401, "Access denied. No token provided.")
        email = self.tokens.get(authorization[len("Bearer "):])
        if email is None:
            raise ApiFailure(401, "Invalid token.")
        return self.users[email]


def create_app(backend: FakeBackend) -> FastAPI:
    """Build the FastAPI app serving ``backend`` under ``/api``."""
    app = FastAPI(title="Fake community backend")

    @app.exception_handler(ApiFailure)
    async def api_failure_handler(request: Request, exc: ApiFailure) -> JSONResponse:
        body: Dict[str, Any] = {"success": False, "message": exc.message}
        if exc.code:
            body["code"] = exc.code
        return JSONResponse(body, status_code=exc.status_code)

    @app.middleware("http")
    async def record_request(request: Request, call_next):
        backend.requests.append((request.method, request.url.path, "authorization" in request.headers))
        return await call_next(request)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    @app.post("/api/auth/register")
    async def register(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        email = payload.get("email", "")
        if email in backend.users:
            raise ApiFailure(409, "User with this email already exists", "EMAIL_TAKEN")
        if any(user.get("username") == payload.get("username") for user in backend.users.values()):
            raise ApiFailure(409, "Username is already taken", "USERNAME_TAKEN")
        user = backend.add_user(email, payload.get("password", ""), verified=False, name=payload.get("name", ""))
        user["username"] = payload.get("username")
        data: Dict[str, Any] = {"user": user, "requiresVerification": True}
        if backend.leak_register_token:
            data["token"] = backend.issue_token(email)
        return _ok(data, "Registration successful. Please check your email.", status_code=201)

    @app.post("/api/auth/verify-email")
    async def verify_email(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        user = backend.users.get(payload.get("email", ""))
        if user is None or payload.get("otp") != backend.OTP:
            raise ApiFailure(400, "Invalid or expired OTP", "INVALID_OTP")
        user["isEmailVerified"] = True
        return _ok({"user": user, "token": backend.issue_token(user["email"])}, "Email verified successfully")

    @app.post("/api/auth/login")
    async def login(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        email = payload.get("email", "")
        if email not in backend.users or backend.passwords[email] != payload.get("password"):
            raise ApiFailure(401, "Invalid email or password")
        user = backend.users[email]
        if not user["isEmailVerified"]:
            raise ApiFailure(403, "Please verify your email before logging in")
        return _ok({"user": user, "token": backend.issue_token(email)}, "Login successful")

    @app.post("/api/auth/resend-otp")
    async def resend_otp(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        if payload.get("email") not in backend.users:
            raise ApiFailure(404, "User not found")
        return _ok(message="OTP sent successfully")

    @app.post("/api/auth/forgot-password")
    async def forgot_password(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        return _ok(message="If the email exists, a reset code has been sent")

    @app.post("/api/auth/reset-password")
    async def reset_password(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        email = payload.get("email", "")
        if email not in backend.users or payload.get("otp") != backend.OTP:
            raise ApiFailure(400, "Invalid or expired OTP")
        backend.passwords[email] = payload.get("password", "")
        return _ok(message="Password reset successful")

    @app.post("/api/auth/logout")
    async def logout(authorization: Optional[str] = Header(None)) -> JSONResponse:
        backend.current_user(authorization)
        backend.tokens.pop(authorization[len("Bearer "):], None)
        return _ok(message="Logged out")

    @app.get("/api/auth/me")
    async def me(authorization: Optional[str] = Header(None)) -> JSONResponse:
        return _ok({"user": backend.current_user(authorization)})

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    @app.get("/api/events")
    async def list_events(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1),
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> JSONResponse:
        if backend.fail_events:
            raise ApiFailure(500, "Database unavailable")
        events = list(backend.events.values())
        if category:
            events = [event for event in events if event["category"] == category]
        if search:
            events = [event for event in events if search.lower() in event["title"].lower()]
        total = len(events)
        start = (page - 1) * limit
        pagination = {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit}
        return _ok({"events": events[start:start + limit]}, pagination=pagination)

    @app.get("/api/events/featured")
    async def featured_events() -> JSONResponse:
        if backend.fail_featured:
            raise ApiFailure(503, "Service unavailable")
        return _ok({"events": [event for event in backend.events.values() if event["isFeatured"]]})

    @app.get("/api/events/{event_id}")
    async def get_event(event_id: str, authorization: Optional[str] = Header(None)) -> JSONResponse:
        event = backend.events.get(event_id)
        if event is None:
            raise ApiFailure(404, "Event not found")
        data: Dict[str, Any] = {"event": event}
        if authorization:
            user = backend.current_user(authorization)
            registration = backend.registrations.get((event_id, user["_id"]))
            if registration is not None and registration["status"] != "cancelled":
                data["userRegistration"] = registration
        return _ok(data)

    @app.post("/api/events/{event_id}/register")
    async def register_for_event(
        event_id: str,
        payload: Optional[Dict[str, Any]] = Body(None),
        authorization: Optional[str] = Header(None),
    ) -> JSONResponse:
        user = backend.current_user(authorization)
        event = backend.events.get(event_id)
        if event is None:
            raise ApiFailure(404, "Event not found")
        if not event["registrationOpen"]:
            raise ApiFailure(400, "Registration is closed for this event", "REGISTRATION_CLOSED")
        existing = backend.registrations.get((event_id, user["_id"]))
        if existing is not None and existing["status"] != "cancelled":
            raise ApiFailure(400, "You are already registered for this event")
        if event["currentAttendees"] >= event["maxAttendees"]:
            raise ApiFailure(400, "Event is full", "EVENT_FULL")
        registration = {
            "_id": uuid.uuid4().hex[:24],
            "event": event_id,
            "user": user["_id"],
            "registrationData": (payload or {}).get("registrationData") or {},
            "status": "pending" if event["requiresApproval"] else "approved",
            "registeredAt": _now(),
        }
        backend.registrations[(event_id, user["_id"])] = registration
        event["currentAttendees"] += 1
        return _ok({"registration": registration}, "Successfully registered for event", status_code=201)

    @app.delete("/api/events/{event_id}/register")
    async def cancel_registration(event_id: str, authorization: Optional[str] = Header(None)) -> JSONResponse:
        user = backend.current_user(authorization)
        registration = backend.registrations.get((event_id, user["_id"]))
        if registration is None:
            raise ApiFailure(404, "Registration not found")
        if registration["status"] == "cancelled":
            raise ApiFailure(409, "Registration already cancelled")
        registration["status"] = "cancelled"
        registration["cancelledAt"] = _now()
        backend.events[event_id]["currentAttendees"] -= 1
        return _ok(message="Registration cancelled successfully")

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def _own_user(user_id: str, authorization: Optional[str]) -> Dict[str, Any]:
        user = backend.current_user(authorization)
        if user["_id"] != user_id:
            raise ApiFailure(403, "Access denied")
        return user

    @app.get("/api/users/{user_id}/registrations")
    async def user_registrations(user_id: str, authorization: Optional[str] = Header(None)) -> JSONResponse:
        _own_user(user_id, authorization)
        registrations = [
            {**registration, "event": backend.events[event_id]}
            for (event_id, owner), registration in backend.registrations.items()
            if owner == user_id
        ]
        return _ok({"registrations": registrations})

    @app.put("/api/users/{user_id}")
    async def update_user(
        user_id: str,
        payload: Dict[str, Any] = Body(...),
        authorization: Optional[str] = Header(None),
    ) -> JSONResponse:
        user = _own_user(user_id, authorization)
        user.update(payload)
        user["updatedAt"] = _now()
        return _ok({"user": user}, "Profile updated successfully")

    @app.put("/api/users/{user_id}/preferences")
    async def update_preferences(
        user_id: str,
        payload: Dict[str, Any] = Body(...),
        authorization: Optional[str] = Header(None),
    ) -> JSONResponse:
        user = _own_user(user_id, authorization)
        preferences = {"emailNotifications": True, "eventNotifications": True, "newsletter": False}
        preferences.update(user.get("preferences") or {})
        preferences.update(payload)
        user["preferences"] = preferences
        return _ok({"preferences": preferences})

    @app.put("/api/users/{user_id}/password")
    async def change_password(
        user_id: str,
        payload: Dict[str, Any] = Body(...),
        authorization: Optional[str] = Header(None),
    ) -> JSONResponse:
        user = _own_user(user_id, authorization)
        if backend.passwords[user["email"]] != payload.get("currentPassword"):
            raise ApiFailure(400, "Current password is incorrect")
        backend.passwords[user["email"]] = payload.get("newPassword", "")
        return _ok(message="Password changed successfully")

    return app
