"""
tests/conftest.py -- Shared fixtures for the community client tests.

This module provides:
  - settings: Settings pointing at the in-process fake backend
  - backend / http: the FakeBackend state and a TestClient serving it
  - client: a fully wired CommunityClient using an in-memory credential store
  - make_user: a User model factory for tests that never touch HTTP

The gateway accepts any requests-compatible session, so the FastAPI
TestClient is passed in its place.  It is built with
raise_server_exceptions=False so that 5xx responses reach the gateway
as responses instead of exceptions.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from community_client.app.core.config import Settings
from community_client.app.main import CommunityClient, create_client
from community_client.app.schemas.user import User
from community_client.app.services.credential_store import MemoryCredentialBackend

from tests.fake_backend import FakeBackend, create_app


API_URL = "http://testserver/api"
PASSWORD = "correct-horse-battery"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_mode="test",
        api_url=API_URL,
        credentials_path=":memory:",
        otp_window_seconds=600,
        password_min_length=8,
        refresh_interval_seconds=0.05,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def http(backend: FakeBackend) -> Generator[TestClient, None, None]:
    test_client = TestClient(create_app(backend), raise_server_exceptions=False)
    yield test_client
    test_client.close()


@pytest.fixture
def credential_backend() -> MemoryCredentialBackend:
    return MemoryCredentialBackend()


@pytest_asyncio.fixture
async def client(
    settings: Settings,
    http: TestClient,
    credential_backend: MemoryCredentialBackend,
) -> AsyncGenerator[CommunityClient, None]:
    community = create_client(settings, session=http, backend=credential_backend)
    yield community
    await community.close()


@pytest.fixture
def verified_user(backend: FakeBackend) -> dict:
    """A verified account that can log in with ``PASSWORD``."""
    return backend.add_user("ada@example.com", PASSWORD, name="Ada Lovelace")


@pytest.fixture
def make_user():
    def _make(user_id: str = "user-1", email: str = "ada@example.com", **extra) -> User:
        return User.model_validate({"_id": user_id, "email": email, "name": "Ada", **extra})

    return _make
