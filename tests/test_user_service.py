"""Profile service tests."""

import pytest
import pytest_asyncio

from community_client.app.core.errors import ServerError, Unauthorized, ValidationError

from tests.conftest import PASSWORD


@pytest_asyncio.fixture
async def logged_in(client, verified_user):
    await client.auth.login("ada@example.com", PASSWORD)
    return client


@pytest.mark.asyncio
async def test_refresh_user_updates_snapshot(logged_in, backend, verified_user):
    verified_user["name"] = "Countess Lovelace"

    user = await logged_in.profile.refresh_user()

    assert user.name == "Countess Lovelace"
    assert logged_in.credentials.user.name == "Countess Lovelace"


@pytest.mark.asyncio
async def test_rejected_session_clears_store(logged_in, backend):
    backend.revoke_all_tokens()

    with pytest.raises(Unauthorized):
        await logged_in.profile.refresh_user()

    assert not logged_in.auth.is_authenticated()


@pytest.mark.asyncio
async def test_refresh_keeps_stored_user_on_server_error(logged_in, monkeypatch):
    async def broken(*args, **kwargs):
        raise ServerError(status_code=500)

    monkeypatch.setattr(logged_in.gateway, "get", broken)

    user = await logged_in.profile.refresh_user()
    assert user.email == "ada@example.com"


@pytest.mark.asyncio
async def test_update_profile(logged_in, backend):
    user = await logged_in.profile.update_profile({"bio": "Analyst", "jobTitle": "Engineer"})

    assert user.bio == "Analyst"
    assert user.job_title == "Engineer"
    assert logged_in.credentials.user.bio == "Analyst"
    assert backend.users["ada@example.com"]["jobTitle"] == "Engineer"


@pytest.mark.asyncio
async def test_empty_profile_update_sends_nothing(logged_in, backend):
    before = len(backend.requests)
    user = await logged_in.profile.update_profile({})
    assert user == logged_in.credentials.user
    assert len(backend.requests) == before


@pytest.mark.asyncio
async def test_update_preferences(logged_in):
    preferences = await logged_in.profile.update_preferences({"newsletter": True})

    assert preferences.newsletter is True
    assert logged_in.credentials.user.preferences.newsletter is True


@pytest.mark.asyncio
async def test_change_password(logged_in, backend):
    with pytest.raises(ValidationError):
        await logged_in.profile.change_password(PASSWORD, "short")
    with pytest.raises(ValidationError):
        await logged_in.profile.change_password(PASSWORD, "new-password-1", "new-password-2")
    with pytest.raises(ValidationError):
        await logged_in.profile.change_password("wrong-password", "new-password-1")

    await logged_in.profile.change_password(PASSWORD, "new-password-1", "new-password-1")

    assert backend.passwords["ada@example.com"] == "new-password-1"


@pytest.mark.asyncio
async def test_profile_requires_session(client):
    with pytest.raises(Unauthorized):
        await client.profile.update_profile({"bio": "x"})
