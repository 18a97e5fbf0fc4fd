"""
Tests for ConnectionStatusService
"""
from datetime import datetime, timedelta

import pytest

from conftest import GRAPH
from schemas.social import Connection, Provider
from services.connection_status_service import ConnectionStatusService
from utils.linkedin_oauth import LINKEDIN_USERINFO_URL


@pytest.fixture
def service(store, adapters):
    return ConnectionStatusService(store, adapters)


@pytest.fixture
def facebook_connection(store, test_user):
    return store.save(test_user.id, "facebook", Connection(
        user_id=test_user.id,
        provider=Provider.FACEBOOK,
        access_token="page-token",
        provider_account_id="111",
        display_name="Daily AI",
        expires_at=datetime.utcnow() + timedelta(days=30),
        metadata={"picture": "https://cached.example/p.jpg"},
    ))


@pytest.mark.asyncio
async def test_not_connected(service, test_user, provider_api):
    status = await service.status(test_user.id, "twitter")

    assert status.connected is False
    assert status.expired is None
    assert status.profile is None
    assert provider_api.requests == []


@pytest.mark.asyncio
async def test_live_profile_is_merged_over_cache(service, test_user, provider_api, facebook_connection):
    provider_api.json("GET", f"{GRAPH}/111", {"id": "111", "name": "Daily AI News"})

    status = await service.status(test_user.id, "facebook")

    assert status.connected is True
    assert status.expired is False
    assert status.expires_at == facebook_connection.expires_at
    assert status.profile.name == "Daily AI News"
    assert status.profile.picture == "https://cached.example/p.jpg"


@pytest.mark.asyncio
async def test_expired_connection_skips_the_provider(service, store, test_user, provider_api):
    store.save(test_user.id, "linkedin", Connection(
        user_id=test_user.id,
        provider=Provider.LINKEDIN,
        access_token="li-token",
        provider_account_id="abc123",
        display_name="Ada Lovelace",
        expires_at=datetime.utcnow() - timedelta(days=1),
    ))

    status = await service.status(test_user.id, "linkedin")

    assert status.connected is True
    assert status.expired is True
    assert status.profile.name == "Ada Lovelace"
    assert provider_api.requests == []


@pytest.mark.asyncio
async def test_rejected_token_marks_connection_expired(service, store, test_user, provider_api):
    store.save(test_user.id, "linkedin", Connection(
        user_id=test_user.id,
        provider=Provider.LINKEDIN,
        access_token="revoked",
        provider_account_id="abc123",
        display_name="Ada Lovelace",
        expires_at=datetime.utcnow() + timedelta(days=30),
    ))
    provider_api.json("GET", LINKEDIN_USERINFO_URL, {"serviceErrorCode": 65601, "message": "Revoked"}, status_code=401)

    status = await service.status(test_user.id, "linkedin")

    assert status.connected is True
    assert status.expired is True
    assert status.profile.name == "Ada Lovelace"


@pytest.mark.asyncio
async def test_provider_outage_falls_back_to_cache(service, test_user, provider_api, facebook_connection):
    provider_api.json("GET", f"{GRAPH}/111", {"error": {"message": "Temporarily unavailable", "code": 2}}, status_code=500)

    status = await service.status(test_user.id, "facebook")

    assert status.connected is True
    assert status.expired is False
    assert status.profile.name == "Daily AI"
    assert status.profile.id == "111"


@pytest.mark.asyncio
async def test_status_all_covers_every_provider(service, test_user, provider_api, facebook_connection):
    provider_api.json("GET", f"{GRAPH}/111", {"id": "111", "name": "Daily AI"})

    statuses = {s.provider: s for s in await service.status_all(test_user.id)}

    assert set(statuses) == {"twitter", "facebook", "instagram", "linkedin"}
    assert statuses["facebook"].connected is True
    assert statuses["instagram"].connected is False
    assert statuses["twitter"].connected is False


@pytest.mark.asyncio
async def test_status_all_reads_stored_connections_once(
    service, store, test_user, provider_api, facebook_connection, monkeypatch
):
    provider_api.json("GET", f"{GRAPH}/111", {"id": "111", "name": "Daily AI"})
    reads = []
    list_for_user = store.list_for_user

    def counting_list_for_user(user_id):
        reads.append(user_id)
        return list_for_user(user_id)

    monkeypatch.setattr(store, "list_for_user", counting_list_for_user)
    monkeypatch.setattr(store, "load", lambda *args: pytest.fail("providers should not be loaded one by one"))

    statuses = await service.status_all(test_user.id)

    assert reads == [test_user.id]
    assert len(statuses) == 4
