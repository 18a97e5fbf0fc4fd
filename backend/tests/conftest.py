"""
Shared test fixtures and configuration for all tests.

This file is automatically loaded by pytest and provides common fixtures.
Provider APIs are never contacted: every adapter gets an httpx.MockTransport
backed by MockProviderAPI, and Redis is replaced with fakeredis.
"""
import pytest
import sys
import os
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import fakeredis
import httpx
from cryptography.fernet import Fernet
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path - MUST be first priority
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

# Set environment variables for testing BEFORE modules load
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("FRONTEND_URL", "http://localhost:3000")

os.environ.setdefault("TWITTER_API_KEY", "test_twitter_api_key")
os.environ.setdefault("TWITTER_API_SECRET", "test_twitter_api_secret")
os.environ.setdefault("FACEBOOK_APP_ID", "test_facebook_app_id")
os.environ.setdefault("FACEBOOK_APP_SECRET", "test_facebook_app_secret")
os.environ.setdefault("LINKEDIN_CLIENT_ID", "test_linkedin_client_id")
os.environ.setdefault("LINKEDIN_CLIENT_SECRET", "test_linkedin_client_secret")

from database import Base

# Import all database models to ensure tables are created
import database_social_media  # noqa: F401

from config.settings import settings as base_settings
from schemas.social import OAuthState
from services.image_generation_service import ImageGenerationError, TextToImage

GRAPH = "https://graph.facebook.com/v18.0"
GRAPH_VIDEO = "https://graph-video.facebook.com/v18.0"


# ============================================================================
# Provider API double
# ============================================================================

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class MockProviderAPI:
    """
    Routes outbound httpx requests to canned responses.

    Routes match on method and URL without the query string. A route given
    a list of responses returns them in order and repeats the last one.
    Unrouted requests get a 404 so a missing stub fails loudly.
    """

    def __init__(self):
        self.routes: Dict[tuple, List[Responder]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, *responses: Responder) -> "MockProviderAPI":
        self.routes[(method.upper(), url)] = list(responses)
        return self

    def json(self, method: str, url: str, body: Any, status_code: int = 200, headers=None) -> "MockProviderAPI":
        return self.add(method, url, httpx.Response(status_code, json=body, headers=headers))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        base_url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        responders = self.routes.get((request.method, base_url))
        if not responders:
            return httpx.Response(404, json={"error": {"message": f"No route for {request.method} {base_url}"}})

        responder = responders.pop(0) if len(responders) > 1 else responders[0]
        if callable(responder):
            return responder(request)
        return responder

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method.upper() and f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
        ]


class FakeTextToImage(TextToImage):
    """Records prompts and returns a fixed public image URL"""

    def __init__(self, url: str = "https://images.example.com/generated.png", fail: bool = False):
        self.url = url
        self.fail = fail
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise ImageGenerationError("OpenAI error (500): server exploded")
        return self.url


def form_body(request: httpx.Request) -> Dict[str, str]:
    """Decode an application/x-www-form-urlencoded request body"""
    from urllib.parse import parse_qsl
    return dict(parse_qsl(request.content.decode()))


def json_body(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content)


def stub_meta_login(
    api: MockProviderAPI,
    pages: List[Dict[str, Any]],
    permissions: Optional[List[str]] = None,
    expires_in: int = 5184000,
) -> MockProviderAPI:
    """Stub the Facebook Login code exchange, long-lived upgrade, page and permission listings"""

    def token(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("grant_type") == "fb_exchange_token":
            return httpx.Response(200, json={"access_token": "long-lived-user-token", "expires_in": expires_in})
        return httpx.Response(200, json={"access_token": "short-lived-user-token", "expires_in": 3600})

    granted = permissions if permissions is not None else ["pages_manage_posts", "pages_show_list"]
    api.add("GET", f"{GRAPH}/oauth/access_token", token)
    api.json("GET", f"{GRAPH}/me/accounts", {"data": pages})
    api.json("GET", f"{GRAPH}/me/permissions", {
        "data": [{"permission": p, "status": "granted"} for p in granted]
        + [{"permission": "pages_read_engagement", "status": "declined"}]
    })
    return api


def make_state(user_id: int, provider: str, data: Optional[Dict[str, Any]] = None) -> OAuthState:
    from datetime import datetime
    return OAuthState(
        state="test-state",
        user_id=user_id,
        provider=provider,
        nonce="nonce",
        created_at=datetime.utcnow(),
        data=data or {},
    )


# ============================================================================
# Settings, database and Redis fixtures
# ============================================================================

@pytest.fixture
def test_settings(tmp_path):
    """Settings tuned for fast tests: no container polling delay, private upload dir"""
    return base_settings.model_copy(update={
        "INSTAGRAM_CONTAINER_POLL_INTERVAL": 0.0,
        "INSTAGRAM_CONTAINER_MAX_WAIT": 5.0,
        "UPLOAD_TEMP_DIR": str(tmp_path / "uploads"),
        "MAX_UPLOAD_SIZE_MB": 1,
    })


@pytest.fixture
def test_engine():
    """In-memory SQLite shared across connections for the length of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    """Create database session for test setup"""
    TestSessionLocal = sessionmaker(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def state_registry(fake_redis):
    from utils.redis_state import OAuthStateRegistry
    return OAuthStateRegistry(fake_redis, ttl_seconds=600)


@pytest.fixture
def page_selections(fake_redis):
    from utils.redis_state import PageSelectionStore
    return PageSelectionStore(fake_redis, ttl_seconds=600)


@pytest.fixture
def store(db_session):
    from utils.credential_store import CredentialStore
    return CredentialStore(db_session)


@pytest.fixture
def test_user(db_session):
    """Create a test user in the database"""
    from database import User

    user = User(email="test@example.com", full_name="Test User", is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user, db_session):
    """Bearer header for a live session of test_user"""
    from utils.auth import create_session

    token, _ = create_session(test_user.id, db_session)
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Provider fixtures
# ============================================================================

@pytest.fixture
def provider_api():
    return MockProviderAPI()


@pytest.fixture
def text_to_image():
    return FakeTextToImage()


@pytest.fixture
def adapters(test_settings, provider_api, text_to_image):
    from src.publishers.registry import build_adapters
    return build_adapters(test_settings, text_to_image=text_to_image, transport=provider_api.transport())


# ============================================================================
# Application fixtures
# ============================================================================

@pytest.fixture
def client(test_engine, test_settings, state_registry, page_selections, adapters):
    """Test client with database, Redis and provider overrides"""
    from fastapi.testclient import TestClient
    from main import app
    from database import get_db
    from api.dependencies import get_adapters, get_page_selections, get_state_registry, get_upload_storage
    from utils.media_uploads import TemporaryUploadStorage

    TestSessionLocal = sessionmaker(bind=test_engine)

    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_state_registry] = lambda: state_registry
    app.dependency_overrides[get_page_selections] = lambda: page_selections
    app.dependency_overrides[get_adapters] = lambda: adapters
    app.dependency_overrides[get_upload_storage] = lambda: TemporaryUploadStorage(test_settings)

    # No lifespan: startup would try to reach a real Redis
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def upload_dir(test_settings):
    return Path(test_settings.UPLOAD_TEMP_DIR)


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64)
    return path

