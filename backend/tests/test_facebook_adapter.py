"""
Tests for the Facebook Page adapter
"""
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from conftest import GRAPH, GRAPH_VIDEO, form_body, make_state, stub_meta_login
from schemas.social import AuthOptions, Connection, LinkInfo, MediaRef, PostKind, Provider, PublishRequest
from src.publishers.exceptions import (
    AuthenticationException,
    ContentRejectedError,
    PlatformUnavailableError,
    RateLimitException,
    TokenExpiredException,
    ValidationException,
)

PAGE = {
    "id": "111",
    "name": "Daily AI",
    "category": "Media/News Company",
    "access_token": "page-token",
    "tasks": ["ANALYZE", "ADVERTISE", "MODERATE", "CREATE_CONTENT", "MANAGE"],
}
SECOND_PAGE = {
    "id": "333",
    "name": "Weekend Digest",
    "category": "Newspaper",
    "access_token": "second-page-token",
    "tasks": ["CREATE_CONTENT"],
}


@pytest.fixture
def facebook(adapters):
    return adapters[Provider.FACEBOOK]


@pytest.fixture
def connection():
    return Connection(
        user_id=1,
        provider=Provider.FACEBOOK,
        access_token="page-token",
        refresh_token="long-lived-user-token",
        provider_account_id="111",
        display_name="Daily AI",
        expires_at=datetime.utcnow() + timedelta(days=50),
    )


def _request(kind=PostKind.TEXT, **kwargs) -> PublishRequest:
    return PublishRequest(user_id=1, provider=Provider.FACEBOOK, kind=kind, **kwargs)


class TestAuth:
    def test_auth_url(self, facebook):
        url = facebook.get_auth_url("state-1", AuthOptions())
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert parsed.netloc == "www.facebook.com"
        assert parsed.path == "/v18.0/dialog/oauth"
        assert query["client_id"] == ["test_facebook_app_id"]
        assert query["state"] == ["state-1"]
        assert query["redirect_uri"] == ["http://localhost:8000/api/social/facebook/callback"]
        assert "pages_manage_posts" in query["scope"][0].split(",")
        assert "business_management" not in query["scope"][0]

    def test_business_management_is_optional(self, facebook):
        url = facebook.get_auth_url("state-1", AuthOptions(include_business_management=True))
        scope = parse_qs(urlparse(url).query)["scope"][0].split(",")
        assert "business_management" in scope

    @pytest.mark.asyncio
    async def test_complete_auth_uses_page_token(self, facebook, provider_api):
        stub_meta_login(provider_api, [PAGE])

        result = await facebook.complete_auth("auth-code", make_state(1, "facebook"))

        assert result.needs_page_selection is False
        assert len(result.connections) == 1
        connection = result.connections[0]
        assert connection.provider == "facebook"
        assert connection.access_token == "page-token"
        assert connection.refresh_token == "long-lived-user-token"
        assert connection.provider_account_id == "111"
        assert connection.display_name == "Daily AI"
        assert connection.expires_at > datetime.utcnow() + timedelta(days=59)
        assert connection.scope_grant == ["pages_manage_posts", "pages_show_list"]
        assert connection.metadata == {"page_category": "Media/News Company"}

        exchange = provider_api.calls("GET", f"{GRAPH}/oauth/access_token")
        assert exchange[0].url.params["code"] == "auth-code"
        assert exchange[1].url.params["fb_exchange_token"] == "short-lived-user-token"

    @pytest.mark.asyncio
    async def test_read_only_pages_are_not_offered(self, facebook, provider_api):
        reader = {**PAGE, "id": "222", "name": "Read Only", "access_token": "reader-token", "tasks": ["ANALYZE"]}
        stub_meta_login(provider_api, [reader, PAGE])

        result = await facebook.complete_auth("auth-code", make_state(1, "facebook"))

        assert [c.provider_account_id for c in result.connections] == ["111"]

    @pytest.mark.asyncio
    async def test_several_pages_wait_for_a_selection(self, facebook, provider_api):
        stub_meta_login(provider_api, [PAGE, SECOND_PAGE])

        result = await facebook.complete_auth("auth-code", make_state(1, "facebook"))

        assert result.connections == []
        assert result.needs_page_selection is True
        assert [(p.id, p.name) for p in result.page_choices] == [("111", "Daily AI"), ("333", "Weekend Digest")]
        assert result.pending_grant["user_token"] == "long-lived-user-token"

        connections = facebook.connect_page(result.pending_grant, "333", user_id=1)

        assert len(connections) == 1
        assert connections[0].provider == "facebook"
        assert connections[0].provider_account_id == "333"
        assert connections[0].access_token == "second-page-token"
        assert connections[0].refresh_token == "long-lived-user-token"
        assert connections[0].expires_at > datetime.utcnow() + timedelta(days=59)

    @pytest.mark.asyncio
    async def test_connect_page_rejects_a_page_that_was_not_offered(self, facebook, provider_api):
        stub_meta_login(provider_api, [PAGE, SECOND_PAGE])
        result = await facebook.complete_auth("auth-code", make_state(1, "facebook"))

        with pytest.raises(ValidationException):
            facebook.connect_page(result.pending_grant, "999", user_id=1)

    @pytest.mark.asyncio
    async def test_page_choices_for_an_existing_connection(self, facebook, provider_api, connection):
        stub_meta_login(provider_api, [PAGE, SECOND_PAGE])

        result = await facebook.page_choices(connection)

        assert [p.id for p in result.page_choices] == ["111", "333"]
        assert result.pending_grant["expires_at"] == connection.expires_at.isoformat()
        listing = provider_api.calls("GET", f"{GRAPH}/me/accounts")[0]
        assert listing.url.params["access_token"] == "long-lived-user-token"
        assert provider_api.calls("GET", f"{GRAPH}/oauth/access_token") == []

    @pytest.mark.asyncio
    async def test_page_choices_with_a_rejected_user_token(self, facebook, provider_api, connection):
        provider_api.json(
            "GET",
            f"{GRAPH}/me/accounts",
            {"error": {"message": "Error validating access token", "code": 190}},
            status_code=400,
        )

        with pytest.raises(TokenExpiredException):
            await facebook.page_choices(connection)

    @pytest.mark.asyncio
    async def test_no_pages(self, facebook, provider_api):
        stub_meta_login(provider_api, [])

        with pytest.raises(AuthenticationException) as exc_info:
            await facebook.complete_auth("auth-code", make_state(1, "facebook"))

        assert exc_info.value.kind == "auth_failed"

    @pytest.mark.asyncio
    async def test_rejected_code(self, facebook, provider_api):
        provider_api.json(
            "GET",
            f"{GRAPH}/oauth/access_token",
            {"error": {"message": "This authorization code has been used.", "code": 100}},
            status_code=400,
        )

        with pytest.raises(AuthenticationException):
            await facebook.complete_auth("used-code", make_state(1, "facebook"))

    @pytest.mark.asyncio
    async def test_missing_code(self, facebook):
        with pytest.raises(AuthenticationException):
            await facebook.complete_auth("", make_state(1, "facebook"))


class TestPublish:
    @pytest.mark.asyncio
    async def test_text_post(self, facebook, provider_api, connection):
        provider_api.json("POST", f"{GRAPH}/111/feed", {"id": "111_999"})

        result = await facebook.publish(connection, _request(text="Hello Facebook"))

        assert result.success
        assert result.remote_post_id == "111_999"
        assert result.permalink == "https://www.facebook.com/111_999"
        body = form_body(provider_api.calls("POST", f"{GRAPH}/111/feed")[0])
        assert body == {"message": "Hello Facebook", "access_token": "page-token"}

    @pytest.mark.asyncio
    async def test_link_post_with_preview_overrides(self, facebook, provider_api, connection):
        provider_api.json("POST", f"{GRAPH}/111/feed", {"id": "111_1000"})
        link = LinkInfo(url="https://example.com/a", title="A title", description="A description")

        await facebook.publish(connection, _request(PostKind.LINK, text="Look", link=link))

        body = form_body(provider_api.calls("POST", f"{GRAPH}/111/feed")[0])
        assert body["link"] == "https://example.com/a"
        assert body["name"] == "A title"
        assert body["description"] == "A description"

    @pytest.mark.asyncio
    async def test_photo_upload_from_file(self, facebook, provider_api, connection, image_file):
        provider_api.json("POST", f"{GRAPH}/111/photos", {"id": "555", "post_id": "111_555"})

        result = await facebook.publish(
            connection,
            _request(PostKind.IMAGE, text="caption", media_ref=MediaRef(path=str(image_file), content_type="image/png")),
        )

        assert result.remote_post_id == "555"
        assert result.permalink == "https://www.facebook.com/111_555"
        upload = provider_api.calls("POST", f"{GRAPH}/111/photos")[0]
        assert b'name="source"' in upload.content
        assert b"page-token" in upload.content

    @pytest.mark.asyncio
    async def test_photo_by_url(self, facebook, provider_api, connection):
        provider_api.json("POST", f"{GRAPH}/111/photos", {"id": "556"})

        result = await facebook.publish(
            connection, _request(PostKind.IMAGE, text="c", media_ref=MediaRef(url="https://cdn.example.com/p.jpg"))
        )

        assert result.permalink == "https://www.facebook.com/photo.php?fbid=556"
        body = form_body(provider_api.calls("POST", f"{GRAPH}/111/photos")[0])
        assert body["url"] == "https://cdn.example.com/p.jpg"

    @pytest.mark.asyncio
    async def test_video_upload_uses_video_host(self, facebook, provider_api, connection, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 128)
        provider_api.json("POST", f"{GRAPH_VIDEO}/111/videos", {"id": "777"})

        result = await facebook.publish(
            connection, _request(PostKind.VIDEO, text="watch", media_ref=MediaRef(path=str(video)))
        )

        assert result.remote_post_id == "777"
        assert result.permalink == "https://www.facebook.com/111/videos/777"

    @pytest.mark.asyncio
    async def test_temporary_media_is_removed_after_success(self, facebook, provider_api, connection, image_file):
        provider_api.json("POST", f"{GRAPH}/111/photos", {"id": "555"})

        await facebook.publish(
            connection, _request(PostKind.IMAGE, media_ref=MediaRef(path=str(image_file), temporary=True))
        )

        assert not image_file.exists()

    @pytest.mark.asyncio
    async def test_temporary_media_is_removed_after_failure(self, facebook, provider_api, connection, image_file):
        provider_api.json("POST", f"{GRAPH}/111/photos", {"error": {"message": "Invalid image", "code": 324}}, status_code=400)

        with pytest.raises(ContentRejectedError):
            await facebook.publish(
                connection, _request(PostKind.IMAGE, media_ref=MediaRef(path=str(image_file), temporary=True))
            )

        assert not image_file.exists()

    @pytest.mark.asyncio
    async def test_temporary_video_is_removed_after_failure(self, facebook, provider_api, connection, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 128)
        provider_api.json(
            "POST",
            f"{GRAPH_VIDEO}/111/videos",
            {"error": {"message": "Video processing failed", "code": 6000}},
            status_code=400,
        )

        with pytest.raises(ContentRejectedError):
            await facebook.publish(
                connection, _request(PostKind.VIDEO, media_ref=MediaRef(path=str(video), temporary=True))
            )

        assert not video.exists()

    @pytest.mark.asyncio
    async def test_temporary_video_is_removed_when_the_upload_never_arrives(
        self, facebook, provider_api, connection, tmp_path
    ):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 128)

        def drop(request):
            raise httpx.ConnectError("connection reset", request=request)

        provider_api.add("POST", f"{GRAPH_VIDEO}/111/videos", drop)

        with pytest.raises(PlatformUnavailableError):
            await facebook.publish(
                connection, _request(PostKind.VIDEO, media_ref=MediaRef(path=str(video), temporary=True))
            )

        assert not video.exists()

    @pytest.mark.asyncio
    async def test_caller_owned_media_is_kept(self, facebook, provider_api, connection, image_file):
        provider_api.json("POST", f"{GRAPH}/111/photos", {"id": "555"})

        await facebook.publish(connection, _request(PostKind.IMAGE, media_ref=MediaRef(path=str(image_file))))

        assert image_file.exists()

    @pytest.mark.asyncio
    async def test_oversized_image_is_rejected(self, facebook, connection, tmp_path):
        big = tmp_path / "big.jpg"
        with open(big, "wb") as f:
            f.truncate(10 * 1024 * 1024 + 1)

        with pytest.raises(ValidationException):
            await facebook.publish(connection, _request(PostKind.IMAGE, media_ref=MediaRef(path=str(big))))

    @pytest.mark.asyncio
    async def test_image_post_without_media(self, facebook, connection):
        with pytest.raises(ValidationException):
            await facebook.publish(connection, _request(PostKind.IMAGE, text="no media"))

    @pytest.mark.asyncio
    async def test_empty_text_post(self, facebook, connection):
        with pytest.raises(ValidationException):
            await facebook.publish(connection, _request(text=""))

    @pytest.mark.asyncio
    async def test_code_190_means_token_expired(self, facebook, provider_api, connection):
        provider_api.json(
            "POST",
            f"{GRAPH}/111/feed",
            {"error": {"message": "Error validating access token", "type": "OAuthException", "code": 190}},
            status_code=400,
        )

        with pytest.raises(TokenExpiredException) as exc_info:
            await facebook.publish(connection, _request(text="hi"))

        assert exc_info.value.provider_code == "190"

    @pytest.mark.asyncio
    async def test_page_rate_limit(self, facebook, provider_api, connection):
        provider_api.json(
            "POST",
            f"{GRAPH}/111/feed",
            {"error": {"message": "Page request limit reached", "code": 32}},
            status_code=400,
        )

        with pytest.raises(RateLimitException):
            await facebook.publish(connection, _request(text="hi"))

    @pytest.mark.asyncio
    async def test_network_failure_is_retryable(self, facebook, provider_api, connection):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider_api.add("POST", f"{GRAPH}/111/feed", boom)

        with pytest.raises(PlatformUnavailableError) as exc_info:
            await facebook.publish(connection, _request(text="hi"))

        assert exc_info.value.kind == "provider_unavailable"
        assert exc_info.value.retryable is True


class TestRefresh:
    @pytest.mark.asyncio
    async def test_token_outside_window_is_untouched(self, facebook, provider_api, connection):
        far = connection.model_copy(update={"expires_at": datetime.utcnow() + timedelta(days=50)})

        assert await facebook.refresh_if_needed(far) is far
        assert provider_api.requests == []

    @pytest.mark.asyncio
    async def test_token_inside_window_is_extended(self, facebook, provider_api, connection):
        soon = connection.model_copy(update={"expires_at": datetime.utcnow() + timedelta(days=2)})
        stub_meta_login(provider_api, [{**PAGE, "access_token": "new-page-token"}])

        refreshed = await facebook.refresh_if_needed(soon)

        assert refreshed.access_token == "new-page-token"
        assert refreshed.refresh_token == "long-lived-user-token"
        assert refreshed.expires_at > datetime.utcnow() + timedelta(days=59)

    @pytest.mark.asyncio
    async def test_lost_page_access_means_reconnect(self, facebook, provider_api, connection):
        soon = connection.model_copy(update={"expires_at": datetime.utcnow() + timedelta(days=2)})
        stub_meta_login(provider_api, [{**PAGE, "id": "999"}])

        with pytest.raises(TokenExpiredException):
            await facebook.refresh_if_needed(soon)


@pytest.mark.asyncio
async def test_fetch_profile(facebook, provider_api, connection):
    provider_api.json(
        "GET",
        f"{GRAPH}/111",
        {"id": "111", "name": "Daily AI", "picture": {"data": {"url": "https://scontent.example/p.jpg"}}},
    )

    profile = await facebook.fetch_profile(connection)

    assert profile.name == "Daily AI"
    assert profile.picture == "https://scontent.example/p.jpg"
