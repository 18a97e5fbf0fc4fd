"""
Tests for the Twitter OAuth 1.0a adapter
"""
import httpx
import pytest

from conftest import json_body, make_state
from schemas.social import AuthOptions, Connection, LinkInfo, MediaRef, PostKind, Provider, PublishRequest
from src.publishers.exceptions import (
    AuthenticationException,
    ConfigurationException,
    RateLimitException,
    TokenExpiredException,
    ValidationException,
)
from src.publishers.twitter_publisher import TWITTER_MEDIA_UPLOAD_URL, TWITTER_TWEETS_URL, truncate_tweet
from utils.twitter_oauth1 import (
    TWITTER_ACCESS_TOKEN_URL,
    TWITTER_REQUEST_TOKEN_URL,
    TWITTER_VERIFY_CREDENTIALS_URL,
)


@pytest.fixture
def twitter(adapters):
    return adapters[Provider.TWITTER]


@pytest.fixture
def connection():
    return Connection(
        user_id=1,
        provider=Provider.TWITTER,
        access_token="user-token",
        access_token_secret="user-secret",
        provider_account_id="12345",
        username="jack",
    )


def _form_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=body, headers={"Content-Type": "application/x-www-form-urlencoded"})


class TestTruncation:
    def test_short_text_is_unchanged(self):
        assert truncate_tweet("hello") == "hello"
        assert truncate_tweet("x" * 280) == "x" * 280

    def test_long_text_gets_ellipsis(self):
        result = truncate_tweet("x" * 281)
        assert len(result) == 280
        assert result.endswith("...")
        assert result == "x" * 277 + "..."

    @pytest.mark.parametrize("length", [0, 1, 279, 280, 281, 500, 5000])
    def test_truncation_is_idempotent_and_bounded(self, length):
        once = truncate_tweet("a" * length)
        assert len(once) <= 280
        assert truncate_tweet(once) == once


class TestAuth:
    @pytest.mark.asyncio
    async def test_begin_auth_returns_consent_url_and_request_token(self, twitter, provider_api):
        provider_api.add(
            "POST",
            TWITTER_REQUEST_TOKEN_URL,
            _form_response("oauth_token=req-token&oauth_token_secret=req-secret&oauth_callback_confirmed=true"),
        )

        result = await twitter.begin_auth("state-abc", AuthOptions())

        assert result.url == "https://api.twitter.com/oauth/authorize?oauth_token=req-token"
        assert result.state_data == {"oauth_token": "req-token", "oauth_token_secret": "req-secret"}

        header = provider_api.requests[0].headers["Authorization"]
        assert header.startswith("OAuth ")
        assert "oauth_callback=" in header
        assert "state%3Dstate-abc" in header

    @pytest.mark.asyncio
    async def test_rejected_callback_url_is_a_config_error(self, twitter, provider_api):
        provider_api.json(
            "POST",
            TWITTER_REQUEST_TOKEN_URL,
            {"errors": [{"code": 415, "message": "Callback URL not approved for this client application."}]},
            status_code=403,
        )

        with pytest.raises(ConfigurationException):
            await twitter.begin_auth("state-abc")

    def test_get_auth_url_needs_begin_auth(self, twitter):
        with pytest.raises(ConfigurationException) as exc_info:
            twitter.get_auth_url("state")

        assert "begin_auth" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_complete_auth_builds_connection(self, twitter, provider_api):
        provider_api.add(
            "POST",
            TWITTER_ACCESS_TOKEN_URL,
            _form_response("oauth_token=acc-token&oauth_token_secret=acc-secret&user_id=12345&screen_name=jack"),
        )
        provider_api.json(
            "GET",
            TWITTER_VERIFY_CREDENTIALS_URL,
            {"id_str": "12345", "name": "Jack D", "screen_name": "jack"},
        )
        state = make_state(1, "twitter", {"oauth_token": "req-token", "oauth_token_secret": "req-secret"})

        result = await twitter.complete_auth("verifier", state, {"oauth_token": "req-token"})

        assert len(result.connections) == 1
        connection = result.connections[0]

        assert connection.provider == "twitter"
        assert connection.access_token == "acc-token"
        assert connection.access_token_secret == "acc-secret"
        assert connection.provider_account_id == "12345"
        assert connection.username == "jack"
        assert connection.display_name == "Jack D"
        assert connection.expires_at is None

    @pytest.mark.asyncio
    async def test_profile_failure_does_not_fail_connection(self, twitter, provider_api):
        provider_api.add(
            "POST",
            TWITTER_ACCESS_TOKEN_URL,
            _form_response("oauth_token=acc-token&oauth_token_secret=acc-secret&user_id=12345&screen_name=jack"),
        )
        provider_api.json("GET", TWITTER_VERIFY_CREDENTIALS_URL, {"errors": [{"message": "oops"}]}, status_code=500)
        state = make_state(1, "twitter", {"oauth_token": "req-token", "oauth_token_secret": "req-secret"})

        connection = (await twitter.complete_auth("verifier", state)).connections[0]

        assert connection.display_name == "jack"

    @pytest.mark.asyncio
    async def test_denied_authorization(self, twitter):
        state = make_state(1, "twitter", {"oauth_token": "req-token", "oauth_token_secret": "req-secret"})

        with pytest.raises(AuthenticationException):
            await twitter.complete_auth("", state, {"denied": "req-token"})

    @pytest.mark.asyncio
    async def test_mismatched_callback_token(self, twitter):
        state = make_state(1, "twitter", {"oauth_token": "req-token", "oauth_token_secret": "req-secret"})

        with pytest.raises(AuthenticationException):
            await twitter.complete_auth("verifier", state, {"oauth_token": "someone-elses-token"})

    @pytest.mark.asyncio
    async def test_missing_request_token(self, twitter):
        with pytest.raises(AuthenticationException):
            await twitter.complete_auth("verifier", make_state(1, "twitter"))


class TestPublish:
    @pytest.mark.asyncio
    async def test_text_tweet(self, twitter, provider_api, connection):
        provider_api.json("POST", TWITTER_TWEETS_URL, {"data": {"id": "999", "text": "hello"}}, status_code=201)

        result = await twitter.publish(connection, PublishRequest(user_id=1, provider="twitter", text="hello"))

        assert result.success
        assert result.remote_post_id == "999"
        assert result.permalink == "https://twitter.com/jack/status/999"

        request = provider_api.calls("POST", TWITTER_TWEETS_URL)[0]
        assert json_body(request) == {"text": "hello"}
        assert request.headers["Authorization"].startswith("OAuth ")
        assert 'oauth_token="user-token"' in request.headers["Authorization"]

    @pytest.mark.asyncio
    async def test_long_text_is_truncated(self, twitter, provider_api, connection):
        provider_api.json("POST", TWITTER_TWEETS_URL, {"data": {"id": "1"}})

        await twitter.publish(connection, PublishRequest(user_id=1, provider="twitter", text="y" * 400))

        sent = json_body(provider_api.calls("POST", TWITTER_TWEETS_URL)[0])["text"]
        assert len(sent) == 280
        assert sent.endswith("...")

    @pytest.mark.asyncio
    async def test_link_is_appended(self, twitter, provider_api, connection):
        provider_api.json("POST", TWITTER_TWEETS_URL, {"data": {"id": "1"}})
        request = PublishRequest(
            user_id=1,
            provider="twitter",
            kind=PostKind.LINK,
            text="Read this",
            link=LinkInfo(url="https://example.com/post"),
        )

        await twitter.publish(connection, request)

        sent = json_body(provider_api.calls("POST", TWITTER_TWEETS_URL)[0])["text"]
        assert sent == "Read this https://example.com/post"

    @pytest.mark.asyncio
    async def test_image_tweet_uploads_media_first(self, twitter, provider_api, connection, image_file):
        provider_api.json("POST", TWITTER_MEDIA_UPLOAD_URL, {"media_id": 710511363345354753, "media_id_string": "710511363345354753"})
        provider_api.json("POST", TWITTER_TWEETS_URL, {"data": {"id": "2"}})
        request = PublishRequest(
            user_id=1,
            provider="twitter",
            kind=PostKind.IMAGE,
            text="pic",
            media_ref=MediaRef(path=str(image_file), content_type="image/png"),
        )

        result = await twitter.publish(connection, request)

        assert result.success
        upload = provider_api.calls("POST", TWITTER_MEDIA_UPLOAD_URL)[0]
        assert b'name="media"' in upload.content
        body = json_body(provider_api.calls("POST", TWITTER_TWEETS_URL)[0])
        assert body["media"] == {"media_ids": ["710511363345354753"]}

    @pytest.mark.asyncio
    async def test_failed_media_upload_falls_back_to_text(self, twitter, provider_api, connection, image_file):
        provider_api.json("POST", TWITTER_MEDIA_UPLOAD_URL, {"errors": [{"code": 324, "message": "bad media"}]}, status_code=400)
        provider_api.json("POST", TWITTER_TWEETS_URL, {"data": {"id": "3"}})
        request = PublishRequest(
            user_id=1,
            provider="twitter",
            kind=PostKind.IMAGE,
            text="pic",
            media_ref=MediaRef(path=str(image_file)),
        )

        result = await twitter.publish(connection, request)

        assert result.success
        assert "media" not in json_body(provider_api.calls("POST", TWITTER_TWEETS_URL)[0])

    @pytest.mark.asyncio
    async def test_video_is_not_supported(self, twitter, connection):
        request = PublishRequest(user_id=1, provider="twitter", kind=PostKind.VIDEO, text="clip")

        with pytest.raises(ValidationException):
            await twitter.publish(connection, request)

    @pytest.mark.asyncio
    async def test_empty_tweet_is_rejected(self, twitter, connection):
        with pytest.raises(ValidationException):
            await twitter.publish(connection, PublishRequest(user_id=1, provider="twitter", text=""))

    @pytest.mark.asyncio
    async def test_invalid_token_code(self, twitter, provider_api, connection):
        provider_api.json("POST", TWITTER_TWEETS_URL, {"errors": [{"code": 89, "message": "Invalid or expired token."}]}, status_code=403)

        with pytest.raises(TokenExpiredException):
            await twitter.publish(connection, PublishRequest(user_id=1, provider="twitter", text="hi"))

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, twitter, provider_api, connection):
        provider_api.json(
            "POST",
            TWITTER_TWEETS_URL,
            {"title": "Too Many Requests", "detail": "Too Many Requests"},
            status_code=429,
            headers={"Retry-After": "120"},
        )

        with pytest.raises(RateLimitException) as exc_info:
            await twitter.publish(connection, PublishRequest(user_id=1, provider="twitter", text="hi"))

        assert exc_info.value.retry_after == 120
        assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_fetch_profile(twitter, provider_api, connection):
    provider_api.json(
        "GET",
        TWITTER_VERIFY_CREDENTIALS_URL,
        {"id_str": "12345", "name": "Jack D", "screen_name": "jack", "profile_image_url_https": "https://pbs.twimg.com/a.png"},
    )

    profile = await twitter.fetch_profile(connection)

    assert profile.name == "Jack D"
    assert profile.username == "jack"
    assert profile.picture == "https://pbs.twimg.com/a.png"
    assert provider_api.requests[0].url.params["skip_status"] == "true"
