"""
Twitter Publisher - Publish content to Twitter using OAuth 1.0a

Uses user access tokens obtained with the application's consumer key:
- Tweets are created with the v2 /tweets endpoint (JSON body)
- Images are uploaded with the v1.1 media/upload endpoint first

Twitter user tokens never expire, so there is no refresh step.
"""
from typing import Optional, Dict, Any

from loguru import logger

from config.settings import Settings
from schemas.social import (
    AuthOptions,
    AuthorizationRequest,
    AuthResult,
    Connection,
    OAuthState,
    PostKind,
    ProfileInfo,
    Provider,
    PublishRequest,
    PublishResult,
)
from utils.twitter_oauth1 import TwitterOAuth1, TWITTER_VERIFY_CREDENTIALS_URL
from .base import ProviderAdapter
from .exceptions import AuthenticationException, ConfigurationException, PublisherException, ValidationException

# Constants
DEFAULT_TWEET_MAX_LENGTH = 280
TRUNCATION_SUFFIX = "..."

TWITTER_TWEETS_URL = "https://api.twitter.com/2/tweets"
TWITTER_MEDIA_UPLOAD_URL = "https://upload.twitter.com/1.1/media/upload.json"


def truncate_tweet(text: str, max_length: int = DEFAULT_TWEET_MAX_LENGTH) -> str:
    """Shorten text to fit a tweet, marking the cut with an ellipsis"""
    if len(text) <= max_length:
        return text
    return text[:max_length - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX


class TwitterPublisher(ProviderAdapter):
    """Publishes tweets on behalf of a connected Twitter user"""

    provider = Provider.TWITTER
    platform_name = "Twitter"
    token_invalid_codes = frozenset({"89"})
    rate_limit_codes = frozenset({"88"})

    def __init__(self, settings: Settings, transport=None):
        super().__init__(settings, transport=transport)
        self.oauth = TwitterOAuth1(
            api_key=settings.TWITTER_API_KEY,
            api_secret=settings.TWITTER_API_SECRET,
            callback_url=settings.TWITTER_CALLBACK_URL,
            timeout=self.timeout,
            transport=transport,
        )

    def is_configured(self) -> bool:
        return self.oauth.is_configured()

    def get_auth_url(self, state: str, options: Optional[AuthOptions] = None) -> str:
        raise ConfigurationException(
            "Twitter consent URLs need a request token first; start the handshake with begin_auth()"
        )

    async def begin_auth(self, state: str, options: Optional[AuthOptions] = None) -> AuthorizationRequest:
        """
        Obtain a request token and return the consent URL.

        The request token secret is kept with the OAuth state; it is needed
        to exchange the verifier in the callback.
        """
        result = await self.oauth.start_authorization(state)
        return AuthorizationRequest(
            url=result["authorization_url"],
            state_data={
                "oauth_token": result["oauth_token"],
                "oauth_token_secret": result["oauth_token_secret"],
            },
        )

    async def complete_auth(
        self,
        code_or_verifier: str,
        state: OAuthState,
        callback_params: Optional[Dict[str, Any]] = None,
    ) -> AuthResult:
        callback_params = callback_params or {}

        if callback_params.get("denied"):
            raise AuthenticationException("Twitter authorization was denied by the user")

        request_token = state.data.get("oauth_token")
        request_token_secret = state.data.get("oauth_token_secret")
        if not request_token or not request_token_secret:
            raise AuthenticationException("Twitter request token missing from OAuth state")

        callback_token = callback_params.get("oauth_token")
        if callback_token and callback_token != request_token:
            raise AuthenticationException("Twitter callback token does not match the request token")

        if not code_or_verifier:
            raise AuthenticationException("Twitter callback is missing oauth_verifier")

        token = await self.oauth.finish_authorization(request_token, request_token_secret, code_or_verifier)

        connection = Connection(
            user_id=state.user_id,
            provider=Provider.TWITTER,
            access_token=token["oauth_token"],
            access_token_secret=token["oauth_token_secret"],
            provider_account_id=token["user_id"],
            username=token.get("screen_name"),
            display_name=token.get("screen_name"),
            expires_at=None,
        )

        # Display name is cosmetic; a failed lookup should not fail the connection
        try:
            profile = await self.fetch_profile(connection)
            connection.display_name = profile.name or connection.display_name
        except PublisherException as e:
            logger.warning(f"Could not fetch Twitter profile for @{connection.username}: {e.message}")

        logger.info(f"Twitter connected for user {state.user_id}: @{connection.username}")
        return AuthResult(connections=[connection])

    async def publish(self, connection: Connection, request: PublishRequest) -> PublishResult:
        """
        Publish a tweet, optionally with one image.

        Text over 280 characters is truncated. If the image upload fails the
        tweet is still posted as text only.

        Raises:
            ValidationException: video posts, or nothing to post
            TokenExpiredException: token revoked
            RateLimitException: rate limit exceeded
        """
        if request.kind == PostKind.VIDEO:
            raise ValidationException("Video posts are not supported for Twitter")

        text = request.text or ""
        if request.link and request.link.url not in text:
            text = f"{text} {request.link.url}".strip()

        if len(text) > DEFAULT_TWEET_MAX_LENGTH:
            logger.warning(f"Tweet truncated from {len(text)} to {DEFAULT_TWEET_MAX_LENGTH} characters")
            text = truncate_tweet(text)

        if request.kind == PostKind.IMAGE and not request.media_ref:
            raise ValidationException("Image post requires media")
        if not text and not request.media_ref:
            raise ValidationException("Tweet text cannot be empty")

        payload: Dict[str, Any] = {"text": text}

        async with self._client() as client:
            if request.media_ref:
                try:
                    media_id = await self._upload_media(client, connection, request)
                    payload["media"] = {"media_ids": [media_id]}
                except PublisherException as e:
                    logger.warning(f"Twitter media upload failed, posting text only: {e.message}")

            # JSON bodies are not part of the OAuth 1.0a signature base string
            headers = {
                "Authorization": self.oauth.sign(
                    "POST", TWITTER_TWEETS_URL, connection.access_token, connection.access_token_secret
                ),
                "Content-Type": "application/json",
            }
            data = await self._request_json(
                client, "POST", TWITTER_TWEETS_URL, "tweet", headers=headers, json=payload
            )

        tweet_id = data.get("data", {}).get("id")
        if not tweet_id:
            raise PublisherException("Twitter did not return a tweet id")

        if connection.username:
            permalink = f"https://twitter.com/{connection.username}/status/{tweet_id}"
        else:
            permalink = f"https://twitter.com/i/status/{tweet_id}"

        return self._success(tweet_id, permalink)

    async def _upload_media(self, client, connection: Connection, request: PublishRequest) -> str:
        """Upload one image and return its media_id_string"""
        content, content_type, filename = await self._read_media(client, request.media_ref)

        # Multipart bodies are not signed either
        headers = {
            "Authorization": self.oauth.sign(
                "POST", TWITTER_MEDIA_UPLOAD_URL, connection.access_token, connection.access_token_secret
            ),
        }
        data = await self._request_json(
            client,
            "POST",
            TWITTER_MEDIA_UPLOAD_URL,
            "media upload",
            headers=headers,
            files={"media": (filename, content, content_type)},
        )

        media_id = data.get("media_id_string") or (str(data["media_id"]) if data.get("media_id") else None)
        if not media_id:
            raise PublisherException("Twitter media upload returned no media id")

        logger.info(f"Uploaded media to Twitter: {media_id}")
        return media_id

    async def fetch_profile(self, connection: Connection) -> ProfileInfo:
        params = {"skip_status": "true"}
        headers = {
            "Authorization": self.oauth.sign(
                "GET",
                TWITTER_VERIFY_CREDENTIALS_URL,
                connection.access_token,
                connection.access_token_secret,
                params=params,
            ),
        }

        async with self._client() as client:
            data = await self._request_json(
                client, "GET", TWITTER_VERIFY_CREDENTIALS_URL, "profile fetch", headers=headers, params=params
            )

        return ProfileInfo(
            id=data.get("id_str") or connection.provider_account_id,
            name=data.get("name"),
            username=data.get("screen_name"),
            picture=data.get("profile_image_url_https"),
        )
