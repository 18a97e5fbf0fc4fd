"""
Provider adapter interface

Every social platform is wrapped by one ProviderAdapter subclass that owns
its OAuth handshake and its publish protocol. Callers only ever see
Connection, PublishRequest and PublishResult; provider payloads and httpx
errors never leave the adapter, they are raised as PublisherException
subclasses carrying the error taxonomy kind.

Adding a provider means one new subclass plus one registry entry in
src.publishers.registry.build_adapters().
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
import mimetypes
import os
from typing import Any, Dict, FrozenSet, Optional, Tuple

import aiofiles
import httpx
from loguru import logger

from config.settings import Settings
from schemas.social import (
    AuthOptions,
    AuthorizationRequest,
    AuthResult,
    MediaRef,
    Connection,
    OAuthState,
    ProfileInfo,
    Provider,
    PublishRequest,
    PublishResult,
)
from .exceptions import (
    ContentRejectedError,
    PlatformUnavailableError,
    PublisherException,
    RateLimitException,
    TokenExpiredException,
    ValidationException,
    parse_provider_error,
)


class ProviderAdapter(ABC):
    """Uniform contract for connecting to and publishing on one provider"""

    provider: Provider
    platform_name: str = ""

    # Provider error codes meaning "this token is no longer valid"
    token_invalid_codes: FrozenSet[str] = frozenset()
    # Provider error codes meaning "slow down", whatever the HTTP status
    rate_limit_codes: FrozenSet[str] = frozenset()

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self.timeout = settings.HTTP_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the app credentials for this provider are present"""

    @abstractmethod
    def get_auth_url(self, state: str, options: Optional[AuthOptions] = None) -> str:
        """
        Build the provider consent-screen URL.

        Providers whose consent URL needs a network call raise here and
        override begin_auth() instead; callers always go through begin_auth().
        """

    async def begin_auth(self, state: str, options: Optional[AuthOptions] = None) -> AuthorizationRequest:
        """Start the OAuth handshake for an already-created state"""
        return AuthorizationRequest(url=self.get_auth_url(state, options or AuthOptions()))

    @abstractmethod
    async def complete_auth(
        self,
        code_or_verifier: str,
        state: OAuthState,
        callback_params: Optional[Dict[str, Any]] = None,
    ) -> AuthResult:
        """
        Exchange the authorization grant for the Connections it produces.

        Most providers return exactly one Connection. A Facebook Login grant
        can return two, or none plus Page choices when the user must pick.

        Raises:
            AuthenticationException: provider error or no usable account
            NoBusinessAccountException: Instagram requested, none linked
        """

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    @abstractmethod
    async def publish(self, connection: Connection, request: PublishRequest) -> PublishResult:
        """
        Run the provider's publish protocol.

        Returns a successful PublishResult or raises a PublisherException.
        """

    async def refresh_if_needed(self, connection: Connection) -> Connection:
        """Return the connection with fresh tokens; unchanged when no refresh applies"""
        return connection

    @abstractmethod
    async def fetch_profile(self, connection: Connection) -> ProfileInfo:
        """Fetch live profile labels for a connected account"""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _send(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request, converting network failures to PlatformUnavailableError"""
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{self.platform_name} request timed out: {method} {url}")
            raise PlatformUnavailableError(f"{self.platform_name} request timed out") from e
        except httpx.TransportError as e:
            logger.error(f"{self.platform_name} network error: {str(e)}")
            raise PlatformUnavailableError(f"{self.platform_name} is unreachable: {str(e)}") from e

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        """Map a non-2xx provider API response onto the error taxonomy"""
        if response.is_success:
            return

        message, code = parse_provider_error(response)
        logger.error(f"{self.platform_name} {operation} failed: {response.status_code} - {message}")

        if response.status_code == 401 or (code is not None and code in self.token_invalid_codes):
            raise TokenExpiredException(
                f"{self.platform_name} token is invalid or expired: {message}",
                provider_code=code,
                status_code=response.status_code,
            )
        if response.status_code == 429 or (code is not None and code in self.rate_limit_codes):
            raise RateLimitException(
                f"{self.platform_name} rate limit exceeded: {message}",
                retry_after=self._retry_after(response),
                provider_code=code,
                status_code=response.status_code,
            )
        if response.status_code >= 500:
            raise PlatformUnavailableError(
                f"{self.platform_name} is unavailable: {message}",
                provider_code=code,
                status_code=response.status_code,
            )
        raise ContentRejectedError(
            f"{self.platform_name} {operation} rejected: {message}",
            provider_code=code,
            status_code=response.status_code,
        )

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[int]:
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return int(retry_after)

        reset = response.headers.get("x-rate-limit-reset")
        if reset and reset.isdigit():
            return max(int(reset) - int(datetime.utcnow().timestamp()), 0)

        return None

    async def _request_json(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        operation: str,
        **kwargs,
    ) -> Dict[str, Any]:
        response = await self._send(client, method, url, **kwargs)
        self._raise_for_status(response, operation)
        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise PublisherException(f"{self.platform_name} {operation} returned invalid JSON") from e

    @staticmethod
    def _expires_at(expires_in: Optional[Any]) -> Optional[datetime]:
        if not expires_in:
            return None
        return datetime.utcnow() + timedelta(seconds=int(expires_in))

    def needs_refresh(self, connection: Connection) -> bool:
        """True when the token expires within the refresh window"""
        if connection.expires_at is None:
            return False
        window = timedelta(seconds=self.settings.TOKEN_REFRESH_WINDOW_SECONDS)
        return connection.expires_at - datetime.utcnow() <= window

    def _success(self, post_id: str, permalink: Optional[str]) -> PublishResult:
        logger.info(f"Successfully published to {self.platform_name}: {post_id}")
        return PublishResult(success=True, remote_post_id=post_id, permalink=permalink)

    @staticmethod
    def media_size(media: MediaRef) -> Optional[int]:
        """Size in bytes of a local media file, None for URL-only media"""
        if media.path and os.path.exists(media.path):
            return os.path.getsize(media.path)
        return None

    async def _read_media(self, client: httpx.AsyncClient, media: MediaRef) -> Tuple[bytes, str, str]:
        """
        Load media bytes from the local file or, failing that, download the URL.

        Returns:
            (content, content_type, filename)
        """
        if media.path:
            if not os.path.exists(media.path):
                raise ValidationException(f"Media file not found: {media.path}")
            async with aiofiles.open(media.path, "rb") as f:
                content = await f.read()
            filename = media.filename or os.path.basename(media.path)
        elif media.url:
            response = await self._send(client, "GET", media.url, follow_redirects=True)
            if not response.is_success:
                raise ValidationException(
                    f"Could not download media from {media.url}: HTTP {response.status_code}"
                )
            content = response.content
            filename = media.filename or media.url.rsplit("/", 1)[-1].split("?", 1)[0] or "media"
        else:
            raise ValidationException("Media reference has neither a file path nor a URL")

        content_type = (
            media.content_type
            or mimetypes.guess_type(filename)[0]
            or "application/octet-stream"
        )
        return content, content_type, filename

    @staticmethod
    def discard_media(media: Optional[MediaRef]) -> None:
        """Remove a temporary upload once the publish attempt is over"""
        if media is None or not media.temporary or not media.path:
            return
        try:
            os.remove(media.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary media {media.path}: {str(e)}")
