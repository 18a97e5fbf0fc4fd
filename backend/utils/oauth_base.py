"""
OAuth Base Classes - Foundation for All OAuth Implementations

This module provides base classes for OAuth 2.0 and OAuth 1.0a handshakes
shared by the provider adapters.

Architecture:
- OAuthBase: HTTP plumbing and error classification for all OAuth flows
- OAuth2Base: OAuth 2.0 authorization code flow (LinkedIn, Facebook, Instagram)
- OAuth1Base: OAuth 1.0a three-legged flow with HMAC-SHA1 signing (Twitter)

Errors are raised, not returned: a non-2xx token endpoint response becomes
AuthenticationException, 429 becomes RateLimitException and 5xx, timeouts
and network failures become PlatformUnavailableError.

Usage:
    from utils.oauth_base import OAuth2Base

    class LinkedInOAuth(OAuth2Base):
        def get_platform_config(self):
            return {
                "auth_url": "https://www.linkedin.com/oauth/v2/authorization",
                "token_url": "https://www.linkedin.com/oauth/v2/accessToken",
                ...
            }
"""

import base64
import hashlib
import hmac
import logging
import secrets
import time
import httpx
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
from urllib.parse import quote, parse_qs, urlencode

from src.publishers.exceptions import (
    AuthenticationException,
    PlatformUnavailableError,
    RateLimitException,
    parse_provider_error,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Base OAuth Class
# ============================================================================

class OAuthBase(ABC):
    """
    Base class for all OAuth implementations.

    Provides common functionality:
    - HTTP client management (timeout and injectable transport)
    - Error classification
    - Logging

    Subclasses must implement:
    - get_platform_config(): Return platform-specific configuration
    """

    def __init__(
        self,
        platform_name: str,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize OAuth base.

        Args:
            platform_name: Name of the platform (e.g., "LinkedIn", "Twitter")
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.platform_name = platform_name
        self.timeout = timeout
        self.transport = transport
        self.logger = logger

    @abstractmethod
    def get_platform_config(self) -> Dict[str, Any]:
        """
        Get platform-specific OAuth configuration.

        Returns:
            Dictionary with platform configuration
        """

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, converting network failures to PlatformUnavailableError"""
        try:
            async with self._client() as client:
                self.logger.debug(f"Making {method} request to {url}")
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            self.logger.error(f"{self.platform_name} request timed out: {url}")
            raise PlatformUnavailableError(f"{self.platform_name} request timed out") from e
        except httpx.TransportError as e:
            self.logger.error(f"{self.platform_name} network error: {str(e)}")
            raise PlatformUnavailableError(f"{self.platform_name} is unreachable: {str(e)}") from e

    def _raise_for_oauth_status(self, response: httpx.Response, operation: str) -> None:
        """Classify a non-2xx response from an OAuth endpoint"""
        if response.is_success:
            return

        message, code = parse_provider_error(response)
        self._log_error(operation, f"{response.status_code} - {message}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitException(
                f"{self.platform_name} rate limit exceeded",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                provider_code=code,
            )
        if response.status_code >= 500:
            raise PlatformUnavailableError(
                f"{self.platform_name} {operation} failed: {message}",
                provider_code=code,
                status_code=response.status_code,
            )
        raise AuthenticationException(
            f"{self.platform_name} {operation} failed: {message}",
            provider_code=code,
            status_code=response.status_code,
        )

    async def _make_http_request(
        self,
        method: str,
        url: str,
        operation: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an OAuth HTTP request and return the JSON body.

        Raises:
            AuthenticationException: For 4xx errors
            RateLimitException: For 429 errors
            PlatformUnavailableError: For 5xx errors, timeouts and network errors
        """
        response = await self._send(
            method, url, headers=headers, params=params, data=data, json=json_body
        )
        self._raise_for_oauth_status(response, operation)

        try:
            return response.json() if response.text else {}
        except ValueError as e:
            raise AuthenticationException(
                f"{self.platform_name} {operation} returned an unreadable response"
            ) from e

    def _log_success(self, operation: str, details: str = ""):
        """Log successful operation"""
        message = f"{self.platform_name} {operation} successful"
        if details:
            message += f": {details}"
        self.logger.info(message)

    def _log_error(self, operation: str, error: str):
        """Log failed operation"""
        self.logger.error(f"{self.platform_name} {operation} failed: {error}")


# ============================================================================
# OAuth 2.0 Base Class
# ============================================================================

class OAuth2Base(OAuthBase):
    """
    Base class for OAuth 2.0 implementations.

    Implements the standard OAuth 2.0 authorization code flow:
    1. Generate authorization URL
    2. Exchange authorization code for access token
    3. Refresh access token (if supported)

    Platform-specific modules only need to:
    - Provide configuration via get_platform_config()
    - Override methods for platform-specific behavior
    """

    def get_authorization_url(
        self,
        client_id: str,
        redirect_uri: str,
        state: str,
        scopes: Optional[List[str]] = None
    ) -> str:
        """
        Generate OAuth 2.0 authorization URL.

        Args:
            client_id: OAuth client ID
            redirect_uri: Callback URL after authorization
            state: CSRF protection state parameter
            scopes: List of OAuth scopes (optional, uses platform defaults)

        Returns:
            Authorization URL string
        """
        config = self.get_platform_config()
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": self.format_scopes(scopes),
        }

        auth_url = f"{config['auth_url']}?{urlencode(params)}"

        self._log_success("authorization URL generated", f"state: {state[:10]}...")
        return auth_url

    async def exchange_code_for_token(
        self,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str
    ) -> Dict[str, Any]:
        """
        Exchange authorization code for access token.

        Args:
            code: Authorization code from callback
            client_id: OAuth client ID
            client_secret: OAuth client secret
            redirect_uri: Callback URL (must match authorization request)

        Returns:
            Token response with access_token and, when provided, expires_in,
            refresh_token and scope
        """
        config = self.get_platform_config()

        token_data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri
        }

        self.logger.debug(f"Exchanging authorization code for {self.platform_name} token")

        if config.get("token_method", "POST") == "GET":
            token_data.pop("grant_type")
            response_data = await self._make_http_request(
                "GET", config["token_url"], "token exchange", params=token_data
            )
        else:
            response_data = await self._make_http_request(
                "POST",
                config["token_url"],
                "token exchange",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data=token_data,
            )

        if not response_data.get("access_token"):
            raise AuthenticationException(f"{self.platform_name} token exchange returned no access token")

        self._log_success("token exchange", f"token expires in {response_data.get('expires_in', 'N/A')}s")
        return response_data

    async def refresh_access_token(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str
    ) -> Dict[str, Any]:
        """
        Refresh an OAuth 2.0 access token.

        Args:
            refresh_token: Refresh token from initial token exchange
            client_id: OAuth client ID
            client_secret: OAuth client secret

        Returns:
            Token response with new access_token and expires_in
        """
        config = self.get_platform_config()

        if not config.get("supports_refresh", True):
            raise AuthenticationException(f"{self.platform_name} does not support token refresh")

        token_data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret
        }

        self.logger.debug(f"Refreshing {self.platform_name} access token")

        response_data = await self._make_http_request(
            "POST",
            config["token_url"],
            "token refresh",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data=token_data,
        )

        if not response_data.get("access_token"):
            raise AuthenticationException(f"{self.platform_name} token refresh returned no access token")

        self._log_success("token refresh", f"new token expires in {response_data.get('expires_in', 'N/A')}s")
        return response_data

    async def get_user_info(self, access_token: str) -> Dict[str, Any]:
        """
        Get user profile information using access token.

        Args:
            access_token: OAuth access token

        Returns:
            Dictionary with user information
        """
        config = self.get_platform_config()

        headers = {"Authorization": f"Bearer {access_token}"}
        response_data = await self._make_http_request(
            "GET",
            config["userinfo_url"],
            "user info fetch",
            headers=headers,
        )

        username = response_data.get("username") or response_data.get("name", "Unknown")
        self._log_success("user info fetch", f"user: {username}")
        return response_data

    def get_scopes(self) -> List[str]:
        """
        Get list of OAuth scopes for this platform.

        Returns:
            List of scope strings
        """
        config = self.get_platform_config()
        return list(config.get("scopes", []))

    def format_scopes(self, scopes: Optional[List[str]] = None) -> str:
        """
        Format scopes for OAuth URL.

        Args:
            scopes: List of scope strings, or None to use default scopes

        Returns:
            Formatted scope string (space or comma-separated based on platform)
        """
        config = self.get_platform_config()
        scopes = scopes or config.get("scopes", [])
        scope_separator = config.get("scope_separator", " ")
        return scope_separator.join(scopes)


# ============================================================================
# OAuth 1.0a Base Class
# ============================================================================

class OAuth1Base(OAuthBase):
    """
    Base class for OAuth 1.0a implementations (Twitter).

    Implements the OAuth 1.0a three-legged flow:
    1. Get request token
    2. User authorization
    3. Exchange for access token

    Includes signature generation and OAuth header construction.
    """

    def generate_nonce(self) -> str:
        """
        Generate a cryptographically secure nonce for OAuth 1.0a.

        Returns:
            32-character random hex string
        """
        return secrets.token_hex(16)

    def generate_timestamp(self) -> str:
        """
        Generate current Unix timestamp.

        Returns:
            Current timestamp as string
        """
        return str(int(time.time()))

    def percent_encode(self, value: str) -> str:
        """
        Percent-encode a string according to RFC 3986.

        Letters, digits, '-', '.', '_', '~' are left alone; everything else,
        including spaces, is percent-encoded.
        """
        return quote(str(value), safe='')

    def generate_oauth_signature(
        self,
        method: str,
        url: str,
        params: Dict[str, str],
        consumer_secret: str,
        token_secret: str = ""
    ) -> str:
        """
        Generate OAuth 1.0a HMAC-SHA1 signature.

        Steps:
        1. Sort parameters alphabetically
        2. Build parameter string
        3. Create signature base string
        4. Create signing key
        5. Generate HMAC-SHA1 signature
        6. Base64 encode

        Args:
            method: HTTP method (GET, POST)
            url: Request URL without query string
            params: All request parameters (OAuth + query/body)
            consumer_secret: Consumer secret (API secret)
            token_secret: Token secret (empty for request token)

        Returns:
            Base64-encoded signature
        """
        encoded_params = sorted(
            (self.percent_encode(k), self.percent_encode(v)) for k, v in params.items()
        )
        param_string = "&".join(f"{k}={v}" for k, v in encoded_params)

        signature_base = (
            f"{method.upper()}&"
            f"{self.percent_encode(url)}&"
            f"{self.percent_encode(param_string)}"
        )

        signing_key = f"{self.percent_encode(consumer_secret)}&{self.percent_encode(token_secret)}"

        signature = hmac.new(
            signing_key.encode('utf-8'),
            signature_base.encode('utf-8'),
            hashlib.sha1
        ).digest()

        return base64.b64encode(signature).decode('utf-8')

    def generate_oauth_header(
        self,
        method: str,
        url: str,
        consumer_key: str,
        consumer_secret: str,
        token: Optional[str] = None,
        token_secret: str = "",
        params: Optional[Dict[str, str]] = None,
        callback_url: Optional[str] = None,
        verifier: Optional[str] = None
    ) -> str:
        """
        Generate OAuth 1.0a Authorization header.

        Args:
            method: HTTP method
            url: Request URL without query string
            consumer_key: Consumer key (API key)
            consumer_secret: Consumer secret
            token: OAuth token (request or access token)
            token_secret: OAuth token secret
            params: Query or form parameters to include in the signature.
                JSON and multipart bodies are not signed.
            callback_url: OAuth callback URL (for request token)
            verifier: OAuth verifier (for access token)

        Returns:
            OAuth Authorization header value
        """
        oauth_params = {
            "oauth_consumer_key": consumer_key,
            "oauth_signature_method": "HMAC-SHA1",
            "oauth_timestamp": self.generate_timestamp(),
            "oauth_nonce": self.generate_nonce(),
            "oauth_version": "1.0"
        }

        if token:
            oauth_params["oauth_token"] = token
        if callback_url:
            oauth_params["oauth_callback"] = callback_url
        if verifier:
            oauth_params["oauth_verifier"] = verifier

        all_params = {**oauth_params}
        if params:
            all_params.update(params)

        oauth_params["oauth_signature"] = self.generate_oauth_signature(
            method, url, all_params, consumer_secret, token_secret
        )

        header_parts = [
            f'{self.percent_encode(k)}="{self.percent_encode(v)}"'
            for k, v in sorted(oauth_params.items())
        ]

        return f"OAuth {', '.join(header_parts)}"

    async def _post_for_form(self, url: str, auth_header: str, operation: str) -> Dict[str, str]:
        response = await self._send(
            "POST",
            url,
            headers={
                "Authorization": auth_header,
                "Content-Type": "application/x-www-form-urlencoded"
            },
        )
        self._raise_for_oauth_status(response, operation)
        parsed = parse_qs(response.text)
        return {key: values[0] for key, values in parsed.items() if values}

    async def get_request_token(
        self,
        request_token_url: str,
        consumer_key: str,
        consumer_secret: str,
        callback_url: str
    ) -> Dict[str, str]:
        """
        Step 1 of OAuth 1.0a: Get request token.

        Returns:
            Dictionary with oauth_token, oauth_token_secret and
            oauth_callback_confirmed
        """
        auth_header = self.generate_oauth_header(
            method="POST",
            url=request_token_url,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            callback_url=callback_url
        )

        self.logger.info(f"Requesting {self.platform_name} OAuth request token")

        result = await self._post_for_form(request_token_url, auth_header, "request token")

        if not result.get("oauth_token") or not result.get("oauth_token_secret"):
            raise AuthenticationException(f"{self.platform_name} request token response is missing the token")

        self._log_success("request token", f"token: {result['oauth_token'][:10]}...")
        return result

    def get_authorization_url(
        self,
        authorization_url: str,
        oauth_token: str
    ) -> str:
        """
        Step 2 of OAuth 1.0a: Generate authorization URL.

        Args:
            authorization_url: Platform's authorization endpoint
            oauth_token: Request token from step 1

        Returns:
            Authorization URL to redirect user to
        """
        return f"{authorization_url}?oauth_token={self.percent_encode(oauth_token)}"

    async def get_access_token(
        self,
        access_token_url: str,
        consumer_key: str,
        consumer_secret: str,
        oauth_token: str,
        oauth_token_secret: str,
        oauth_verifier: str
    ) -> Dict[str, str]:
        """
        Step 3 of OAuth 1.0a: Exchange request token for access token.

        Returns:
            Dictionary with oauth_token, oauth_token_secret and the
            platform-specific user_id and screen_name
        """
        auth_header = self.generate_oauth_header(
            method="POST",
            url=access_token_url,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            token=oauth_token,
            token_secret=oauth_token_secret,
            verifier=oauth_verifier
        )

        self.logger.info(f"Exchanging request token for {self.platform_name} access token")

        result = await self._post_for_form(access_token_url, auth_header, "access token")

        if not result.get("oauth_token") or not result.get("oauth_token_secret"):
            raise AuthenticationException(f"{self.platform_name} access token response is missing the token")

        self._log_success("access token", f"user: @{result.get('screen_name', 'unknown')}")
        return result
