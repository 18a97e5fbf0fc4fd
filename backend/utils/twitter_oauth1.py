"""
Twitter OAuth 1.0a Utilities - Centralized Authentication

This module implements Twitter OAuth 1.0a (3-legged OAuth) with ONE
centralized Twitter app (API Key + Secret) authenticating all users.

OAuth 1.0a Flow:
1. Request Token: Get temporary credentials from Twitter (network call,
   needed before the consent URL exists)
2. User Authorization: Redirect user to Twitter for consent
3. Access Token: Exchange temporary credentials for permanent user tokens

User access tokens never expire unless revoked, so there is no refresh step.

Documentation: https://developer.twitter.com/en/docs/authentication/oauth-1-0a
"""

import httpx
from typing import Optional, Dict, Any

from utils.oauth_base import OAuth1Base
from src.publishers.exceptions import AuthenticationException, ConfigurationException


# Twitter OAuth endpoints
TWITTER_REQUEST_TOKEN_URL = "https://api.twitter.com/oauth/request_token"
TWITTER_AUTHORIZE_URL = "https://api.twitter.com/oauth/authorize"
TWITTER_ACCESS_TOKEN_URL = "https://api.twitter.com/oauth/access_token"

# Twitter API endpoints
TWITTER_VERIFY_CREDENTIALS_URL = "https://api.twitter.com/1.1/account/verify_credentials.json"


def is_placeholder_credential(value: Optional[str]) -> bool:
    """
    Check if a credential value is a placeholder (not real).

    Args:
        value: Credential value to check

    Returns:
        True if value is a placeholder, False if it's likely real
    """
    if not value:
        return True

    placeholders = [
        "your-",
        "your_",
        "placeholder",
        "example",
        "xxx",
        "replace-me",
        "change-me",
        "add-your",
        "insert-",
    ]

    value_lower = value.lower()
    return any(placeholder in value_lower for placeholder in placeholders)


class TwitterOAuth1(OAuth1Base):
    """Twitter OAuth 1.0a handshake for the application's consumer credentials"""

    def __init__(
        self,
        api_key: Optional[str],
        api_secret: Optional[str],
        callback_url: str,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(platform_name="Twitter", timeout=timeout, transport=transport)
        self.api_key = api_key
        self.api_secret = api_secret
        self.callback_url = callback_url

    def get_platform_config(self) -> Dict[str, Any]:
        return {
            "request_token_url": TWITTER_REQUEST_TOKEN_URL,
            "authorize_url": TWITTER_AUTHORIZE_URL,
            "access_token_url": TWITTER_ACCESS_TOKEN_URL,
            "supports_refresh": False,
        }

    def is_configured(self) -> bool:
        return not (
            is_placeholder_credential(self.api_key) or is_placeholder_credential(self.api_secret)
        )

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationException(
                "Twitter OAuth is not configured. Set TWITTER_API_KEY and TWITTER_API_SECRET."
            )

    async def start_authorization(self, state: str) -> Dict[str, str]:
        """
        Obtain a request token and build the consent URL.

        The state rides on the callback URL so the callback can be matched
        back to the originating user.

        Returns:
            Dictionary with authorization_url, oauth_token and oauth_token_secret

        Raises:
            ConfigurationException: missing credentials, rejected consumer
                key, or callback URL not approved in the Twitter app
        """
        self._require_configured()

        separator = "&" if "?" in self.callback_url else "?"
        callback_url = f"{self.callback_url}{separator}state={state}"

        try:
            token = await self.get_request_token(
                TWITTER_REQUEST_TOKEN_URL, self.api_key, self.api_secret, callback_url
            )
        except AuthenticationException as e:
            if "callback url not approved" in e.message.lower() or e.status_code in (401, 403):
                raise ConfigurationException(
                    f"Twitter rejected the app configuration: {e.message}. "
                    f"Check the API key and that {self.callback_url} is an approved callback URL.",
                    provider_code=e.provider_code,
                    status_code=e.status_code,
                ) from e
            raise

        return {
            "authorization_url": self.get_authorization_url(TWITTER_AUTHORIZE_URL, token["oauth_token"]),
            "oauth_token": token["oauth_token"],
            "oauth_token_secret": token["oauth_token_secret"],
        }

    async def finish_authorization(
        self,
        oauth_token: str,
        oauth_token_secret: str,
        oauth_verifier: str,
    ) -> Dict[str, str]:
        """
        Exchange the authorized request token for the user's access token.

        Returns:
            Dictionary with oauth_token, oauth_token_secret, user_id, screen_name
        """
        self._require_configured()
        return await self.get_access_token(
            TWITTER_ACCESS_TOKEN_URL,
            self.api_key,
            self.api_secret,
            oauth_token,
            oauth_token_secret,
            oauth_verifier,
        )

    def sign(
        self,
        method: str,
        url: str,
        access_token: str,
        access_token_secret: str,
        params: Optional[Dict[str, str]] = None,
    ) -> str:
        """Authorization header for an API call made with a user's access token"""
        self._require_configured()
        return self.generate_oauth_header(
            method=method,
            url=url,
            consumer_key=self.api_key,
            consumer_secret=self.api_secret,
            token=access_token,
            token_secret=access_token_secret,
            params=params,
        )
