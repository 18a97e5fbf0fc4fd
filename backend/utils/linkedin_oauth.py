"""
LinkedIn OAuth 2.0 Utilities

This module provides the OAuth 2.0 flow implementation for LinkedIn using
the application's client credentials.

OAuth Flow:
1. Authorization: Redirect user to LinkedIn OAuth URL
2. Token Exchange: Exchange authorization code for access token
3. User Info: Fetch user profile information (OpenID Connect /userinfo)
4. Organizations: Optionally list company pages the member administers

API Documentation:
- https://learn.microsoft.com/en-us/linkedin/shared/authentication/authorization-code-flow
- https://learn.microsoft.com/en-us/linkedin/consumer/integrations/self-serve/share-on-linkedin

LinkedIn deprecated r_liteprofile and r_basicprofile in favor of OpenID Connect,
so this module uses the openid, profile and email scopes.
"""
import httpx
from typing import Optional, Dict, Any, List

from utils.oauth_base import OAuth2Base
from src.publishers.exceptions import ConfigurationException
from schemas.social import AuthOptions


# ============================================================================
# LinkedIn OAuth Configuration
# ============================================================================

# LinkedIn API endpoints
LINKEDIN_AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
LINKEDIN_USERINFO_URL = "https://api.linkedin.com/v2/userinfo"
LINKEDIN_ORGANIZATION_ACLS_URL = "https://api.linkedin.com/v2/organizationAcls"

# Products required in LinkedIn App:
# 1. "Sign In with LinkedIn using OpenID Connect" - for openid, profile, email
# 2. "Share on LinkedIn" - for w_member_social
LINKEDIN_SCOPES = [
    "openid",           # Required for OpenID Connect
    "profile",          # Read basic profile (name, photo, etc.)
    "email",            # Primary email address, stored as the username
    "w_member_social"   # Permission to share posts on behalf of user
]

# Requires the Community Management API product
LINKEDIN_ORGANIZATION_SCOPES = [
    "w_organization_social",
    "r_organization_admin",
]

ORGANIZATION_PROJECTION = (
    "(elements*(organization~(localizedName,vanityName,logoV2(original~:playableStreams))))"
)


# ============================================================================
# LinkedIn OAuth 2.0 Implementation
# ============================================================================

class LinkedInOAuth(OAuth2Base):
    """
    LinkedIn OAuth 2.0 implementation using base class.
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: str,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(platform_name="LinkedIn", timeout=timeout, transport=transport)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def get_platform_config(self) -> Dict[str, Any]:
        """
        Get LinkedIn-specific OAuth configuration.

        Returns:
            Configuration dictionary for OAuth2Base
        """
        return {
            "auth_url": LINKEDIN_AUTH_URL,
            "token_url": LINKEDIN_TOKEN_URL,
            "userinfo_url": LINKEDIN_USERINFO_URL,
            "scopes": LINKEDIN_SCOPES,
            "scope_separator": " ",  # LinkedIn uses space-separated scopes
            "supports_refresh": True,
        }

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationException(
                "LinkedIn OAuth is not configured. Set LINKEDIN_CLIENT_ID and LINKEDIN_CLIENT_SECRET."
            )

    def scopes_for(self, options: AuthOptions) -> List[str]:
        scopes = self.get_scopes()
        if options.include_organizations:
            scopes.extend(LINKEDIN_ORGANIZATION_SCOPES)
        return scopes

    def build_authorization_url(self, state: str, options: AuthOptions) -> str:
        self._require_configured()
        return self.get_authorization_url(self.client_id, self.redirect_uri, state, self.scopes_for(options))

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange LinkedIn authorization code for access token.

        Returns:
            {"access_token": "...", "expires_in": 5184000, "scope": "...",
             "refresh_token": "..." (only for apps with refresh enabled)}
        """
        self._require_configured()
        return await self.exchange_code_for_token(code, self.client_id, self.client_secret, self.redirect_uri)

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        self._require_configured()
        return await self.refresh_access_token(refresh_token, self.client_id, self.client_secret)

    async def get_administered_organizations(self, access_token: str) -> List[Dict[str, Any]]:
        """
        List organizations (company pages) the member administers.

        Returns:
            [{"id", "urn", "name", "vanityName", "logoUrl"}, ...]
        """
        data = await self._make_http_request(
            "GET",
            LINKEDIN_ORGANIZATION_ACLS_URL,
            "organization listing",
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-Restli-Protocol-Version": "2.0.0",
            },
            params={
                "q": "roleAssignee",
                "role": "ADMINISTRATOR",
                "projection": ORGANIZATION_PROJECTION,
            },
        )

        organizations = []
        for element in data.get("elements", []):
            urn = element.get("organization", "")
            details = element.get("organization~", {})
            logo_url = None
            streams = details.get("logoV2", {}).get("original~", {}).get("elements", [])
            if streams:
                identifiers = streams[0].get("identifiers", [])
                if identifiers:
                    logo_url = identifiers[0].get("identifier")

            organizations.append({
                "id": urn.rsplit(":", 1)[-1],
                "urn": urn,
                "name": details.get("localizedName"),
                "vanityName": details.get("vanityName"),
                "logoUrl": logo_url,
            })

        self.logger.info(f"Found {len(organizations)} administered LinkedIn organizations")
        return organizations
