"""
Facebook Login (Meta Graph API) OAuth Utilities

One Facebook app and one Facebook Login flow serve two providers:
- Facebook: publish to a Facebook Page the user manages
- Instagram: publish to the Instagram Business/Creator account linked to a Page

OAuth Flow:
1. Authorization: Redirect user to the Facebook dialog (comma-separated scopes)
2. Token Exchange: GET the short-lived user token for the authorization code
3. Upgrade: exchange it for a long-lived (~60 day) user token
4. Discovery: list the user's Pages (each with its own page token) and,
   for Instagram, the Business Account linked to each Page

API Documentation:
- https://developers.facebook.com/docs/facebook-login/guides/advanced/manual-flow
- https://developers.facebook.com/docs/instagram-api/getting-started
"""
import httpx
from typing import Optional, Dict, Any, List

from utils.oauth_base import OAuth2Base
from src.publishers.exceptions import AuthenticationException, ConfigurationException
from schemas.social import AuthOptions


# ============================================================================
# Facebook / Instagram OAuth Configuration
# ============================================================================

FACEBOOK_PAGE_SCOPES = [
    "pages_read_engagement",
    "pages_manage_posts",
    "pages_show_list",
]

INSTAGRAM_SCOPES = FACEBOOK_PAGE_SCOPES + [
    "instagram_basic",
    "instagram_content_publish",
]

BUSINESS_MANAGEMENT_SCOPE = "business_management"

# Facebook reports the lifetime of the code-exchange token loosely; 60 days is the documented default
DEFAULT_TOKEN_LIFETIME_SECONDS = 5184000


class MetaGraphOAuth(OAuth2Base):
    """
    Facebook Login OAuth 2.0 implementation shared by Facebook and Instagram.
    """

    def __init__(
        self,
        platform_name: str,
        app_id: Optional[str],
        app_secret: Optional[str],
        redirect_uri: str,
        graph_version: str = "v18.0",
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(platform_name=platform_name, timeout=timeout, transport=transport)
        self.app_id = app_id
        self.app_secret = app_secret
        self.redirect_uri = redirect_uri
        self.graph_version = graph_version
        self.graph_base = f"https://graph.facebook.com/{graph_version}"

    def get_platform_config(self) -> Dict[str, Any]:
        """
        Get Facebook Login OAuth configuration.

        Returns:
            Configuration dictionary for OAuth2Base
        """
        return {
            "auth_url": f"https://www.facebook.com/{self.graph_version}/dialog/oauth",
            "token_url": f"{self.graph_base}/oauth/access_token",
            "scopes": INSTAGRAM_SCOPES if self.platform_name == "Instagram" else FACEBOOK_PAGE_SCOPES,
            "scope_separator": ",",  # Facebook uses comma-separated scopes
            "token_method": "GET",
            "supports_refresh": False,  # Long-lived tokens are re-exchanged instead
        }

    def is_configured(self) -> bool:
        return bool(self.app_id and self.app_secret)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationException(
                f"{self.platform_name} OAuth is not configured. Set FACEBOOK_APP_ID and FACEBOOK_APP_SECRET."
            )

    def scopes_for(self, options: AuthOptions) -> List[str]:
        """Scopes for this provider, adding business_management where needed"""
        scopes = self.get_scopes()
        if self.platform_name == "Instagram" or options.include_business_management:
            scopes.append(BUSINESS_MANAGEMENT_SCOPE)
        return scopes

    def build_authorization_url(self, state: str, options: AuthOptions) -> str:
        self._require_configured()
        return self.get_authorization_url(self.app_id, self.redirect_uri, state, self.scopes_for(options))

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange authorization code for a long-lived user token.

        Returns:
            {"access_token": "...", "expires_in": 5183944}
        """
        self._require_configured()
        short_lived = await self.exchange_code_for_token(code, self.app_id, self.app_secret, self.redirect_uri)
        return await self.exchange_for_long_lived_token(short_lived["access_token"])

    async def exchange_for_long_lived_token(self, user_token: str) -> Dict[str, Any]:
        """
        Exchange a user token for a long-lived token (60 days).

        Also used to extend a long-lived token before it expires.
        """
        self._require_configured()
        data = await self._make_http_request(
            "GET",
            f"{self.graph_base}/oauth/access_token",
            "long-lived token exchange",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "fb_exchange_token": user_token,
            },
        )
        if not data.get("access_token"):
            raise AuthenticationException("Facebook did not return a long-lived token")

        data.setdefault("expires_in", DEFAULT_TOKEN_LIFETIME_SECONDS)
        self._log_success("long-lived token exchange", f"expires in {data['expires_in']}s")
        return data

    async def get_pages(self, user_token: str) -> List[Dict[str, Any]]:
        """
        Get Facebook Pages managed by the user.

        Returns:
            [{"id", "name", "category", "access_token", "tasks"}, ...]
        """
        data = await self._make_http_request(
            "GET",
            f"{self.graph_base}/me/accounts",
            "page listing",
            params={
                "fields": "id,name,category,access_token,tasks",
                "access_token": user_token,
            },
        )
        pages = data.get("data", [])
        self.logger.info(f"Found {len(pages)} Facebook Pages")
        return pages

    async def get_granted_permissions(self, user_token: str) -> List[str]:
        """Permissions the user actually granted (users may untick scopes)"""
        data = await self._make_http_request(
            "GET",
            f"{self.graph_base}/me/permissions",
            "permission listing",
            params={"access_token": user_token},
        )
        return [
            item["permission"]
            for item in data.get("data", [])
            if item.get("status") == "granted" and item.get("permission")
        ]

    async def find_instagram_account(self, page_id: str, page_token: str) -> Optional[Dict[str, Any]]:
        """
        Get the Instagram Business Account linked to a Facebook Page.

        Returns:
            {"id", "username", "account_type"} or None if no account is linked
        """
        data = await self._make_http_request(
            "GET",
            f"{self.graph_base}/{page_id}",
            "Instagram account lookup",
            params={
                "fields": "name,instagram_business_account{id,username}",
                "access_token": page_token,
            },
        )
        ig_account = data.get("instagram_business_account")
        if not ig_account or not ig_account.get("id"):
            self.logger.debug(f"No Instagram account linked to page {page_id}")
            return None

        account = {
            "id": ig_account["id"],
            "username": ig_account.get("username"),
            "account_type": "BUSINESS",
        }

        # account_type is not exposed for every account; username alone is enough
        try:
            details = await self._make_http_request(
                "GET",
                f"{self.graph_base}/{ig_account['id']}",
                "Instagram account details",
                params={"fields": "username,account_type", "access_token": page_token},
            )
            account["username"] = details.get("username") or account["username"]
            account["account_type"] = details.get("account_type") or account["account_type"]
        except AuthenticationException as e:
            self.logger.warning(f"Instagram account_type unavailable for {ig_account['id']}: {e.message}")

        self.logger.info(f"Found Instagram account: {account['id']}")
        return account
