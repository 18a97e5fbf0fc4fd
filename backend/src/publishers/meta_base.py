"""
Shared Facebook Login handling for the Facebook and Instagram adapters

One Facebook Login grant yields one long-lived user token, the Pages the
user manages (each with its own page token) and the permissions actually
granted. After the code exchange each adapter filters the Pages it can
use and maps the grant onto Connections:

- exactly one eligible Page: the Connections are returned straight away
- several eligible Pages: the choices are returned and the grant waits
  for the user to pick one (connect_page)

A Facebook login maps to the Facebook Page connection only. An Instagram
login maps to the Instagram connection plus the Facebook connection for
the same Page.
"""
from abc import abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import Settings
from schemas.social import AuthOptions, AuthResult, Connection, OAuthState, PageChoice, Provider
from utils.facebook_oauth import MetaGraphOAuth
from .base import ProviderAdapter
from .exceptions import AuthenticationException, TokenExpiredException, ValidationException


@dataclass
class MetaGrant:
    """Everything one Facebook Login code exchange resolves to"""
    user_token: str
    expires_at: Optional[datetime]
    pages: List[Dict[str, Any]] = field(default_factory=list)
    permissions: List[str] = field(default_factory=list)

    def page(self, page_id: str) -> Optional[Dict[str, Any]]:
        return next((p for p in self.pages if str(p.get("id")) == str(page_id)), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_token": self.user_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "pages": self.pages,
            "permissions": self.permissions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetaGrant":
        expires_at = data.get("expires_at")
        return cls(
            user_token=data["user_token"],
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            pages=data.get("pages") or [],
            permissions=data.get("permissions") or [],
        )


class MetaGraphAdapter(ProviderAdapter):
    """Base for adapters authorized through Facebook Login"""

    # 190: invalid/expired token, 102: session expired
    token_invalid_codes = frozenset({"190", "102"})
    # 4: app rate limit, 17: user rate limit, 32: page rate limit, 613: call limit
    rate_limit_codes = frozenset({"4", "17", "32", "613"})

    def __init__(self, settings: Settings, redirect_uri: str, transport=None):
        super().__init__(settings, transport=transport)
        self.graph_base = settings.graph_api_base
        self.oauth = MetaGraphOAuth(
            platform_name=self.platform_name,
            app_id=settings.FACEBOOK_APP_ID,
            app_secret=settings.FACEBOOK_APP_SECRET,
            redirect_uri=redirect_uri,
            graph_version=settings.META_GRAPH_API_VERSION,
            timeout=self.timeout,
            transport=transport,
        )

    def is_configured(self) -> bool:
        return self.oauth.is_configured()

    def get_auth_url(self, state: str, options: Optional[AuthOptions] = None) -> str:
        return self.oauth.build_authorization_url(state, options or AuthOptions())

    # ------------------------------------------------------------------
    # Grant resolution and mapping
    # ------------------------------------------------------------------

    async def resolve_grant(self, code: str) -> MetaGrant:
        """Exchange the code for a long-lived user token and list its Pages"""
        if not code:
            raise AuthenticationException(f"{self.platform_name} callback is missing the authorization code")

        token = await self.oauth.exchange_code(code)
        return await self.grant_for_user_token(token["access_token"], self._expires_at(token.get("expires_in")))

    async def grant_for_user_token(self, user_token: str, expires_at: Optional[datetime]) -> MetaGrant:
        pages = await self.oauth.get_pages(user_token)
        permissions = await self.oauth.get_granted_permissions(user_token)
        return MetaGrant(user_token=user_token, expires_at=expires_at, pages=pages, permissions=permissions)

    @abstractmethod
    async def eligible_pages(self, grant: MetaGrant) -> List[Dict[str, Any]]:
        """
        Pages of the grant this provider can connect.

        Raises:
            AuthenticationException: no usable Page
            NoBusinessAccountException: Instagram only, no Page has a linked account
        """

    @abstractmethod
    def map_grant(self, grant: MetaGrant, page: Dict[str, Any], user_id: int) -> List[Connection]:
        """Connections the grant produces once the Page is known"""

    async def complete_auth(
        self,
        code_or_verifier: str,
        state: OAuthState,
        callback_params: Optional[Dict[str, Any]] = None,
    ) -> AuthResult:
        grant = await self.resolve_grant(code_or_verifier)
        pages = await self.eligible_pages(grant)

        if len(pages) == 1:
            return AuthResult(connections=self.map_grant(grant, pages[0], state.user_id))

        logger.info(
            f"{len(pages)} Facebook Pages qualify for {self.platform_name} "
            f"for user {state.user_id}, waiting for a selection"
        )
        return self._offer(replace(grant, pages=pages))

    async def page_choices(self, connection: Connection) -> AuthResult:
        """
        Offer the eligible Pages again for an existing connection.

        Uses the stored long-lived user token, so the user can switch Pages
        without going through Facebook Login again.
        """
        if not connection.refresh_token:
            raise TokenExpiredException(f"{self.platform_name} connection has no user token; reconnect required")

        try:
            grant = await self.grant_for_user_token(connection.refresh_token, connection.expires_at)
        except AuthenticationException as e:
            raise TokenExpiredException(
                f"{self.platform_name} user token was rejected: {e.message}",
                provider_code=e.provider_code,
                status_code=e.status_code,
            ) from e

        pages = await self.eligible_pages(grant)
        return self._offer(replace(grant, pages=pages))

    def connect_page(self, pending_grant: Dict[str, Any], page_id: str, user_id: int) -> List[Connection]:
        """Map a held grant onto Connections for the Page the user picked"""
        grant = MetaGrant.from_dict(pending_grant)
        page = grant.page(page_id)
        if page is None:
            raise ValidationException(f"Page {page_id} is not one of the Pages offered for {self.platform_name}")

        logger.info(f"User {user_id} selected Facebook Page {page_id} for {self.platform_name}")
        return self.map_grant(grant, page, user_id)

    def _offer(self, grant: MetaGrant) -> AuthResult:
        return AuthResult(
            page_choices=[self.page_choice(page) for page in grant.pages],
            pending_grant=grant.to_dict(),
        )

    @staticmethod
    def page_choice(page: Dict[str, Any]) -> PageChoice:
        account = page.get("instagram_account") or {}
        return PageChoice(
            id=str(page["id"]),
            name=page.get("name"),
            category=page.get("category"),
            instagram_account_id=account.get("id"),
            instagram_username=account.get("username"),
        )

    @staticmethod
    def can_publish(page: Dict[str, Any]) -> bool:
        """Pages without a task list predate task-based roles and are allowed"""
        tasks = page.get("tasks")
        return not tasks or "CREATE_CONTENT" in tasks

    @staticmethod
    def facebook_connection(grant: MetaGrant, page: Dict[str, Any], user_id: int) -> Connection:
        """Facebook Page connection, posting with the page token"""
        return Connection(
            user_id=user_id,
            provider=Provider.FACEBOOK,
            access_token=page["access_token"],
            refresh_token=grant.user_token,
            provider_account_id=str(page["id"]),
            display_name=page.get("name"),
            expires_at=grant.expires_at,
            scope_grant=grant.permissions,
            metadata={"page_category": page.get("category")},
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def page_id_for(self, connection: Connection) -> Optional[str]:
        """Facebook Page whose token this connection publishes with"""
        return connection.provider_account_id

    async def refresh_if_needed(self, connection: Connection) -> Connection:
        """
        Extend the long-lived user token and re-read the page token.

        Meta has no refresh token; a still-valid long-lived token is
        exchanged for a new one instead.
        """
        if not connection.refresh_token or not self.needs_refresh(connection):
            return connection

        page_id = self.page_id_for(connection)

        try:
            token = await self.oauth.exchange_for_long_lived_token(connection.refresh_token)
            pages = await self.oauth.get_pages(token["access_token"])
        except AuthenticationException as e:
            raise TokenExpiredException(
                f"{self.platform_name} token could not be extended: {e.message}",
                provider_code=e.provider_code,
                status_code=e.status_code,
            ) from e

        page = next((p for p in pages if str(p.get("id")) == str(page_id)), None)
        if page is None or not page.get("access_token"):
            raise TokenExpiredException(
                f"{self.platform_name} Page {page_id} is no longer accessible; reconnect required"
            )

        logger.info(f"Extended {self.platform_name} token for user {connection.user_id}")
        return connection.model_copy(update={
            "access_token": page["access_token"],
            "refresh_token": token["access_token"],
            "expires_at": self._expires_at(token.get("expires_in")),
            "updated_at": datetime.utcnow(),
        })
