"""
LinkedIn Publisher - Publish content to LinkedIn using OAuth

Posts are created through the v2 UGC Posts API, either as the member or
as an organization (company page) the member administers:
- Text: shareMediaCategory NONE
- Link: ARTICLE with the original URL and optional title/description
- Image/Video: register upload -> binary PUT -> post referencing the asset URN
"""
from datetime import datetime
from typing import Optional, Dict, Any, List

from loguru import logger

from config.settings import Settings
from schemas.social import (
    AuthOptions,
    AuthResult,
    Connection,
    OAuthState,
    PostKind,
    ProfileInfo,
    Provider,
    PublishRequest,
    PublishResult,
)
from utils.linkedin_oauth import LinkedInOAuth, LINKEDIN_ORGANIZATION_SCOPES, LINKEDIN_USERINFO_URL
from .base import ProviderAdapter
from .exceptions import (
    AuthenticationException,
    PublisherException,
    TokenExpiredException,
    ValidationException,
)

# Constants
MAX_POST_LENGTH = 3000

LINKEDIN_API_BASE = "https://api.linkedin.com/v2"
REGISTER_UPLOAD_URL = f"{LINKEDIN_API_BASE}/assets?action=registerUpload"
UGC_POSTS_URL = f"{LINKEDIN_API_BASE}/ugcPosts"
UPLOAD_MECHANISM = "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"

MEDIA_RECIPES = {
    PostKind.IMAGE: "urn:li:digitalmediaRecipe:feedshare-image",
    PostKind.VIDEO: "urn:li:digitalmediaRecipe:feedshare-video",
}


class LinkedInPublisher(ProviderAdapter):
    """Publishes content to LinkedIn using OAuth"""

    provider = Provider.LINKEDIN
    platform_name = "LinkedIn"
    token_invalid_codes = frozenset({"65600", "EXPIRED_ACCESS_TOKEN", "REVOKED_ACCESS_TOKEN"})

    def __init__(self, settings: Settings, transport=None):
        super().__init__(settings, transport=transport)
        self.oauth = LinkedInOAuth(
            client_id=settings.LINKEDIN_CLIENT_ID,
            client_secret=settings.LINKEDIN_CLIENT_SECRET,
            redirect_uri=settings.LINKEDIN_REDIRECT_URI,
            timeout=self.timeout,
            transport=transport,
        )

    def is_configured(self) -> bool:
        return self.oauth.is_configured()

    def get_auth_url(self, state: str, options: Optional[AuthOptions] = None) -> str:
        return self.oauth.build_authorization_url(state, options or AuthOptions())

    async def complete_auth(
        self,
        code_or_verifier: str,
        state: OAuthState,
        callback_params: Optional[Dict[str, Any]] = None,
    ) -> AuthResult:
        if not code_or_verifier:
            raise AuthenticationException("LinkedIn callback is missing the authorization code")

        token = await self.oauth.exchange_code(code_or_verifier)
        access_token = token["access_token"]

        # OpenID Connect returns 'sub' which is the LinkedIn member ID
        userinfo = await self.oauth.get_user_info(access_token)
        member_id = userinfo.get("sub")
        if not member_id:
            raise AuthenticationException("LinkedIn did not return a member id")

        granted = token.get("scope", "")
        scope_grant = [s for s in granted.replace(",", " ").split() if s]

        metadata: Dict[str, Any] = {}
        if userinfo.get("picture"):
            metadata["picture"] = userinfo["picture"]

        if any(scope in scope_grant for scope in LINKEDIN_ORGANIZATION_SCOPES):
            try:
                metadata["organizations"] = await self.oauth.get_administered_organizations(access_token)
            except PublisherException as e:
                logger.warning(f"Could not list LinkedIn organizations for user {state.user_id}: {e.message}")

        logger.info(f"LinkedIn connected for user {state.user_id}: {userinfo.get('name')}")

        return AuthResult(connections=[Connection(
            user_id=state.user_id,
            provider=Provider.LINKEDIN,
            access_token=access_token,
            refresh_token=token.get("refresh_token"),
            provider_account_id=member_id,
            display_name=userinfo.get("name"),
            username=userinfo.get("email"),
            expires_at=self._expires_at(token.get("expires_in")),
            scope_grant=scope_grant,
            metadata=metadata,
        )])

    async def refresh_if_needed(self, connection: Connection) -> Connection:
        """Use the refresh token, for apps LinkedIn has enabled refresh for"""
        if not connection.refresh_token or not self.needs_refresh(connection):
            return connection

        try:
            token = await self.oauth.refresh(connection.refresh_token)
        except AuthenticationException as e:
            raise TokenExpiredException(
                f"LinkedIn token could not be refreshed: {e.message}",
                provider_code=e.provider_code,
                status_code=e.status_code,
            ) from e

        logger.info(f"Refreshed LinkedIn token for user {connection.user_id}")
        return connection.model_copy(update={
            "access_token": token["access_token"],
            "refresh_token": token.get("refresh_token") or connection.refresh_token,
            "expires_at": self._expires_at(token.get("expires_in")),
            "updated_at": datetime.utcnow(),
        })

    async def list_organizations(self, connection: Connection) -> List[Dict[str, Any]]:
        """Organizations the member can post as"""
        try:
            return await self.oauth.get_administered_organizations(connection.access_token)
        except AuthenticationException as e:
            if e.status_code == 401:
                raise TokenExpiredException(
                    "LinkedIn token is invalid or expired",
                    provider_code=e.provider_code,
                    status_code=e.status_code,
                ) from e
            raise

    def _headers(self, connection: Connection) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {connection.access_token}",
            "Content-Type": "application/json",
            "X-Restli-Protocol-Version": "2.0.0",
        }

    @staticmethod
    def author_urn(connection: Connection, request: PublishRequest) -> str:
        if request.target_id:
            return f"urn:li:organization:{request.target_id}"
        return f"urn:li:person:{connection.provider_account_id}"

    async def publish(self, connection: Connection, request: PublishRequest) -> PublishResult:
        """
        Publish a post as the member or as request.target_id's organization.

        Raises:
            ValidationException: text over 3000 characters or missing media/link
            TokenExpiredException: token invalid or expired
            ContentRejectedError: LinkedIn refused the post
        """
        text = request.text or ""
        if len(text) > MAX_POST_LENGTH:
            raise ValidationException(
                f"LinkedIn posts are limited to {MAX_POST_LENGTH} characters ({len(text)} given)"
            )

        author = self.author_urn(connection, request)
        logger.info(f"Creating LinkedIn {request.kind} post as {author}")

        async with self._client() as client:
            if request.kind in (PostKind.IMAGE, PostKind.VIDEO):
                if request.media_ref is None:
                    raise ValidationException(f"{request.kind} post requires media")
                asset = await self._upload_asset(client, connection, request, author)
                share = {
                    "shareMediaCategory": "IMAGE" if request.kind == PostKind.IMAGE else "VIDEO",
                    "media": [{"status": "READY", "media": asset}],
                }
            elif request.kind == PostKind.LINK:
                if not request.link or not request.link.url:
                    raise ValidationException("Link post requires a link URL")
                media_item: Dict[str, Any] = {"status": "READY", "originalUrl": request.link.url}
                if request.link.title:
                    media_item["title"] = {"text": request.link.title}
                if request.link.description:
                    media_item["description"] = {"text": request.link.description}
                share = {"shareMediaCategory": "ARTICLE", "media": [media_item]}
            else:
                if not text:
                    raise ValidationException("LinkedIn post text cannot be empty")
                share = {"shareMediaCategory": "NONE"}

            share["shareCommentary"] = {"text": text}
            body = {
                "author": author,
                "lifecycleState": "PUBLISHED",
                "specificContent": {"com.linkedin.ugc.ShareContent": share},
                "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
            }

            response = await self._send(client, "POST", UGC_POSTS_URL, headers=self._headers(connection), json=body)
            self._raise_for_status(response, "post creation")

        post_urn = response.headers.get("x-restli-id")
        if response.content:
            try:
                post_urn = response.json().get("id") or post_urn
            except ValueError:
                pass
        if not post_urn:
            raise PublisherException("LinkedIn did not return a post id")

        return self._success(post_urn, f"https://www.linkedin.com/feed/update/{post_urn}/")

    async def _upload_asset(self, client, connection: Connection, request: PublishRequest, owner: str) -> str:
        """Register an upload, PUT the bytes, and return the asset URN"""
        content, content_type, _ = await self._read_media(client, request.media_ref)

        register_request: Dict[str, Any] = {
            "recipes": [MEDIA_RECIPES[PostKind(request.kind)]],
            "owner": owner,
            "serviceRelationships": [
                {"relationshipType": "OWNER", "identifier": "urn:li:userGeneratedContent"}
            ],
        }
        if request.kind == PostKind.VIDEO:
            register_request["supportedUploadMechanism"] = ["SINGLE_REQUEST_UPLOAD"]
            register_request["fileSize"] = len(content)

        data = await self._request_json(
            client,
            "POST",
            REGISTER_UPLOAD_URL,
            "upload registration",
            headers=self._headers(connection),
            json={"registerUploadRequest": register_request},
        )

        value = data.get("value", {})
        upload_url = value.get("uploadMechanism", {}).get(UPLOAD_MECHANISM, {}).get("uploadUrl")
        asset = value.get("asset")
        if not upload_url or not asset:
            raise PublisherException("LinkedIn upload registration returned no upload URL")

        response = await self._send(
            client,
            "PUT",
            upload_url,
            headers={"Authorization": f"Bearer {connection.access_token}", "Content-Type": content_type},
            content=content,
        )
        self._raise_for_status(response, "media upload")

        logger.info(f"Uploaded {request.kind} to LinkedIn: {asset}")
        return asset

    async def fetch_profile(self, connection: Connection) -> ProfileInfo:
        async with self._client() as client:
            data = await self._request_json(
                client,
                "GET",
                LINKEDIN_USERINFO_URL,
                "profile fetch",
                headers={"Authorization": f"Bearer {connection.access_token}"},
            )

        return ProfileInfo(
            id=data.get("sub") or connection.provider_account_id,
            name=data.get("name"),
            username=data.get("email"),
            picture=data.get("picture"),
        )
