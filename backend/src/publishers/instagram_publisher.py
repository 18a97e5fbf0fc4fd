"""
Instagram Publisher - Publish images with captions to Instagram Business accounts

Instagram publishing uses a 2-step process via Facebook Graph API:
1. Create media container with image URL and caption
2. Publish the container after Instagram processes the image

Requirements:
- Instagram Business or Creator account linked to a Facebook Page
- Image must be publicly accessible via HTTPS (Instagram downloads it)
- Caption max 2,200 characters

Instagram rejects text-only posts. When a post has no image, one is
generated from the text by the injected TextToImage collaborator, if any.

API Documentation:
- https://developers.facebook.com/docs/instagram-api/guides/content-publishing
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import Settings
from schemas.social import (
    Connection,
    PostKind,
    ProfileInfo,
    Provider,
    PublishRequest,
    PublishResult,
)
from services.image_generation_service import ImageGenerationError, TextToImage
from .exceptions import (
    AuthenticationException,
    ContentRejectedError,
    NoBusinessAccountException,
    PlatformUnavailableError,
    PublisherException,
    ValidationException,
)
from .meta_base import MetaGrant, MetaGraphAdapter

MAX_CAPTION_LENGTH = 2200

NO_BUSINESS_ACCOUNT_GUIDANCE = (
    "No Instagram Business or Creator account is linked to your Facebook Pages. "
    "In the Instagram app, switch to a Professional account, then link it to a "
    "Facebook Page (Page settings > Linked accounts) and reconnect."
)


class InstagramPublisher(MetaGraphAdapter):
    """Publishes images with captions to the Instagram account selected at connect time"""

    provider = Provider.INSTAGRAM
    platform_name = "Instagram"

    def __init__(self, settings: Settings, text_to_image: Optional[TextToImage] = None, transport=None):
        super().__init__(settings, redirect_uri=settings.INSTAGRAM_REDIRECT_URI, transport=transport)
        self.text_to_image = text_to_image
        self.poll_interval = settings.INSTAGRAM_CONTAINER_POLL_INTERVAL
        self.max_wait = settings.INSTAGRAM_CONTAINER_MAX_WAIT

    def page_id_for(self, connection: Connection) -> Optional[str]:
        return connection.metadata.get("facebook_page_id")

    async def eligible_pages(self, grant: MetaGrant) -> List[Dict[str, Any]]:
        """Pages with a linked Instagram Business or Creator account"""
        if not grant.pages:
            raise AuthenticationException(
                "No Facebook Pages found. Instagram publishing needs a Facebook Page "
                "linked to an Instagram Business account."
            )

        linked = []
        for page in grant.pages:
            page_token = page.get("access_token")
            if not page_token:
                continue

            try:
                account = await self.oauth.find_instagram_account(str(page["id"]), page_token)
            except AuthenticationException as e:
                logger.warning(f"Instagram lookup failed for Page {page.get('id')}: {e.message}")
                continue

            if account is not None:
                linked.append({**page, "instagram_account": account})

        if not linked:
            page_names = ", ".join(p.get("name") or str(p.get("id")) for p in grant.pages)
            logger.warning(f"No Instagram account linked to any Page: {page_names}")
            raise NoBusinessAccountException(NO_BUSINESS_ACCOUNT_GUIDANCE)

        return linked

    def map_grant(self, grant: MetaGrant, page: Dict[str, Any], user_id: int) -> List[Connection]:
        """The Instagram account plus the Facebook Page it is linked to"""
        account = page["instagram_account"]
        logger.info(
            f"Instagram connected for user {user_id}: @{account.get('username')} via Page {page['id']}"
        )

        connections = [
            Connection(
                user_id=user_id,
                provider=Provider.INSTAGRAM,
                access_token=page["access_token"],
                refresh_token=grant.user_token,
                provider_account_id=str(account["id"]),
                username=account.get("username"),
                display_name=account.get("username"),
                expires_at=grant.expires_at,
                scope_grant=grant.permissions,
                metadata={
                    "facebook_page_id": str(page["id"]),
                    "facebook_page_name": page.get("name"),
                    "account_type": account.get("account_type"),
                },
            )
        ]

        if self.can_publish(page):
            connections.append(self.facebook_connection(grant, page, user_id))
        else:
            logger.info(f"Page {page['id']} does not allow creating content, Facebook left unconnected")

        return connections

    async def publish(self, connection: Connection, request: PublishRequest) -> PublishResult:
        """
        Publish an image with caption to Instagram.

        This is a 2-step process:
        1. Create media container (Instagram downloads and processes image)
        2. Publish container (make post live)

        Raises:
            ValidationException: video/link posts, non-HTTPS or missing image
            ContentRejectedError: Instagram failed to process the image
            TokenExpiredException: token invalid or expired
        """
        if request.kind in (PostKind.VIDEO, PostKind.LINK):
            raise ValidationException(f"{request.kind} posts are not supported for Instagram")

        image_url = await self._resolve_image_url(request)
        if not image_url.startswith("https://"):
            raise ValidationException("Image URL must be HTTPS")

        caption = request.text or ""
        if len(caption) > MAX_CAPTION_LENGTH:
            caption = caption[:MAX_CAPTION_LENGTH]
            logger.warning(f"Caption truncated to {MAX_CAPTION_LENGTH} characters")

        ig_account_id = connection.provider_account_id
        access_token = connection.access_token

        async with self._client() as client:
            # Step 1: Create media container
            container = await self._request_json(
                client,
                "POST",
                f"{self.graph_base}/{ig_account_id}/media",
                "container creation",
                data={"image_url": image_url, "caption": caption, "access_token": access_token},
            )
            container_id = container.get("id")
            if not container_id:
                raise PublisherException("Instagram did not return a container id")
            logger.info(f"Created Instagram container: {container_id}")

            # Step 2: Wait for Instagram to process the image
            await self._wait_for_container(client, container_id, access_token)

            # Step 3: Publish container
            published = await self._request_json(
                client,
                "POST",
                f"{self.graph_base}/{ig_account_id}/media_publish",
                "container publish",
                data={"creation_id": container_id, "access_token": access_token},
            )
            media_id = published.get("id")
            if not media_id:
                raise PublisherException("Instagram did not return a media id")

            # Step 4: Get permalink
            permalink = await self._get_permalink(client, media_id, access_token)

        return self._success(media_id, permalink)

    async def _resolve_image_url(self, request: PublishRequest) -> str:
        media = request.media_ref
        if media is not None and media.url:
            return media.url
        if media is not None and media.path:
            raise ValidationException("Instagram needs a public image URL; a local file cannot be fetched")

        if self.text_to_image is None:
            raise ValidationException("Instagram posts require an image and no image generator is configured")
        if not request.text:
            raise ValidationException("Instagram posts require an image or text to generate one from")

        logger.info("No image supplied for Instagram post, generating one from the text")
        try:
            return await self.text_to_image.generate(request.text)
        except ImageGenerationError as e:
            raise PlatformUnavailableError(f"Could not generate an image for the Instagram post: {str(e)}") from e

    async def _wait_for_container(self, client, container_id: str, access_token: str) -> None:
        """
        Poll the container until Instagram finishes processing it.

        An unknown status after max_wait is not fatal; the publish call
        reports the real problem if the container never became ready.
        """
        deadline = time.monotonic() + self.max_wait

        while time.monotonic() < deadline:
            try:
                result = await self._request_json(
                    client,
                    "GET",
                    f"{self.graph_base}/{container_id}",
                    "container status",
                    params={"fields": "status_code", "access_token": access_token},
                )
            except PlatformUnavailableError as e:
                logger.warning(f"Can't check container status, proceeding: {e.message}")
                return

            status = result.get("status_code")
            if status == "FINISHED":
                logger.info("Container processing finished")
                return
            if status == "ERROR":
                raise ContentRejectedError("Instagram could not process the image")

            logger.debug(f"Container {container_id} status: {status}")
            await asyncio.sleep(self.poll_interval)

        logger.warning(f"Container status check timeout after {self.max_wait}s, proceeding...")

    async def _get_permalink(self, client, media_id: str, access_token: str) -> Optional[str]:
        try:
            result = await self._request_json(
                client,
                "GET",
                f"{self.graph_base}/{media_id}",
                "permalink lookup",
                params={"fields": "permalink", "access_token": access_token},
            )
            return result.get("permalink")
        except PublisherException as e:
            logger.warning(f"Failed to get permalink: {e.message}")
            return None

    async def fetch_profile(self, connection: Connection) -> ProfileInfo:
        async with self._client() as client:
            data = await self._request_json(
                client,
                "GET",
                f"{self.graph_base}/{connection.provider_account_id}",
                "profile fetch",
                params={"fields": "username,name,profile_picture_url", "access_token": connection.access_token},
            )

        return ProfileInfo(
            id=data.get("id") or connection.provider_account_id,
            name=data.get("name") or data.get("username"),
            username=data.get("username"),
            picture=data.get("profile_picture_url"),
        )
