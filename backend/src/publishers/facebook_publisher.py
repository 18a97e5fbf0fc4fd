"""
Facebook Publisher - Publish content to a Facebook Page via the Graph API

Supports:
- Text posts and link posts with preview overrides (/feed)
- Single image, uploaded from a local file or referenced by URL (/photos)
- Single video, uploaded from a local file or referenced by URL (/videos on graph-video)

Posts are made with the Page access token, never the user token.
"""
import os
from typing import Any, Dict, List

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
from .exceptions import AuthenticationException, PublisherException, ValidationException
from .meta_base import MetaGrant, MetaGraphAdapter

# Limits
MAX_IMAGE_SIZE_BYTES = 10 * 1024 * 1024
MAX_VIDEO_SIZE_BYTES = 200 * 1024 * 1024


class FacebookPublisher(MetaGraphAdapter):
    """Publishes to the Facebook Page selected at connect time"""

    provider = Provider.FACEBOOK
    platform_name = "Facebook"

    def __init__(self, settings: Settings, transport=None):
        super().__init__(settings, redirect_uri=settings.FACEBOOK_REDIRECT_URI, transport=transport)
        self.video_base = f"https://graph-video.facebook.com/{settings.META_GRAPH_API_VERSION}"

    async def eligible_pages(self, grant: MetaGrant) -> List[Dict[str, Any]]:
        if not grant.pages:
            raise AuthenticationException(
                "No Facebook Pages found. Create a Facebook Page or grant access to one, then reconnect."
            )

        publishable = [page for page in grant.pages if self.can_publish(page) and page.get("access_token")]
        if not publishable:
            raise AuthenticationException(
                "None of your Facebook Pages allow this app to create content. "
                "Check your Page role and reconnect."
            )
        return publishable

    def map_grant(self, grant: MetaGrant, page: Dict[str, Any], user_id: int) -> List[Connection]:
        logger.info(f"Facebook connected for user {user_id}: Page {page['id']} ({page.get('name')})")
        return [self.facebook_connection(grant, page, user_id)]

    async def publish(self, connection: Connection, request: PublishRequest) -> PublishResult:
        """
        Publish to the connected Page.

        A temporary local media file is removed once the attempt is over,
        whether it succeeded or not.

        Raises:
            ValidationException: missing content or media over the size limit
            TokenExpiredException: Page token invalid (Graph code 190)
            ContentRejectedError: Facebook refused the post
        """
        try:
            if request.kind == PostKind.VIDEO:
                return await self._publish_video(connection, request)
            if request.kind == PostKind.IMAGE:
                return await self._publish_photo(connection, request)
            if request.kind == PostKind.LINK:
                return await self._publish_link(connection, request)
            return await self._publish_text(connection, request)
        finally:
            self.discard_media(request.media_ref)

    async def _publish_text(self, connection: Connection, request: PublishRequest) -> PublishResult:
        if not request.text:
            raise ValidationException("Facebook post text cannot be empty")

        data = await self._post_to_feed(connection, {"message": request.text})
        return self._success(data["id"], f"https://www.facebook.com/{data['id']}")

    async def _publish_link(self, connection: Connection, request: PublishRequest) -> PublishResult:
        if not request.link or not request.link.url:
            raise ValidationException("Link post requires a link URL")

        payload = {"message": request.text, "link": request.link.url}
        if request.link.title:
            payload["name"] = request.link.title
        if request.link.description:
            payload["description"] = request.link.description

        data = await self._post_to_feed(connection, payload)
        return self._success(data["id"], f"https://www.facebook.com/{data['id']}")

    async def _post_to_feed(self, connection: Connection, payload: Dict[str, Any]) -> Dict[str, Any]:
        payload["access_token"] = connection.access_token
        async with self._client() as client:
            data = await self._request_json(
                client,
                "POST",
                f"{self.graph_base}/{connection.provider_account_id}/feed",
                "feed post",
                data=payload,
            )
        if not data.get("id"):
            raise PublisherException("Facebook did not return a post id")
        return data

    async def _publish_photo(self, connection: Connection, request: PublishRequest) -> PublishResult:
        media = self._require_media(request, "Image", MAX_IMAGE_SIZE_BYTES)
        url = f"{self.graph_base}/{connection.provider_account_id}/photos"
        form = {"message": request.text, "access_token": connection.access_token}

        async with self._client() as client:
            if media.path:
                with open(media.path, "rb") as f:
                    data = await self._request_json(
                        client,
                        "POST",
                        url,
                        "photo upload",
                        data=form,
                        files={"source": (self._filename(media), f, media.content_type or "image/jpeg")},
                    )
            else:
                data = await self._request_json(client, "POST", url, "photo upload", data={**form, "url": media.url})

        photo_id = data.get("id")
        if not photo_id:
            raise PublisherException("Facebook did not return a photo id")

        post_id = data.get("post_id")
        if post_id:
            permalink = f"https://www.facebook.com/{post_id}"
        else:
            permalink = f"https://www.facebook.com/photo.php?fbid={photo_id}"

        return self._success(photo_id, permalink)

    async def _publish_video(self, connection: Connection, request: PublishRequest) -> PublishResult:
        media = self._require_media(request, "Video", MAX_VIDEO_SIZE_BYTES)
        page_id = connection.provider_account_id
        url = f"{self.video_base}/{page_id}/videos"
        form = {"description": request.text, "access_token": connection.access_token}

        async with self._client() as client:
            if media.path:
                with open(media.path, "rb") as f:
                    data = await self._request_json(
                        client,
                        "POST",
                        url,
                        "video upload",
                        data=form,
                        files={"source": (self._filename(media), f, media.content_type or "video/mp4")},
                    )
            else:
                data = await self._request_json(
                    client, "POST", url, "video upload", data={**form, "file_url": media.url}
                )

        video_id = data.get("id")
        if not video_id:
            raise PublisherException("Facebook did not return a video id")

        return self._success(video_id, f"https://www.facebook.com/{page_id}/videos/{video_id}")

    def _require_media(self, request: PublishRequest, label: str, max_size: int):
        media = request.media_ref
        if media is None or not (media.path or media.url):
            raise ValidationException(f"{label} post requires media")

        if media.path:
            if not os.path.exists(media.path):
                raise ValidationException(f"{label} file not found: {media.path}")
            size = self.media_size(media)
            if size is not None and size > max_size:
                raise ValidationException(
                    f"{label} is {size / (1024 * 1024):.1f}MB; Facebook allows at most {max_size // (1024 * 1024)}MB"
                )
        return media

    @staticmethod
    def _filename(media) -> str:
        return media.filename or os.path.basename(media.path)

    async def fetch_profile(self, connection: Connection) -> ProfileInfo:
        async with self._client() as client:
            data = await self._request_json(
                client,
                "GET",
                f"{self.graph_base}/{connection.provider_account_id}",
                "profile fetch",
                params={"fields": "name,picture", "access_token": connection.access_token},
            )

        return ProfileInfo(
            id=data.get("id") or connection.provider_account_id,
            name=data.get("name"),
            picture=data.get("picture", {}).get("data", {}).get("url"),
        )
