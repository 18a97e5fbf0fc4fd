"""
Social Account Endpoints - Connect, Publish, Status

One router serves every provider under /api/social/{provider}/...

Usage in main.py:
```python
from api.social import router as social_router
app.include_router(social_router, prefix="/api/social", tags=["social"])
```

OAuth Flow:
1. Frontend calls GET /{provider}/auth -> {success, authUrl}
2. User authorizes on the provider consent screen
3. Provider redirects to GET /{provider}/callback
4. State is consumed, tokens exchanged and the connection stored
5. User lands on the dashboard with ?{provider}=connected or =error

Facebook Login grants that cover several Pages land with
?{provider}=select_page instead; the frontend lists the Pages with
GET /{provider}/pages and connects one with POST /{provider}/connect-page.
An Instagram login also connects the Facebook Page it goes through.

Publishing:
- POST /{provider}/posts (alias /{provider}/share) with multipart form data
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import RedirectResponse
from typing import Dict, Optional
from urllib.parse import urlencode, urlsplit
import logging

from api.dependencies import (
    get_adapters,
    get_connection_status_service,
    get_credential_store,
    get_page_selections,
    get_publish_orchestrator,
    get_state_registry,
    get_upload_storage,
)
from config.settings import Settings, get_settings
from schemas.social import (
    AuthOptions,
    LinkInfo,
    MediaRef,
    PageSelection,
    PostKind,
    Provider,
    PublishRequest,
)
from services.connection_status_service import ConnectionStatusService
from services.publish_orchestrator import PublishOrchestrator
from src.publishers.base import ProviderAdapter
from src.publishers.exceptions import (
    ConfigurationException,
    NotConnectedException,
    PublisherException,
    ValidationException,
)
from src.publishers.linkedin_publisher import LinkedInPublisher
from src.publishers.meta_base import MetaGraphAdapter
from utils.auth import get_current_user_id, get_current_user_id_optional
from utils.credential_store import CredentialStore
from utils.error_responses import create_publish_error_response
from utils.media_uploads import TemporaryUploadStorage
from utils.redis_state import OAuthStateRegistry, PageSelectionStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _adapter(provider: Provider, adapters: Dict[Provider, ProviderAdapter]) -> ProviderAdapter:
    adapter = adapters.get(provider)
    if adapter is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider: {provider}")
    return adapter


def _redirect_with(base_url: str, params: Dict[str, str]) -> RedirectResponse:
    separator = "&" if "?" in base_url else "?"
    return RedirectResponse(url=f"{base_url}{separator}{urlencode(params)}", status_code=status.HTTP_302_FOUND)


def _safe_return_url(return_url: Optional[str], settings: Settings) -> Optional[str]:
    """
    Only frontend URLs are allowed as post-auth landing pages.

    Scheme and host must equal the frontend's exactly and the path must sit
    under the frontend path, so lookalike hosts such as
    localhost:3000.evil.example or localhost:3000@evil.example are refused.
    """
    if not return_url:
        return None

    frontend = urlsplit(settings.FRONTEND_URL)
    target = urlsplit(return_url)
    base_path = frontend.path.rstrip("/")

    same_origin = (
        target.scheme.lower() == frontend.scheme.lower()
        and target.netloc.lower() == frontend.netloc.lower()
    )
    under_base = not base_path or target.path == base_path or target.path.startswith(f"{base_path}/")

    if same_origin and under_base:
        return return_url

    logger.warning(f"Ignoring return URL outside the frontend: {return_url}")
    return None


def _meta_adapter(provider: Provider, adapters: Dict[Provider, ProviderAdapter]) -> MetaGraphAdapter:
    adapter = _adapter(provider, adapters)
    if not isinstance(adapter, MetaGraphAdapter):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Page selection is not available for {provider.value}",
        )
    return adapter


# ============================================================================
# Aggregate Endpoints
# ============================================================================

@router.get("/status")
async def all_statuses(
    user_id: int = Depends(get_current_user_id),
    status_service: ConnectionStatusService = Depends(get_connection_status_service),
):
    """
    Get connection status for every supported provider.

    Returns:
        {"success": true, "providers": {"twitter": {...}, ...}}
    """
    statuses = await status_service.status_all(user_id)
    return {
        "success": True,
        "providers": {
            s.provider: s.model_dump(mode="json", by_alias=True, exclude_none=True) for s in statuses
        },
    }


@router.get("/linkedin/organizations")
async def linkedin_organizations(
    user_id: int = Depends(get_current_user_id),
    store: CredentialStore = Depends(get_credential_store),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
):
    """
    List LinkedIn organizations (company pages) the user can post as.

    Returns:
        {"success": true, "organizations": [{"id", "urn", "name", "vanityName", "logoUrl"}]}
    """
    connection = store.load(user_id, Provider.LINKEDIN)
    if connection is None:
        raise NotConnectedException("linkedin is not connected")

    adapter = _adapter(Provider.LINKEDIN, adapters)
    if not isinstance(adapter, LinkedInPublisher):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="LinkedIn adapter unavailable")

    organizations = await adapter.list_organizations(connection)
    return {"success": True, "organizations": organizations}


# ============================================================================
# OAuth Endpoints
# ============================================================================

@router.get("/{provider}/auth")
async def begin_auth(
    provider: Provider,
    user_id_param: Optional[int] = Query(None, alias="userId", description="User to connect when no session is sent"),
    return_url: Optional[str] = Query(None, alias="returnUrl", description="Frontend URL to land on afterwards"),
    organizations: bool = Query(False, description="LinkedIn: request organization posting scopes"),
    business_management: bool = Query(False, alias="businessManagement", description="Facebook: request business_management"),
    session_user_id: Optional[int] = Depends(get_current_user_id_optional),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
    registry: OAuthStateRegistry = Depends(get_state_registry),
    settings: Settings = Depends(get_settings),
):
    """
    Start the OAuth handshake for a provider.

    Twitter makes a request-token call here; the other providers only
    build a URL.

    Returns:
        {"success": true, "authUrl": "https://...", "provider": "twitter"}

    Raises:
        HTTPException 401: no session and no userId
        config_error (503): provider app credentials missing or rejected
    """
    user_id = session_user_id or user_id_param
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    adapter = _adapter(provider, adapters)
    if not adapter.is_configured():
        raise ConfigurationException(f"{adapter.platform_name} is not configured on this server")

    state = registry.create(user_id, provider.value, return_url=_safe_return_url(return_url, settings))
    options = AuthOptions(include_business_management=business_management, include_organizations=organizations)

    auth_request = await adapter.begin_auth(state, options)
    if auth_request.state_data:
        registry.attach(state, auth_request.state_data)

    logger.info(f"Generated {provider.value} authorization URL for user {user_id}")
    return {"success": True, "authUrl": auth_request.url, "provider": provider.value}


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: Provider,
    code: Optional[str] = Query(None, description="Authorization code (OAuth 2.0)"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    error: Optional[str] = Query(None, description="Error code if authorization failed"),
    error_description: Optional[str] = Query(None, description="Error description if authorization failed"),
    oauth_token: Optional[str] = Query(None, description="Request token (Twitter)"),
    oauth_verifier: Optional[str] = Query(None, description="Verifier (Twitter)"),
    denied: Optional[str] = Query(None, description="Denied request token (Twitter)"),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
    registry: OAuthStateRegistry = Depends(get_state_registry),
    store: CredentialStore = Depends(get_credential_store),
    page_selections: PageSelectionStore = Depends(get_page_selections),
    settings: Settings = Depends(get_settings),
):
    """
    Handle the provider redirect after consent.

    Always redirects to the dashboard:
    - ?{provider}=connected on success, one flag per provider the grant
      connected (an Instagram login also connects its Facebook Page)
    - ?{provider}=select_page when the user must pick one of several Pages
    - ?{provider}=error&reason=<kind>&message=... on failure
    - no flag when the state is unknown (expired, or a repeated callback)
    """
    oauth_state = registry.consume(state)
    if oauth_state is None:
        logger.info(f"{provider.value} callback with unknown state, continuing to dashboard")
        return RedirectResponse(url=settings.dashboard_url, status_code=status.HTTP_302_FOUND)

    landing_url = oauth_state.return_url or settings.dashboard_url

    if oauth_state.provider != provider.value:
        logger.warning(f"OAuth state for {oauth_state.provider} used on {provider.value} callback")
        return _redirect_with(landing_url, {provider.value: "error", "reason": "state_mismatch"})

    if error or denied:
        logger.warning(f"{provider.value} OAuth error: {error or 'denied'} - {error_description}")
        return _redirect_with(landing_url, {
            provider.value: "error",
            "reason": "auth_failed",
            "message": error_description or error or "Authorization was denied",
        })

    adapter = _adapter(provider, adapters)
    try:
        result = await adapter.complete_auth(
            code or oauth_verifier or "",
            oauth_state,
            callback_params={"oauth_token": oauth_token, "denied": denied},
        )

        if result.needs_page_selection:
            page_selections.hold(oauth_state.user_id, provider.value, result.pending_grant)
            logger.info(
                f"{provider.value} login for user {oauth_state.user_id} offers "
                f"{len(result.page_choices)} Pages, waiting for a selection"
            )
            return _redirect_with(landing_url, {provider.value: "select_page"})

        # Each mapped connection is saved under its own provider only
        for connection in result.connections:
            store.save(oauth_state.user_id, connection.provider, connection)
    except PublisherException as e:
        logger.warning(f"{provider.value} connection failed for user {oauth_state.user_id}: {e.kind} - {e.message}")
        return _redirect_with(landing_url, {provider.value: "error", "reason": e.kind, "message": e.message})

    connected = [connection.provider for connection in result.connections]
    logger.info(f"Connected {', '.join(connected)} for user {oauth_state.user_id}")
    return _redirect_with(landing_url, {name: "connected" for name in connected})


# ============================================================================
# Connection Management Endpoints
# ============================================================================

@router.get("/{provider}/status")
async def provider_status(
    provider: Provider,
    user_id: int = Depends(get_current_user_id),
    status_service: ConnectionStatusService = Depends(get_connection_status_service),
):
    """
    Get connection status for one provider.

    Returns:
        {"success": true, "provider": "...", "connected": bool, "expired": bool?, "profile": {...}?}
    """
    result = await status_service.status(user_id, provider)
    return {"success": True, **result.model_dump(mode="json", by_alias=True, exclude_none=True)}


@router.delete("/{provider}/disconnect")
async def disconnect(
    provider: Provider,
    user_id: int = Depends(get_current_user_id),
    store: CredentialStore = Depends(get_credential_store),
):
    """
    Remove the stored connection. Disconnecting twice is not an error.
    """
    deleted = store.delete(user_id, provider.value)
    return {
        "success": True,
        "provider": provider.value,
        "message": f"{provider.value} disconnected" if deleted else f"{provider.value} was not connected",
    }


@router.get("/{provider}/pages")
async def list_pages(
    provider: Provider,
    user_id: int = Depends(get_current_user_id),
    store: CredentialStore = Depends(get_credential_store),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
    page_selections: PageSelectionStore = Depends(get_page_selections),
):
    """
    List the Facebook Pages the user can connect for facebook or instagram.

    Offers the Pages held from the last Facebook Login. Without one, the
    stored connection's user token is used to list them again, so a
    connected user can switch Pages.

    Returns:
        {"success": true, "provider": "...", "selectedPageId": "..." | null,
         "pages": [{"id", "name", "category", "instagramAccountId"?, "instagramUsername"?}]}
    """
    adapter = _meta_adapter(provider, adapters)
    connection = store.load(user_id, provider.value)

    pending = page_selections.get(user_id, provider.value)
    if pending is not None:
        choices = [adapter.page_choice(page) for page in pending.get("pages", [])]
    elif connection is not None:
        result = await adapter.page_choices(connection)
        page_selections.hold(user_id, provider.value, result.pending_grant)
        choices = result.page_choices
    else:
        raise NotConnectedException(f"{provider.value} is not connected")

    return {
        "success": True,
        "provider": provider.value,
        "selectedPageId": adapter.page_id_for(connection) if connection else None,
        "pages": [choice.model_dump(by_alias=True, exclude_none=True) for choice in choices],
    }


@router.post("/{provider}/connect-page")
async def connect_page(
    provider: Provider,
    selection: PageSelection,
    user_id: int = Depends(get_current_user_id),
    store: CredentialStore = Depends(get_credential_store),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
    page_selections: PageSelectionStore = Depends(get_page_selections),
):
    """
    Connect the Page the user picked from GET /{provider}/pages.

    Request Body:
        {"pageId": "..."}

    Returns:
        {"success": true, "provider": "...", "pageId": "...", "connected": ["instagram", "facebook"]}
    """
    adapter = _meta_adapter(provider, adapters)

    pending = page_selections.get(user_id, provider.value)
    if pending is None:
        raise ValidationException("No Page selection in progress or it expired. Please reconnect your account.")

    connections = adapter.connect_page(pending, selection.page_id, user_id)
    for connection in connections:
        store.save(user_id, connection.provider, connection)
    page_selections.release(user_id, provider.value)

    return {
        "success": True,
        "provider": provider.value,
        "pageId": selection.page_id,
        "connected": [connection.provider for connection in connections],
    }


@router.post("/{provider}/refresh")
async def refresh_connection(
    provider: Provider,
    user_id: int = Depends(get_current_user_id),
    orchestrator: PublishOrchestrator = Depends(get_publish_orchestrator),
):
    """
    Refresh the provider token if it is close to expiry.

    Returns:
        {"success": true, "provider": "...", "expiresAt": "..." | null}
    """
    connection = await orchestrator.refresh(user_id, provider.value)
    return {
        "success": True,
        "provider": provider.value,
        "expiresAt": connection.expires_at.isoformat() if connection.expires_at else None,
    }


# ============================================================================
# Publishing Endpoints
# ============================================================================

def _infer_kind(
    post_type: Optional[str],
    has_image: bool,
    has_video: bool,
    link_url: Optional[str],
) -> PostKind:
    if post_type:
        try:
            return PostKind(post_type.lower())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid postType: {post_type}. Use text, image, video or link.",
            )
    if has_video:
        return PostKind.VIDEO
    if has_image:
        return PostKind.IMAGE
    if link_url:
        return PostKind.LINK
    return PostKind.TEXT


@router.post("/{provider}/posts")
@router.post("/{provider}/share")
async def publish_post(
    provider: Provider,
    text: str = Form(""),
    post_type: Optional[str] = Form(None, alias="postType"),
    image: Optional[UploadFile] = File(None),
    video: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None, alias="imageUrl"),
    video_url: Optional[str] = Form(None, alias="videoUrl"),
    link_url: Optional[str] = Form(None, alias="linkUrl"),
    link_name: Optional[str] = Form(None, alias="linkName"),
    link_description: Optional[str] = Form(None, alias="linkDescription"),
    target_id: Optional[str] = Form(None, alias="targetId"),
    user_id: int = Depends(get_current_user_id),
    orchestrator: PublishOrchestrator = Depends(get_publish_orchestrator),
    uploads: TemporaryUploadStorage = Depends(get_upload_storage),
):
    """
    Publish a post to one provider.

    Form Fields:
        text, postType (text|image|video|link), image | video (file),
        imageUrl | videoUrl, linkUrl, linkName, linkDescription, targetId

    Returns:
        {"success": true, "remotePostId": "...", "permalink": "..."}
        or a non-2xx {"success": false, "message", "kind", "requiresAuth"?}
    """
    upload = video or image
    kind = _infer_kind(post_type, bool(image or image_url), bool(video or video_url), link_url)

    media: Optional[MediaRef] = None
    try:
        if upload is not None:
            media = await uploads.save_upload(upload, user_id=user_id)
        elif video_url or image_url:
            media = MediaRef(url=(video_url or image_url) if kind == PostKind.VIDEO else (image_url or video_url))

        request = PublishRequest(
            user_id=user_id,
            provider=provider,
            kind=kind,
            text=text,
            media_ref=media,
            link=LinkInfo(url=link_url, title=link_name, description=link_description) if link_url else None,
            target_id=target_id,
        )

        result = await orchestrator.publish(request)
    finally:
        ProviderAdapter.discard_media(media)

    if not result.success:
        return create_publish_error_response(result.error)

    return result.model_dump(mode="json", by_alias=True, exclude_none=True)
