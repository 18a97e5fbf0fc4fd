"""
Social Schemas - Pydantic models shared by the connection and publishing layers

This module defines the provider-agnostic contracts: the persisted
Connection, the OAuth state record, the internal PublishRequest and the
normalized PublishResult returned for every provider.

JSON output uses camelCase aliases (remotePostId, providerCode, ...) for
the frontend; Python code uses the snake_case field names.
"""

from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class Provider(str, Enum):
    """Supported social platforms"""
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"


class PostKind(str, Enum):
    """Kinds of content a publish request can carry"""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    LINK = "link"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# ============================================================================
# CONNECTIONS
# ============================================================================

class Connection(_CamelModel):
    """Stored credentials and account identity for one (user, provider) pair"""
    user_id: int
    provider: Provider
    access_token: str
    access_token_secret: Optional[str] = Field(
        default=None,
        description="OAuth 1.0a token secret (Twitter only)"
    )
    refresh_token: Optional[str] = Field(
        default=None,
        description="OAuth 2.0 refresh token, or the long-lived Meta user token"
    )
    provider_account_id: str = Field(
        ...,
        description="Remote id allowed to post: user, Page or Instagram Business Account"
    )
    display_name: Optional[str] = None
    username: Optional[str] = None
    expires_at: Optional[datetime] = Field(
        default=None,
        description="None means the provider declares no expiry"
    )
    scope_grant: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def same_tokens(self, other: "Connection") -> bool:
        return (
            self.access_token == other.access_token
            and self.access_token_secret == other.access_token_secret
            and self.refresh_token == other.refresh_token
            and self.expires_at == other.expires_at
        )


class OAuthState(BaseModel):
    """Single-use correlation record for an in-flight OAuth handshake"""
    state: str
    user_id: int
    provider: str
    nonce: str
    created_at: datetime
    return_url: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class AuthOptions(BaseModel):
    """Provider-specific scope variants for the consent screen"""
    include_business_management: bool = Field(
        default=False,
        description="Request business_management (always on for Instagram)"
    )
    include_organizations: bool = Field(
        default=False,
        description="Request LinkedIn organization posting scopes"
    )


class PageChoice(_CamelModel):
    """A Facebook Page offered for selection after Facebook Login"""
    id: str
    name: Optional[str] = None
    category: Optional[str] = None
    instagram_account_id: Optional[str] = None
    instagram_username: Optional[str] = None


class PageSelection(_CamelModel):
    """Page picked by the user from the offered choices"""
    page_id: str = Field(..., min_length=1)


class AuthResult(BaseModel):
    """
    Outcome of a completed OAuth exchange.

    One grant maps to zero, one or two connections. When several Facebook
    Pages qualify, no connection is made yet: the choices are returned and
    the grant is kept until the user picks one.
    """
    connections: List[Connection] = Field(default_factory=list)
    page_choices: List[PageChoice] = Field(default_factory=list)
    pending_grant: Dict[str, Any] = Field(default_factory=dict)

    @property
    def needs_page_selection(self) -> bool:
        return not self.connections and bool(self.page_choices)


class AuthorizationRequest(BaseModel):
    """Result of beginning an OAuth handshake"""
    url: str
    state_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Provider data to keep with the state until the callback"
    )


# ============================================================================
# PUBLISHING
# ============================================================================

class MediaRef(_CamelModel):
    """Media attached to a post: a local file, a public URL, or both"""
    path: Optional[str] = None
    url: Optional[str] = None
    content_type: Optional[str] = None
    filename: Optional[str] = None
    temporary: bool = Field(
        default=False,
        description="Local file is owned by this request and removed after publishing"
    )


class LinkInfo(_CamelModel):
    """Link share with optional preview overrides"""
    url: str
    title: Optional[str] = None
    description: Optional[str] = None


class PublishRequest(_CamelModel):
    """Provider-agnostic publish input"""
    user_id: int
    provider: Provider
    kind: PostKind = PostKind.TEXT
    text: str = ""
    media_ref: Optional[MediaRef] = None
    link: Optional[LinkInfo] = None
    target_id: Optional[str] = Field(
        default=None,
        description="Organization/page to post as, where supported"
    )


class PublishError(_CamelModel):
    """Normalized publish failure"""
    kind: str
    provider_code: Optional[str] = None
    message: str
    retryable: bool = False
    retry_after: Optional[int] = Field(
        default=None,
        description="Seconds the provider asked us to wait before retrying"
    )


class PublishResult(_CamelModel):
    """Normalized publish outcome"""
    success: bool
    remote_post_id: Optional[str] = None
    permalink: Optional[str] = None
    error: Optional[PublishError] = None

    @classmethod
    def failed(cls, error: PublishError) -> "PublishResult":
        return cls(success=False, error=error)


# ============================================================================
# STATUS
# ============================================================================

class ProfileInfo(_CamelModel):
    """Profile labels shown next to a connected account"""
    id: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None
    picture: Optional[str] = None


class ConnectionStatus(_CamelModel):
    """Connection status for one provider"""
    provider: Provider
    connected: bool
    expired: Optional[bool] = None
    expires_at: Optional[datetime] = None
    profile: Optional[ProfileInfo] = None
