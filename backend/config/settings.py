"""
Centralized Configuration Management

Provides type-safe configuration for the social connection and publishing
backend. Every adapter, the OAuth state registry and the HTTP layer read their
settings from here.

Usage:
    from config.settings import settings

    api_key = settings.TWITTER_API_KEY
    db_url = settings.DATABASE_URL
"""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, ConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    """
    Application Settings

    All settings are loaded from environment variables.
    Default values are provided for development.
    """

    # ========================================================================
    # ENVIRONMENT
    # ========================================================================
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")
    DEBUG: bool = Field(default=True, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # ========================================================================
    # DATABASE
    # ========================================================================
    DATABASE_URL: str = Field(
        default="sqlite:///./social_publisher.db",
        description="Database connection URL"
    )

    # ========================================================================
    # SECURITY
    # ========================================================================
    ENCRYPTION_KEY: str = Field(
        default="",
        description="Fernet encryption key for stored provider tokens"
    )

    # ========================================================================
    # REDIS (OAuth state registry)
    # ========================================================================
    REDIS_URL: Optional[str] = Field(default=None, description="Redis URL, overrides host/port settings")
    REDIS_HOST: str = Field(default="localhost", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_DB: int = Field(default=0, description="Redis database index")
    REDIS_PASSWORD: Optional[str] = Field(default=None, description="Redis password")
    REDIS_SSL: bool = Field(default=False, description="Use TLS for Redis")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Redis socket timeout (seconds)")

    OAUTH_STATE_TTL_SECONDS: int = Field(
        default=600,
        description="Lifetime of an unconsumed OAuth state token (max 10 minutes)"
    )
    PAGE_SELECTION_TTL_SECONDS: int = Field(
        default=600,
        description="How long a Facebook Login grant waits for the user to pick a Page"
    )

    # ========================================================================
    # FRONTEND / CORS
    # ========================================================================
    FRONTEND_URL: str = Field(default="http://localhost:3000", description="Frontend base URL")
    DASHBOARD_PATH: str = Field(
        default="/socialdashboard",
        description="Frontend path users land on after an OAuth callback"
    )
    CORS_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:5173",
            "http://localhost:3000",
        ],
        description="Allowed CORS origins"
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True, description="Allow CORS credentials")

    # ========================================================================
    # OUTBOUND HTTP
    # ========================================================================
    HTTP_TIMEOUT_SECONDS: float = Field(default=20.0, description="Timeout for every provider API call")
    TOKEN_REFRESH_WINDOW_SECONDS: int = Field(
        default=7 * 24 * 3600,
        description="Refresh tokens that expire within this window"
    )

    # ========================================================================
    # MEDIA UPLOADS
    # ========================================================================
    UPLOAD_TEMP_DIR: Optional[str] = Field(
        default=None,
        description="Directory for uploaded media awaiting publish (system temp dir if unset)"
    )
    MAX_UPLOAD_SIZE_MB: int = Field(default=200, description="Largest accepted media upload")

    # ========================================================================
    # OAUTH / SOCIAL MEDIA
    # ========================================================================
    # Twitter (OAuth 1.0a)
    TWITTER_API_KEY: Optional[str] = Field(default=None, description="Twitter API key (consumer key)")
    TWITTER_API_SECRET: Optional[str] = Field(default=None, description="Twitter API secret (consumer secret)")
    TWITTER_CALLBACK_URL: str = Field(
        default="http://localhost:8000/api/social/twitter/callback",
        description="Twitter OAuth callback URL"
    )

    # Facebook / Instagram (one Meta app serves both)
    FACEBOOK_APP_ID: Optional[str] = Field(default=None, description="Facebook App ID")
    FACEBOOK_APP_SECRET: Optional[str] = Field(default=None, description="Facebook App Secret")
    FACEBOOK_REDIRECT_URI: str = Field(
        default="http://localhost:8000/api/social/facebook/callback",
        description="Facebook OAuth callback URL"
    )
    INSTAGRAM_REDIRECT_URI: str = Field(
        default="http://localhost:8000/api/social/instagram/callback",
        description="Instagram OAuth callback URL"
    )
    META_GRAPH_API_VERSION: str = Field(default="v18.0", description="Graph API version")
    INSTAGRAM_CONTAINER_POLL_INTERVAL: float = Field(
        default=2.0,
        description="Seconds between Instagram container status checks"
    )
    INSTAGRAM_CONTAINER_MAX_WAIT: float = Field(
        default=60.0,
        description="Maximum seconds to wait for an Instagram container"
    )

    # LinkedIn (OAuth 2.0 + OpenID Connect)
    LINKEDIN_CLIENT_ID: Optional[str] = Field(default=None, description="LinkedIn client ID")
    LINKEDIN_CLIENT_SECRET: Optional[str] = Field(default=None, description="LinkedIn client secret")
    LINKEDIN_REDIRECT_URI: str = Field(
        default="http://localhost:8000/api/social/linkedin/callback",
        description="LinkedIn OAuth callback URL"
    )

    # ========================================================================
    # IMAGE GENERATION (Instagram text-only fallback)
    # ========================================================================
    OPENAI_API_KEY: Optional[str] = Field(default=None, description="OpenAI API key")
    DALLE_API_URL: str = Field(
        default="https://api.openai.com/v1/images/generations",
        description="DALL-E API endpoint"
    )
    DALLE_MODEL: str = Field(default="dall-e-3", description="DALL-E model version")
    DALLE_IMAGE_SIZE: str = Field(default="1024x1024", description="Default image size")
    DALLE_IMAGE_QUALITY: str = Field(default="standard", description="Image quality: standard or hd")

    # ========================================================================
    # MONITORING
    # ========================================================================
    SENTRY_DSN: Optional[str] = Field(default=None, description="Sentry DSN, error tracking disabled if unset")

    # ========================================================================
    # VALIDATORS (Pydantic V2)
    # ========================================================================

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "test"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("OAUTH_STATE_TTL_SECONDS")
    @classmethod
    def validate_state_ttl(cls, v: int) -> int:
        """OAuth state must never outlive ten minutes"""
        if not (1 <= v <= 600):
            raise ValueError("OAUTH_STATE_TTL_SECONDS must be between 1 and 600")
        return v

    @field_validator("HTTP_TIMEOUT_SECONDS")
    @classmethod
    def validate_http_timeout(cls, v: float) -> float:
        """Validate outbound timeout"""
        if not (1 <= v <= 120):
            raise ValueError("HTTP_TIMEOUT_SECONDS must be between 1 and 120")
        return v

    @field_validator("DALLE_IMAGE_SIZE")
    @classmethod
    def validate_image_size(cls, v: str) -> str:
        """Validate DALL-E image size"""
        allowed = ["1024x1024", "1024x1792", "1792x1024"]
        if v not in allowed:
            raise ValueError(f"DALLE_IMAGE_SIZE must be one of: {allowed}")
        return v

    # ========================================================================
    # COMPUTED PROPERTIES
    # ========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.ENVIRONMENT == "production"

    @property
    def database_is_sqlite(self) -> bool:
        """Check if using SQLite"""
        return "sqlite" in self.DATABASE_URL.lower()

    @property
    def dashboard_url(self) -> str:
        """Frontend page that OAuth callbacks redirect to"""
        return f"{self.FRONTEND_URL.rstrip('/')}{self.DASHBOARD_PATH}"

    @property
    def graph_api_base(self) -> str:
        """Facebook Graph API base URL"""
        return f"https://graph.facebook.com/{self.META_GRAPH_API_VERSION}"

    # ========================================================================
    # CONFIG
    # ========================================================================

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Allow extra fields from .env file
    )


# Singleton instance
settings = Settings()


# ========================================================================
# HELPER FUNCTIONS
# ========================================================================

def get_settings() -> Settings:
    """
    Get settings instance (for dependency injection)

    Usage in FastAPI:
        @router.get("/")
        def endpoint(settings: Settings = Depends(get_settings)):
            return {"env": settings.ENVIRONMENT}
    """
    return settings


def validate_production_config() -> List[str]:
    """
    Validate configuration for production deployment

    Returns:
        List of configuration warnings/errors
    """
    warnings = []

    if settings.ENVIRONMENT == "production":
        if not settings.ENCRYPTION_KEY:
            warnings.append("CRITICAL: ENCRYPTION_KEY not set in production!")

        if settings.DEBUG:
            warnings.append("WARNING: DEBUG is enabled in production")

        if settings.database_is_sqlite:
            warnings.append("WARNING: Using SQLite in production (consider PostgreSQL)")

        if "*" in settings.CORS_ORIGINS or "http://localhost" in str(settings.CORS_ORIGINS):
            warnings.append("WARNING: CORS allows localhost in production")

    return warnings


# Run validation on import
_production_warnings = validate_production_config()
if _production_warnings and settings.is_production:
    import warnings as py_warnings
    for warning in _production_warnings:
        py_warnings.warn(warning, UserWarning)
