"""
Configuration Package

Centralized configuration management for the social publishing backend.

Usage:
    from config import settings

    db_url = settings.DATABASE_URL
    redirect_uri = settings.LINKEDIN_REDIRECT_URI
"""
from config.settings import settings, get_settings, validate_production_config

__all__ = ["settings", "get_settings", "validate_production_config"]
