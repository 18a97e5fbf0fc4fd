"""
Social Media Connection Models - Database Extension

This module extends the database schema with the per-provider connection
record (Twitter, Facebook, Instagram, LinkedIn). Each provider gets its own
row, so Facebook and Instagram connections born from one Facebook Login
are stored and deleted independently.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Index
from datetime import datetime
from database import Base


class SocialMediaConnection(Base):
    """
    Social media platform connection model for OAuth tokens.

    Stores encrypted access tokens, token secrets (OAuth 1.0a), refresh
    tokens and non-secret account metadata.
    """

    __tablename__ = "social_media_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Platform information
    platform = Column(String(50), nullable=False, index=True)  # twitter, facebook, instagram, linkedin
    platform_user_id = Column(String(255), nullable=False)  # User, Page or IG Business Account id
    platform_username = Column(String(255), nullable=True)  # @username or handle
    display_name = Column(String(255), nullable=True)

    # OAuth tokens (encrypted)
    encrypted_access_token = Column(Text, nullable=False)
    encrypted_access_token_secret = Column(Text, nullable=True)  # OAuth 1.0a only
    encrypted_refresh_token = Column(Text, nullable=True)

    # Token metadata
    scope = Column(Text, nullable=True)  # Space-separated scopes actually granted
    expires_at = Column(DateTime, nullable=True)  # NULL: provider declares no expiry

    # Platform-specific metadata (JSON)
    platform_metadata = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Composite unique constraint: one connection per user per platform
    __table_args__ = (Index("idx_user_platform", "user_id", "platform", unique=True),)
