"""
Database configuration and models
"""
from typing import Generator, Type
from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    ForeignKey,
)
from sqlalchemy.ext.declarative import declarative_base, DeclarativeMeta
from sqlalchemy.orm import sessionmaker, relationship, Session
from sqlalchemy.pool import QueuePool, NullPool, Pool
from datetime import datetime
import logging

from config.settings import settings

# Configure logging
logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

# Connection arguments based on database type
connect_args: dict = {}
poolclass: Type[Pool] = QueuePool

if "sqlite" in DATABASE_URL:
    # SQLite-specific configuration
    connect_args = {"check_same_thread": False}
    poolclass = NullPool  # SQLite doesn't support connection pooling well
    engine = create_engine(DATABASE_URL, connect_args=connect_args, poolclass=poolclass)
elif "postgresql" in DATABASE_URL:
    engine = create_engine(
        DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before using them
        pool_recycle=3600,
        future=True,
    )
else:
    engine = create_engine(DATABASE_URL)


# Session
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class
Base: DeclarativeMeta = declarative_base()


# Models
class User(Base):  # type: ignore[misc, valid-type]
    """
    User model.

    Accounts are managed by the identity service; this table anchors
    foreign keys from social connections and bearer session lookups.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")


class UserSession(Base):  # type: ignore[misc, valid-type]
    """User session model for token-based authentication"""

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="sessions")


def init_db() -> None:
    """Initialize database"""
    # Register social media tables on the shared metadata
    import database_social_media  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
