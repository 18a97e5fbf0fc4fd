"""
Authentication utilities for bearer session lookup

Sessions are issued by the identity service; this module only resolves an
Authorization: Bearer {token} header to the owning user.
"""
from sqlalchemy.orm import Session
from fastapi import Depends, HTTPException, status, Header
from datetime import datetime, timedelta
from typing import Optional, Annotated, Tuple
import secrets
import logging

from database import User, UserSession, get_db

logger = logging.getLogger(__name__)


def generate_session_token() -> str:
    """
    Generate a secure random session token.

    Returns:
        URL-safe random token string
    """
    return secrets.token_urlsafe(32)


def create_session(user_id: int, db: Session, expires_days: int = 1) -> Tuple[str, datetime]:
    """
    Create a new session for a user and return the session token and expiration time.

    Args:
        user_id: ID of the user to create session for
        db: Database session
        expires_days: Number of days until session expires

    Returns:
        Tuple of (session_token, expires_at)
    """
    token = generate_session_token()
    expires_at = datetime.utcnow() + timedelta(days=expires_days)

    session = UserSession(user_id=user_id, token=token, expires_at=expires_at)
    db.add(session)
    db.commit()

    logger.info(f"Created session for user_id={user_id}, expires_at={expires_at}")
    return token, expires_at


def get_current_user(token: str, db: Session) -> Optional[User]:
    """
    Validate a session token and return the associated user.

    Returns:
        User object if token is valid, None otherwise
    """
    session = db.query(UserSession).filter(UserSession.token == token).first()

    if not session:
        logger.warning("Session not found for token")
        return None

    if session.expires_at < datetime.utcnow():
        logger.warning(f"Session expired for user_id={session.user_id}")
        return None

    user = db.query(User).filter(User.id == session.user_id).first()

    if not user:
        logger.error(f"User not found for session user_id={session.user_id}")
        return None

    if not user.is_active:
        logger.warning(f"Inactive user attempted to use session: user_id={user.id}")
        return None

    return user


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def get_current_user_id(
    authorization: Annotated[Optional[str], Header()] = None, db: Session = Depends(get_db)
) -> int:
    """
    FastAPI dependency for getting the current authenticated user's id.

    Raises:
        HTTPException: 401 if the header is missing, malformed, or the session is invalid
    """
    if not authorization:
        logger.warning("No authorization header provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = _bearer_token(authorization)
    if not token:
        logger.warning("Invalid authorization header format")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = get_current_user(token, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user.id


def get_current_user_id_optional(
    authorization: Annotated[Optional[str], Header()] = None, db: Session = Depends(get_db)
) -> Optional[int]:
    """
    FastAPI dependency for getting the current user's id (optional).
    Returns None if not authenticated, instead of raising exception.
    """
    token = _bearer_token(authorization)
    if not token:
        return None

    user = get_current_user(token, db)
    return user.id if user else None
