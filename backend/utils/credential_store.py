"""
Credential Store

Persists one Connection per (user, provider). Tokens are encrypted at rest;
every read and write is scoped to a single provider row so a Facebook
reconnect never touches the sibling Instagram connection and vice versa.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime
import logging

from database_social_media import SocialMediaConnection
from schemas.social import Connection, Provider
from utils.encryption import encrypt_value, decrypt_value

logger = logging.getLogger(__name__)


class CredentialStoreError(Exception):
    """Raised when a write did not take effect"""


class CredentialStore:
    """
    Storage for social media connections.

    Handles token encryption, upserts and verified deletes.
    """

    def __init__(self, db: Session):
        """
        Initialize the credential store.

        Args:
            db: Database session
        """
        self.db = db

    def _query(self, user_id: int, provider: str):
        return self.db.query(SocialMediaConnection).filter(
            SocialMediaConnection.user_id == user_id,
            SocialMediaConnection.platform == provider,
        )

    def save(self, user_id: int, provider: str, connection: Connection) -> Connection:
        """
        Create or replace the connection for (user_id, provider).

        Args:
            user_id: User ID
            provider: Provider name
            connection: Fully populated connection from an adapter

        Returns:
            The stored connection, as read back from the database
        """
        provider = Provider(provider).value
        if connection.user_id != user_id or connection.provider != provider:
            raise ValueError(
                f"Connection for user {connection.user_id}/{connection.provider} "
                f"cannot be saved as user {user_id}/{provider}"
            )

        try:
            row = self._upsert(user_id, provider, connection)
        except IntegrityError:
            # A concurrent callback inserted the same (user, provider) first
            self.db.rollback()
            logger.info(f"Concurrent insert for {provider} connection of user {user_id}, updating instead")
            row = self._upsert(user_id, provider, connection)

        return self._to_connection(row)

    def _upsert(self, user_id: int, provider: str, connection: Connection) -> SocialMediaConnection:
        existing = self._query(user_id, provider).first()

        values = {
            "platform_user_id": connection.provider_account_id,
            "platform_username": connection.username,
            "display_name": connection.display_name,
            "encrypted_access_token": encrypt_value(connection.access_token),
            "encrypted_access_token_secret": (
                encrypt_value(connection.access_token_secret) if connection.access_token_secret else None
            ),
            "encrypted_refresh_token": (
                encrypt_value(connection.refresh_token) if connection.refresh_token else None
            ),
            "scope": " ".join(connection.scope_grant) if connection.scope_grant else None,
            "expires_at": connection.expires_at,
            "platform_metadata": dict(connection.metadata) or None,
        }

        try:
            if existing:
                for key, value in values.items():
                    setattr(existing, key, value)
                existing.updated_at = datetime.utcnow()
                row = existing
            else:
                row = SocialMediaConnection(user_id=user_id, platform=provider, **values)
                self.db.add(row)

            self.db.commit()
            self.db.refresh(row)
        except IntegrityError:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error saving {provider} connection: {str(e)}")
            raise

        logger.info(f"{'Updated' if existing else 'Created'} {provider} connection for user {user_id}")
        return row

    def load(self, user_id: int, provider: str) -> Optional[Connection]:
        """
        Get the connection for (user_id, provider).

        Returns:
            Connection, or None if absent or unreadable
        """
        row = self._query(user_id, Provider(provider).value).first()
        if not row:
            return None
        return self._to_connection(row)

    def list_for_user(self, user_id: int) -> List[Connection]:
        """Get every readable connection for a user"""
        rows = (
            self.db.query(SocialMediaConnection)
            .filter(SocialMediaConnection.user_id == user_id)
            .order_by(SocialMediaConnection.platform)
            .all()
        )
        connections = []
        for row in rows:
            connection = self._to_connection(row)
            if connection:
                connections.append(connection)
        return connections

    def delete(self, user_id: int, provider: str) -> bool:
        """
        Permanently delete the connection for (user_id, provider).

        The row is re-read after the commit; a surviving row is deleted once
        more before giving up.

        Returns:
            True if a row was deleted, False if there was nothing to delete

        Raises:
            CredentialStoreError: if the row is still present after the retry
        """
        provider = Provider(provider).value
        deleted = False

        for attempt in range(2):
            removed = self._query(user_id, provider).delete(synchronize_session=False)
            self.db.commit()
            deleted = deleted or removed > 0

            if self._query(user_id, provider).first() is None:
                if deleted:
                    logger.info(f"Deleted {provider} connection for user {user_id}")
                return deleted

            logger.warning(
                f"{provider} connection for user {user_id} still present after delete (attempt {attempt + 1})"
            )
            self.db.expire_all()

        raise CredentialStoreError(f"Failed to delete {provider} connection for user {user_id}")

    @staticmethod
    def is_expired(connection: Connection, now: Optional[datetime] = None) -> bool:
        """A connection with a past expires_at is unusable until refreshed"""
        if connection.expires_at is None:
            return False
        return (now or datetime.utcnow()) > connection.expires_at

    def _to_connection(self, row: SocialMediaConnection) -> Optional[Connection]:
        access_token = decrypt_value(row.encrypted_access_token)
        if not access_token:
            logger.error(f"Stored {row.platform} token for user {row.user_id} could not be decrypted")
            return None

        return Connection(
            user_id=row.user_id,
            provider=row.platform,
            access_token=access_token,
            access_token_secret=decrypt_value(row.encrypted_access_token_secret),
            refresh_token=decrypt_value(row.encrypted_refresh_token),
            provider_account_id=row.platform_user_id,
            display_name=row.display_name,
            username=row.platform_username,
            expires_at=row.expires_at,
            scope_grant=row.scope.split() if row.scope else [],
            metadata=row.platform_metadata or {},
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
