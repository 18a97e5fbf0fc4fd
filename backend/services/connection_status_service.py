"""
Connection Status Service

This service reports per-platform connection status: whether a connection
is stored, whether it has expired, and live profile labels for it.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from schemas.social import Connection, ConnectionStatus, ProfileInfo, Provider
from src.publishers.base import ProviderAdapter
from src.publishers.exceptions import PublisherException, TokenExpiredException
from utils.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class ConnectionStatusService:
    """
    Read-only status checks for connected platforms

    Profile labels are re-fetched from the provider on every call; a
    provider failure falls back to the cached labels instead of failing
    the status call.
    """

    def __init__(self, store: CredentialStore, adapters: Dict[Provider, ProviderAdapter]):
        self.store = store
        self.adapters = adapters

    async def status(self, user_id: int, provider: str) -> ConnectionStatus:
        """Get connection status for a single platform"""
        return await self._status_for(user_id, provider, self.store.load(user_id, provider))

    async def status_all(self, user_id: int) -> List[ConnectionStatus]:
        """
        Get status for every supported platform.

        Stored connections are read once; profiles are fetched concurrently.
        """
        stored = {connection.provider: connection for connection in self.store.list_for_user(user_id)}
        return list(await asyncio.gather(*(
            self._status_for(user_id, provider, stored.get(provider))
            for provider in self.adapters
        )))

    async def _status_for(self, user_id: int, provider: str, connection: Optional[Connection]) -> ConnectionStatus:
        if connection is None:
            return ConnectionStatus(provider=provider, connected=False)

        expired = self.store.is_expired(connection)
        cached = self._cached_profile(connection)

        # No point spending a provider call on a token known to be dead
        if expired:
            return ConnectionStatus(
                provider=provider,
                connected=True,
                expired=True,
                expires_at=connection.expires_at,
                profile=cached,
            )

        profile = cached
        adapter = self.adapters.get(provider)
        if adapter is not None:
            try:
                live = await adapter.fetch_profile(connection)
                profile = ProfileInfo(
                    id=live.id or cached.id,
                    name=live.name or cached.name,
                    username=live.username or cached.username,
                    picture=live.picture or cached.picture,
                )
            except TokenExpiredException as e:
                logger.warning(f"{provider} rejected the stored token for user {user_id}: {e.message}")
                expired = True
            except PublisherException as e:
                logger.warning(f"Could not refresh {provider} profile for user {user_id}: {e.message}")

        return ConnectionStatus(
            provider=provider,
            connected=True,
            expired=expired,
            expires_at=connection.expires_at,
            profile=profile,
        )

    @staticmethod
    def _cached_profile(connection: Connection) -> ProfileInfo:
        return ProfileInfo(
            id=connection.provider_account_id,
            name=connection.display_name,
            username=connection.username,
            picture=connection.metadata.get("picture"),
        )
