"""
Publish Orchestrator

Unified entry point for publishing to any connected platform. Resolves the
stored connection and the platform adapter, short-circuits expired
connections, and normalizes every outcome into a PublishResult.

The orchestrator never mutates a Connection while publishing; token
refresh is a separate, explicit operation (refresh()).
"""
from typing import Dict
import logging

from schemas.social import Connection, Provider, PublishRequest, PublishResult
from src.publishers.base import ProviderAdapter
from src.publishers.exceptions import (
    NotConnectedException,
    PublisherException,
    TokenExpiredException,
    ValidationException,
)
from utils.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class PublishOrchestrator:
    """
    Unified publishing service for all social media platforms.

    Features:
    - Single dispatch from provider to adapter
    - Expired-token short-circuit before any network call
    - Error normalization into the PublishError taxonomy
    - Temporary media cleanup on every exit path
    """

    def __init__(self, store: CredentialStore, adapters: Dict[Provider, ProviderAdapter]):
        self.store = store
        self.adapters = adapters

    def adapter_for(self, provider: str) -> ProviderAdapter:
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise ValidationException(f"Unsupported provider: {provider}")
        return adapter

    # ========================================================================
    # Public API Methods
    # ========================================================================

    async def publish(self, request: PublishRequest) -> PublishResult:
        """
        Publish a single post to a single platform.

        Never raises for provider or validation failures; they come back as
        PublishResult(success=False, error=PublishError(...)).
        """
        provider = request.provider
        try:
            adapter = self.adapter_for(provider)

            connection = self.store.load(request.user_id, provider)
            if connection is None:
                raise NotConnectedException(f"{provider} is not connected")

            if self.store.is_expired(connection):
                raise TokenExpiredException(
                    f"{provider} connection expired at {connection.expires_at.isoformat()}; reconnect required"
                )

            result = await adapter.publish(connection, request)
            logger.info(f"Published to {provider} for user {request.user_id}: {result.remote_post_id}")
            return result

        except PublisherException as e:
            error = self._classify(e).to_error()
            logger.warning(
                f"Publish to {provider} failed for user {request.user_id}: {error.kind} - {error.message}"
            )
            return PublishResult.failed(error)

        finally:
            ProviderAdapter.discard_media(request.media_ref)

    async def refresh(self, user_id: int, provider: str) -> Connection:
        """
        Refresh a stored connection's tokens if they are close to expiry.

        Returns:
            The stored connection, updated when the provider issued new tokens

        Raises:
            NotConnectedException: nothing stored for this provider
            TokenExpiredException: the provider refused to refresh
        """
        adapter = self.adapter_for(provider)

        connection = self.store.load(user_id, provider)
        if connection is None:
            raise NotConnectedException(f"{provider} is not connected")

        refreshed = await adapter.refresh_if_needed(connection)
        if refreshed.same_tokens(connection):
            logger.debug(f"No refresh needed for {provider} connection of user {user_id}")
            return connection

        logger.info(f"Saving refreshed {provider} tokens for user {user_id}")
        return self.store.save(user_id, provider, refreshed)

    # ========================================================================
    # Helper Methods
    # ========================================================================

    @staticmethod
    def _classify(error: PublisherException) -> PublisherException:
        """A provider 401 always means the token is dead, whatever the adapter called it"""
        if error.status_code == 401 and not isinstance(error, TokenExpiredException):
            return TokenExpiredException(
                error.message,
                provider_code=error.provider_code,
                status_code=error.status_code,
            )
        return error
