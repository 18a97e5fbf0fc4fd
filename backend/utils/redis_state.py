"""
Redis-based state storage for OAuth flows

OAuth state tokens bind a provider callback to the user who started the
handshake. They live in Redis with a TTL so in-flight logins survive
restarts and work across instances, and they are consumed with an atomic
GETDEL so two concurrent callbacks can never both succeed.

Facebook Login grants that cover several Pages wait here too, encrypted,
until the user picks the Page to connect.
"""
import json
import logging
import secrets
from datetime import datetime
from typing import Optional, Dict, Any

from redis import Redis

from schemas.social import OAuthState
from utils.encryption import decrypt_value, encrypt_value

logger = logging.getLogger(__name__)

STATE_KEY_PREFIX = "oauth_state:"
PAGE_SELECTION_KEY_PREFIX = "oauth_pages:"


class OAuthStateRegistry:
    """Short-lived, single-use OAuth state tokens"""

    def __init__(self, redis_client: Redis, ttl_seconds: int = 600):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(state: str) -> str:
        return f"{STATE_KEY_PREFIX}{state}"

    def create(
        self,
        user_id: int,
        provider: str,
        return_url: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Store a new OAuth state.

        Args:
            user_id: User starting the handshake
            provider: Provider name
            return_url: Optional frontend URL to land on afterwards
            data: Optional provider data needed at callback time

        Returns:
            The opaque state token
        """
        state = secrets.token_urlsafe(32)
        payload = {
            "user_id": user_id,
            "provider": provider,
            "nonce": secrets.token_hex(16),
            "created_at": datetime.utcnow().isoformat(),
            "return_url": return_url,
            "data": data or {},
        }
        self.redis.setex(self._key(state), self.ttl_seconds, json.dumps(payload, default=str))
        logger.debug(f"Stored OAuth state for {provider}: {state[:10]}...")
        return state

    def attach(self, state: str, data: Dict[str, Any]) -> bool:
        """
        Merge provider data into a live state, keeping its remaining TTL.

        Returns:
            False if the state is already gone
        """
        key = self._key(state)
        value = self.redis.get(key)
        if value is None:
            return False

        payload = json.loads(value)
        payload.setdefault("data", {}).update(data)
        # XX: never resurrect a state that expired between GET and SET
        updated = self.redis.set(key, json.dumps(payload, default=str), keepttl=True, xx=True)
        return bool(updated)

    def consume(self, state: Optional[str]) -> Optional[OAuthState]:
        """
        Atomically fetch and delete a state.

        Returns:
            The OAuthState, or None if unknown, expired or already consumed
        """
        if not state:
            return None

        value = self.redis.getdel(self._key(state))
        if value is None:
            logger.info(f"OAuth state not found (expired or already used): {state[:10]}...")
            return None

        try:
            payload = json.loads(value)
            return OAuthState(
                state=state,
                user_id=payload["user_id"],
                provider=payload["provider"],
                nonce=payload["nonce"],
                created_at=datetime.fromisoformat(payload["created_at"]),
                return_url=payload.get("return_url"),
                data=payload.get("data") or {},
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Malformed OAuth state payload for {state[:10]}...: {e}")
            return None


class PageSelectionStore:
    """
    Facebook Login grants waiting for the user to pick a Page.

    One pending grant per (user, provider); a newer grant replaces the
    older one. The payload holds page tokens, so it is encrypted.
    """

    def __init__(self, redis_client: Redis, ttl_seconds: int = 600):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(user_id: int, provider: str) -> str:
        return f"{PAGE_SELECTION_KEY_PREFIX}{provider}:{user_id}"

    def hold(self, user_id: int, provider: str, grant: Dict[str, Any]) -> None:
        value = encrypt_value(json.dumps(grant, default=str))
        self.redis.setex(self._key(user_id, provider), self.ttl_seconds, value)
        logger.debug(f"Holding {provider} grant for user {user_id} until a Page is selected")

    def get(self, user_id: int, provider: str) -> Optional[Dict[str, Any]]:
        """
        Returns:
            The pending grant, or None if there is none or it expired
        """
        value = self.redis.get(self._key(user_id, provider))
        if value is None:
            return None

        decrypted = decrypt_value(value)
        if decrypted is None:
            logger.error(f"Pending {provider} grant for user {user_id} could not be decrypted")
            return None
        return json.loads(decrypted)

    def release(self, user_id: int, provider: str) -> None:
        self.redis.delete(self._key(user_id, provider))
