"""
Dependency providers for the social API

Route handlers receive the credential store, OAuth state registry, pending
Page selections, adapters and services through FastAPI's Depends(); tests
swap any of them with app.dependency_overrides.
"""
from functools import lru_cache
from typing import Dict

from fastapi import Depends
from sqlalchemy.orm import Session

from config.redis_config import get_redis_client
from config.settings import Settings, get_settings
from database import get_db
from schemas.social import Provider
from services.connection_status_service import ConnectionStatusService
from services.publish_orchestrator import PublishOrchestrator
from src.publishers.base import ProviderAdapter
from src.publishers.registry import build_adapters
from utils.credential_store import CredentialStore
from utils.media_uploads import TemporaryUploadStorage
from utils.redis_state import OAuthStateRegistry, PageSelectionStore


def get_credential_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def get_state_registry(settings: Settings = Depends(get_settings)) -> OAuthStateRegistry:
    return OAuthStateRegistry(get_redis_client(), ttl_seconds=settings.OAUTH_STATE_TTL_SECONDS)


def get_page_selections(settings: Settings = Depends(get_settings)) -> PageSelectionStore:
    return PageSelectionStore(get_redis_client(), ttl_seconds=settings.PAGE_SELECTION_TTL_SECONDS)


@lru_cache()
def _default_adapters() -> Dict[Provider, ProviderAdapter]:
    return build_adapters(get_settings())


def get_adapters() -> Dict[Provider, ProviderAdapter]:
    """Adapters are stateless apart from configuration, so one set is shared"""
    return _default_adapters()


def get_upload_storage(settings: Settings = Depends(get_settings)) -> TemporaryUploadStorage:
    return TemporaryUploadStorage(settings)


def get_publish_orchestrator(
    store: CredentialStore = Depends(get_credential_store),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
) -> PublishOrchestrator:
    return PublishOrchestrator(store, adapters)


def get_connection_status_service(
    store: CredentialStore = Depends(get_credential_store),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
) -> ConnectionStatusService:
    return ConnectionStatusService(store, adapters)
