"""
Adapter registry - single dispatch from provider to adapter

Adding a provider means one ProviderAdapter subclass plus one entry here.
"""
from typing import Dict, Optional

import httpx

from config.settings import Settings
from schemas.social import Provider
from services.image_generation_service import DalleTextToImage, TextToImage
from .base import ProviderAdapter
from .facebook_publisher import FacebookPublisher
from .instagram_publisher import InstagramPublisher
from .linkedin_publisher import LinkedInPublisher
from .twitter_publisher import TwitterPublisher


def build_adapters(
    settings: Settings,
    text_to_image: Optional[TextToImage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[Provider, ProviderAdapter]:
    """
    Create one adapter per supported provider.

    The Instagram text-to-image fallback defaults to DALL-E when
    OPENAI_API_KEY is set and is left out otherwise.
    """
    if text_to_image is None and settings.OPENAI_API_KEY:
        text_to_image = DalleTextToImage(settings)

    return {
        Provider.TWITTER: TwitterPublisher(settings, transport=transport),
        Provider.FACEBOOK: FacebookPublisher(settings, transport=transport),
        Provider.INSTAGRAM: InstagramPublisher(settings, text_to_image=text_to_image, transport=transport),
        Provider.LINKEDIN: LinkedInPublisher(settings, transport=transport),
    }
