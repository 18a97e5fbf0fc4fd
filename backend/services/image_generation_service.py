"""
Image Generation Service for Instagram Posts

Instagram rejects text-only posts, so a post without an image gets one
generated from its text. The publisher only depends on the TextToImage
interface; DalleTextToImage is the OpenAI Images implementation wired in
when OPENAI_API_KEY is set.

Usage:
    generator = DalleTextToImage(settings)
    image_url = await generator.generate("Launch day for our new app")
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
from loguru import logger

from config.settings import Settings

# DALL-E 3 rejects prompts over 4000 characters; post text rarely needs that much
MAX_PROMPT_LENGTH = 1000


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ImageGenerationError(Exception):
    """Base exception for image generation errors"""
    pass


# ============================================================================
# INTERFACE
# ============================================================================

class TextToImage(ABC):
    """Turns post text into a publicly reachable image URL"""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generate an image for the prompt.

        Returns:
            HTTPS URL of the generated image

        Raises:
            ImageGenerationError: generation failed
        """


# ============================================================================
# OPENAI IMPLEMENTATION
# ============================================================================

class DalleTextToImage(TextToImage):
    """Generates images with the OpenAI Images API (DALL-E)"""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.OPENAI_API_KEY
        self.api_url = settings.DALLE_API_URL
        self.model = settings.DALLE_MODEL
        self.size = settings.DALLE_IMAGE_SIZE
        self.quality = settings.DALLE_IMAGE_QUALITY
        self.transport = transport

    @staticmethod
    def build_prompt(text: str) -> str:
        """Turn post text into an image prompt"""
        subject = " ".join(text.split())[:MAX_PROMPT_LENGTH]
        return f"{subject}, social media post illustration, modern, clean, high quality, no text"

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise ImageGenerationError("No OpenAI API key available")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "model": self.model,
            "prompt": self.build_prompt(prompt),
            "n": 1,
            "size": self.size,
            "quality": self.quality,
            "response_format": "url"
        }

        logger.info(f"Calling DALL-E API with model={self.model}, size={self.size}, prompt_length={len(prompt)}")

        async with httpx.AsyncClient(timeout=60.0, transport=self.transport) as client:
            try:
                response = await client.post(self.api_url, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                logger.error("DALL-E API timeout after 60 seconds")
                raise ImageGenerationError("Image generation timed out (60s)") from e
            except httpx.HTTPError as e:
                logger.error(f"DALL-E HTTP error: {str(e)}")
                raise ImageGenerationError(f"Network error while contacting OpenAI: {str(e)}") from e

        if response.status_code == 401:
            raise ImageGenerationError("Invalid OpenAI API key")
        elif response.status_code == 429:
            raise ImageGenerationError("OpenAI rate limit exceeded")
        elif not response.is_success:
            try:
                error_msg = response.json().get("error", {}).get("message", "Unknown error")
            except ValueError:
                error_msg = response.text[:200]
            logger.error(f"DALL-E {response.status_code} error: {error_msg}")
            raise ImageGenerationError(f"OpenAI error ({response.status_code}): {error_msg}")

        data = response.json()
        if not data.get("data") or not data["data"][0].get("url"):
            raise ImageGenerationError("No image URL returned from OpenAI API")

        logger.info("Successfully generated image for Instagram post")
        return data["data"][0]["url"]
