"""
Temporary Media Upload Storage

Media attached to a publish request is spooled to a private temporary
file and handed to the publisher as a MediaRef(temporary=True). The file
is removed once the publish attempt is over.

Usage:
    storage = TemporaryUploadStorage(settings)
    media = await storage.save_upload(upload, user_id=1)
    ...
    ProviderAdapter.discard_media(media)
"""

import os
import tempfile
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
from fastapi import UploadFile
from loguru import logger

from config.settings import Settings
from schemas.social import MediaRef
from src.publishers.exceptions import ValidationException

CHUNK_SIZE = 1024 * 1024


class TemporaryUploadStorage:
    """Spools uploaded media to disk for the duration of one request"""

    def __init__(self, settings: Settings):
        self.base_path = Path(settings.UPLOAD_TEMP_DIR or os.path.join(tempfile.gettempdir(), "social_uploads"))
        self.max_size_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
        self.base_path.mkdir(parents=True, exist_ok=True)

    async def save_upload(self, upload: UploadFile, user_id: Optional[int] = None) -> MediaRef:
        """
        Write an uploaded file to a uniquely named temporary file.

        Raises:
            ValidationException: upload exceeds MAX_UPLOAD_SIZE_MB
        """
        # Client filenames are never used as paths
        suffix = Path(upload.filename or "").suffix.lower()[:10]
        save_path = self.base_path / f"{user_id or 'anon'}_{uuid.uuid4().hex}{suffix}"

        written = 0
        try:
            async with aiofiles.open(save_path, "wb") as f:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_size_bytes:
                        raise ValidationException(
                            f"Upload exceeds the {self.max_size_bytes // (1024 * 1024)}MB limit"
                        )
                    await f.write(chunk)
        except BaseException:
            save_path.unlink(missing_ok=True)
            raise

        logger.info(f"Spooled upload to {save_path} ({written} bytes)")

        return MediaRef(
            path=str(save_path),
            content_type=upload.content_type,
            filename=upload.filename or save_path.name,
            temporary=True,
        )
