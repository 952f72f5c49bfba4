import asyncio
import secrets
from typing import Optional

import cv2
import numpy as np
from supabase import Client, create_client

from tsukumart.config import Settings
from tsukumart.errors import StorageError, ValidationError
from tsukumart.models.product import DataUrl
from tsukumart.utils.logger import logger


def new_image_id() -> str:
    return secrets.token_urlsafe(16)


def sniff_content_type(data: bytes) -> str:
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"GIF8"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def make_thumbnail(data: bytes, size: int) -> bytes:
    """Fit the image inside a ``size`` x ``size`` box and encode it as JPEG."""
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ValidationError("Image could not be decoded")

    height, width = image.shape[:2]
    scale = min(size / width, size / height)
    new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
    resized = cv2.resize(image, new_size, interpolation=interpolation)

    ok, buffer = cv2.imencode(".jpg", resized, [cv2.IMWRITE_JPEG_QUALITY, 85])
    if not ok:
        raise StorageError("Failed to encode thumbnail")
    return buffer.tobytes()


class ImageStorage:
    """Images in a Supabase Storage bucket, addressed by opaque ids.

    The supabase client is synchronous, so calls run in a worker thread and are
    bounded by ``STORAGE_TIMEOUT_SECONDS``.
    """

    def __init__(self, settings: Settings, client: Optional[Client] = None):
        self.settings = settings
        self.bucket = settings.IMAGE_BUCKET
        self.timeout = settings.STORAGE_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> Client:
        if self._client is not None:
            return self._client

        url = self.settings.SUPABASE_URL
        key = self.settings.SUPABASE_SERVICE_ROLE_KEY or self.settings.SUPABASE_KEY
        if not url or not key:
            raise StorageError("SUPABASE_URL or SUPABASE_KEY/SUPABASE_SERVICE_ROLE_KEY not set")
        if not self.settings.SUPABASE_SERVICE_ROLE_KEY:
            logger.warning("SUPABASE_SERVICE_ROLE_KEY not set. Using SUPABASE_KEY (Anon). Uploads may fail due to RLS.")

        self._client = create_client(url, key)
        return self._client

    async def _run(self, func, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Storage call timed out after {self.timeout}s: {getattr(func, '__name__', func)}")
            raise StorageError("Image storage timed out")

    def _upload(self, image_id: str, data: bytes, content_type: str) -> None:
        self._get_client().storage.from_(self.bucket).upload(
            path=image_id,
            file=data,
            file_options={"content-type": content_type, "upsert": "true"},
        )

    def _download(self, image_id: str) -> bytes:
        return self._get_client().storage.from_(self.bucket).download(image_id)

    def _remove(self, image_id: str) -> None:
        self._get_client().storage.from_(self.bucket).remove([image_id])

    async def save(self, data: bytes, content_type: str) -> str:
        image_id = new_image_id()
        logger.info(f"Uploading image: bucket={self.bucket}, id={image_id}, size={len(data)}")
        try:
            await self._run(self._upload, image_id, data, content_type)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to upload image {image_id}: {e}")
            raise StorageError(f"Failed to upload image: {e}")
        return image_id

    async def save_data_url(self, image: DataUrl) -> str:
        return await self.save(image.data, image.mime_type)

    async def save_thumbnail(self, image: DataUrl) -> str:
        data = await asyncio.to_thread(make_thumbnail, image.data, self.settings.THUMBNAIL_SIZE)
        return await self.save(data, "image/jpeg")

    async def read(self, image_id: str) -> Optional[tuple[bytes, str]]:
        """Return ``(data, content_type)`` or None when the image does not exist."""
        try:
            data = await self._run(self._download, image_id)
        except StorageError:
            raise
        except Exception as e:
            logger.warning(f"Image {image_id} could not be downloaded: {e}")
            return None
        return data, sniff_content_type(data)

    async def delete(self, image_id: str) -> None:
        try:
            await self._run(self._remove, image_id)
            logger.info(f"Deleted image: bucket={self.bucket}, id={image_id}")
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to delete image {image_id}: {e}")
            raise StorageError(f"Failed to delete image: {e}")
