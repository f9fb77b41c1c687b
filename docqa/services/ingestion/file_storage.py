"""Object storage backends for uploaded files."""

from abc import ABC, abstractmethod
import asyncio
import logging
import os
from typing import Optional

import httpx

from docqa.core.config import settings
from docqa.core.errors import DownloadError

logger = logging.getLogger(__name__)

# Supported upload types
SUPPORTED_EXTENSIONS = {
    ".txt": "text/plain",
    ".pdf": "application/pdf",
}


class StorageBackend(ABC):
    """Minimal object storage contract used by ingestion."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        ...

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        ...

    @abstractmethod
    async def remove(self, path: str) -> None:
        ...


class LocalFileStorage(StorageBackend):
    """Files stored under the data directory."""

    def __init__(self, data_dir: Optional[str] = None):
        """Initialize the storage root.

        Args:
            data_dir: Root directory, defaults to settings.DATA_DIR
        """
        self.data_dir = data_dir or settings.DATA_DIR
        if not os.path.exists(self.data_dir):
            os.makedirs(self.data_dir, exist_ok=True)
            logger.info(f"Created data directory: {self.data_dir}")

    def _full_path(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.data_dir, path))
        root = os.path.abspath(self.data_dir)
        if os.path.commonpath([full_path, root]) != root:
            raise ValueError(f"Path escapes storage root: {path}")
        return full_path

    def _read(self, full_path: str) -> bytes:
        with open(full_path, "rb") as f:
            return f.read()

    def _write(self, full_path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as f:
            f.write(data)

    async def download(self, path: str) -> bytes:
        full_path = self._full_path(path)
        if not os.path.exists(full_path):
            raise DownloadError(f"File not found: {path}", context={"path": path}, retryable=False)
        return await asyncio.to_thread(self._read, full_path)

    async def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        await asyncio.to_thread(self._write, self._full_path(path), data)
        logger.info(f"Stored {len(data)} bytes at {path}")
        return path

    async def remove(self, path: str) -> None:
        full_path = self._full_path(path)
        if os.path.exists(full_path):
            await asyncio.to_thread(os.remove, full_path)
            logger.info(f"Removed {path}")


class SupabaseStorage(StorageBackend):
    """Supabase Storage REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL or "").rstrip("/")
        self.service_key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.client = client or httpx.AsyncClient(timeout=60.0)

    @property
    def _headers(self):
        return {"Authorization": f"Bearer {self.service_key}", "apikey": self.service_key or ""}

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{path.lstrip('/')}"

    async def download(self, path: str) -> bytes:
        try:
            response = await self.client.get(self._object_url(path), headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"Failed to download {path}: HTTP {e.response.status_code}",
                context={"path": path, "status": e.response.status_code},
                retryable=e.response.status_code >= 500,
            ) from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download {path}: {e}", context={"path": path}) from e
        return response.content

    async def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        headers = {**self._headers, "Content-Type": content_type, "x-upsert": "true"}
        response = await self.client.post(self._object_url(path), content=data, headers=headers)
        response.raise_for_status()
        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return path

    async def remove(self, path: str) -> None:
        response = await self.client.delete(self._object_url(path), headers=self._headers)
        response.raise_for_status()


def get_storage_backend() -> StorageBackend:
    """Storage backend selected by settings.STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "supabase":
        return SupabaseStorage()
    return LocalFileStorage()
