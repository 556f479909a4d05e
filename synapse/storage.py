# synapse/storage.py
import io
import os
import asyncio
import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

import aiofiles
import httpx
from minio import Minio

from synapse.config import Settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when bytes cannot be written to or read from a storage locator."""


def ensure_dir(path):
    os.makedirs(path, exist_ok=True)


def _object_name(owner: str, filename: str) -> str:
    # strip path parts from client-supplied names
    safe = Path(filename or "uploaded").name
    return f"{owner}/{uuid4()}__{safe}"


class Storage:
    """
    Object storage collaborator: save returns a locator, read takes one back.
    Locators that are http(s) URLs are fetched directly whatever the backend.
    """

    async def save(self, data: bytes, filename: str, owner: str, content_type: str = "application/octet-stream") -> str:
        raise NotImplementedError

    async def read(self, locator: str) -> bytes:
        if not locator:
            raise StorageError("empty storage locator")
        try:
            if locator.startswith(("http://", "https://")):
                return await self._read_url(locator)
            return await self._read_object(locator)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"failed to read {locator}: {e}") from e

    async def _read_object(self, locator: str) -> bytes:
        raise NotImplementedError

    async def _read_url(self, url: str) -> bytes:
        async with httpx.AsyncClient(timeout=30.0) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.content


class LocalStorage(Storage):
    def __init__(self, root: str):
        self.root = root
        ensure_dir(root)

    async def save(self, data, filename, owner, content_type="application/octet-stream"):
        path = os.path.join(self.root, _object_name(owner, filename))
        ensure_dir(os.path.dirname(path))
        try:
            async with aiofiles.open(path, "wb") as out_file:
                await out_file.write(data)
        except Exception as e:
            raise StorageError(f"failed to write {path}: {e}") from e
        logger.debug("Stored %d bytes at %s", len(data), path)
        return path

    async def _read_object(self, locator):
        async with aiofiles.open(locator, "rb") as f:
            return await f.read()


class MinioStorage(Storage):
    """Locators have the form '<bucket>/<object name>'."""

    def __init__(self, client: Minio, bucket: str):
        self.client = client
        self.bucket = bucket
        self._bucket_checked = False

    def _ensure_bucket(self):
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info("Created minio bucket %s", self.bucket)
        self._bucket_checked = True

    def _put(self, object_name: str, data: bytes, content_type: str):
        self._ensure_bucket()
        self.client.put_object(self.bucket, object_name, io.BytesIO(data), length=len(data), content_type=content_type)

    def _get(self, bucket: str, object_name: str) -> bytes:
        resp = self.client.get_object(bucket, object_name)
        try:
            return resp.read()
        finally:
            resp.close()
            resp.release_conn()

    async def save(self, data, filename, owner, content_type="application/octet-stream"):
        object_name = _object_name(owner, filename)
        try:
            await asyncio.to_thread(self._put, object_name, data, content_type)
        except Exception as e:
            raise StorageError(f"failed to upload {object_name}: {e}") from e
        return f"{self.bucket}/{object_name}"

    async def _read_object(self, locator):
        bucket, _, object_name = locator.partition("/")
        if not object_name:
            raise StorageError(f"malformed object locator {locator!r}")
        return await asyncio.to_thread(self._get, bucket, object_name)


def build_storage(cfg: Settings, client: Optional[Minio] = None) -> Storage:
    if cfg.storage_backend == "minio":
        client = client or Minio(
            cfg.minio_endpoint,
            access_key=cfg.minio_access_key,
            secret_key=cfg.minio_secret_key,
            secure=cfg.minio_secure,
        )
        return MinioStorage(client, cfg.minio_bucket)
    return LocalStorage(cfg.upload_dir)
