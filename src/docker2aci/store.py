"""Content-addressable store for converted images."""

import hashlib
import logging
import os
import uuid
from pathlib import Path
from typing import Protocol

import aiofiles
import aiofiles.os

from .exceptions import StoreError

logger = logging.getLogger(__name__)

HASH_ALGORITHM = "sha512"


class AsyncReader(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class ContentStore(Protocol):
    """Anything that can ingest an ACI stream and name it by content."""

    async def ingest(self, stream: AsyncReader) -> str: ...


def image_key(hex_digest: str) -> str:
    return f"{HASH_ALGORITHM}-{hex_digest}"


class FileSystemStore:
    """Stores ACI blobs under ``root/blob/sha512/<xx>/sha512-<hex>``.

    Ingestion writes to ``root/tmp`` first and renames into place, so a
    blob path only ever holds complete content. Temp files left behind by a
    crash are not reclaimed.
    """

    def __init__(self, root: str | Path, chunk_size: int = 64 * 1024) -> None:
        self.root = Path(root)
        self.chunk_size = chunk_size

    @property
    def blob_dir(self) -> Path:
        return self.root / "blob" / HASH_ALGORITHM

    @property
    def tmp_dir(self) -> Path:
        return self.root / "tmp"

    def blob_path(self, key: str) -> Path:
        prefix = f"{HASH_ALGORITHM}-"
        if not key.startswith(prefix):
            raise StoreError(f"Unsupported key: {key}")
        hex_digest = key[len(prefix):]
        return self.blob_dir / hex_digest[:2] / key

    async def ingest(self, stream: AsyncReader) -> str:
        """Copy ``stream`` into the store and return its key.

        Raises:
            StoreError: If the stream cannot be read or the blob written
        """
        hasher = hashlib.new(HASH_ALGORITHM)
        tmp_path = self.tmp_dir / uuid.uuid4().hex
        try:
            await aiofiles.os.makedirs(self.tmp_dir, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as out:
                while True:
                    chunk = await stream.read(self.chunk_size)
                    if not chunk:
                        break
                    hasher.update(chunk)
                    await out.write(chunk)

            key = image_key(hasher.hexdigest())
            final_path = self.blob_path(key)
            await aiofiles.os.makedirs(final_path.parent, exist_ok=True)
            await aiofiles.os.replace(tmp_path, final_path)
        except OSError as e:
            raise StoreError(f"Error writing ACI: {e}") from e
        finally:
            if os.path.lexists(tmp_path):
                os.unlink(tmp_path)

        logger.debug("Stored %s", key)
        return key

    def exists(self, key: str) -> bool:
        return self.blob_path(key).is_file()

    def open(self, key: str):
        """Open a stored blob for reading."""
        try:
            return open(self.blob_path(key), "rb")
        except FileNotFoundError as e:
            raise StoreError(f"Image not found in store: {key}") from e
