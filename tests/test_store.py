"""Tests for the filesystem content store."""

import hashlib
import io

import pytest

from docker2aci import FileSystemStore
from docker2aci.exceptions import StoreError


class AsyncBytesReader:
    """Async wrapper over bytes, standing in for an aiofiles handle."""

    def __init__(self, data: bytes) -> None:
        self._buf = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)


class FailingReader:
    async def read(self, size: int = -1) -> bytes:
        raise OSError("disk on fire")


@pytest.mark.asyncio
async def test_ingest_returns_content_key(tmp_path):
    store = FileSystemStore(tmp_path, chunk_size=4)
    data = b"some archive bytes"

    key = await store.ingest(AsyncBytesReader(data))

    assert key == "sha512-" + hashlib.sha512(data).hexdigest()
    assert store.exists(key)
    with store.open(key) as f:
        assert f.read() == data


@pytest.mark.asyncio
async def test_ingest_is_idempotent(tmp_path):
    store = FileSystemStore(tmp_path)

    first = await store.ingest(AsyncBytesReader(b"same"))
    second = await store.ingest(AsyncBytesReader(b"same"))

    assert first == second
    assert list(store.tmp_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_ingest_failure_cleans_temp_file(tmp_path):
    store = FileSystemStore(tmp_path)

    with pytest.raises(StoreError):
        await store.ingest(FailingReader())

    assert list(store.tmp_dir.iterdir()) == []


def test_blob_path_layout(tmp_path):
    store = FileSystemStore(tmp_path)
    key = "sha512-abcdef"
    assert store.blob_path(key) == tmp_path / "blob" / "sha512" / "ab" / key


def test_open_missing_key(tmp_path):
    store = FileSystemStore(tmp_path)
    with pytest.raises(StoreError):
        store.open("sha512-0000")


def test_unsupported_key(tmp_path):
    store = FileSystemStore(tmp_path)
    with pytest.raises(StoreError):
        store.blob_path("sha256-abc")
