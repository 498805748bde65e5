"""Test configuration and fixtures."""

import os

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from docker2aci import ConverterConfig, FileSystemStore
from tests.helpers import FakeRegistry


@pytest_asyncio.fixture
async def fake_registry():
    """Serve a FakeRegistry on localhost for the duration of a test."""
    registry = FakeRegistry()
    server = TestServer(registry.make_app())
    await server.start_server()
    registry.host = f"{server.host}:{server.port}"
    try:
        yield registry
    finally:
        await server.close()


@pytest_asyncio.fixture
async def session():
    """Plain aiohttp session injected into registry operations."""
    async with aiohttp.ClientSession() as s:
        yield s


@pytest.fixture
def staging_dir(tmp_path):
    """Directory in which staging trees are created."""
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def config(tmp_path, staging_dir):
    """Converter configuration pointing at the fake registry and temp dirs."""
    return ConverterConfig(
        scheme="http",
        store_dir=str(tmp_path / "store"),
        tmp_dir=str(staging_dir),
    )


@pytest.fixture
def store(config):
    return FileSystemStore(config.store_dir)


# Pytest configuration
def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless a live registry is declared available."""
    skip_integration = pytest.mark.skip(reason="Registry not available")

    for item in items:
        if (
            "integration" in item.keywords
            and os.getenv("REGISTRY_AVAILABLE", "false").lower() != "true"
        ):
            item.add_marker(skip_integration)
