"""Test configuration and fixtures."""

import os
import tempfile

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from tests.helpers import FakeRegistry, build_tree


@pytest.fixture
def scratch_root(tmp_path, monkeypatch):
    """Redirect temporary directories into an empty, inspectable directory."""
    root = tmp_path / "scratch"
    root.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(root))
    return root


@pytest.fixture
def image_tree(tmp_path):
    """A directory shaped like an OCI image layout, plus an empty directory."""
    root = tmp_path / "tree"
    files = {
        "oci-layout": (b'{"imageLayoutVersion": "1.0.0"}', 0o644),
        "index.json": (b'{"schemaVersion": 2, "manifests": []}', 0o644),
        "blobs/sha256/aaaa": (b"config", 0o600),
        "blobs/sha256/bbbb": (os.urandom(64 * 1024), 0o755),
        "refs/latest": (b"", 0o640),
    }
    build_tree(str(root), files)
    (root / "empty" / "nested").mkdir(parents=True)
    return root, files


@pytest.fixture
def registry(request):
    """In-memory registry contents; parametrize indirectly to customize."""
    return getattr(request, "param", None) or FakeRegistry()


@pytest_asyncio.fixture
async def registry_server(registry):
    """Serve the in-memory registry over plain HTTP on localhost."""
    server = TestServer(registry.app())
    await server.start_server()
    yield server
    await server.close()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")
