"""Pytest configuration and fixtures for file service tests.

Provider SDK clients are replaced by the fakes in tests/fakes.py; no test
touches the network.
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from fileservice.api.main import create_app
from fileservice.config import AppConfig
from fileservice.storage.backends.filesystem_store import FilesystemObjectStore
from tests.fakes import FakeBlobServiceClient, FakeMinioClient, FakeS3Client


@pytest.fixture
def temp_storage_dir() -> Iterator[Path]:
    """Create a temporary directory for storage tests."""
    with tempfile.TemporaryDirectory(prefix="fileservice_test_storage_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fs_store(temp_storage_dir: Path) -> FilesystemObjectStore:
    """FilesystemObjectStore rooted in a temp directory."""
    return FilesystemObjectStore(base_dir=temp_storage_dir)


@pytest.fixture
def minio_client() -> FakeMinioClient:
    return FakeMinioClient()


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def blob_service() -> FakeBlobServiceClient:
    return FakeBlobServiceClient()


@pytest.fixture
def app_config(temp_storage_dir: Path) -> AppConfig:
    """Filesystem-backed configuration with auth disabled."""
    return AppConfig.model_validate(
        {
            "server": {"request_timeout_seconds": 30},
            "storage": {
                "type": "filesystem",
                "bucket": "default",
                "filesystem": {"base_dir": str(temp_storage_dir)},
            },
        }
    )


@pytest.fixture
def client(app_config: AppConfig, fs_store: FilesystemObjectStore) -> TestClient:
    """TestClient over an app wired to the temp filesystem store."""
    return TestClient(create_app(app_config, store=fs_store))
