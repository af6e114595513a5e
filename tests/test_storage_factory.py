"""Tests for backend selection from StorageConfig."""

from __future__ import annotations

from pathlib import Path

import pytest

from fileservice.config import StorageConfig
from fileservice.storage.backends.azure_store import AzureBlobObjectStore
from fileservice.storage.backends.filesystem_store import FilesystemObjectStore
from fileservice.storage.backends.minio_store import MinIOObjectStore
from fileservice.storage.backends.obs_store import OBSObjectStore
from fileservice.storage.backends.oss_store import OSSObjectStore
from fileservice.storage.factory import StorageConfigError, create_store


def _config(**data: object) -> StorageConfig:
    return StorageConfig.model_validate(data)


class TestCreateStore:
    def test_minio(self) -> None:
        config = _config(
            type="minio",
            minio={"endpoint": "localhost:9000", "access_key": "ak", "secret_key": "sk"},
        )

        assert isinstance(create_store(config), MinIOObjectStore)

    def test_oss_from_region(self) -> None:
        config = _config(
            type="oss", oss={"region": "cn-hangzhou", "access_key": "ak", "secret_key": "sk"}
        )

        store = create_store(config)

        assert isinstance(store, OSSObjectStore)
        assert store.backend_name == "oss"

    def test_obs_from_endpoint(self) -> None:
        config = _config(
            type="obs",
            obs={
                "endpoint": "obs.cn-north-4.myhuaweicloud.com",
                "region": "cn-north-4",
                "access_key": "ak",
                "secret_key": "sk",
            },
        )

        assert isinstance(create_store(config), OBSObjectStore)

    def test_azure_connection_string(self) -> None:
        config = _config(
            type="azure",
            azure={
                "connection_string": (
                    "DefaultEndpointsProtocol=https;AccountName=acct;"
                    "AccountKey=a2V5;EndpointSuffix=core.windows.net"
                )
            },
        )

        assert isinstance(create_store(config), AzureBlobObjectStore)

    def test_filesystem(self, tmp_path: Path) -> None:
        config = _config(type="filesystem", filesystem={"base_dir": str(tmp_path)})

        store = create_store(config)

        assert isinstance(store, FilesystemObjectStore)
        assert store.base_dir == tmp_path.resolve()

    def test_type_is_case_insensitive(self, tmp_path: Path) -> None:
        config = _config(type=" FileSystem ", filesystem={"base_dir": str(tmp_path)})

        assert isinstance(create_store(config), FilesystemObjectStore)


class TestConfigErrors:
    def test_unknown_type(self) -> None:
        with pytest.raises(StorageConfigError, match="Unsupported storage type") as exc_info:
            create_store(_config(type="gcs"))

        assert exc_info.value.backend == "gcs"

    def test_minio_missing_credentials(self) -> None:
        config = _config(type="minio", minio={"endpoint": "localhost:9000"})

        with pytest.raises(StorageConfigError, match="access_key, secret_key"):
            create_store(config)

    def test_oss_needs_endpoint_or_region(self) -> None:
        config = _config(type="oss", oss={"access_key": "ak", "secret_key": "sk"})

        with pytest.raises(StorageConfigError, match="endpoint or region"):
            create_store(config)

    def test_azure_missing_credentials(self) -> None:
        config = _config(type="azure", azure={"account_name": "acct"})

        with pytest.raises(StorageConfigError, match="account_key"):
            create_store(config)

    def test_client_constructor_failure_is_wrapped(self) -> None:
        """Provider constructor errors surface as StorageConfigError."""
        config = _config(type="azure", azure={"connection_string": "not-a-connection-string"})

        with pytest.raises(StorageConfigError, match="Failed to create azure") as exc_info:
            create_store(config)

        assert exc_info.value.__cause__ is not None
