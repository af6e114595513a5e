"""Backend selection.

Exactly one ObjectStore is built at startup from StorageConfig and shared for
the life of the process. There is no runtime switching.
"""

from __future__ import annotations

import logging

from fileservice.config import STORAGE_TYPES, StorageConfig
from fileservice.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


class StorageConfigError(Exception):
    """Raised when the configured backend cannot be constructed.

    Covers unknown backend types, missing credentials and provider client
    constructor failures.
    """

    def __init__(self, message: str, backend: str | None = None) -> None:
        self.message = message
        self.backend = backend
        super().__init__(message)


def _require(backend: str, **values: str) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise StorageConfigError(
            f"Missing {backend} settings: {', '.join(sorted(missing))}", backend=backend
        )


def _build(config: StorageConfig) -> ObjectStore:
    backend = config.type

    if backend == "minio":
        from fileservice.storage.backends.minio_store import MinIOObjectStore

        minio = config.minio
        _require(
            backend,
            endpoint=minio.endpoint,
            access_key=minio.access_key,
            secret_key=minio.secret_key,
        )
        return MinIOObjectStore.from_settings(
            minio.endpoint, minio.access_key, minio.secret_key, use_ssl=minio.use_ssl
        )

    if backend in ("oss", "obs"):
        from fileservice.storage.backends.obs_store import OBSObjectStore
        from fileservice.storage.backends.oss_store import OSSObjectStore

        settings = config.oss if backend == "oss" else config.obs
        store_cls = OSSObjectStore if backend == "oss" else OBSObjectStore
        _require(backend, access_key=settings.access_key, secret_key=settings.secret_key)
        if not settings.endpoint and not settings.region:
            raise StorageConfigError(f"{backend} requires endpoint or region", backend=backend)
        return store_cls.from_settings(
            settings.endpoint,
            settings.access_key,
            settings.secret_key,
            use_ssl=settings.use_ssl,
            region=settings.region or None,
        )

    if backend == "azure":
        from fileservice.storage.backends.azure_store import AzureBlobObjectStore

        azure = config.azure
        if not azure.connection_string:
            _require(backend, account_name=azure.account_name, account_key=azure.account_key)
        return AzureBlobObjectStore.from_settings(
            endpoint=azure.endpoint,
            account_name=azure.account_name,
            account_key=azure.account_key,
            connection_string=azure.connection_string,
        )

    if backend == "filesystem":
        from fileservice.storage.backends.filesystem_store import FilesystemObjectStore

        return FilesystemObjectStore(config.filesystem.base_dir or None)

    raise StorageConfigError(
        f"Unsupported storage type: {backend!r} (expected one of {', '.join(STORAGE_TYPES)})",
        backend=backend,
    )


def create_store(config: StorageConfig) -> ObjectStore:
    """Construct the configured backend.

    Raises:
        StorageConfigError: If the type is unknown, credentials are missing,
            or the provider client cannot be constructed.
    """
    try:
        store = _build(config)
    except StorageConfigError as e:
        logger.error("Storage backend configuration invalid: %s", e)
        raise
    except Exception as e:
        logger.error("Failed to create %s storage backend: %s", config.type, e)
        raise StorageConfigError(
            f"Failed to create {config.type} storage backend: {e}", backend=config.type
        ) from e

    logger.info("Storage backend ready: type=%s bucket=%s", store.backend_name, config.bucket)
    return store
