"""Tests for the Azure Blob Storage backend adapter."""

from __future__ import annotations

import io
from types import SimpleNamespace

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError, ServiceRequestError

from fileservice.storage.backends.azure_store import AzureBlobObjectStore, translate_azure_error
from fileservice.storage.context import OperationContext
from fileservice.storage.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    OperationCancelledError,
    StorageBackendError,
)
from fileservice.storage.models import DIRECTORY_CONTENT_TYPE
from tests.fakes import FakeBlobServiceClient

AZURITE_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=http;AccountName=devstoreaccount1;"
    "AccountKey=Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/"
    "K1SZFPTOtr/KBHBeksoGMGw==;"
    "BlobEndpoint=http://127.0.0.1:10000/devstoreaccount1;"
)


def _http_error(status: int, error_code: str = "") -> HttpResponseError:
    error = HttpResponseError(message=f"status {status}")
    error.status_code = status
    error.error_code = error_code or None
    return error


@pytest.fixture
def store(blob_service: FakeBlobServiceClient) -> AzureBlobObjectStore:
    return AzureBlobObjectStore(blob_service)


class TestErrorTranslation:
    def test_resource_not_found(self) -> None:
        error = translate_azure_error(ResourceNotFoundError("gone"), bucket="c", key="k")

        assert isinstance(error, ObjectNotFoundError)
        assert error.bucket == "c"

    def test_http_404(self) -> None:
        assert isinstance(translate_azure_error(_http_error(404)), ObjectNotFoundError)

    def test_http_400(self) -> None:
        assert isinstance(translate_azure_error(_http_error(400)), InvalidArgumentError)

    def test_invalid_resource_name(self) -> None:
        error = translate_azure_error(_http_error(409, "InvalidResourceName"))

        assert isinstance(error, InvalidArgumentError)

    def test_server_error(self) -> None:
        source = _http_error(503, "ServerBusy")

        error = translate_azure_error(source)

        assert isinstance(error, StorageBackendError)
        assert error.cause is source

    def test_transport_error(self) -> None:
        error = translate_azure_error(ServiceRequestError("connection refused"))

        assert isinstance(error, StorageBackendError)
        assert not isinstance(error, OperationCancelledError)


class TestAzureBlobObjectStore:
    def test_round_trip_reassembles_chunks(self, store: AzureBlobObjectStore) -> None:
        """The chunked blob download reads back as one byte stream."""
        payload = b"0123456789abcdef-xyz"
        store.upload("bucket", "docs/a.bin", io.BytesIO(payload), len(payload))

        stream = store.download("bucket", "docs/a.bin")
        try:
            assert stream.read(6) == b"012345"
            assert stream.readall() == payload[6:]
        finally:
            stream.close()

    def test_upload_content_type(self, store: AzureBlobObjectStore) -> None:
        store.upload("bucket", "a.txt", io.BytesIO(b"hi"), 2, "text/plain")

        assert store.get_object_info("bucket", "a.txt").content_type == "text/plain"

    def test_deadline_passed_as_server_timeout(
        self, store: AzureBlobObjectStore, blob_service: FakeBlobServiceClient
    ) -> None:
        ctx = OperationContext(timeout=30)

        store.upload("bucket", "a.txt", io.BytesIO(b"hi"), 2, ctx=ctx)

        name, blob, timeout = blob_service.calls[-1]
        assert (name, blob) == ("upload_blob", "a.txt")
        assert timeout is not None and 1 <= timeout <= 30

    def test_no_context_no_timeout(
        self, store: AzureBlobObjectStore, blob_service: FakeBlobServiceClient
    ) -> None:
        store.upload("bucket", "a.txt", io.BytesIO(b"hi"), 2)

        assert blob_service.calls[-1][2] is None

    def test_missing_blob(self, store: AzureBlobObjectStore) -> None:
        with pytest.raises(ObjectNotFoundError):
            store.download("bucket", "missing")
        with pytest.raises(ObjectNotFoundError):
            store.get_object_info("bucket", "missing")
        with pytest.raises(ObjectNotFoundError):
            store.delete("bucket", "missing")

    def test_missing_container(self, store: AzureBlobObjectStore) -> None:
        with pytest.raises(ObjectNotFoundError):
            store.list("other")

    def test_list_by_prefix(self, store: AzureBlobObjectStore) -> None:
        for key in ("docs/a.txt", "docs/b/c.txt", "top.txt"):
            store.upload("bucket", key, io.BytesIO(b"x"), 1)

        assert [r.name for r in store.list("bucket", "docs/")] == ["docs/a.txt", "docs/b/c.txt"]

    def test_create_directory(self, store: AzureBlobObjectStore) -> None:
        store.create_directory("bucket", "photos")

        info = store.get_object_info("bucket", "photos/")

        assert info.is_dir is True
        assert info.size == 0
        assert info.content_type == DIRECTORY_CONTENT_TYPE

    def test_list_directories_synthesized(self, store: AzureBlobObjectStore) -> None:
        """Directories come from blob name segments, markers included."""
        store.create_directory("bucket", "docs")
        store.create_directory("bucket", "docs/empty")
        for key in ("docs/a/1.txt", "docs/a/2.txt"):
            store.upload("bucket", key, io.BytesIO(b"x"), 1)

        names = [d.name for d in store.list_directories("bucket", "docs/")]

        assert names == ["docs/a/", "docs/empty/"]

    def test_cancelled(self, store: AzureBlobObjectStore) -> None:
        ctx = OperationContext()
        ctx.cancel()

        with pytest.raises(OperationCancelledError):
            store.get_object_info("bucket", "a.txt", ctx=ctx)

    def test_record_without_content_settings(self) -> None:
        props = SimpleNamespace(
            name="dir/", size=None, last_modified=None, metadata=None, content_settings=None
        )

        record = AzureBlobObjectStore._to_record(props)

        assert record.is_dir is True
        assert record.content_type == DIRECTORY_CONTENT_TYPE
        assert record.metadata == {}


class TestFromSettings:
    def test_connection_string(self) -> None:
        store = AzureBlobObjectStore.from_settings(connection_string=AZURITE_CONNECTION_STRING)

        assert store.backend_name == "azure"

    def test_account_name_and_key(self) -> None:
        store = AzureBlobObjectStore.from_settings(
            account_name="devstoreaccount1", account_key="a2V5"
        )

        assert store.backend_name == "azure"

    def test_missing_credentials(self) -> None:
        with pytest.raises(ValueError):
            AzureBlobObjectStore.from_settings(account_name="only-name")
