"""S3-compatible object storage backend.

Shared implementation for cloud providers reached through an S3-compatible
endpoint with boto3. Provider subclasses only contribute their endpoint
template and any provider-specific error codes:

- OSSObjectStore (Aliyun OSS)
- OBSObjectStore (Huawei Cloud OBS)
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, ClassVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError

from fileservice.storage.context import OperationContext, check_context
from fileservice.storage.directories import (
    DELIMITER,
    dedupe_directories,
    is_directory_key,
    normalize_directory,
)
from fileservice.storage.errors import (
    InvalidArgumentError,
    ObjectNotFoundError,
    ObjectStorageError,
    StorageBackendError,
)
from fileservice.storage.models import DEFAULT_CONTENT_TYPE, DIRECTORY_CONTENT_TYPE, FileObject
from fileservice.storage.object_store import ObjectStore
from fileservice.storage.streams import ObjectStream
from fileservice.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "404", "NotFound"})
INVALID_ARGUMENT_CODES = frozenset(
    {"InvalidBucketName", "InvalidArgument", "InvalidObjectName", "KeyTooLongError", "400"}
)


def _error_code(e: ClientError) -> str:
    error = e.response.get("Error") or {}
    code = str(error.get("Code") or "")
    if not code:
        status = (e.response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
        code = str(status or "")
    return code


def translate_s3_error(
    e: Exception,
    *,
    bucket: str | None = None,
    key: str | None = None,
    provider: str = "S3",
    not_found_codes: frozenset[str] = NOT_FOUND_CODES,
    invalid_codes: frozenset[str] = INVALID_ARGUMENT_CODES,
) -> ObjectStorageError:
    """Map a boto3/botocore exception onto the storage error taxonomy."""
    if isinstance(e, ObjectStorageError):
        return e
    if isinstance(e, ClientError):
        code = _error_code(e)
        if code in not_found_codes:
            return ObjectNotFoundError(bucket=bucket, key=key)
        if code in invalid_codes:
            return InvalidArgumentError(
                message=f"{provider} rejected request: {code}", bucket=bucket, key=key
            )
        return StorageBackendError(
            message=f"{provider} error {code}: {e}", bucket=bucket, key=key, cause=e
        )
    if isinstance(e, (ParamValidationError, ValueError, TypeError)):
        return InvalidArgumentError(message=str(e), bucket=bucket, key=key)
    if isinstance(e, BotoCoreError):
        return StorageBackendError(
            message=f"{provider} client error: {e}", bucket=bucket, key=key, cause=e
        )
    return StorageBackendError(
        message=f"{provider} request failed: {e}", bucket=bucket, key=key, cause=e
    )


class S3CompatibleObjectStore(ObjectStore):
    """Object store reached through an S3-compatible endpoint.

    Directory listing uses delimiter listing: every page's CommonPrefixes
    are the immediate sub-directories of the prefix.
    """

    backend_id: ClassVar[str] = "s3"
    provider_label: ClassVar[str] = "S3"
    endpoint_template: ClassVar[str] = ""
    addressing_style: ClassVar[str] = "auto"
    extra_not_found_codes: ClassVar[frozenset[str]] = frozenset()
    extra_invalid_codes: ClassVar[frozenset[str]] = frozenset()

    def __init__(self, client: Any) -> None:
        self._client = client
        self._not_found_codes = NOT_FOUND_CODES | self.extra_not_found_codes
        self._invalid_codes = INVALID_ARGUMENT_CODES | self.extra_invalid_codes

    @classmethod
    def resolve_endpoint(cls, endpoint: str, region: str | None, use_ssl: bool) -> str:
        """Build the endpoint URL from an explicit endpoint or the region template."""
        endpoint = (endpoint or "").strip().rstrip("/")
        if not endpoint:
            if not region or not cls.endpoint_template:
                raise ValueError(f"{cls.provider_label} endpoint or region is required")
            endpoint = cls.endpoint_template.format(region=region)
        if "://" not in endpoint:
            endpoint = f"{'https' if use_ssl else 'http'}://{endpoint}"
        return endpoint

    @classmethod
    def from_settings(
        cls,
        endpoint: str,
        access_key: str,
        secret_key: str,
        use_ssl: bool = False,
        region: str | None = None,
    ) -> S3CompatibleObjectStore:
        endpoint_url = cls.resolve_endpoint(endpoint, region, use_ssl)
        client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region or None,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": cls.addressing_style},
            ),
        )
        logger.info("%s client created: endpoint=%s", cls.provider_label, endpoint_url)
        return cls(client)

    @property
    def backend_name(self) -> str:
        return self.backend_id

    def _translate(
        self, e: Exception, bucket: str, key: str | None = None
    ) -> ObjectStorageError:
        return translate_s3_error(
            e,
            bucket=bucket,
            key=key,
            provider=self.provider_label,
            not_found_codes=self._not_found_codes,
            invalid_codes=self._invalid_codes,
        )

    @traced_storage_operation("upload")
    def upload(
        self,
        bucket: str,
        object_name: str,
        stream: BinaryIO,
        size: int = 0,
        content_type: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        check_context(ctx, bucket=bucket, key=object_name)
        content_type = content_type or DEFAULT_CONTENT_TYPE
        try:
            if size > 0:
                self._client.put_object(
                    Bucket=bucket,
                    Key=object_name,
                    Body=stream,
                    ContentLength=size,
                    ContentType=content_type,
                )
            else:
                # Unknown length: let the transfer manager split into parts
                self._client.upload_fileobj(
                    Fileobj=stream,
                    Bucket=bucket,
                    Key=object_name,
                    ExtraArgs={"ContentType": content_type},
                )
        except Exception as e:
            raise self._translate(e, bucket, object_name) from e
        logger.debug(
            "Uploaded to %s: bucket=%s key=%s size=%d",
            self.provider_label,
            bucket,
            object_name,
            size,
        )

    @traced_storage_operation("download")
    def download(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> ObjectStream:
        check_context(ctx, bucket=bucket, key=object_name)
        try:
            response = self._client.get_object(Bucket=bucket, Key=object_name)
        except Exception as e:
            raise self._translate(e, bucket, object_name) from e
        body = response["Body"]
        return ObjectStream(body, on_close=body.close, ctx=ctx, bucket=bucket, key=object_name)

    @traced_storage_operation("delete")
    def delete(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        check_context(ctx, bucket=bucket, key=object_name)
        try:
            self._client.delete_object(Bucket=bucket, Key=object_name)
        except Exception as e:
            raise self._translate(e, bucket, object_name) from e

    def _pages(
        self,
        bucket: str,
        prefix: str,
        ctx: OperationContext | None,
        delimiter: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix}
        if delimiter:
            params["Delimiter"] = delimiter
        pages: list[dict[str, Any]] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**params):
                check_context(ctx, bucket=bucket, key=prefix)
                pages.append(page)
        except Exception as e:
            raise self._translate(e, bucket, prefix) from e
        return pages

    @traced_storage_operation("list")
    def list(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        check_context(ctx, bucket=bucket, key=prefix)
        records: list[FileObject] = []
        for page in self._pages(bucket, prefix, ctx):
            for item in page.get("Contents", []):
                name = item["Key"]
                is_dir = is_directory_key(name)
                records.append(
                    FileObject(
                        name=name,
                        size=int(item.get("Size") or 0),
                        content_type=DIRECTORY_CONTENT_TYPE if is_dir else DEFAULT_CONTENT_TYPE,
                        last_modified=item.get("LastModified"),
                        is_dir=is_dir,
                    )
                )
        return records

    @traced_storage_operation("get_object_info")
    def get_object_info(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> FileObject:
        check_context(ctx, bucket=bucket, key=object_name)
        try:
            head = self._client.head_object(Bucket=bucket, Key=object_name)
        except Exception as e:
            raise self._translate(e, bucket, object_name) from e
        return FileObject(
            name=object_name,
            size=int(head.get("ContentLength") or 0),
            content_type=head.get("ContentType") or DEFAULT_CONTENT_TYPE,
            last_modified=head.get("LastModified"),
            metadata={str(k): str(v) for k, v in (head.get("Metadata") or {}).items()},
            is_dir=is_directory_key(object_name),
        )

    @traced_storage_operation("create_directory")
    def create_directory(
        self,
        bucket: str,
        object_name: str,
        *,
        ctx: OperationContext | None = None,
    ) -> None:
        check_context(ctx, bucket=bucket, key=object_name)
        marker = normalize_directory(object_name)
        if not marker:
            raise InvalidArgumentError(message="Empty directory name", bucket=bucket)
        try:
            self._client.put_object(
                Bucket=bucket,
                Key=marker,
                Body=b"",
                ContentLength=0,
                ContentType=DIRECTORY_CONTENT_TYPE,
            )
        except Exception as e:
            raise self._translate(e, bucket, marker) from e

    @traced_storage_operation("list_directories")
    def list_directories(
        self,
        bucket: str,
        prefix: str = "",
        *,
        ctx: OperationContext | None = None,
    ) -> list[FileObject]:
        check_context(ctx, bucket=bucket, key=prefix)
        found = (
            FileObject.directory(entry["Prefix"])
            for page in self._pages(bucket, prefix, ctx, delimiter=DELIMITER)
            for entry in page.get("CommonPrefixes", [])
        )
        return dedupe_directories(found, prefix)
