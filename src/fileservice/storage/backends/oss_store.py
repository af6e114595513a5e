"""Aliyun OSS backend through the OSS S3-compatible endpoint."""

from __future__ import annotations

from fileservice.storage.backends.s3_compat import S3CompatibleObjectStore


class OSSObjectStore(S3CompatibleObjectStore):
    """Aliyun Object Storage Service.

    OSS only accepts virtual-hosted style requests on its S3-compatible
    endpoint, so path-style addressing is never used.
    """

    backend_id = "oss"
    provider_label = "OSS"
    endpoint_template = "oss-{region}.aliyuncs.com"
    addressing_style = "virtual"
    extra_not_found_codes = frozenset({"SymlinkTargetNotExist"})
    extra_invalid_codes = frozenset({"InvalidTargetType", "InvalidEncryptionAlgorithmError"})
