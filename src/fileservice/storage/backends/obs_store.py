"""Huawei Cloud OBS backend through the OBS S3-compatible endpoint."""

from __future__ import annotations

from fileservice.storage.backends.s3_compat import S3CompatibleObjectStore


class OBSObjectStore(S3CompatibleObjectStore):
    """Huawei Cloud Object Storage Service."""

    backend_id = "obs"
    provider_label = "OBS"
    endpoint_template = "obs.{region}.myhuaweicloud.com"
    addressing_style = "virtual"
    extra_not_found_codes = frozenset({"NoSuchVersion"})
    extra_invalid_codes = frozenset({"InvalidLocationConstraint", "InvalidRange"})
