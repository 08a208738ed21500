"""
Church Song Navigator - Object Storage Client

Uploaded sheet-music images and audio files live in a Cloudflare R2 bucket,
which exposes an S3-compatible API; boto3 talks to it.  Objects are read by
browsers straight from the bucket's public domain (``PUBLIC_BASE_URL``), so
the application only ever writes.
"""

from __future__ import annotations

from typing import Any

import boto3
from loguru import logger

from songnav.config import (
    PUBLIC_BASE_URL,
    R2_ACCESS_KEY_ID,
    R2_BUCKET,
    R2_ENDPOINT_URL,
    R2_REGION,
    R2_SECRET_ACCESS_KEY,
)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ObjectStore:
    """Minimal put-only client for an S3-compatible bucket.

    Attributes:
        bucket: bucket name
        endpoint_url: S3 API endpoint (R2: ``https://<account>.r2.cloudflarestorage.com``)
        public_base_url: domain the bucket is publicly served from
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        public_base_url: str,
        region: str = "auto",
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url.rstrip("/")
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )

    def put(self, key: str, data: bytes, content_type: str | None = None) -> dict[str, Any]:
        """Store *data* under *key*. Returns ``{"key": key}``."""
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type or DEFAULT_CONTENT_TYPE,
        )
        logger.info("☁️ Stored {} ({} bytes) in bucket {}", key, len(data), self.bucket)
        return {"key": key}

    def public_url(self, key: str) -> str:
        """Public URL browsers use to fetch *key*."""
        return f"{self.public_base_url}/{key.lstrip('/')}"


# ---------------------------------------------------------------------------
# Module-level accessor
# ---------------------------------------------------------------------------
_store: ObjectStore | None = None


def is_configured() -> bool:
    """Return True if bucket credentials and the public base URL are configured."""
    return bool(
        R2_BUCKET
        and R2_ACCESS_KEY_ID
        and R2_SECRET_ACCESS_KEY
        and PUBLIC_BASE_URL
    )


def get_object_store() -> ObjectStore | None:
    """Return the shared store, creating it on first use; None when unconfigured."""
    global _store
    if _store is not None:
        return _store
    if not is_configured():
        return None
    _store = ObjectStore(
        bucket=R2_BUCKET,
        endpoint_url=R2_ENDPOINT_URL,
        access_key_id=R2_ACCESS_KEY_ID,
        secret_access_key=R2_SECRET_ACCESS_KEY,
        public_base_url=PUBLIC_BASE_URL,
        region=R2_REGION,
    )
    logger.info("☁️ Object store ready (bucket={}, endpoint={})", R2_BUCKET, R2_ENDPOINT_URL or "aws")
    return _store
