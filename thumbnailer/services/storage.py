from __future__ import annotations

import logging
import os
import secrets
import time

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import env_int, env_str, parse_bool
from ..errors import StorageUploadError

logger = logging.getLogger("folio.storage")

STORAGE_ENDPOINT = env_str("FOLIO_STORAGE_ENDPOINT")
STORAGE_BUCKET = env_str("FOLIO_STORAGE_BUCKET")
STORAGE_ACCESS_KEY_ID = env_str("FOLIO_STORAGE_ACCESS_KEY_ID")
STORAGE_SECRET_ACCESS_KEY = env_str("FOLIO_STORAGE_SECRET_ACCESS_KEY")
STORAGE_REGION = env_str("FOLIO_STORAGE_REGION", "auto") or "auto"
STORAGE_PUBLIC_BASE_URL = env_str("FOLIO_STORAGE_PUBLIC_BASE_URL").rstrip("/")
STORAGE_PREFIX = env_str("FOLIO_STORAGE_PREFIX").strip("/")
STORAGE_PUBLIC_ACL = parse_bool(os.environ.get("FOLIO_STORAGE_PUBLIC_ACL", "false"))
# SigV4 presigned URLs are capped at 7 days.
STORAGE_PRESIGN_TTL_SECONDS = min(env_int("FOLIO_STORAGE_PRESIGN_TTL_SECONDS", 604800), 604800)

THUMBNAIL_CACHE_CONTROL = env_str("FOLIO_THUMB_CACHE_CONTROL", "public, max-age=31536000")


def format_key_timestamp(seconds: float) -> str:
    text = repr(float(seconds))
    if text.endswith(".0"):
        text = text[:-2]
    return text


def generation_nonce() -> str:
    # Millisecond clock plus random suffix: unique across concurrent invocations.
    return f"{int(time.time() * 1000)}{secrets.token_hex(3)}"


def build_storage_key(record_id: str, timestamp_seconds: float, nonce: str) -> str:
    base = f"thumbnails/{record_id}/thumb_{format_key_timestamp(timestamp_seconds)}_{nonce}.jpg"
    if STORAGE_PREFIX:
        return f"{STORAGE_PREFIX}/{base}"
    return base


class BlobStore:
    """S3-compatible object storage for published thumbnails."""

    def __init__(
        self,
        *,
        client=None,
        bucket: str | None = None,
        public_base_url: str | None = None,
        public_acl: bool | None = None,
        presign_ttl_seconds: int | None = None,
    ) -> None:
        self._client = client
        self.bucket = bucket if bucket is not None else STORAGE_BUCKET
        self.public_base_url = (
            public_base_url if public_base_url is not None else STORAGE_PUBLIC_BASE_URL
        ).rstrip("/")
        self.public_acl = STORAGE_PUBLIC_ACL if public_acl is None else public_acl
        self.presign_ttl_seconds = presign_ttl_seconds or STORAGE_PRESIGN_TTL_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.bucket)

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=STORAGE_ENDPOINT or None,
                aws_access_key_id=STORAGE_ACCESS_KEY_ID or None,
                aws_secret_access_key=STORAGE_SECRET_ACCESS_KEY or None,
                region_name=STORAGE_REGION,
                config=BotoConfig(
                    signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"}
                ),
            )
        return self._client

    def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        if not self.configured:
            raise StorageUploadError("Thumbnail storage is not configured")
        extra: dict = {"ContentType": content_type}
        cache_control = cache_control or THUMBNAIL_CACHE_CONTROL
        if cache_control:
            extra["CacheControl"] = cache_control
        if metadata:
            extra["Metadata"] = {k: str(v) for k, v in metadata.items()}
        if self.public_acl:
            extra["ACL"] = "public-read"
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Thumbnail upload failed for %s: %s", key, exc)
            raise StorageUploadError(f"Failed to upload thumbnail: {exc}") from exc

    def public_reference(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.presign_ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageUploadError(f"Failed to resolve thumbnail URL: {exc}") from exc

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)
