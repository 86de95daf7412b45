"""Cloudflare R2 object storage — S3-compatible, accessed through boto3.

Storage keys follow ``<scope>/<owner_id>/[<project_id>/]<timestamp>_<name>``:
    uploads/user-123/1760700000000_backyard.jpg
    generated/user-123/<project_id>/1760700000123_design_0.png

Durable URLs are ``<R2_PUBLIC_BASE_URL>/<key>`` (custom domain or r2.dev
bucket URL). boto3 is blocking, so the async helpers hop to a thread.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import Any
from urllib.parse import quote

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.errors import StorageError

logger = structlog.get_logger()

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9@._-]+")


def _build_client(settings: Settings) -> Any:
    """Create an S3 client pointed at Cloudflare R2."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def missing_settings(settings: Settings) -> list[str]:
    """Names of the R2 settings that are required but empty."""
    required = {
        "R2_ACCOUNT_ID": settings.r2_account_id,
        "R2_ACCESS_KEY_ID": settings.r2_access_key_id,
        "R2_SECRET_ACCESS_KEY": settings.r2_secret_access_key,
        "R2_BUCKET_NAME": settings.r2_bucket_name,
        "R2_PUBLIC_BASE_URL": settings.r2_public_base_url,
    }
    return [name for name, value in required.items() if not value]


def _safe_segment(value: str) -> str:
    return _UNSAFE_KEY_CHARS.sub("_", value).strip("_") or "unknown"


def storage_key(
    scope: str,
    owner_id: str,
    name: str,
    project_id: str | None = None,
    *,
    timestamp_ms: int | None = None,
) -> str:
    """Build a key namespaced by owner (and project, when known)."""
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    parts = [scope, _safe_segment(owner_id)]
    if project_id:
        parts.append(_safe_segment(project_id))
    parts.append(f"{ts}_{_safe_segment(name)}")
    return "/".join(parts)


class ObjectStorage:
    """Bucket-scoped wrapper: store bytes, make them public, hand out URLs."""

    def __init__(
        self,
        client: Any,
        bucket: str,
        public_base_url: str,
        *,
        public_acl: bool = False,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.public_acl = public_acl

    @classmethod
    def from_settings(cls, settings: Settings) -> ObjectStorage:
        missing = missing_settings(settings)
        if missing:
            logger.error("r2_not_configured", missing=missing)
            raise StorageError.not_configured(missing)
        return cls(
            _build_client(settings),
            settings.r2_bucket_name,
            settings.r2_public_base_url,
            public_acl=settings.r2_public_acl,
        )

    def upload_object(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        """Upload bytes. Returns the storage key."""
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        logger.info("r2_upload", key=key, size=len(data), content_type=content_type)
        return key

    def make_public(self, key: str) -> None:
        """Grant anonymous read on one object.

        R2 serves public objects through the bucket's public domain, so the
        per-object ACL is only sent when R2_PUBLIC_ACL is enabled (S3 targets).
        """
        if not self.public_acl:
            return
        self._client.put_object_acl(Bucket=self.bucket, Key=key, ACL="public-read")

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key)}"

    def is_durable_url(self, url: str) -> bool:
        return url.startswith(f"{self.public_base_url}/")

    async def store_public(self, key: str, data: bytes, content_type: str) -> str:
        """Upload, publish, and return the durable URL.

        Raises StorageError on any S3 failure.
        """
        try:
            await asyncio.to_thread(self.upload_object, key, data, content_type)
            await asyncio.to_thread(self.make_public, key)
        except (ClientError, BotoCoreError) as exc:
            logger.error("r2_store_failed", key=key, error=str(exc))
            raise StorageError(detail=f"{type(exc).__name__}: {exc}"[:300]) from exc
        return self.public_url(key)

    def head_bucket(self) -> None:
        self._client.head_bucket(Bucket=self.bucket)
