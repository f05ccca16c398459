"""
shared/utils/storage.py
Saint photo storage: local disk for development, S3-compatible bucket
(AWS S3, Cloudflare R2, MinIO) in production. Selected by STORAGE_PROVIDER.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from starlette.concurrency import run_in_threadpool

from config.settings import settings

logger = logging.getLogger(__name__)

ALLOWED_PHOTO_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

_s3_client = None


def get_s3_client():
    """Create the S3 client on first use."""
    global _s3_client
    if _s3_client is None:
        import boto3
        _s3_client = boto3.client(
            "s3",
            aws_access_key_id=settings.S3_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY or None,
            endpoint_url=settings.S3_ENDPOINT_URL or None,
            region_name=settings.S3_REGION,
        )
    return _s3_client


def photo_key(saint_id: uuid.UUID, extension: str) -> str:
    return f"saints/{saint_id}/{uuid.uuid4()}{extension}"


def _write_local(key: str, content: bytes) -> str:
    path = Path(settings.LOCAL_STORAGE_PATH) / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return f"{settings.PUBLIC_UPLOADS_URL.rstrip('/')}/{key}"


def _write_s3(key: str, content: bytes, content_type: Optional[str]) -> str:
    s3 = get_s3_client()
    s3.put_object(
        Bucket=settings.S3_BUCKET_PUBLIC,
        Key=key,
        Body=content,
        ContentType=content_type or "application/octet-stream",
        CacheControl="public, max-age=31536000",
    )
    if settings.S3_ENDPOINT_URL:
        return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{settings.S3_BUCKET_PUBLIC}/{key}"
    return f"https://{settings.S3_BUCKET_PUBLIC}.s3.amazonaws.com/{key}"


async def save_saint_photo(
    saint_id: uuid.UUID,
    extension: str,
    content: bytes,
    content_type: Optional[str] = None,
) -> str:
    """Store the bytes and return the public URL."""
    key = photo_key(saint_id, extension)
    if settings.STORAGE_PROVIDER == "s3":
        url = await run_in_threadpool(_write_s3, key, content, content_type)
    else:
        url = await run_in_threadpool(_write_local, key, content)
    logger.info(f"Stored photo for saint {saint_id} at {key} ({len(content)} bytes)")
    return url
