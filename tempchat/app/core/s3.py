"""MinIO client helpers for storing profile media."""
from __future__ import annotations

import io
import logging
from urllib.parse import quote

from minio import Minio

from .config import settings

logger = logging.getLogger(__name__)


def get_minio_client() -> Minio:
    """Return a configured MinIO client."""
    return Minio(
        settings.MINIO_ENDPOINT,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=False,
    )


def public_object_url(object_key: str) -> str:
    """Return the durable URL under which an object is served."""

    endpoint = settings.MINIO_PUBLIC_ENDPOINT or f"http://{settings.MINIO_ENDPOINT}"
    if "://" not in endpoint:
        endpoint = f"https://{endpoint}"
    return f"{endpoint.rstrip('/')}/{settings.MINIO_BUCKET}/{quote(object_key)}"


def store_object(client: Minio, object_key: str, data: bytes, content_type: str) -> str:
    """Upload ``data`` and return its durable URL."""

    bucket = settings.MINIO_BUCKET
    if not client.bucket_exists(bucket):
        logger.info("Creating bucket %s", bucket)
        client.make_bucket(bucket)
    client.put_object(bucket, object_key, io.BytesIO(data), len(data), content_type=content_type)
    return public_object_url(object_key)
