"""Report storage helpers (S3/MinIO or a local directory)."""
from __future__ import annotations

import asyncio
import hashlib
import json
import os
from typing import Any

import aioboto3
import structlog

from ..config import get_settings

logger = structlog.get_logger(__name__)


def _write_file(path: str, payload: bytes) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as handle:
        handle.write(payload)


def _read_file(path: str) -> bytes | None:
    if not os.path.exists(path):
        return None
    with open(path, "rb") as handle:
        return handle.read()


class ArtifactStorage:
    """Persist planning reports under content-hash identifiers."""

    def __init__(self) -> None:
        self._settings = get_settings().storage

    async def put_json(self, data: dict[str, Any]) -> str:
        """Store JSON data and return content-hash reference."""
        payload = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
        return await self._put_bytes(payload, suffix=".json")

    async def get_json(self, ref: str) -> dict[str, Any] | None:
        """Load a report by the reference ``put_json`` returned; None when it is gone."""
        payload = await self._get_bytes(ref)
        if payload is None:
            return None
        return json.loads(payload)

    def _client(self):
        return aioboto3.Session().client(
            "s3",
            endpoint_url=self._settings.s3_endpoint,
            region_name=self._settings.s3_region,
        )

    async def _put_bytes(self, payload: bytes, suffix: str = "") -> str:
        digest = hashlib.sha256(payload).hexdigest()
        key = f"reports/{digest}{suffix}"

        if not self._settings.s3_bucket:
            # Dev mode: write to local file system for traceability
            path = os.path.join(self._settings.artifact_dir, f"{digest}{suffix}")
            await asyncio.to_thread(_write_file, path, payload)
            return f"file://{path}"

        async with self._client() as client:
            await client.put_object(Bucket=self._settings.s3_bucket, Key=key, Body=payload)
        return f"s3://{self._settings.s3_bucket}/{key}"

    async def _get_bytes(self, ref: str) -> bytes | None:
        if ref.startswith("file://"):
            return await asyncio.to_thread(_read_file, ref[len("file://") :])
        if not ref.startswith("s3://"):
            logger.warning("storage.unknown_ref", ref=ref)
            return None

        bucket, _, key = ref[len("s3://") :].partition("/")
        async with self._client() as client:
            try:
                response = await client.get_object(Bucket=bucket, Key=key)
            except client.exceptions.NoSuchKey:
                logger.warning("storage.missing_object", bucket=bucket, key=key)
                return None
            async with response["Body"] as body:
                return await body.read()


__all__ = ["ArtifactStorage"]
