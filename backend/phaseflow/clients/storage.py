"""
S3ObjectStorage — ObjectStorage backed by S3 or MinIO (boto3).

Uploads land under the cache prefix; ``promote`` moves them under the
store prefix.  boto3 is blocking, so each call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from phaseflow.core.config import settings
from phaseflow.core.logging import get_logger
from phaseflow.workflow.errors import StorageError
from phaseflow.workflow.phase import ActionOutcome
from phaseflow.workflow.targets import chunked

logger = get_logger(__name__)

# S3 accepts at most this many keys per DeleteObjects request.
MAX_DELETE_KEYS = 1000


def _retryable(exc: Exception) -> bool:
    """Connection problems and 5xx responses are worth another attempt."""
    if isinstance(exc, BotoCoreError):
        return True
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
    return status >= 500


class S3ObjectStorage:
    """Production ObjectStorage."""

    def __init__(
        self,
        bucket: str | None = None,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        cache_prefix: str | None = None,
        store_prefix: str | None = None,
        client=None,
    ) -> None:
        self.bucket = bucket or settings.STORAGE_BUCKET_NAME
        self.cache_prefix = cache_prefix if cache_prefix is not None else settings.STORAGE_CACHE_PREFIX
        self.store_prefix = store_prefix if store_prefix is not None else settings.STORAGE_STORE_PREFIX
        if client is None:
            kwargs: dict = {"region_name": region or settings.AWS_REGION}
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            if access_key and secret_key:
                kwargs["aws_access_key_id"] = access_key
                kwargs["aws_secret_access_key"] = secret_key
            client = boto3.client("s3", **kwargs)
        self._client = client

    @classmethod
    def from_settings(cls) -> S3ObjectStorage:
        return cls(
            endpoint_url=settings.STORAGE_ENDPOINT,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
        )

    def cache_key(self, key: str) -> str:
        return f"{self.cache_prefix}{key}"

    def store_key(self, key: str) -> str:
        return f"{self.store_prefix}{key}"

    # ─── ObjectStorage ─────────────────────────────────

    async def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> ActionOutcome:
        path = self.cache_key(key)
        try:
            await asyncio.to_thread(self._put, path, data, content_type, metadata or {})
        except StorageError as exc:
            return ActionOutcome.fail(str(exc), key=key, retryable=exc.retryable)
        logger.info("File uploaded", bucket=self.bucket, path=path, size=len(data))
        return ActionOutcome.ok(key=key, path=path, size=len(data))

    async def promote(self, key: str) -> ActionOutcome:
        src, dst = self.cache_key(key), self.store_key(key)
        try:
            await asyncio.to_thread(self._move, src, dst)
        except StorageError as exc:
            return ActionOutcome.fail(str(exc), key=key, retryable=exc.retryable)
        logger.info("File promoted", bucket=self.bucket, src=src, dst=dst)
        return ActionOutcome.ok(key=key, path=dst)

    async def delete(self, keys: Sequence[str]) -> ActionOutcome:
        paths = [p for key in keys for p in (self.cache_key(key), self.store_key(key))]
        if not paths:
            return ActionOutcome.ok(deleted=[])
        try:
            errors = await asyncio.to_thread(self._delete_many, paths)
        except StorageError as exc:
            return ActionOutcome.fail(str(exc), keys=list(keys), retryable=exc.retryable)
        if errors:
            return ActionOutcome.fail(*errors, keys=list(keys))
        logger.info("Files deleted", bucket=self.bucket, count=len(keys))
        return ActionOutcome.ok(deleted=list(keys))

    # ─── boto3 calls ───────────────────────────────────

    def _put(self, path: str, data: bytes, content_type: str, metadata: dict[str, str]) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=path, Body=data,
                ContentType=content_type, Metadata=metadata,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 write failed for {path!r}: {exc}", retryable=_retryable(exc)) from exc

    def _move(self, src: str, dst: str) -> None:
        try:
            self._client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": src},
                Key=dst,
            )
            self._client.delete_object(Bucket=self.bucket, Key=src)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 move {src!r} -> {dst!r} failed: {exc}", retryable=_retryable(exc)) from exc

    def _delete_many(self, paths: list[str]) -> list[str]:
        errors: list[str] = []
        for batch in chunked(paths, MAX_DELETE_KEYS):
            try:
                resp = self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": p} for p in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as exc:
                raise StorageError(f"S3 delete failed: {exc}", retryable=_retryable(exc)) from exc
            errors.extend(f"{e.get('Key')}: {e.get('Message')}" for e in resp.get("Errors", []))
        return errors
