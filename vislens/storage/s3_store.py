"""S3-compatible object store implementation via aiobotocore."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from vislens.exceptions import StorageError
from vislens.storage.object_store import ObjectStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = structlog.get_logger(__name__)

_MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3ObjectStore(ObjectStore):
    """Object store backed by S3-compatible storage (AWS S3, Cloudflare R2, MinIO).

    A client is opened per call. Missing keys map to ``None``/``False``; every
    other botocore failure is raised as :class:`StorageError`.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region: str = "auto",
    ) -> None:
        self._bucket = bucket
        self._session = get_session()
        self._config: dict[str, Any] = {"region_name": region}
        if endpoint_url:
            self._config["endpoint_url"] = endpoint_url
        if access_key_id:
            self._config["aws_access_key_id"] = access_key_id
        if secret_access_key:
            self._config["aws_secret_access_key"] = secret_access_key

    @property
    def bucket(self) -> str:
        return self._bucket

    @asynccontextmanager
    async def _client(self, operation: str, key: str) -> AsyncIterator[Any]:
        try:
            async with self._session.create_client("s3", **self._config) as client:
                yield client
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"S3 {operation} failed for s3://{self._bucket}/{key}",
                operation=operation,
                target=key,
                cause=e,
            ) from e

    async def put(self, key: str, data: bytes) -> None:
        async with self._client("put", key) as client:
            await client.put_object(Bucket=self._bucket, Key=key, Body=data)
        logger.debug("s3_put", key=key, size=len(data), bucket=self._bucket)

    async def get(self, key: str) -> bytes | None:
        async with self._client("get", key) as client:
            try:
                resp = await client.get_object(Bucket=self._bucket, Key=key)
            except ClientError as e:
                if _is_missing(e):
                    return None
                raise
            async with resp["Body"] as body:
                data: bytes = await body.read()
        return data

    async def delete(self, key: str) -> None:
        async with self._client("delete", key) as client:
            await client.delete_object(Bucket=self._bucket, Key=key)
        logger.debug("s3_delete", key=key, bucket=self._bucket)

    async def list_keys(self, prefix: str = "") -> list[str]:
        async with self._client("list", prefix) as client:
            paginator = client.get_paginator("list_objects_v2")
            keys = [
                obj["Key"]
                async for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix)
                for obj in page.get("Contents", [])
            ]
        return sorted(keys)

    async def exists(self, key: str) -> bool:
        async with self._client("head", key) as client:
            try:
                await client.head_object(Bucket=self._bucket, Key=key)
            except ClientError as e:
                if _is_missing(e):
                    return False
                raise
        return True
