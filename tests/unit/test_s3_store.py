from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from vislens.exceptions import StorageError
from vislens.storage.s3_store import S3ObjectStore


def _client_error(code: str, op: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


@pytest.fixture()
def s3_client():
    client = AsyncMock()
    session = MagicMock()
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=client)
    ctx.__aexit__ = AsyncMock(return_value=False)
    session.create_client.return_value = ctx
    with patch("vislens.storage.s3_store.get_session", return_value=session):
        yield client


@pytest.mark.unit
class TestS3ObjectStore:
    @pytest.mark.asyncio
    async def test_put(self, s3_client) -> None:
        store = S3ObjectStore(bucket="shots", endpoint_url="http://minio:9000")
        await store.put("baselines/home.png", b"png")
        s3_client.put_object.assert_awaited_once_with(
            Bucket="shots", Key="baselines/home.png", Body=b"png"
        )

    @pytest.mark.asyncio
    async def test_put_failure_wrapped(self, s3_client) -> None:
        s3_client.put_object.side_effect = _client_error("AccessDenied", "PutObject")
        store = S3ObjectStore(bucket="shots")
        with pytest.raises(StorageError) as exc_info:
            await store.put("baselines/home.png", b"png")
        assert exc_info.value.operation == "put"
        assert exc_info.value.target == "baselines/home.png"
        assert isinstance(exc_info.value.cause, ClientError)

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, s3_client) -> None:
        s3_client.get_object.side_effect = _client_error("NoSuchKey")
        assert await S3ObjectStore(bucket="shots").get("nope.png") is None

    @pytest.mark.asyncio
    async def test_get_reads_body(self, s3_client) -> None:
        body = MagicMock()
        body.read = AsyncMock(return_value=b"data")
        stream = MagicMock()
        stream.__aenter__ = AsyncMock(return_value=body)
        stream.__aexit__ = AsyncMock(return_value=False)
        s3_client.get_object.return_value = {"Body": stream}
        assert await S3ObjectStore(bucket="shots").get("a.png") == b"data"

    @pytest.mark.asyncio
    async def test_exists(self, s3_client) -> None:
        store = S3ObjectStore(bucket="shots")
        assert await store.exists("a.png") is True
        s3_client.head_object.side_effect = _client_error("404", "HeadObject")
        assert await store.exists("a.png") is False

    @pytest.mark.asyncio
    async def test_list_keys_sorted(self, s3_client) -> None:
        async def pages(**_kwargs):
            yield {"Contents": [{"Key": "baselines/b.png"}]}
            yield {"Contents": [{"Key": "baselines/a.png"}]}
            yield {}

        paginator = MagicMock()
        paginator.paginate = MagicMock(side_effect=pages)
        s3_client.get_paginator = MagicMock(return_value=paginator)
        keys = await S3ObjectStore(bucket="shots").list_keys("baselines/")
        assert keys == ["baselines/a.png", "baselines/b.png"]
        paginator.paginate.assert_called_once_with(Bucket="shots", Prefix="baselines/")
