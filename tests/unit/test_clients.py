"""Tests for the collaborator clients (S3 via moto, HTTP via httpx.MockTransport)."""

import json
from unittest.mock import MagicMock

import boto3
import httpx
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from phaseflow.clients import IndexClient, MemberRepositoryClient, ReviewClient, S3ObjectStorage
from phaseflow.clients.protocols import IndexService, MemberRepository, ObjectStorage, ReviewService

BUCKET = "test-submissions"


@pytest.fixture
def s3():
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        yield client


@pytest.fixture
def object_storage(s3):
    return S3ObjectStorage(BUCKET, client=s3, cache_prefix="cache/", store_prefix="store/")


def _keys(s3):
    return sorted(o["Key"] for o in s3.list_objects_v2(Bucket=BUCKET).get("Contents", []))


class TestS3ObjectStorage:

    def test_satisfies_protocol(self, object_storage):
        assert isinstance(object_storage, ObjectStorage)

    @pytest.mark.asyncio
    async def test_upload_lands_in_cache(self, object_storage, s3):
        outcome = await object_storage.upload("u1a2b3c4d/f.pdf", b"pdf", metadata={"submission-id": "u1a2b3c4d"})

        assert outcome.succeeded
        assert outcome.payload["path"] == "cache/u1a2b3c4d/f.pdf"
        assert _keys(s3) == ["cache/u1a2b3c4d/f.pdf"]
        head = s3.head_object(Bucket=BUCKET, Key="cache/u1a2b3c4d/f.pdf")
        assert head["Metadata"] == {"submission-id": "u1a2b3c4d"}

    @pytest.mark.asyncio
    async def test_promote_moves_to_store(self, object_storage, s3):
        await object_storage.upload("u1a2b3c4d/f.pdf", b"pdf")
        outcome = await object_storage.promote("u1a2b3c4d/f.pdf")

        assert outcome.succeeded
        assert _keys(s3) == ["store/u1a2b3c4d/f.pdf"]
        body = s3.get_object(Bucket=BUCKET, Key="store/u1a2b3c4d/f.pdf")["Body"].read()
        assert body == b"pdf"

    @pytest.mark.asyncio
    async def test_promote_missing_object_fails(self, object_storage):
        outcome = await object_storage.promote("nothing/here")
        assert not outcome
        assert "S3 move" in outcome.problem

    @pytest.mark.asyncio
    async def test_delete_clears_both_prefixes(self, object_storage, s3):
        await object_storage.upload("a/1", b"1")
        await object_storage.upload("b/2", b"2")
        await object_storage.promote("b/2")

        outcome = await object_storage.delete(["a/1", "b/2"])
        assert outcome.succeeded
        assert _keys(s3) == []

    @pytest.mark.asyncio
    async def test_delete_nothing(self, object_storage):
        assert (await object_storage.delete([])).payload == {"deleted": []}

    @pytest.mark.asyncio
    async def test_upload_to_missing_bucket_fails(self, s3):
        storage = S3ObjectStorage("no-such-bucket", client=s3)
        outcome = await storage.upload("k", b"x")
        assert not outcome
        assert "S3 write failed" in outcome.problem
        assert outcome.payload["retryable"] is False

    @pytest.mark.asyncio
    async def test_large_delete_is_split_into_requests(self, s3):
        client = MagicMock(wraps=s3)
        storage = S3ObjectStorage(BUCKET, client=client, cache_prefix="cache/", store_prefix="store/")
        keys = [f"u{n:08d}/f.pdf" for n in range(600)]

        outcome = await storage.delete(keys)

        assert outcome.succeeded
        sizes = [len(c.kwargs["Delete"]["Objects"]) for c in client.delete_objects.call_args_list]
        assert sizes == [1000, 200]

    @pytest.mark.asyncio
    async def test_delete_error_is_reported(self):
        client = MagicMock()
        client.delete_objects.side_effect = ClientError(
            {"Error": {"Code": "InternalError", "Message": "boom"}, "ResponseMetadata": {"HTTPStatusCode": 500}},
            "DeleteObjects",
        )
        storage = S3ObjectStorage(BUCKET, client=client)

        outcome = await storage.delete(["a/1"])

        assert not outcome
        assert "S3 delete failed" in outcome.problem
        assert outcome.payload["retryable"] is True


def _transport(handler, seen):
    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.MockTransport(record)


class TestIndexClient:

    @pytest.mark.asyncio
    async def test_put_records(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(200, json={"count": 1}), seen)
        async with IndexClient("https://index.test/v1", api_key="secret", transport=transport) as client:
            assert isinstance(client, IndexService)
            outcome = await client.put_records([{"submission_id": "u1a2b3c4d"}])

        assert outcome.succeeded
        assert outcome.payload == {"count": 1}
        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/v1/records"
        assert request.headers["X-API-Key"] == "secret"
        assert json.loads(request.content) == [{"submission_id": "u1a2b3c4d"}]

    @pytest.mark.asyncio
    async def test_delete_records(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(204), seen)
        async with IndexClient("https://index.test", transport=transport) as client:
            outcome = await client.delete_records(["u1a2b3c4d"])

        assert outcome.succeeded
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/records/delete"

    @pytest.mark.asyncio
    async def test_empty_input_skips_request(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(200), seen)
        async with IndexClient("https://index.test", transport=transport) as client:
            assert (await client.put_records([])).payload == {"count": 0}
        assert seen == []

    @pytest.mark.asyncio
    async def test_error_status_becomes_failed_outcome(self):
        transport = _transport(lambda r: httpx.Response(503, text="busy"), [])
        async with IndexClient("https://index.test", transport=transport) as client:
            outcome = await client.put_records([{"submission_id": "u1a2b3c4d"}])

        assert not outcome
        assert outcome.payload["status_code"] == 503
        assert outcome.payload["retryable"] is True
        assert "returned 503" in outcome.problem

    @pytest.mark.asyncio
    async def test_errors_in_body(self):
        transport = _transport(lambda r: httpx.Response(200, json={"errors": ["bad title"]}), [])
        async with IndexClient("https://index.test", transport=transport) as client:
            outcome = await client.put_records([{"submission_id": "u1a2b3c4d"}])
        assert outcome.errors == ["bad title"]

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        async with IndexClient("https://index.test", transport=httpx.MockTransport(refuse)) as client:
            outcome = await client.delete_records(["u1a2b3c4d"])

        assert not outcome
        assert outcome.payload["retryable"] is True
        assert outcome.payload["status_code"] is None


class TestMemberRepositoryClient:

    @pytest.mark.asyncio
    async def test_enqueue(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(201, json={"queued": 1}), seen)
        async with MemberRepositoryClient("https://repo.test", transport=transport) as client:
            assert isinstance(client, MemberRepository)
            outcome = await client.enqueue("ace", [{"submission_id": "u1a2b3c4d"}])

        assert outcome.succeeded
        assert seen[0].url.path == "/ace/queue"
        assert json.loads(seen[0].content) == {"items": [{"submission_id": "u1a2b3c4d"}]}

    @pytest.mark.asyncio
    async def test_dequeue_sends_ids_as_params(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(204), seen)
        async with MemberRepositoryClient("https://repo.test", transport=transport) as client:
            await client.dequeue("ace", ["u1a2b3c4d", "u9z8y7x6w"])

        assert seen[0].method == "DELETE"
        assert seen[0].url.params.get_list("sid") == ["u1a2b3c4d", "u9z8y7x6w"]

    @pytest.mark.asyncio
    async def test_is_retrieved(self):
        transport = _transport(lambda r: httpx.Response(200, json={"retrieved": ["u1a2b3c4d"]}), [])
        async with MemberRepositoryClient("https://repo.test", transport=transport) as client:
            assert await client.is_retrieved("ace", ["u1a2b3c4d"])
            outcome = await client.is_retrieved("ace", ["u1a2b3c4d", "u9z8y7x6w"])

        assert not outcome
        assert outcome.payload["pending"] == ["u9z8y7x6w"]
        assert outcome.problem == "not yet retrieved: u9z8y7x6w"

    @pytest.mark.asyncio
    async def test_is_retrieved_error_status(self):
        transport = _transport(lambda r: httpx.Response(404), [])
        async with MemberRepositoryClient("https://repo.test", transport=transport) as client:
            outcome = await client.is_retrieved("ace", ["u1a2b3c4d"])

        assert not outcome
        assert "pending" not in outcome.payload
        assert outcome.payload["retryable"] is False


class TestReviewClient:

    @pytest.mark.asyncio
    async def test_review_calls(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(200, json=[]), seen)
        async with ReviewClient("https://review.test", transport=transport) as client:
            assert isinstance(client, ReviewService)
            await client.schedule("u1a2b3c4d", requested_by="owner")
            await client.assign("u1a2b3c4d", reviewer="rev")
            outcome = await client.decide("u1a2b3c4d", approved=False, remarks="no")
            await client.cancel("u1a2b3c4d")

        assert outcome.payload == {"data": []}
        assert [(r.method, r.url.path) for r in seen] == [
            ("POST", "/reviews"),
            ("PUT", "/reviews/u1a2b3c4d/assignee"),
            ("POST", "/reviews/u1a2b3c4d/decision"),
            ("DELETE", "/reviews/u1a2b3c4d"),
        ]
        assert json.loads(seen[2].content) == {"approved": False, "remarks": "no"}
