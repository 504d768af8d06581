"""
Tests for bulk operation status mapping, polling and cancellation.
"""

import httpx
import pytest
import respx

from price_sheets.shopify import (
    BulkJobKind,
    BulkJobStatus,
    BulkOperationError,
    BulkOperationsManager,
    BulkOperationTimeout,
    MissingOperationIdError,
    ShopifyClientError,
)
from price_sheets.shopify.bulk_operations import MISSING_RESULT_URL, job_from_node
from price_sheets.shopify.queries import (
    BULK_OPERATION_CANCEL,
    BULK_OPERATION_RUN_QUERY,
    BULK_OPERATION_STATUS_QUERY,
    CURRENT_BULK_OPERATION_QUERY,
)

from conftest import FakeShopifyClient

OP_ID = "gid://shopify/BulkOperation/1"
RESULT_URL = "https://storage.example.com/result.jsonl"


def node(status, **extra):
    return {"node": {"id": OP_ID, "type": "QUERY", "status": status, **extra}}


class TestJobFromNode:

    def test_missing_node_is_none(self):
        job = job_from_node(None, BulkJobKind.QUERY, job_id=OP_ID)
        assert job.status == BulkJobStatus.NONE
        assert job.id == OP_ID

    def test_completed_with_url(self):
        job = job_from_node(
            {"id": OP_ID, "status": "COMPLETED", "url": RESULT_URL, "objectCount": "42"},
            BulkJobKind.QUERY,
        )
        assert job.status == BulkJobStatus.COMPLETED
        assert job.url == RESULT_URL
        assert job.object_count == 42
        assert job.is_terminal

    def test_completed_without_url_is_failed(self):
        job = job_from_node({"id": OP_ID, "status": "COMPLETED", "url": None}, BulkJobKind.QUERY)
        assert job.status == BulkJobStatus.FAILED
        assert job.error == MISSING_RESULT_URL

    @pytest.mark.parametrize("remote, local", [
        ("CREATED", BulkJobStatus.CREATED),
        ("RUNNING", BulkJobStatus.RUNNING),
        ("CANCELING", BulkJobStatus.CANCELLED),
        ("CANCELED", BulkJobStatus.CANCELLED),
        ("EXPIRED", BulkJobStatus.FAILED),
        ("FAILED", BulkJobStatus.FAILED),
        ("SOMETHING_NEW", BulkJobStatus.FAILED),
    ])
    def test_status_mapping(self, remote, local):
        assert job_from_node({"id": OP_ID, "status": remote}, BulkJobKind.QUERY).status == local

    def test_failed_carries_error_code(self):
        job = job_from_node({"id": OP_ID, "status": "FAILED", "errorCode": "TIMEOUT"}, BulkJobKind.QUERY)
        assert "TIMEOUT" in job.error

    def test_remote_type_wins(self):
        job = job_from_node({"id": OP_ID, "status": "RUNNING", "type": "MUTATION"}, BulkJobKind.QUERY)
        assert job.kind == BulkJobKind.MUTATION


@pytest.mark.asyncio
class TestSubmit:

    async def test_returns_created_job(self):
        client = FakeShopifyClient({
            BULK_OPERATION_RUN_QUERY: {
                "bulkOperationRunQuery": {"bulkOperation": {"id": OP_ID, "status": "CREATED"}, "userErrors": []}
            }
        })
        job = await BulkOperationsManager(client).submit_query("{ products { edges { node { id } } } }")

        assert job.id == OP_ID
        assert job.status == BulkJobStatus.CREATED
        assert client.calls_for(BULK_OPERATION_RUN_QUERY)[0]["query"].startswith("{ products")

    async def test_user_error_is_raised(self):
        client = FakeShopifyClient({
            BULK_OPERATION_RUN_QUERY: {
                "bulkOperationRunQuery": {
                    "bulkOperation": None,
                    "userErrors": [{"field": None, "message": "A bulk query is already in progress"}],
                }
            }
        })
        with pytest.raises(BulkOperationError, match="already in progress"):
            await BulkOperationsManager(client).submit_query("{ x }")

    async def test_missing_id(self):
        client = FakeShopifyClient({
            BULK_OPERATION_RUN_QUERY: {"bulkOperationRunQuery": {"bulkOperation": None, "userErrors": []}}
        })
        with pytest.raises(MissingOperationIdError):
            await BulkOperationsManager(client).submit_query("{ x }")


@pytest.mark.asyncio
class TestWaitForJob:

    async def test_polls_until_terminal(self):
        client = FakeShopifyClient({
            BULK_OPERATION_STATUS_QUERY: [
                node("CREATED"),
                node("RUNNING", objectCount="10"),
                node("COMPLETED", url=RESULT_URL, objectCount="20"),
            ]
        })
        job = await BulkOperationsManager(client).wait_for_job(OP_ID, poll_interval=0, max_attempts=5)

        assert job.status == BulkJobStatus.COMPLETED
        assert job.object_count == 20
        assert len(client.calls_for(BULK_OPERATION_STATUS_QUERY)) == 3

    async def test_times_out(self):
        client = FakeShopifyClient({BULK_OPERATION_STATUS_QUERY: node("RUNNING")})

        with pytest.raises(BulkOperationTimeout):
            await BulkOperationsManager(client).wait_for_job(OP_ID, poll_interval=0, max_attempts=3)

        assert len(client.calls_for(BULK_OPERATION_STATUS_QUERY)) == 3

    async def test_vanished_job_is_terminal(self):
        client = FakeShopifyClient({BULK_OPERATION_STATUS_QUERY: {"node": None}})
        job = await BulkOperationsManager(client).wait_for_job(OP_ID, poll_interval=0, max_attempts=3)
        assert job.status == BulkJobStatus.NONE


@pytest.mark.asyncio
class TestCancelIfActive:

    async def test_cancels_running_job(self):
        client = FakeShopifyClient({
            CURRENT_BULK_OPERATION_QUERY: {"currentBulkOperation": {"id": OP_ID, "status": "RUNNING"}},
            BULK_OPERATION_CANCEL: {"bulkOperationCancel": {"bulkOperation": {"id": OP_ID}, "userErrors": []}},
        })
        await BulkOperationsManager(client).cancel_if_active(grace_seconds=0)
        assert client.calls_for(BULK_OPERATION_CANCEL) == [{"id": OP_ID}]

    async def test_leaves_completed_job_alone(self):
        client = FakeShopifyClient({
            CURRENT_BULK_OPERATION_QUERY: {
                "currentBulkOperation": {"id": OP_ID, "status": "COMPLETED", "url": RESULT_URL}
            },
        })
        await BulkOperationsManager(client).cancel_if_active(grace_seconds=0)
        assert client.calls_for(BULK_OPERATION_CANCEL) == []

    async def test_no_current_job(self):
        client = FakeShopifyClient({CURRENT_BULK_OPERATION_QUERY: {"currentBulkOperation": None}})
        await BulkOperationsManager(client).cancel_if_active(grace_seconds=0)
        assert client.calls_for(BULK_OPERATION_CANCEL) == []

    async def test_cancel_failure_is_swallowed(self):
        client = FakeShopifyClient({
            CURRENT_BULK_OPERATION_QUERY: {"currentBulkOperation": {"id": OP_ID, "status": "RUNNING"}},
            BULK_OPERATION_CANCEL: ShopifyClientError("GraphQL errors: ['nope']"),
        })
        await BulkOperationsManager(client).cancel_if_active(grace_seconds=0)


@pytest.mark.asyncio
class TestStreamResultLines:

    async def test_yields_non_blank_lines(self):
        manager = BulkOperationsManager(FakeShopifyClient())
        async with respx.mock(assert_all_called=True) as router:
            router.get(RESULT_URL).mock(
                return_value=httpx.Response(200, text='{"id": "a"}\n\n{"id": "b"}\n')
            )
            lines = [line async for line in manager.stream_result_lines(RESULT_URL)]

        assert lines == ['{"id": "a"}', '{"id": "b"}']

    async def test_http_error_becomes_client_error(self):
        manager = BulkOperationsManager(FakeShopifyClient())
        async with respx.mock() as router:
            router.get(RESULT_URL).mock(return_value=httpx.Response(403))
            with pytest.raises(ShopifyClientError):
                [line async for line in manager.stream_result_lines(RESULT_URL)]
