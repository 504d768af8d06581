"""
Tests for the import pipeline phases.
"""

import json

import httpx
import pytest
import respx

from price_sheets.processor import ImportPhase, ImportPipeline, ImportSummary
from price_sheets.processor.importer import parse_mutation_errors
from price_sheets.processor.usage import UsageLedgerError
from price_sheets.shopify import BulkJob, BulkJobKind, BulkJobStatus, ShopifyClientError
from price_sheets.shopify.queries import (
    ACTIVE_SUBSCRIPTIONS_QUERY,
    BULK_OPERATION_RUN_MUTATION,
    BULK_OPERATION_STATUS_QUERY,
    PRODUCT_VARIANTS_PAGE_QUERY,
    STAGED_UPLOADS_CREATE,
)

from conftest import FakeShopifyClient, make_row

STORE = "store-1"
OP_ID = "gid://shopify/BulkOperation/55"
RESULT_URL = "https://storage.example.com/mutation.jsonl"

CATALOG = {"productVariants": {
    "pageInfo": {"hasNextPage": False, "endCursor": None},
    "edges": [
        {"node": {"id": "gid://shopify/ProductVariant/1", "sku": "A-1", "price": "10.00",
                  "compareAtPrice": None, "product": {"id": "gid://shopify/Product/1"}}},
        {"node": {"id": "gid://shopify/ProductVariant/2", "sku": "A-2", "price": "20.00",
                  "compareAtPrice": "25.00", "product": {"id": "gid://shopify/Product/1"}}},
    ],
}}

NO_SUBSCRIPTION = {"currentAppInstallation": {"activeSubscriptions": []}}

STAGED = {"stagedUploadsCreate": {
    "stagedTargets": [{
        "url": "https://uploads.example.com/",
        "resourceUrl": None,
        "parameters": [{"name": "key", "value": "tmp/bulk/price_updates.jsonl"}],
    }],
    "userErrors": [],
}}

LAUNCHED = {"bulkOperationRunMutation": {
    "bulkOperation": {"id": OP_ID, "status": "CREATED"}, "userErrors": [],
}}


def status(state, **extra):
    return {"node": {"id": OP_ID, "type": "MUTATION", "status": state, **extra}}


def import_client(**overrides):
    responses = {
        ACTIVE_SUBSCRIPTIONS_QUERY: NO_SUBSCRIPTION,
        PRODUCT_VARIANTS_PAGE_QUERY: CATALOG,
        STAGED_UPLOADS_CREATE: STAGED,
        BULK_OPERATION_RUN_MUTATION: LAUNCHED,
        BULK_OPERATION_STATUS_QUERY: [status("RUNNING"), status("COMPLETED", url=RESULT_URL)],
    }
    responses.update(overrides)
    return FakeShopifyClient(responses)


ROWS = [
    make_row("A-1", "11.00"),
    make_row("a-2", None, "null"),
    make_row("MISSING", "5"),
]


@pytest.mark.asyncio
class TestImportPipeline:

    async def test_full_run(self, ledger):
        client = import_client()
        pipeline = ImportPipeline(client, ledger, STORE)

        async with respx.mock(assert_all_called=True) as router:
            router.get(RESULT_URL).mock(return_value=httpx.Response(200, text=(
                '{"data": {"productVariantsBulkUpdate": {"productVariants": [], "userErrors": []}}}\n'
            )))
            result = await pipeline.run(ROWS, poll_interval=0, max_attempts=5)

        assert result.success
        assert result.phase == ImportPhase.AWAIT
        assert result.job_status == BulkJobStatus.COMPLETED

        summary = result.summary
        assert (summary.total, summary.updated, summary.skipped, summary.failed) == (3, 2, 0, 1)
        assert summary.bulk_operation_id == OP_ID
        assert summary.errors == ["Variant not found for SKU: MISSING"]
        assert summary.failed_rows[0]["SKU"] == "MISSING"

        staged_lines = client.uploads[0]["content"].split("\n")
        assert json.loads(staged_lines[0]) == {
            "productId": "gid://shopify/Product/1",
            "variants": [
                {"id": "gid://shopify/ProductVariant/1", "price": "11.00"},
                {"id": "gid://shopify/ProductVariant/2", "compareAtPrice": None},
            ],
        }

        usage = (await ledger.get_current_usage(STORE)).usage
        assert (usage.price_updates, usage.compare_at_updates) == (1, 1)

    async def test_job_errors_are_merged(self, ledger):
        client = import_client()
        pipeline = ImportPipeline(client, ledger, STORE)

        async with respx.mock() as router:
            router.get(RESULT_URL).mock(return_value=httpx.Response(200, text=(
                '{"data": {"productVariantsBulkUpdate": {"userErrors": '
                '[{"field": ["variants", "0", "price"], "message": "Price must be positive"}]}}}\n'
            )))
            result = await pipeline.run(ROWS[:1], poll_interval=0, max_attempts=5)

        assert result.summary.errors == ["Price must be positive"]

    async def test_over_quota_is_refused_before_submission(self, ledger):
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 30, 0)
        client = import_client()

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, poll_interval=0)

        assert not result.success
        assert result.phase == ImportPhase.ADMIT
        assert result.usage_exceeded
        assert result.limit_check.type == "price"
        assert result.error.startswith("Limit exceeded.")
        assert client.calls_for(STAGED_UPLOADS_CREATE) == []

    async def test_nothing_to_change(self, ledger):
        client = import_client()
        rows = [make_row("A-1", "10"), make_row("A-2", "20", "25")]

        result = await ImportPipeline(client, ledger, STORE).run(rows)

        assert result.success
        assert result.phase == ImportPhase.ADMIT
        assert result.summary.skipped == 2
        assert client.calls_for(STAGED_UPLOADS_CREATE) == []

    async def test_catalog_failure_stops_at_validation(self, ledger):
        client = import_client(**{PRODUCT_VARIANTS_PAGE_QUERY: ShopifyClientError("GraphQL errors: ['boom']")})

        result = await ImportPipeline(client, ledger, STORE).run(ROWS)

        assert not result.success
        assert result.phase == ImportPhase.VALIDATE
        assert "boom" in result.error

    async def test_submission_failure_is_reported_and_not_charged(self, ledger):
        client = import_client()
        client.upload_status = 500

        result = await ImportPipeline(client, ledger, STORE).run(ROWS)

        assert result.success
        assert result.phase == ImportPhase.SUBMIT
        assert "Upload failed: Internal Server Error" in result.summary.errors
        assert result.summary.bulk_operation_id is None
        usage = (await ledger.get_current_usage(STORE)).usage
        assert usage.price_updates == 0

    async def test_usage_stays_charged_when_job_fails(self, ledger):
        client = import_client(**{BULK_OPERATION_STATUS_QUERY: status("FAILED", errorCode="TIMEOUT")})

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, poll_interval=0, max_attempts=3)

        assert result.job_status == BulkJobStatus.FAILED
        assert result.summary.updated == 0
        assert any("TIMEOUT" in e for e in result.summary.errors)
        usage = (await ledger.get_current_usage(STORE)).usage
        assert (usage.price_updates, usage.compare_at_updates) == (1, 1)

    async def test_without_waiting(self, ledger):
        client = import_client()

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, wait=False)

        assert result.phase == ImportPhase.SUBMIT
        assert result.job_status == BulkJobStatus.CREATED
        assert result.summary.expected_update_count == 2
        assert client.calls_for(BULK_OPERATION_STATUS_QUERY) == []

    async def test_timeout_while_waiting(self, ledger):
        client = import_client(**{BULK_OPERATION_STATUS_QUERY: status("RUNNING")})

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, poll_interval=0, max_attempts=2)

        assert result.phase == ImportPhase.AWAIT
        assert result.job_status == BulkJobStatus.RUNNING
        assert result.summary.updated == 0

    async def test_plan_from_subscription(self, ledger):
        client = import_client(**{ACTIVE_SUBSCRIPTIONS_QUERY: {"currentAppInstallation": {"activeSubscriptions": [
            {"id": "gid://shopify/AppSubscription/9", "name": "Growth", "status": "ACTIVE",
             "createdAt": "2024-01-01T00:00:00Z"},
        ]}}})
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 30, 30)

        pipeline = ImportPipeline(client, ledger, STORE)
        info = await pipeline.resolve_subscription()
        result = await pipeline.run(ROWS, wait=False)

        assert info.plan_name == "Growth"
        assert result.success
        assert result.phase == ImportPhase.SUBMIT

    async def test_given_plan_creates_missing_subscription_record(self, ledger):
        client = import_client()

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, plan_name="Growth", wait=False)

        assert result.success
        assert result.phase == ImportPhase.SUBMIT
        assert result.summary.bulk_operation_id == OP_ID
        assert result.summary.errors == ["Variant not found for SKU: MISSING"]
        assert len(client.calls_for(ACTIVE_SUBSCRIPTIONS_QUERY)) == 1
        usage = (await ledger.get_current_usage(STORE)).usage
        assert (usage.price_updates, usage.compare_at_updates) == (1, 1)

    async def test_given_plan_skips_lookup_for_tracked_store(self, ledger):
        await ledger.sync_subscription(STORE, None)
        client = import_client()

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, plan_name="Growth", wait=False)

        assert result.success
        assert client.calls_for(ACTIVE_SUBSCRIPTIONS_QUERY) == []

    async def test_launched_job_is_kept_when_usage_cannot_be_recorded(self, ledger, monkeypatch):
        await ledger.sync_subscription(STORE, None)

        async def broken_increment(*args):
            raise UsageLedgerError(f"Subscription info not found for store {STORE}")

        monkeypatch.setattr(ledger, "increment", broken_increment)
        client = import_client()

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, plan_name="Growth", wait=False)

        assert result.success
        assert result.phase == ImportPhase.SUBMIT
        assert result.summary.bulk_operation_id == OP_ID
        assert f"Failed to record usage: Subscription info not found for store {STORE}" in result.summary.errors
        assert len(client.calls_for(BULK_OPERATION_RUN_MUTATION)) == 1

    async def test_vanished_job(self, ledger):
        client = import_client(**{BULK_OPERATION_STATUS_QUERY: {"node": None}})

        result = await ImportPipeline(client, ledger, STORE).run(ROWS, poll_interval=0, max_attempts=3)

        assert not result.success
        assert result.job_status == BulkJobStatus.NONE
        assert result.summary.updated == 0
        assert "Bulk operation not found" in result.summary.errors


def test_merge_of_vanished_job():
    summary = ImportSummary(bulk_operation_id=OP_ID, expected_update_count=2)
    job = BulkJob(id=OP_ID, kind=BulkJobKind.MUTATION, status=BulkJobStatus.NONE)

    result = ImportPipeline.merge(summary, job, [])

    assert not result.success
    assert result.summary.errors == ["Bulk operation not found"]


def test_parse_mutation_errors():
    lines = [
        '{"data": {"productVariantsBulkUpdate": {"userErrors": [{"message": "first"}, {"message": "second"}]}}}',
        '{"productVariantsBulkUpdate": {"userErrors": [{"message": "unwrapped"}]}}',
        '{"data": {"productVariantsBulkUpdate": {"userErrors": []}}}',
        'not json',
    ]
    assert parse_mutation_errors(lines) == ["first", "unwrapped"]
