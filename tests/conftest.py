"""
Shared fixtures: a scripted GraphQL client and an in-memory database.
"""

from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio

from price_sheets.config import settings
from price_sheets.db import SQLiteDatabase
from price_sheets.processor.reconcile import ImportRow
from price_sheets.processor.usage import UsageLedger


class FakeShopifyClient:
    """
    Stands in for ShopifyClient.execute.

    `responses` maps a query document to one of:
    a dict (returned every time), a list (returned in order, the last one
    repeats), a callable taking the variables, or an exception to raise.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self.uploads = []
        self.upload_status = 201

    async def execute(self, query, variables=None):
        self.calls.append((query, variables))
        if query not in self.responses:
            raise AssertionError(f"Unexpected query: {query[:80]}")

        handler = self.responses[query]
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(variables)
        if isinstance(handler, list):
            return handler.pop(0) if len(handler) > 1 else handler[0]
        return handler

    async def upload_staged(self, url, parameters, filename, content, mime_type="text/jsonl"):
        self.uploads.append({
            "url": url,
            "parameters": parameters,
            "filename": filename,
            "content": content,
            "mime_type": mime_type,
        })
        return httpx.Response(self.upload_status, request=httpx.Request("POST", url))

    def calls_for(self, query):
        return [variables for q, variables in self.calls if q == query]

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


class FixedClock:
    """Settable clock for the usage ledger."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_row(sku, price=None, compare_at=None, line_number=None, **extra) -> ImportRow:
    cells = [("SKU", sku), ("Price", price), ("CompareAt Price", compare_at)]
    cells += list(extra.items())
    return ImportRow(cells=cells, line_number=line_number)


@pytest.fixture
def fake_client():
    return FakeShopifyClient()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def db():
    database = SQLiteDatabase(":memory:")
    await database.initialize()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def ledger(db, clock):
    return UsageLedger(db, clock=clock)


@pytest.fixture(autouse=True)
def no_waiting(monkeypatch):
    """Poll and cancel delays default to zero in tests."""
    monkeypatch.setattr(settings, "bulk_poll_interval_seconds", 0.0)
    monkeypatch.setattr(settings, "bulk_cancel_grace_seconds", 0.0)
