"""
Tests for plan limits, billing periods and the usage ledger.
"""

from datetime import datetime, timedelta, timezone

import pytest

from price_sheets.processor.plans import FREE_LIMITS, get_plan_limits
from price_sheets.processor.usage import (
    UsageLedgerError,
    billing_period_start,
    current_billing_period,
    next_reset_date,
)
from price_sheets.shopify import ActiveSubscription

STORE = "store-1"
START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestPlanLimits:

    def test_free_tier_for_missing_or_unknown_plans(self):
        assert get_plan_limits(None) == FREE_LIMITS
        assert get_plan_limits("Enterprise") == FREE_LIMITS
        assert FREE_LIMITS.price == 30 and FREE_LIMITS.compare_at == 30

    def test_starter(self):
        limits = get_plan_limits("Starter Monthly")
        assert (limits.price, limits.compare_at) == (300, 300)

    def test_growth_is_unlimited(self):
        assert get_plan_limits("GROWTH").is_unlimited


class TestBillingPeriods:

    def test_first_window(self):
        now = START + timedelta(days=29)
        assert current_billing_period(START, now) == "2024-01-01"
        assert next_reset_date(START, now) == START + timedelta(days=30)

    def test_second_window(self):
        now = START + timedelta(days=31)
        assert current_billing_period(START, now) == "2024-01-31"

    def test_boundary_starts_new_window(self):
        assert billing_period_start(START, START + timedelta(days=30)) == START + timedelta(days=30)

    def test_clock_before_start(self):
        assert billing_period_start(START, START - timedelta(days=2)) == START

    def test_naive_datetimes_are_utc(self):
        naive = datetime(2024, 1, 1)
        assert current_billing_period(naive, START + timedelta(days=61)) == "2024-03-01"


@pytest.mark.asyncio
class TestSubscriptionSync:

    async def test_first_sight_without_subscription(self, ledger, clock):
        info = await ledger.sync_subscription(STORE, None)

        assert info.plan_name == "Free"
        assert info.subscription_id is None
        assert info.started_at == clock.now

    async def test_uses_subscription_creation_time(self, ledger):
        created = datetime(2023, 12, 15, tzinfo=timezone.utc)
        sub = ActiveSubscription(id="gid://shopify/AppSubscription/1", name="Starter", created_at=created)

        info = await ledger.sync_subscription(STORE, sub)

        assert info.plan_name == "Starter"
        assert info.started_at == created

    async def test_same_subscription_keeps_window(self, ledger, clock):
        sub = ActiveSubscription(id="gid://shopify/AppSubscription/1", name="Starter")
        first = await ledger.sync_subscription(STORE, sub)

        clock.now = clock.now + timedelta(days=3)
        second = await ledger.sync_subscription(STORE, sub)

        assert second.started_at == first.started_at

    async def test_plan_change_resets_usage(self, ledger, clock):
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 20, 5)

        clock.now = clock.now + timedelta(days=10)
        sub = ActiveSubscription(id="gid://shopify/AppSubscription/2", name="Starter")
        info = await ledger.sync_subscription(STORE, sub)

        assert info.started_at == clock.now
        usage = (await ledger.get_current_usage(STORE)).usage
        assert (usage.price_updates, usage.compare_at_updates) == (0, 0)

    async def test_cancelling_resets_usage(self, ledger, clock):
        sub = ActiveSubscription(id="gid://shopify/AppSubscription/2", name="Starter")
        await ledger.sync_subscription(STORE, sub)
        await ledger.increment(STORE, 100, 0)

        clock.now = clock.now + timedelta(days=5)
        info = await ledger.sync_subscription(STORE, None)

        assert info.plan_name == "Free"
        assert (await ledger.get_current_usage(STORE)).usage.price_updates == 0


@pytest.mark.asyncio
class TestAdmission:

    async def test_within_limit(self, ledger):
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 28, 0)

        check = await ledger.check_limit(STORE, "Free", 2, 0)
        assert check.allowed

    async def test_over_price_limit(self, ledger):
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 28, 0)

        check = await ledger.check_limit(STORE, "Free", 5, 0)

        assert not check.allowed
        assert check.type == "price"
        assert (check.limit, check.current, check.attempted) == (30, 28, 5)
        assert check.remaining == 2
        assert check.message() == (
            "Limit exceeded. You are attempting 5 updates, but only 2 are "
            "remaining in your current billing period."
        )

    async def test_over_compare_at_limit(self, ledger):
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 0, 30)

        check = await ledger.check_limit(STORE, "Free", 0, 1)

        assert not check.allowed
        assert check.type == "compareAt"

    async def test_price_is_checked_first(self, ledger):
        await ledger.sync_subscription(STORE, None)

        check = await ledger.check_limit(STORE, "Free", 31, 31)
        assert check.type == "price"

    async def test_unlimited_plan_needs_no_record(self, ledger):
        check = await ledger.check_limit("unknown-store", "Growth", 10_000, 10_000)
        assert check.allowed

    async def test_missing_subscription_record(self, ledger):
        with pytest.raises(UsageLedgerError):
            await ledger.check_limit("unknown-store", "Free", 1, 0)

    async def test_usage_is_counted_per_period(self, ledger, clock):
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 30, 30)
        assert not (await ledger.check_limit(STORE, "Free", 1, 0)).allowed

        clock.now = clock.now + timedelta(days=31)
        assert (await ledger.check_limit(STORE, "Free", 30, 30)).allowed

    async def test_increment_after_period_end_starts_a_new_record(self, ledger, clock, db):
        await ledger.sync_subscription(STORE, None)
        await ledger.increment(STORE, 30, 30)
        first_period = (await ledger.get_current_usage(STORE)).billing_period

        clock.now = clock.now + timedelta(days=31)
        await ledger.increment(STORE, 2, 1)

        current = await ledger.get_current_usage(STORE)
        assert current.billing_period == "2024-01-31"
        assert (current.usage.price_updates, current.usage.compare_at_updates) == (2, 1)

        earlier = await db.get_usage(STORE, first_period)
        assert first_period == "2024-01-01"
        assert (earlier.price_updates, earlier.compare_at_updates) == (30, 30)


@pytest.mark.asyncio
async def test_usage_stats(ledger):
    await ledger.sync_subscription(STORE, ActiveSubscription(id="sub-1", name="Starter"))
    await ledger.increment(STORE, 12, 3)
    await ledger.increment(STORE, 1, 0)

    stats = await ledger.get_usage_stats(STORE, "Starter")

    assert stats.plan_name == "Starter"
    assert (stats.price_updates, stats.compare_at_updates) == (13, 3)
    assert (stats.price_remaining, stats.compare_at_remaining) == (287, 297)
    assert stats.billing_period == "2024-01-01"
    assert stats.next_reset_date == START + timedelta(days=30)
