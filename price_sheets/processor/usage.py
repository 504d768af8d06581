"""
Metered usage per store over rolling 30-day billing periods.

Periods are anchored at the store's subscription start and computed on the
fly; only the counters for each (store, period) pair are stored.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..db import SQLiteDatabase, SubscriptionInfo, UsageRecord, utcnow
from ..shopify import ActiveSubscription
from .plans import PlanLimits, get_plan_limits

logger = logging.getLogger(__name__)

BILLING_PERIOD_LENGTH = timedelta(days=30)
DEFAULT_PLAN_NAME = "Free"


class UsageLedgerError(Exception):
    """Usage cannot be tracked for a store (no subscription record)."""
    pass


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def billing_period_start(started_at: datetime, now: Optional[datetime] = None) -> datetime:
    """Start of the 30-day window containing `now`; the start itself if now is earlier."""
    start = _as_utc(started_at)
    now = _as_utc(now or utcnow())
    if now < start:
        return start
    cycles = (now - start) // BILLING_PERIOD_LENGTH
    return start + cycles * BILLING_PERIOD_LENGTH


def current_billing_period(started_at: datetime, now: Optional[datetime] = None) -> str:
    """Billing period key: ISO date of the window start."""
    return billing_period_start(started_at, now).date().isoformat()


def next_reset_date(started_at: datetime, now: Optional[datetime] = None) -> datetime:
    """When the current window ends and counters start again from zero."""
    return billing_period_start(started_at, now) + BILLING_PERIOD_LENGTH


@dataclass
class LimitCheck:
    """Admission decision for an import batch."""

    allowed: bool
    type: Optional[str] = None  # "price" or "compareAt"
    limit: Optional[int] = None
    current: Optional[int] = None
    attempted: Optional[int] = None

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None or self.current is None:
            return None
        return max(self.limit - self.current, 0)

    def message(self) -> Optional[str]:
        if self.allowed:
            return None
        return (
            f"Limit exceeded. You are attempting {self.attempted} updates, but only "
            f"{self.remaining} are remaining in your current billing period."
        )


@dataclass
class BillingUsage:
    usage: UsageRecord
    billing_period: str
    next_reset_date: datetime


@dataclass
class UsageStats:
    """Usage summary for display."""

    plan_name: str
    price_updates: int
    compare_at_updates: int
    limits: PlanLimits
    billing_period: str
    next_reset_date: datetime
    price_remaining: Optional[int]
    compare_at_remaining: Optional[int]


class UsageLedger:
    """
    Tracks and gates metered price updates.

    Usage is charged when a mutation job is launched, not when it
    completes, and is not refunded if the job later fails.
    """

    def __init__(self, db: SQLiteDatabase, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def sync_subscription(
        self,
        store_id: str,
        subscription: Optional[ActiveSubscription],
    ) -> SubscriptionInfo:
        """
        Record the store's active subscription.

        Any change of subscription identity, including cancelling down to
        no subscription, restarts the billing window so usage resets.
        """
        info = await self.db.get_subscription_info(store_id)
        subscription_id = subscription.id if subscription else None

        if info is not None and info.subscription_id == subscription_id:
            return info

        if subscription and subscription.created_at:
            started_at = subscription.created_at
        else:
            started_at = self.clock()

        new_info = SubscriptionInfo(
            store_id=store_id,
            subscription_id=subscription_id,
            plan_name=(subscription.name if subscription else None) or DEFAULT_PLAN_NAME,
            started_at=started_at,
        )

        if info is None:
            logger.info(f"Tracking usage for store {store_id} on plan '{new_info.plan_name}'")
        else:
            logger.info(
                f"Subscription changed for store {store_id}: "
                f"'{info.plan_name}' -> '{new_info.plan_name}', usage window reset"
            )

        return await self.db.save_subscription_info(new_info)

    async def is_tracking(self, store_id: str) -> bool:
        """Whether the store has a subscription record to charge usage against."""
        return await self.db.get_subscription_info(store_id) is not None

    async def _require_subscription(self, store_id: str) -> SubscriptionInfo:
        info = await self.db.get_subscription_info(store_id)
        if info is None:
            raise UsageLedgerError(f"Subscription info not found for store {store_id}")
        return info

    async def get_current_usage(self, store_id: str) -> BillingUsage:
        info = await self._require_subscription(store_id)
        now = self.clock()
        period = current_billing_period(info.started_at, now)

        usage = await self.db.get_usage(store_id, period)
        if usage is None:
            usage = UsageRecord(store_id=store_id, billing_period=period)

        return BillingUsage(
            usage=usage,
            billing_period=period,
            next_reset_date=next_reset_date(info.started_at, now),
        )

    async def check_limit(
        self,
        store_id: str,
        plan_name: Optional[str],
        price_count: int,
        compare_at_count: int,
    ) -> LimitCheck:
        """
        Decide whether a batch fits in the remaining quota.

        All or nothing: if either counter would go over its cap the whole
        batch is refused. Price is checked first.
        """
        limits = get_plan_limits(plan_name)
        if limits.is_unlimited:
            return LimitCheck(allowed=True)

        usage = (await self.get_current_usage(store_id)).usage

        if limits.price is not None and usage.price_updates + price_count > limits.price:
            return LimitCheck(
                allowed=False,
                type="price",
                limit=limits.price,
                current=usage.price_updates,
                attempted=price_count,
            )

        if limits.compare_at is not None and usage.compare_at_updates + compare_at_count > limits.compare_at:
            return LimitCheck(
                allowed=False,
                type="compareAt",
                limit=limits.compare_at,
                current=usage.compare_at_updates,
                attempted=compare_at_count,
            )

        return LimitCheck(allowed=True)

    async def increment(self, store_id: str, price_count: int, compare_at_count: int) -> UsageRecord:
        """Charge a launched batch to the current period."""
        info = await self._require_subscription(store_id)
        period = current_billing_period(info.started_at, self.clock())
        record = await self.db.increment_usage(store_id, period, price_count, compare_at_count)
        logger.info(
            f"Usage for store {store_id} in period {period}: "
            f"{record.price_updates} price, {record.compare_at_updates} compare-at"
        )
        return record

    async def get_usage_stats(self, store_id: str, plan_name: Optional[str]) -> UsageStats:
        limits = get_plan_limits(plan_name)
        billing = await self.get_current_usage(store_id)
        usage = billing.usage

        return UsageStats(
            plan_name=plan_name or DEFAULT_PLAN_NAME,
            price_updates=usage.price_updates,
            compare_at_updates=usage.compare_at_updates,
            limits=limits,
            billing_period=billing.billing_period,
            next_reset_date=billing.next_reset_date,
            price_remaining=None if limits.price is None else limits.price - usage.price_updates,
            compare_at_remaining=None if limits.compare_at is None else limits.compare_at - usage.compare_at_updates,
        )
