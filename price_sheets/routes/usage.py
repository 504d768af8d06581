"""
Usage and quota API routes.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional

from ..dependencies import client_for, get_ledger, get_store_or_404
from ..db import Store
from ..shopify import ShopifyClientError, fetch_active_subscription

router = APIRouter(prefix="/api/stores")


class UsageResponse(BaseModel):
    plan_name: str
    billing_period: str
    next_reset_date: datetime
    price_updates: int
    compare_at_updates: int
    price_limit: Optional[int] = None
    compare_at_limit: Optional[int] = None
    price_remaining: Optional[int] = None
    compare_at_remaining: Optional[int] = None


@router.get("/{store_id}/usage", response_model=UsageResponse)
async def get_usage(store: Store = Depends(get_store_or_404)):
    """Current period usage against the store's plan limits (None = unlimited)."""
    ledger = get_ledger()
    try:
        async with client_for(store) as client:
            subscription = await fetch_active_subscription(client)
    except ShopifyClientError as e:
        raise HTTPException(status_code=502, detail=str(e))

    info = await ledger.sync_subscription(store.id, subscription)

    stats = await ledger.get_usage_stats(store.id, info.plan_name)
    return UsageResponse(
        plan_name=stats.plan_name,
        billing_period=stats.billing_period,
        next_reset_date=stats.next_reset_date,
        price_updates=stats.price_updates,
        compare_at_updates=stats.compare_at_updates,
        price_limit=stats.limits.price,
        compare_at_limit=stats.limits.compare_at,
        price_remaining=stats.price_remaining,
        compare_at_remaining=stats.compare_at_remaining,
    )
