"""
Shopify webhook receivers.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from ..dependencies import get_ledger, get_store_or_404
from ..db import Store
from ..shopify import ActiveSubscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks")

INACTIVE_SUBSCRIPTION_STATUSES = {"CANCELLED", "DECLINED", "EXPIRED", "FROZEN"}


@router.post("/{store_id}/app-subscriptions-update")
async def app_subscriptions_update(request: Request, store: Store = Depends(get_store_or_404)):
    """
    Handle app_subscriptions/update.

    An active subscription becomes the store's plan; a cancelled or expired
    one drops the store back to the free tier. Either way a change of
    subscription resets the usage window.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    body = payload.get("app_subscription") if isinstance(payload, dict) else None
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Missing app_subscription")

    subscription = ActiveSubscription.from_payload(body)
    if (subscription.status or "").upper() in INACTIVE_SUBSCRIPTION_STATUSES:
        logger.info(f"Subscription {subscription.id} for store {store.name} is {subscription.status}")
        subscription = None

    info = await get_ledger().sync_subscription(store.id, subscription)
    return {"success": True, "plan_name": info.plan_name}
