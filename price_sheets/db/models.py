"""
Pydantic models for database entities.
API tokens stored directly in SQLite (encrypted at rest on VPS).
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field
import uuid


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Store(BaseModel):
    """A Shopify store (tenant)."""
    id: str = Field(default_factory=generate_uuid)
    name: str
    shopify_domain: str  # e.g., "mystore.myshopify.com"
    api_token: str  # Shopify Admin API token (shpat_...)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class StoreCreate(BaseModel):
    """Input for registering a store."""
    name: str
    shopify_domain: str
    api_token: str


class StoreOut(BaseModel):
    """Store as returned by the API (no token)."""
    id: str
    name: str
    shopify_domain: str
    created_at: datetime


class SubscriptionInfo(BaseModel):
    """Which subscription a store is on and when its usage window started."""
    store_id: str
    subscription_id: Optional[str] = None
    plan_name: str = "Free"
    started_at: datetime = Field(default_factory=utcnow)


class UsageRecord(BaseModel):
    """Metered update counts for one store and billing period."""
    store_id: str
    billing_period: str  # ISO date of the period start
    price_updates: int = 0
    compare_at_updates: int = 0
