"""
Database package - SQLite only.
"""

from .models import (
    Store, StoreCreate, StoreOut, SubscriptionInfo, UsageRecord,
    generate_uuid, utcnow
)
from .sqlite import SQLiteDatabase

__all__ = [
    "SQLiteDatabase",
    "Store",
    "StoreCreate",
    "StoreOut",
    "SubscriptionInfo",
    "UsageRecord",
    "generate_uuid",
    "utcnow",
]
