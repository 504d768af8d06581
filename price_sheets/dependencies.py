"""
FastAPI dependency injection.
Simple setup - just the database and per-store helpers.
"""

from typing import Optional
from fastapi import HTTPException

from .config import settings
from .db import SQLiteDatabase, Store
from .processor import UsageLedger
from .shopify import ShopifyClient


# Global instances (initialized on startup)
_db: Optional[SQLiteDatabase] = None


async def init_dependencies():
    """Initialize global dependencies. Called on app startup."""
    global _db

    _db = SQLiteDatabase(settings.database_path)
    await _db.initialize()


async def close_dependencies():
    """Close global dependencies. Called on app shutdown."""
    global _db
    if _db:
        await _db.close()
        _db = None


def get_db() -> SQLiteDatabase:
    """Get the database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db


def get_ledger() -> UsageLedger:
    """Usage ledger backed by the app database."""
    return UsageLedger(get_db())


async def get_store_or_404(store_id: str) -> Store:
    """Path dependency resolving {store_id} to a registered store."""
    store = await get_db().get_store(store_id)
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return store


def client_for(store: Store) -> ShopifyClient:
    """Shopify client for a store; callers close it."""
    return ShopifyClient(store.shopify_domain, store.api_token)
