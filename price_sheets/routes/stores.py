"""
Store registration API routes.
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_db, get_store_or_404
from ..db import Store, StoreCreate, StoreOut

router = APIRouter(prefix="/api/stores")


def normalize_domain(shopify_domain: str) -> str:
    """Lower-case the domain and add .myshopify.com when only a handle is given."""
    shopify_domain = shopify_domain.strip().lower()
    if ".myshopify.com" not in shopify_domain:
        shopify_domain = f"{shopify_domain}.myshopify.com"
    return shopify_domain


def to_out(store: Store) -> StoreOut:
    return StoreOut(
        id=store.id,
        name=store.name,
        shopify_domain=store.shopify_domain,
        created_at=store.created_at,
    )


@router.get("", response_model=List[StoreOut])
async def list_stores():
    """List all stores."""
    stores = await get_db().get_stores()
    return [to_out(s) for s in stores]


@router.post("", response_model=StoreOut, status_code=201)
async def create_store(payload: StoreCreate):
    """Register a store."""
    if not payload.name.strip() or not payload.shopify_domain.strip() or not payload.api_token.strip():
        raise HTTPException(status_code=400, detail="All fields are required")

    store = Store(
        name=payload.name.strip(),
        shopify_domain=normalize_domain(payload.shopify_domain),
        api_token=payload.api_token.strip(),
    )
    await get_db().create_store(store)
    return to_out(store)


@router.get("/{store_id}", response_model=StoreOut)
async def get_store(store: Store = Depends(get_store_or_404)):
    return to_out(store)


@router.delete("/{store_id}", status_code=204)
async def delete_store(store: Store = Depends(get_store_or_404)):
    """Delete a store and its usage records."""
    await get_db().delete_store(store.id)
