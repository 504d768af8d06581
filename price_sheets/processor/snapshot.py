"""
Variant catalog snapshot used to reconcile price imports.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from ..config import settings
from ..shopify.client import ShopifyClient
from ..shopify.queries import PRODUCT_VARIANTS_PAGE_QUERY
from .prices import InvalidPriceError, normalize_sku, parse_price, parse_price_or_none

logger = logging.getLogger(__name__)


@dataclass
class SnapshotEntry:
    """Current prices of one variant."""

    variant_id: str
    product_id: str
    price: Decimal
    compare_at_price: Optional[Decimal] = None


CatalogSnapshot = Dict[str, SnapshotEntry]


class CatalogSnapshotBuilder:
    """
    Paginates every product variant into a map keyed by normalized SKU.

    The snapshot is rebuilt from the live catalog for each import run.
    """

    def __init__(self, client: ShopifyClient, page_size: Optional[int] = None):
        self.client = client
        self.page_size = page_size or settings.variants_page_size

    async def build(self) -> CatalogSnapshot:
        """
        Fetch all variant pages sequentially.

        Variants without a SKU are left out since no import row can
        address them.

        Returns:
            Normalized SKU -> SnapshotEntry
        """
        snapshot: CatalogSnapshot = {}
        cursor: Optional[str] = None
        pages = 0

        while True:
            data = await self.client.execute(
                PRODUCT_VARIANTS_PAGE_QUERY,
                variables={"first": self.page_size, "after": cursor},
            )
            connection = data.get("productVariants") or {}
            pages += 1

            for edge in connection.get("edges") or []:
                self._add_node(snapshot, edge.get("node") or {})

            page_info = connection.get("pageInfo") or {}
            cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not cursor:
                break

        logger.info(f"Catalog snapshot: {len(snapshot)} SKUs from {pages} pages")
        return snapshot

    def _add_node(self, snapshot: CatalogSnapshot, node: dict) -> None:
        sku_key = normalize_sku(node.get("sku"))
        if not sku_key:
            return

        try:
            price = parse_price(node.get("price"))
        except InvalidPriceError:
            logger.warning(f"Skipping variant {node.get('id')}: unreadable price {node.get('price')!r}")
            return

        snapshot[sku_key] = SnapshotEntry(
            variant_id=node["id"],
            product_id=(node.get("product") or {}).get("id"),
            price=price,
            compare_at_price=parse_price_or_none(node.get("compareAtPrice")),
        )
