"""
Decoder for bulk operation result files (newline-delimited JSON).

Bulk query results flatten nested connections: each product is one line
and each of its variants is a later line carrying `__parentId`.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

PRODUCT_MARKER = "Product"
VARIANT_MARKER = "ProductVariant"


@dataclass
class ProductRecord:
    """A product line: {id, title}."""

    id: str
    title: Optional[str] = None


@dataclass
class VariantRecord:
    """A variant line linked to its product through parent_id."""

    id: str
    parent_id: Optional[str]
    sku: Optional[str] = None
    selected_options: List[Tuple[str, str]] = field(default_factory=list)
    price: Optional[str] = None
    compare_at_price: Optional[str] = None
    # Resolved while decoding; None when the parent was not seen
    product_title: Optional[str] = None


CatalogRow = Union[ProductRecord, VariantRecord]


class ProductTitleIndex:
    """Product id -> title, built while streaming a single result file."""

    def __init__(self):
        self._titles: Dict[str, Optional[str]] = {}

    def add(self, product: ProductRecord) -> None:
        self._titles[product.id] = product.title

    def title_for(self, product_id: Optional[str]) -> Optional[str]:
        if product_id is None:
            return None
        return self._titles.get(product_id)

    def __len__(self) -> int:
        return len(self._titles)


def _options(raw) -> List[Tuple[str, str]]:
    options = []
    for option in raw or []:
        if isinstance(option, dict):
            options.append((str(option.get("name") or ""), str(option.get("value") or "")))
    return options


def decode_record(obj: dict, index: ProductTitleIndex) -> Optional[CatalogRow]:
    """
    Type a parsed record and update the title index.

    Returns None for records that are neither products nor variants.
    """
    obj_id = obj.get("id")
    if not isinstance(obj_id, str):
        return None

    if VARIANT_MARKER in obj_id:
        parent_id = obj.get("__parentId")
        return VariantRecord(
            id=obj_id,
            parent_id=parent_id,
            sku=obj.get("sku"),
            selected_options=_options(obj.get("selectedOptions")),
            price=obj.get("price"),
            compare_at_price=obj.get("compareAtPrice"),
            product_title=index.title_for(parent_id),
        )

    if PRODUCT_MARKER in obj_id and "sku" not in obj:
        product = ProductRecord(id=obj_id, title=obj.get("title"))
        index.add(product)
        return product

    return None


def decode_lines(lines: Iterable[str]) -> List[CatalogRow]:
    """
    Decode NDJSON lines into catalog rows in a single pass.

    Blank lines are skipped. A line that fails to parse is logged and
    dropped; the rest of the stream is still decoded. Parents must precede
    their children, which is how Shopify writes bulk results.
    """
    index = ProductTitleIndex()
    rows: List[CatalogRow] = []
    dropped = 0

    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue

        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            dropped += 1
            logger.warning(f"Failed to parse line {line_number}: {e}")
            continue

        if not isinstance(obj, dict):
            dropped += 1
            logger.warning(f"Skipping non-object line {line_number}")
            continue

        row = decode_record(obj, index)
        if row is not None:
            rows.append(row)

    if dropped:
        logger.info(f"Decoded {len(rows)} records, dropped {dropped} lines")
    return rows


def decode(text: str) -> List[CatalogRow]:
    """Decode a whole NDJSON document."""
    return decode_lines(text.splitlines())
