"""
Flatten decoded catalog records into spreadsheet rows.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from .ndjson import CatalogRow, ProductRecord, ProductTitleIndex, VariantRecord
from .prices import parse_price_or_none

EXPORT_COLUMNS = [
    "Product Title",
    "SKU",
    "Option1 Value",
    "Option2 Value",
    "Option3 Value",
    "Price",
    "CompareAt Price",
]

UNKNOWN_PRODUCT_TITLE = "Unknown"
NO_DATA_TITLE = "No data found"
MAX_OPTIONS = 3


@dataclass
class ExportRow:
    """One spreadsheet row per variant."""

    product_title: str
    sku: str = ""
    option1: str = ""
    option2: str = ""
    option3: str = ""
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None

    @property
    def is_placeholder(self) -> bool:
        return self.product_title == NO_DATA_TITLE and not self.sku

    def as_values(self) -> list:
        """Cell values in EXPORT_COLUMNS order; placeholder prices stay blank."""
        if self.is_placeholder:
            return [self.product_title, "", "", "", "", "", ""]
        return [
            self.product_title,
            self.sku,
            self.option1,
            self.option2,
            self.option3,
            self.price,
            self.compare_at_price,
        ]


def placeholder_row() -> ExportRow:
    """Row emitted when an export has no variants at all."""
    return ExportRow(product_title=NO_DATA_TITLE)


def variant_to_row(variant: VariantRecord, index: ProductTitleIndex) -> ExportRow:
    title = variant.product_title or index.title_for(variant.parent_id) or UNKNOWN_PRODUCT_TITLE

    values = [value for _name, value in variant.selected_options[:MAX_OPTIONS]]
    values += [""] * (MAX_OPTIONS - len(values))

    return ExportRow(
        product_title=title,
        sku=variant.sku or "",
        option1=values[0],
        option2=values[1],
        option3=values[2],
        price=parse_price_or_none(variant.price),
        compare_at_price=parse_price_or_none(variant.compare_at_price),
    )


def transform(rows: Iterable[CatalogRow]) -> List[ExportRow]:
    """
    Map decoded records to export rows, one per variant.

    Never returns an empty list: zero variants yields the "No data found"
    placeholder.
    """
    index = ProductTitleIndex()
    export_rows: List[ExportRow] = []

    for row in rows:
        if isinstance(row, ProductRecord):
            index.add(row)
        elif isinstance(row, VariantRecord):
            export_rows.append(variant_to_row(row, index))

    if not export_rows:
        export_rows.append(placeholder_row())

    return export_rows
