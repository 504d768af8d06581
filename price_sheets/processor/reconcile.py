"""
Reconcile uploaded price rows against the live catalog snapshot.

Each row with a SKU gets exactly one outcome: updated, skipped or failed.
Only fields that actually change are put into a mutation.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .prices import InvalidPriceError, format_price, is_blank, normalize_sku, parse_price
from .snapshot import CatalogSnapshot, SnapshotEntry

logger = logging.getLogger(__name__)

SKU_COLUMN = "SKU"
PRICE_COLUMN = "Price"
COMPARE_AT_COLUMN = "CompareAt Price"
ERROR_REASON_COLUMN = "Error Reason"
SKIP_REASON_COLUMN = "Reason"

# Typed in the CompareAt column to remove the compare-at price
CLEAR_SENTINEL = "null"

INVALID_PRICE = "Invalid Price value"
INVALID_COMPARE_AT = "Invalid CompareAt Price value"
DUPLICATE_SKU = "Duplicate SKU in file"
VARIANT_NOT_FOUND = "Variant not found"
PRICES_MATCH = "Prices already match"


@dataclass
class ImportRow:
    """
    One spreadsheet row as ordered (column, value) pairs.

    Unknown columns are kept so failed and skipped rows can be written back
    out unchanged.
    """

    cells: List[Tuple[str, Any]]
    line_number: Optional[int] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], line_number: Optional[int] = None) -> "ImportRow":
        return cls(cells=list(mapping.items()), line_number=line_number)

    def get(self, column: str, default: Any = None) -> Any:
        for name, value in self.cells:
            if name == column:
                return value
        return default

    @property
    def columns(self) -> List[str]:
        return [name for name, _ in self.cells]

    @property
    def sku(self) -> Any:
        return self.get(SKU_COLUMN)

    @property
    def price(self) -> Any:
        return self.get(PRICE_COLUMN)

    @property
    def compare_at_price(self) -> Any:
        return self.get(COMPARE_AT_COLUMN)

    def as_dict(self, columns: Sequence[str], extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Values for `columns` (blank when missing) followed by `extra`."""
        values = dict(self.cells)
        normalized = {column: values.get(column, "") for column in columns}
        if extra:
            normalized.update(extra)
        return normalized


def collect_columns(rows: Iterable[ImportRow]) -> List[str]:
    """All column names in order of first appearance."""
    seen: Dict[str, None] = {}
    for row in rows:
        for name in row.columns:
            seen.setdefault(name, None)
    return list(seen)


@dataclass
class VariantMutation:
    """
    Changes for one variant.

    `fields` only holds keys that differ from the catalog. A
    compareAtPrice key mapped to None clears the compare-at price; an
    absent key leaves it untouched.
    """

    variant_id: str
    product_id: str
    fields: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def sets_price(self) -> bool:
        return self.fields.get("price") is not None

    @property
    def sets_compare_at(self) -> bool:
        return "compareAtPrice" in self.fields

    @property
    def clears_compare_at(self) -> bool:
        return self.sets_compare_at and self.fields["compareAtPrice"] is None

    def to_variant_input(self) -> Dict[str, Optional[str]]:
        """ProductVariantsBulkInput for productVariantsBulkUpdate."""
        return {"id": self.variant_id, **self.fields}


class OutcomeKind(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ReconciliationOutcome:
    """Result for one import row."""

    kind: OutcomeKind
    row: ImportRow
    sku: str
    reason: Optional[str] = None
    mutation: Optional[VariantMutation] = None

    @classmethod
    def updated(cls, row: ImportRow, sku: str, mutation: VariantMutation) -> "ReconciliationOutcome":
        return cls(OutcomeKind.UPDATED, row, sku, mutation=mutation)

    @classmethod
    def skipped(cls, row: ImportRow, sku: str, reason: str) -> "ReconciliationOutcome":
        return cls(OutcomeKind.SKIPPED, row, sku, reason=reason)

    @classmethod
    def failed(cls, row: ImportRow, sku: str, reason: str) -> "ReconciliationOutcome":
        return cls(OutcomeKind.FAILED, row, sku, reason=reason)


@dataclass
class ReconciliationReport:
    """Outcomes in input order plus batch error messages."""

    outcomes: List[ReconciliationOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)

    def _of_kind(self, kind: OutcomeKind) -> List[ReconciliationOutcome]:
        return [o for o in self.outcomes if o.kind == kind]

    @property
    def updated(self) -> List[ReconciliationOutcome]:
        return self._of_kind(OutcomeKind.UPDATED)

    @property
    def skipped(self) -> List[ReconciliationOutcome]:
        return self._of_kind(OutcomeKind.SKIPPED)

    @property
    def failed(self) -> List[ReconciliationOutcome]:
        return self._of_kind(OutcomeKind.FAILED)

    @property
    def mutations(self) -> List[VariantMutation]:
        return [o.mutation for o in self.updated]

    @property
    def price_updates_count(self) -> int:
        return sum(1 for m in self.mutations if m.sets_price)

    @property
    def compare_at_updates_count(self) -> int:
        return sum(1 for m in self.mutations if m.sets_compare_at)

    def failed_rows(self) -> List[Dict[str, Any]]:
        return [o.row.as_dict(self.columns, {ERROR_REASON_COLUMN: o.reason}) for o in self.failed]

    def skipped_rows(self) -> List[Dict[str, Any]]:
        return [o.row.as_dict(self.columns, {SKIP_REASON_COLUMN: o.reason}) for o in self.skipped]


def diff_variant(
    entry: SnapshotEntry,
    new_price: Optional[Decimal],
    new_compare_at: Optional[Decimal],
    clear_compare_at: bool,
) -> Dict[str, Optional[str]]:
    """Fields that differ from the catalog entry (numeric comparison)."""
    changes: Dict[str, Optional[str]] = {}

    if new_price is not None and new_price != entry.price:
        changes["price"] = format_price(new_price)

    if clear_compare_at:
        if entry.compare_at_price is not None:
            changes["compareAtPrice"] = None
    elif new_compare_at is not None and new_compare_at != entry.compare_at_price:
        changes["compareAtPrice"] = format_price(new_compare_at)

    return changes


class ImportReconciler:
    """
    Classifies import rows against a catalog snapshot.

    Checks run in a fixed order and stop at the first failure: price,
    compare-at, duplicate SKU, catalog lookup, then the diff.
    """

    def __init__(self, snapshot: CatalogSnapshot):
        self.snapshot = snapshot
        self._seen: set = set()

    def reconcile(self, rows: Sequence[ImportRow], columns: Optional[Sequence[str]] = None) -> ReconciliationReport:
        report = ReconciliationReport(
            columns=list(columns) if columns else collect_columns(rows)
        )
        self._seen = set()

        for row in rows:
            raw_sku = row.sku
            if is_blank(raw_sku) or str(raw_sku).strip() == SKU_COLUMN:
                continue

            sku = str(raw_sku).strip()
            try:
                outcome = self._reconcile_row(row, sku, report.errors)
            except Exception as e:
                logger.exception(f"Error processing SKU {sku}")
                report.errors.append(f"Error processing SKU {sku}: {e}")
                outcome = ReconciliationOutcome.failed(row, sku, str(e))
            report.outcomes.append(outcome)

        logger.info(
            f"Reconciled {len(report.outcomes)} rows: {len(report.updated)} to update, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report

    def _reconcile_row(self, row: ImportRow, sku: str, errors: List[str]) -> ReconciliationOutcome:
        price_raw = row.price
        new_price: Optional[Decimal] = None
        if not is_blank(price_raw):
            try:
                new_price = parse_price(price_raw)
            except InvalidPriceError:
                errors.append(f"Skipped SKU {sku}: {INVALID_PRICE} '{price_raw}'")
                return ReconciliationOutcome.failed(row, sku, INVALID_PRICE)

        compare_raw = row.compare_at_price
        new_compare_at: Optional[Decimal] = None
        clear_compare_at = False
        if not is_blank(compare_raw):
            if str(compare_raw).strip().lower() == CLEAR_SENTINEL:
                clear_compare_at = True
            else:
                try:
                    new_compare_at = parse_price(compare_raw)
                except InvalidPriceError:
                    errors.append(f"Skipped SKU {sku}: {INVALID_COMPARE_AT} '{compare_raw}'")
                    return ReconciliationOutcome.failed(row, sku, INVALID_COMPARE_AT)

        sku_key = normalize_sku(sku)
        if sku_key in self._seen:
            errors.append(f"Skipped SKU {sku}: {DUPLICATE_SKU}")
            return ReconciliationOutcome.failed(row, sku, DUPLICATE_SKU)
        self._seen.add(sku_key)

        entry = self.snapshot.get(sku_key)
        if entry is None:
            errors.append(f"Variant not found for SKU: {sku}")
            return ReconciliationOutcome.failed(row, sku, VARIANT_NOT_FOUND)

        changes = diff_variant(entry, new_price, new_compare_at, clear_compare_at)
        if not changes:
            return ReconciliationOutcome.skipped(row, sku, PRICES_MATCH)

        mutation = VariantMutation(
            variant_id=entry.variant_id,
            product_id=entry.product_id,
            fields=changes,
        )
        return ReconciliationOutcome.updated(row, sku, mutation)


def reconcile(
    rows: Sequence[ImportRow],
    snapshot: CatalogSnapshot,
    columns: Optional[Sequence[str]] = None,
) -> ReconciliationReport:
    """Reconcile rows against a snapshot; duplicate tracking is per call."""
    return ImportReconciler(snapshot).reconcile(rows, columns)
