"""
Processor package for export and import pipelines.
"""

from .export import EXPORT_COLUMNS, ExportRow, transform
from .ndjson import decode, decode_lines
from .reconcile import ImportRow, ReconciliationReport, VariantMutation, reconcile
from .snapshot import CatalogSnapshotBuilder, SnapshotEntry
from .submit import BulkMutationSubmitter, SubmissionResult
from .usage import LimitCheck, UsageLedger, UsageLedgerError, UsageStats
from .exporter import ExportPipeline, ExportResult
from .importer import ImportPhase, ImportPipeline, ImportResult, ImportSummary

__all__ = [
    "EXPORT_COLUMNS",
    "ExportRow",
    "transform",
    "decode",
    "decode_lines",
    "ImportRow",
    "ReconciliationReport",
    "VariantMutation",
    "reconcile",
    "CatalogSnapshotBuilder",
    "SnapshotEntry",
    "BulkMutationSubmitter",
    "SubmissionResult",
    "LimitCheck",
    "UsageLedger",
    "UsageLedgerError",
    "UsageStats",
    "ExportPipeline",
    "ExportResult",
    "ImportPhase",
    "ImportPipeline",
    "ImportResult",
    "ImportSummary",
]
