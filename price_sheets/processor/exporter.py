"""
Export pipeline: bulk query -> poll -> decode -> flat rows.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..shopify import (
    BulkJob,
    BulkJobKind,
    BulkJobStatus,
    BulkOperationsManager,
    BulkOperationTimeout,
    ShopifyClient,
    ShopifyClientError,
)
from ..shopify.queries import build_export_bulk_query
from .export import ExportRow, transform
from .ndjson import decode_lines

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Outcome of starting, checking or running an export."""

    success: bool
    status: BulkJobStatus
    operation_id: Optional[str] = None
    progress: int = 0
    rows: List[ExportRow] = field(default_factory=list)
    error: Optional[str] = None


class ExportPipeline:
    """
    Runs the product price export for one store.

    Can be driven step-wise (`start`, then `check` until terminal, then
    `fetch_rows`) or in one call with `run`.
    """

    def __init__(self, client: ShopifyClient, bulk_ops: Optional[BulkOperationsManager] = None):
        self.client = client
        self.bulk_ops = bulk_ops or BulkOperationsManager(client)

    async def start(self) -> ExportResult:
        """Cancel any unfinished query job and submit the export query."""
        await self.bulk_ops.cancel_if_active()

        try:
            job = await self.bulk_ops.submit_query(build_export_bulk_query())
        except ShopifyClientError as e:
            logger.error(f"Failed to start export: {e}")
            return ExportResult(success=False, status=BulkJobStatus.NONE, error=str(e))

        return ExportResult(success=True, status=job.status, operation_id=job.id)

    async def check(self, operation_id: str) -> ExportResult:
        """Single status check; rows are not downloaded."""
        try:
            job = await self.bulk_ops.poll(operation_id, BulkJobKind.QUERY)
        except ShopifyClientError as e:
            logger.error(f"Failed to check export {operation_id}: {e}")
            return ExportResult(
                success=False, status=BulkJobStatus.NONE, operation_id=operation_id, error=str(e)
            )
        return self._result_for(job)

    def _result_for(self, job: BulkJob) -> ExportResult:
        ok = job.status in (
            BulkJobStatus.CREATED, BulkJobStatus.RUNNING, BulkJobStatus.COMPLETED
        )
        return ExportResult(
            success=ok,
            status=job.status,
            operation_id=job.id,
            progress=job.object_count,
            error=job.error,
        )

    async def fetch_rows(self, url: str) -> List[ExportRow]:
        """Download a completed export and flatten it."""
        lines = [line async for line in self.bulk_ops.stream_result_lines(url)]
        return transform(decode_lines(lines))

    async def collect(self, operation_id: str) -> ExportResult:
        """Check once and, if the export has completed, download its rows."""
        try:
            job = await self.bulk_ops.poll(operation_id, BulkJobKind.QUERY)
        except ShopifyClientError as e:
            logger.error(f"Failed to check export {operation_id}: {e}")
            return ExportResult(
                success=False, status=BulkJobStatus.NONE, operation_id=operation_id, error=str(e)
            )
        return await self._finish(job)

    async def _finish(self, job: BulkJob) -> ExportResult:
        result = self._result_for(job)
        if job.status != BulkJobStatus.COMPLETED:
            return result

        try:
            result.rows = await self.fetch_rows(job.url)
        except ShopifyClientError as e:
            logger.error(f"Failed to process export file: {e}")
            result.success = False
            result.error = str(e)
            return result

        logger.info(f"Export {job.id} produced {len(result.rows)} rows")
        return result

    async def run(
        self,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> ExportResult:
        """Start the export, wait for it within the poll budget and return its rows."""
        started = await self.start()
        if not started.success:
            return started

        try:
            job = await self.bulk_ops.wait_for_job(
                started.operation_id,
                BulkJobKind.QUERY,
                poll_interval=poll_interval,
                max_attempts=max_attempts,
            )
        except BulkOperationTimeout as e:
            logger.error(str(e))
            return ExportResult(
                success=False,
                status=BulkJobStatus.RUNNING,
                operation_id=started.operation_id,
                error=str(e),
            )
        except ShopifyClientError as e:
            logger.error(f"Export polling failed: {e}")
            return ExportResult(
                success=False,
                status=BulkJobStatus.NONE,
                operation_id=started.operation_id,
                error=str(e),
            )

        return await self._finish(job)
