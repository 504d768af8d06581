"""
Import pipeline: validate -> admit -> submit -> await.

Each phase can be called on its own by an external scheduler, or `run`
drives all of them. Every path returns an ImportResult; remote, admission
and submission failures are reported in it rather than raised.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiosqlite

from ..shopify import (
    BulkJob,
    BulkJobKind,
    BulkJobStatus,
    BulkOperationsManager,
    BulkOperationTimeout,
    ShopifyClient,
    ShopifyClientError,
    fetch_active_subscription,
)
from ..db import SubscriptionInfo
from .reconcile import ImportRow, ReconciliationReport, reconcile
from .snapshot import CatalogSnapshotBuilder
from .submit import BulkMutationSubmitter, SubmissionResult
from .usage import LimitCheck, UsageLedger, UsageLedgerError

logger = logging.getLogger(__name__)

BULK_OPERATION_NOT_FOUND = "Bulk operation not found"


class ImportPhase(str, Enum):
    VALIDATE = "validate"
    ADMIT = "admit"
    SUBMIT = "submit"
    AWAIT = "await"


@dataclass
class ImportSummary:
    """Counts and row tables shown to the merchant."""

    total: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    failed_rows: List[Dict[str, Any]] = field(default_factory=list)
    skipped_rows: List[Dict[str, Any]] = field(default_factory=list)
    bulk_operation_id: Optional[str] = None
    expected_update_count: int = 0

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> "ImportSummary":
        return cls(
            total=len(report.outcomes),
            skipped=len(report.skipped),
            failed=len(report.failed),
            errors=list(report.errors),
            failed_rows=report.failed_rows(),
            skipped_rows=report.skipped_rows(),
        )


@dataclass
class ImportResult:
    """
    Result of the last phase reached.

    success is False when the import could not be evaluated at all
    (snapshot failure), was refused by the usage check, or its job no
    longer exists. Submission and job failures keep success=True and list
    the error in summary.errors.
    """

    phase: ImportPhase
    success: bool
    summary: ImportSummary = field(default_factory=ImportSummary)
    error: Optional[str] = None
    usage_exceeded: bool = False
    limit_check: Optional[LimitCheck] = None
    job_status: Optional[BulkJobStatus] = None


def parse_mutation_errors(lines: Sequence[str]) -> List[str]:
    """First userErrors message of each line of a bulk mutation result file."""
    errors: List[str] = []
    for line in lines:
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse result line: {e}")
            continue
        if not isinstance(obj, dict):
            continue

        payload = obj.get("data") if isinstance(obj.get("data"), dict) else obj
        update = payload.get("productVariantsBulkUpdate") or {}
        user_errors = update.get("userErrors") or []
        if user_errors:
            errors.append(user_errors[0].get("message", str(user_errors[0])))
    return errors


class ImportPipeline:
    """Runs a price import for one store."""

    def __init__(
        self,
        client: ShopifyClient,
        ledger: UsageLedger,
        store_id: str,
        bulk_ops: Optional[BulkOperationsManager] = None,
    ):
        self.client = client
        self.ledger = ledger
        self.store_id = store_id
        self.bulk_ops = bulk_ops or BulkOperationsManager(client)
        self.snapshot_builder = CatalogSnapshotBuilder(client)
        self.submitter = BulkMutationSubmitter(client, self.bulk_ops)

    async def resolve_subscription(self) -> SubscriptionInfo:
        """Sync the store's active subscription into the ledger."""
        subscription = await fetch_active_subscription(self.client)
        return await self.ledger.sync_subscription(self.store_id, subscription)

    # ===== Phases =====

    async def validate(
        self,
        rows: Sequence[ImportRow],
        columns: Optional[Sequence[str]] = None,
    ) -> ReconciliationReport:
        """
        Rebuild the catalog snapshot and reconcile rows against it.

        Raises:
            ShopifyClientError: If the catalog cannot be read
        """
        snapshot = await self.snapshot_builder.build()
        return reconcile(rows, snapshot, columns)

    async def admit(self, report: ReconciliationReport, plan_name: Optional[str]) -> LimitCheck:
        return await self.ledger.check_limit(
            self.store_id,
            plan_name,
            report.price_updates_count,
            report.compare_at_updates_count,
        )

    async def submit(self, report: ReconciliationReport) -> SubmissionResult:
        """
        Launch the bulk mutation and charge usage once it has started.

        If the charge cannot be recorded the job id is still returned, with
        the ledger failure in SubmissionResult.error.
        """
        submission = await self.submitter.submit(report.mutations)
        if not submission.success:
            return submission

        try:
            await self.ledger.increment(
                self.store_id,
                report.price_updates_count,
                report.compare_at_updates_count,
            )
        except (UsageLedgerError, aiosqlite.Error) as e:
            logger.error(f"Usage not recorded for job {submission.bulk_job_id}: {e}")
            submission.error = f"Failed to record usage: {e}"
        return submission

    async def check(self, operation_id: str) -> Tuple[BulkJob, List[str]]:
        """
        Poll the mutation job once.

        Returns:
            The job and, if it completed, the per-product errors from its
            result file
        """
        job = await self.bulk_ops.poll(operation_id, BulkJobKind.MUTATION)
        return job, await self._result_errors(job)

    async def await_completion(
        self,
        operation_id: str,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> Tuple[BulkJob, List[str]]:
        """
        Wait for the mutation job within the poll budget.

        Raises:
            BulkOperationTimeout: If the job is still running when the budget runs out
        """
        job = await self.bulk_ops.wait_for_job(
            operation_id,
            BulkJobKind.MUTATION,
            poll_interval=poll_interval,
            max_attempts=max_attempts,
        )
        return job, await self._result_errors(job)

    async def _result_errors(self, job: BulkJob) -> List[str]:
        if job.status != BulkJobStatus.COMPLETED:
            return [job.error] if job.error else []

        try:
            lines = [line async for line in self.bulk_ops.stream_result_lines(job.url)]
        except ShopifyClientError as e:
            logger.warning(f"Could not read results of {job.id}: {e}")
            return [f"Failed to read bulk operation results: {e}"]

        return parse_mutation_errors(lines)

    # ===== Orchestration =====

    async def run(
        self,
        rows: Sequence[ImportRow],
        plan_name: Optional[str] = None,
        columns: Optional[Sequence[str]] = None,
        wait: bool = True,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> ImportResult:
        """
        Run every phase in order.

        Args:
            rows: Parsed spreadsheet rows
            plan_name: Subscription plan; looked up from Shopify when None
            columns: Header order for the failed/skipped tables
            wait: Poll the mutation job to completion before returning
        """
        try:
            # Usage is charged against the subscription record, so it must
            # exist even when the plan is given
            if plan_name is None or not await self.ledger.is_tracking(self.store_id):
                info = await self.resolve_subscription()
                plan_name = plan_name or info.plan_name
            report = await self.validate(rows, columns)
        except ShopifyClientError as e:
            logger.error(f"Import validation failed for store {self.store_id}: {e}")
            return ImportResult(phase=ImportPhase.VALIDATE, success=False, error=str(e))

        summary = ImportSummary.from_report(report)

        check = await self.admit(report, plan_name)
        if not check.allowed:
            logger.warning(f"Import refused for store {self.store_id}: {check.message()}")
            return ImportResult(
                phase=ImportPhase.ADMIT,
                success=False,
                summary=summary,
                error=check.message(),
                usage_exceeded=True,
                limit_check=check,
            )

        if not report.mutations:
            return ImportResult(phase=ImportPhase.ADMIT, success=True, summary=summary, limit_check=check)

        submission = await self.submit(report)
        if not submission.success:
            summary.errors.append(submission.error)
            return ImportResult(phase=ImportPhase.SUBMIT, success=True, summary=summary, limit_check=check)

        summary.bulk_operation_id = submission.bulk_job_id
        summary.expected_update_count = len(report.mutations)
        if submission.error:
            summary.errors.append(submission.error)
        if not wait:
            return ImportResult(
                phase=ImportPhase.SUBMIT,
                success=True,
                summary=summary,
                limit_check=check,
                job_status=BulkJobStatus.CREATED,
            )

        return await self.finish(summary, poll_interval, max_attempts)

    async def finish(
        self,
        summary: ImportSummary,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> ImportResult:
        """Await the launched job and merge its errors into the summary."""
        try:
            job, job_errors = await self.await_completion(
                summary.bulk_operation_id, poll_interval, max_attempts
            )
        except BulkOperationTimeout as e:
            logger.error(str(e))
            summary.errors.append(str(e))
            return ImportResult(
                phase=ImportPhase.AWAIT,
                success=True,
                summary=summary,
                job_status=BulkJobStatus.RUNNING,
            )
        except ShopifyClientError as e:
            logger.error(f"Polling bulk mutation failed: {e}")
            summary.errors.append(str(e))
            return ImportResult(phase=ImportPhase.AWAIT, success=True, summary=summary)

        return self.merge(summary, job, job_errors)

    @staticmethod
    def merge(summary: ImportSummary, job: BulkJob, job_errors: List[str]) -> ImportResult:
        """Fold a terminal mutation job into the validation summary."""
        summary.errors.extend(job_errors)
        if job.status == BulkJobStatus.COMPLETED:
            summary.updated = summary.expected_update_count
        elif job.status == BulkJobStatus.NONE:
            summary.errors.append(BULK_OPERATION_NOT_FOUND)
        return ImportResult(
            phase=ImportPhase.AWAIT,
            success=job.status != BulkJobStatus.NONE,
            summary=summary,
            job_status=job.status,
        )
