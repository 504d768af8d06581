"""
Shopify Bulk Operations handler.

Submits, cancels and polls bulk query/mutation jobs, and streams their
result files. Polling is a single status fetch; `wait_for_job` is the
bounded loop an orchestrator drives.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..config import settings
from .client import ShopifyClient, ShopifyClientError
from .queries import (
    BULK_OPERATION_CANCEL,
    BULK_OPERATION_RUN_MUTATION,
    BULK_OPERATION_RUN_QUERY,
    BULK_OPERATION_STATUS_QUERY,
    CURRENT_BULK_OPERATION_QUERY,
)

logger = logging.getLogger(__name__)


class BulkOperationError(ShopifyClientError):
    """Error during bulk operation."""
    pass


class BulkOperationTimeout(BulkOperationError):
    """Bulk operation timed out."""
    pass


class MissingOperationIdError(BulkOperationError):
    """Shopify accepted the request but returned no operation."""
    pass


class BulkJobKind(str, Enum):
    """Kind of bulk operation."""
    QUERY = "QUERY"
    MUTATION = "MUTATION"


class BulkJobStatus(str, Enum):
    """Local view of a bulk operation's state."""
    NONE = "NONE"
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Remote status -> local status
_REMOTE_STATUSES = {
    "CREATED": BulkJobStatus.CREATED,
    "RUNNING": BulkJobStatus.RUNNING,
    "COMPLETED": BulkJobStatus.COMPLETED,
    "FAILED": BulkJobStatus.FAILED,
    "CANCELING": BulkJobStatus.CANCELLED,
    "CANCELED": BulkJobStatus.CANCELLED,
    "EXPIRED": BulkJobStatus.FAILED,
}

MISSING_RESULT_URL = "No URL in completed bulk operation"


@dataclass
class BulkJob:
    """Point-in-time snapshot of a bulk operation."""

    id: Optional[str]
    kind: BulkJobKind
    status: BulkJobStatus
    object_count: int = 0
    url: Optional[str] = None
    partial_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in (BulkJobStatus.CREATED, BulkJobStatus.RUNNING)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


def job_from_node(
    node: Optional[Dict[str, Any]],
    kind: BulkJobKind,
    job_id: Optional[str] = None,
) -> BulkJob:
    """
    Convert a BulkOperation GraphQL node into a BulkJob.

    A missing node means the remote system has no such job (NONE). A
    COMPLETED job without a result URL is reported as FAILED.
    """
    if not node:
        return BulkJob(id=job_id, kind=kind, status=BulkJobStatus.NONE)

    remote_status = node.get("status") or "UNKNOWN"
    remote_kind = node.get("type")
    if remote_kind in (BulkJobKind.QUERY.value, BulkJobKind.MUTATION.value):
        kind = BulkJobKind(remote_kind)

    job = BulkJob(
        id=node.get("id") or job_id,
        kind=kind,
        status=_REMOTE_STATUSES.get(remote_status, BulkJobStatus.FAILED),
        object_count=int(node.get("objectCount") or 0),
        url=node.get("url") or None,
        partial_url=node.get("partialDataUrl") or None,
    )

    if remote_status not in _REMOTE_STATUSES:
        job.error = f"Unexpected status: {remote_status}"
    elif job.status == BulkJobStatus.COMPLETED and not job.url:
        job.status = BulkJobStatus.FAILED
        job.error = MISSING_RESULT_URL
    elif job.status == BulkJobStatus.FAILED:
        job.error = f"Bulk operation failed with error: {node.get('errorCode') or remote_status}"
    elif job.status == BulkJobStatus.CANCELLED:
        job.error = "Bulk operation was canceled"

    return job


def _first_user_error(payload: Dict[str, Any]) -> Optional[str]:
    user_errors = payload.get("userErrors") or []
    if user_errors:
        return user_errors[0].get("message", str(user_errors[0]))
    return None


class BulkOperationsManager:
    """
    Manages Shopify bulk operations for one store.

    The remote API allows one bulk query and one bulk mutation per shop at
    a time; `cancel_if_active` clears the query slot before a new export.
    """

    POLL_INTERVAL_MULTIPLIER = 1.5

    def __init__(self, client: ShopifyClient):
        """
        Initialize bulk operations manager.

        Args:
            client: Shopify GraphQL client
        """
        self.client = client

    async def submit_query(self, query_doc: str) -> BulkJob:
        """
        Submit a bulk query.

        Args:
            query_doc: Inner query document (the part inside bulkOperationRunQuery)

        Returns:
            BulkJob in CREATED state

        Raises:
            BulkOperationError: If Shopify rejects the operation
        """
        data = await self.client.execute(
            BULK_OPERATION_RUN_QUERY, variables={"query": query_doc}
        )
        return self._job_from_submission(
            data.get("bulkOperationRunQuery") or {}, BulkJobKind.QUERY
        )

    async def submit_mutation(self, mutation_doc: str, staged_path: str) -> BulkJob:
        """
        Submit a bulk mutation whose variables were staged beforehand.

        Args:
            mutation_doc: Mutation executed once per staged NDJSON line
            staged_path: The staged upload `key` parameter

        Returns:
            BulkJob in CREATED state

        Raises:
            BulkOperationError: If Shopify rejects the operation
        """
        data = await self.client.execute(
            BULK_OPERATION_RUN_MUTATION,
            variables={"mutation": mutation_doc, "stagedUploadPath": staged_path},
        )
        return self._job_from_submission(
            data.get("bulkOperationRunMutation") or {}, BulkJobKind.MUTATION
        )

    def _job_from_submission(self, payload: Dict[str, Any], kind: BulkJobKind) -> BulkJob:
        message = _first_user_error(payload)
        if message:
            raise BulkOperationError(message)

        operation = payload.get("bulkOperation") or {}
        operation_id = operation.get("id")
        if not operation_id:
            raise MissingOperationIdError("No operation ID returned")

        logger.info(f"Bulk {kind.value.lower()} started: {operation_id}")
        return BulkJob(id=operation_id, kind=kind, status=BulkJobStatus.CREATED)

    async def poll(self, job_id: str, kind: BulkJobKind = BulkJobKind.QUERY) -> BulkJob:
        """
        Fetch the current state of a bulk operation once.

        Args:
            job_id: The bulk operation GID
            kind: Kind to report if the remote node does not say

        Returns:
            Latest BulkJob snapshot (NONE if the job does not exist)
        """
        data = await self.client.execute(
            BULK_OPERATION_STATUS_QUERY, variables={"id": job_id}
        )
        job = job_from_node(data.get("node"), kind, job_id=job_id)
        logger.debug(
            f"Bulk operation {job_id}: {job.status.value}, objects: {job.object_count}"
        )
        return job

    async def current_job(self) -> BulkJob:
        """Fetch the shop's current bulk query operation."""
        data = await self.client.execute(CURRENT_BULK_OPERATION_QUERY)
        return job_from_node(data.get("currentBulkOperation"), BulkJobKind.QUERY)

    async def cancel(self, job_id: str) -> None:
        """
        Cancel a bulk operation.

        Raises:
            BulkOperationError: If Shopify refuses the cancel
        """
        data = await self.client.execute(BULK_OPERATION_CANCEL, variables={"id": job_id})
        message = _first_user_error(data.get("bulkOperationCancel") or {})
        if message:
            raise BulkOperationError(f"Failed to cancel {job_id}: {message}")
        logger.info(f"Cancelled bulk operation {job_id}")

    async def cancel_if_active(self, grace_seconds: Optional[float] = None) -> None:
        """
        Cancel the shop's current bulk query unless it has completed.

        Best-effort: failures are logged and swallowed so a stuck job never
        blocks a new export. After a cancel, waits a short grace period so
        Shopify frees the job slot.
        """
        if grace_seconds is None:
            grace_seconds = settings.bulk_cancel_grace_seconds

        try:
            current = await self.current_job()
            if current.status in (BulkJobStatus.NONE, BulkJobStatus.COMPLETED):
                return

            logger.info(
                f"Cancelling previous bulk operation {current.id} ({current.status.value})"
            )
            await self.cancel(current.id)
            await asyncio.sleep(grace_seconds)
        except ShopifyClientError as e:
            logger.error(f"Failed to check/cancel existing bulk operation: {e}")

    async def wait_for_job(
        self,
        job_id: str,
        kind: BulkJobKind = BulkJobKind.QUERY,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> BulkJob:
        """
        Poll a bulk operation until it leaves CREATED/RUNNING.

        Args:
            job_id: The bulk operation GID
            kind: Kind of the job
            poll_interval: Initial delay between polls, grows by 1.5x
            max_attempts: Poll budget

        Returns:
            The terminal BulkJob (COMPLETED, FAILED, CANCELLED or NONE)

        Raises:
            BulkOperationTimeout: If the job is still running after max_attempts polls
        """
        if poll_interval is None:
            poll_interval = settings.bulk_poll_interval_seconds
        if max_attempts is None:
            max_attempts = settings.bulk_max_poll_attempts

        for attempt in range(max_attempts):
            job = await self.poll(job_id, kind)
            if job.is_terminal:
                logger.info(f"Bulk operation {job_id} finished: {job.status.value}")
                return job

            if attempt < max_attempts - 1:
                await asyncio.sleep(poll_interval)
                poll_interval = min(
                    poll_interval * self.POLL_INTERVAL_MULTIPLIER,
                    settings.bulk_max_poll_interval_seconds,
                )

        raise BulkOperationTimeout(
            f"Bulk operation {job_id} did not complete after {max_attempts} polls"
        )

    async def stream_result_lines(self, url: str) -> AsyncIterator[str]:
        """
        Stream the non-blank lines of a bulk operation result file.

        Args:
            url: The signed result URL

        Yields:
            Raw NDJSON lines

        Raises:
            ShopifyClientError: If the download fails
        """
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(120.0, connect=10.0)) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if line.strip():
                            yield line
        except httpx.HTTPError as e:
            raise ShopifyClientError(f"Failed to download result file: {e}") from e
