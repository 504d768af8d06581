"""
Submit reconciled variant mutations as a single bulk mutation job.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..shopify import (
    BulkOperationsManager,
    ShopifyClient,
    MissingOperationIdError,
    ShopifyClientError,
    create_staged_target,
    upload_to_target,
)
from ..shopify.queries import PRODUCT_VARIANTS_BULK_UPDATE
from .reconcile import VariantMutation

logger = logging.getLogger(__name__)

STAGED_FILENAME = "price_updates.jsonl"


@dataclass
class SubmissionResult:
    """The launched job id, a batch-level error, or a job id with a follow-up error."""

    bulk_job_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.bulk_job_id is not None


def group_by_product(mutations: Sequence[VariantMutation]) -> Dict[str, List[dict]]:
    """Variant inputs per product id, in first-seen order."""
    groups: Dict[str, List[dict]] = {}
    for mutation in mutations:
        groups.setdefault(mutation.product_id, []).append(mutation.to_variant_input())
    return groups


def serialize_groups(groups: Dict[str, List[dict]]) -> str:
    """One NDJSON line of productVariantsBulkUpdate variables per product."""
    return "\n".join(
        json.dumps({"productId": product_id, "variants": variants})
        for product_id, variants in groups.items()
    )


class BulkMutationSubmitter:
    """
    Stages the mutation variables and launches the bulk mutation.

    Failures are returned as SubmissionResult.error rather than raised.
    """

    def __init__(self, client: ShopifyClient, bulk_ops: Optional[BulkOperationsManager] = None):
        self.client = client
        self.bulk_ops = bulk_ops or BulkOperationsManager(client)

    async def submit(self, mutations: Sequence[VariantMutation]) -> SubmissionResult:
        groups = group_by_product(mutations)
        payload = serialize_groups(groups)
        logger.info(
            f"Submitting {len(mutations)} variant updates across {len(groups)} products"
        )

        try:
            target = await create_staged_target(self.client, STAGED_FILENAME)
        except ShopifyClientError as e:
            return self._failed(f"Failed to create upload target: {e}")

        if target is None or not target.staged_upload_path:
            return self._failed("Failed to get upload target URL")

        try:
            await upload_to_target(self.client, target, STAGED_FILENAME, payload)
        except ShopifyClientError as e:
            return self._failed(f"Upload failed: {e}")

        try:
            job = await self.bulk_ops.submit_mutation(
                PRODUCT_VARIANTS_BULK_UPDATE, target.staged_upload_path
            )
        except MissingOperationIdError:
            return self._failed("Failed to trigger backend bulk operation (No ID returned)")
        except ShopifyClientError as e:
            return self._failed(f"Bulk Mutation Error: {e}")

        logger.info(f"Bulk mutation started: {job.id} (upload key: {target.staged_upload_path})")
        return SubmissionResult(bulk_job_id=job.id)

    def _failed(self, message: str) -> SubmissionResult:
        logger.error(message)
        return SubmissionResult(error=message)
