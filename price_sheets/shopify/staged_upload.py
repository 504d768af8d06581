"""
Staged uploads: request a write target, then POST a file to it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .client import ShopifyClient, ShopifyClientError
from .queries import STAGED_UPLOADS_CREATE

logger = logging.getLogger(__name__)


class StagedUploadError(ShopifyClientError):
    """Staged upload target could not be created or written."""
    pass


@dataclass
class StagedTarget:
    """Upload target returned by stagedUploadsCreate."""

    url: str
    resource_url: Optional[str] = None
    parameters: List[Dict[str, str]] = field(default_factory=list)

    def get_parameter(self, name: str) -> Optional[str]:
        for param in self.parameters:
            if param.get("name") == name:
                return param.get("value")
        return None

    @property
    def staged_upload_path(self) -> Optional[str]:
        """The `key` parameter, referenced by bulkOperationRunMutation."""
        return self.get_parameter("key")


async def create_staged_target(
    client: ShopifyClient,
    filename: str,
    mime_type: str = "text/jsonl",
    resource: str = "BULK_MUTATION_VARIABLES",
) -> Optional[StagedTarget]:
    """
    Ask Shopify for an upload target.

    Returns:
        The first target, or None if Shopify returned none

    Raises:
        StagedUploadError: If Shopify reports user errors
    """
    data = await client.execute(
        STAGED_UPLOADS_CREATE,
        variables={
            "input": [{
                "filename": filename,
                "mimeType": mime_type,
                "httpMethod": "POST",
                "resource": resource,
            }]
        },
    )

    payload = data.get("stagedUploadsCreate") or {}
    user_errors = payload.get("userErrors") or []
    if user_errors:
        raise StagedUploadError(user_errors[0].get("message", str(user_errors[0])))

    targets = payload.get("stagedTargets") or []
    if not targets or not targets[0].get("url"):
        return None

    target = targets[0]
    return StagedTarget(
        url=target["url"],
        resource_url=target.get("resourceUrl"),
        parameters=[
            {"name": p["name"], "value": p["value"]}
            for p in target.get("parameters") or []
        ],
    )


async def upload_to_target(
    client: ShopifyClient,
    target: StagedTarget,
    filename: str,
    content: str,
    mime_type: str = "text/jsonl",
) -> None:
    """
    POST `content` to the target with exactly the target's form parameters.

    Raises:
        StagedUploadError: If the upload is rejected
        ShopifyClientError: On transport failure
    """
    response = await client.upload_staged(
        target.url, target.parameters, filename, content, mime_type
    )
    if not response.is_success:
        raise StagedUploadError(response.reason_phrase or str(response.status_code))
    logger.debug(f"Uploaded {len(content)} bytes to staged target")
