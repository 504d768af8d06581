"""
Shopify API module.
"""

from .client import (
    ShopifyClient,
    ShopifyClientError,
    ShopifyAuthError,
    ShopifyRateLimitError,
)
from .bulk_operations import (
    BulkJob,
    BulkJobKind,
    BulkJobStatus,
    BulkOperationsManager,
    BulkOperationError,
    BulkOperationTimeout,
    MissingOperationIdError,
)
from .staged_upload import (
    StagedTarget,
    StagedUploadError,
    create_staged_target,
    upload_to_target,
)
from .subscriptions import ActiveSubscription, fetch_active_subscription

__all__ = [
    "ShopifyClient",
    "ShopifyClientError",
    "ShopifyAuthError",
    "ShopifyRateLimitError",
    "BulkJob",
    "BulkJobKind",
    "BulkJobStatus",
    "BulkOperationsManager",
    "BulkOperationError",
    "BulkOperationTimeout",
    "MissingOperationIdError",
    "StagedTarget",
    "StagedUploadError",
    "create_staged_target",
    "upload_to_target",
    "ActiveSubscription",
    "fetch_active_subscription",
]
