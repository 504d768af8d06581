"""
App subscription lookup.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .client import ShopifyClient
from .queries import ACTIVE_SUBSCRIPTIONS_QUERY


@dataclass
class ActiveSubscription:
    """The app subscription a store is currently paying for."""

    id: str
    name: str
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ActiveSubscription":
        """
        Build from a GraphQL node or an app/subscriptions_update webhook body.

        Webhooks use snake_case and carry the GID in admin_graphql_api_id.
        """
        created_raw = payload.get("createdAt") or payload.get("created_at")
        created_at = None
        if created_raw:
            try:
                created_at = datetime.fromisoformat(str(created_raw).replace("Z", "+00:00"))
            except ValueError:
                created_at = None

        return cls(
            id=payload.get("admin_graphql_api_id") or payload.get("id"),
            name=payload.get("name") or "",
            status=payload.get("status"),
            created_at=created_at,
        )


async def fetch_active_subscription(client: ShopifyClient) -> Optional[ActiveSubscription]:
    """First active app subscription, or None for stores on the free tier."""
    data = await client.execute(ACTIVE_SUBSCRIPTIONS_QUERY)
    installation = data.get("currentAppInstallation") or {}
    subscriptions = installation.get("activeSubscriptions") or []
    if not subscriptions:
        return None
    return ActiveSubscription.from_payload(subscriptions[0])
