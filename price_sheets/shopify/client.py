"""
Shopify GraphQL Admin API client.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

# Below this many cost points a warning is logged
LOW_THROTTLE_POINTS = 100


class ShopifyClientError(Exception):
    """Base exception for Shopify client errors."""
    pass


class ShopifyAuthError(ShopifyClientError):
    """Authentication error."""
    pass


class ShopifyRateLimitError(ShopifyClientError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


def normalize_shop_domain(shop_domain: str) -> str:
    """Strip scheme and trailing slash: "https://x.myshopify.com/" -> "x.myshopify.com"."""
    domain = shop_domain.strip()
    for scheme in ("https://", "http://"):
        if domain.startswith(scheme):
            domain = domain[len(scheme):]
            break
    return domain.rstrip("/")


def _graphql_error_messages(result: Dict[str, Any]) -> List[str]:
    return [e.get("message", str(e)) for e in result.get("errors") or []]


class ShopifyClient:
    """
    Async HTTP client for Shopify GraphQL Admin API.

    GraphQL calls retry on throttling and transport errors. Staged uploads
    and result downloads go to signed storage URLs and use their own
    short-lived httpx clients.
    """

    MAX_RETRIES = 5
    BASE_RETRY_DELAY = 1.0  # seconds

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: Optional[str] = None,
    ):
        """
        Initialize Shopify client.

        Args:
            shop_domain: Store domain (e.g., "mystore.myshopify.com")
            access_token: Admin API access token
            api_version: Admin API version, defaults to settings
        """
        self.shop_domain = normalize_shop_domain(shop_domain)
        self.access_token = access_token
        self.api_version = api_version or settings.shopify_api_version
        self.graphql_url = (
            f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"
        )

        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(60.0, connect=10.0),
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": self.access_token,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _check_response(self, response: httpx.Response) -> Dict[str, Any]:
        """
        Turn an HTTP response into the GraphQL result body.

        Raises:
            ShopifyAuthError: On 401
            ShopifyRateLimitError: On 429 or a throttled GraphQL error
            ShopifyClientError: On any other GraphQL error
            httpx.HTTPStatusError: On other non-2xx codes
        """
        if response.status_code == 401:
            raise ShopifyAuthError(f"Authentication failed for {self.shop_domain}")

        if response.status_code == 429:
            retry_after = float(response.headers.get("Retry-After", self.BASE_RETRY_DELAY))
            raise ShopifyRateLimitError("Rate limit exceeded", retry_after=retry_after)

        response.raise_for_status()
        result = response.json()

        messages = _graphql_error_messages(result)
        if messages:
            if any("throttl" in m.lower() for m in messages):
                raise ShopifyRateLimitError(f"GraphQL throttled: {messages}")
            raise ShopifyClientError(f"GraphQL errors: {messages}")

        throttle = (result.get("extensions") or {}).get("cost", {}).get("throttleStatus", {})
        if throttle and throttle.get("currentlyAvailable", 0) < LOW_THROTTLE_POINTS:
            logger.warning(f"Low rate limit points: {throttle.get('currentlyAvailable')} available")

        return result

    def _backoff(self, attempt: int) -> float:
        return self.BASE_RETRY_DELAY * (2 ** attempt)

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Execute a GraphQL query/mutation with retry logic.

        Args:
            query: GraphQL query or mutation string
            variables: Optional variables for the query

        Returns:
            The 'data' portion of the GraphQL response

        Raises:
            ShopifyAuthError: If authentication fails
            ShopifyRateLimitError: If rate limit exceeded after retries
            ShopifyClientError: For other errors
        """
        client = await self._get_client()
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        last_error: Optional[ShopifyClientError] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                response = await client.post(self.graphql_url, json=payload)
                return self._check_response(response).get("data") or {}

            except ShopifyRateLimitError as e:
                last_error = e
                delay = e.retry_after or self._backoff(attempt)
                logger.warning(
                    f"Rate limited, waiting {delay:.1f}s "
                    f"(attempt {attempt + 1}/{self.MAX_RETRIES})"
                )

            except ShopifyClientError:
                # Auth and GraphQL errors are not transient
                raise

            except httpx.RequestError as e:
                last_error = ShopifyClientError(f"Request error: {e}")
                delay = self._backoff(attempt)
                logger.warning(f"Request error, retrying in {delay:.1f}s: {e}")

            except Exception as e:
                logger.error(f"Unexpected error: {e}")
                raise ShopifyClientError(f"Unexpected error: {e}") from e

            await asyncio.sleep(delay)

        raise last_error or ShopifyClientError("Max retries exceeded")

    async def upload_staged(
        self,
        url: str,
        parameters: List[Dict[str, str]],
        filename: str,
        content: str,
        mime_type: str = "text/jsonl",
    ) -> httpx.Response:
        """
        POST a multipart form to a staged upload target.

        Args:
            url: Target URL returned by stagedUploadsCreate
            parameters: The target's form parameters, sent unchanged
            filename: Name of the file part
            content: File body
            mime_type: Content type of the file part

        Returns:
            The raw response; callers decide how to treat non-2xx codes

        Raises:
            ShopifyClientError: On transport failure
        """
        form = {p["name"]: p["value"] for p in parameters}
        files = {"file": (filename, content.encode("utf-8"), mime_type)}
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(120.0, connect=10.0)) as client:
                return await client.post(url, data=form, files=files)
        except httpx.RequestError as e:
            raise ShopifyClientError(f"Upload request error: {e}") from e

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
