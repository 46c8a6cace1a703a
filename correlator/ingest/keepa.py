"""Keepa product data gateway.

Wraps the two Keepa endpoints the engine needs: ``/product`` for batched
ASIN lookups (also used per marketplace for availability checks) and
``/query`` (Product Finder) for brand + root category searches.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from correlator import metrics
from correlator.config import settings
from correlator.errors import InvalidIdentifier, UpstreamUnavailable
from correlator.ingest.base import ProductDataGateway, ProductRecord

logger = logging.getLogger(__name__)


def get_image_url(product: Dict[str, Any]) -> str:
    """Build the main image URL from a Keepa product payload."""
    images = product.get("images") or []
    if images:
        first = images[0] or {}
        name = first.get("l") or first.get("m") or ""
        return f"{settings.amazon_image_base_url}{name}" if name else ""

    # Older payloads only carry a comma separated list of file names
    images_csv = product.get("imagesCSV") or ""
    if images_csv:
        return f"{settings.amazon_image_base_url}{images_csv.split(',')[0]}"
    return ""


def get_product_url(asin: str) -> str:
    return f"{settings.amazon_product_base_url}{asin}"


def parse_product(product: Dict[str, Any]) -> Optional[ProductRecord]:
    """
    Convert a Keepa product payload into a ProductRecord.

    Returns None for entries Keepa does not recognize (no title) or with a
    malformed ASIN.
    """
    asin = product.get("asin")
    title = (product.get("title") or "").strip()
    if not asin or not title:
        return None

    variations = product.get("variations") or []
    try:
        return ProductRecord(
            asin=asin,
            title=title,
            brand=(product.get("brand") or "").strip() or None,
            root_category=product.get("rootCategory") or None,
            image_url=get_image_url(product),
            url=get_product_url(asin.upper()),
            variation_asins=[v.get("asin") for v in variations if isinstance(v, dict)],
        )
    except InvalidIdentifier:
        logger.debug(f"Skipping Keepa product with malformed ASIN: {asin!r}")
        return None


class KeepaGateway(ProductDataGateway):
    """
    Keepa API client bound to one API key.

    Features:
    - Batched product lookups (``lookup_batch_size`` ASINs per request)
    - Product Finder search by brand + root category
    - Per-marketplace availability checks via the ``domain`` parameter
    """

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        domain: Optional[int] = None,
        lookup_batch_size: Optional[int] = None,
        search_page_size: Optional[int] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.keepa_base_url).rstrip("/")
        self.domain = domain or settings.keepa_domain
        self.lookup_batch_size = lookup_batch_size or settings.keepa_lookup_batch_size
        self.search_page_size = search_page_size or settings.keepa_search_page_size
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=settings.keepa_timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        """Close HTTP client if this gateway created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Call a Keepa endpoint and return its JSON body."""
        client = await self._get_client()
        started = time.monotonic()
        try:
            response = await client.get(
                f"{self.base_url}/{endpoint}",
                params={"key": self.api_key, **params},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            metrics.record_keepa_request(endpoint, False, time.monotonic() - started)
            raise UpstreamUnavailable(
                f"Keepa {endpoint} returned HTTP {e.response.status_code}",
                details={"endpoint": endpoint, "status": e.response.status_code},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            metrics.record_keepa_request(endpoint, False, time.monotonic() - started)
            raise UpstreamUnavailable(
                f"Keepa {endpoint} request failed: {e}",
                details={"endpoint": endpoint},
            ) from e

        if data.get("error"):
            metrics.record_keepa_request(endpoint, False, time.monotonic() - started)
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise UpstreamUnavailable(
                f"Keepa error: {message or json.dumps(error)}",
                details={"endpoint": endpoint},
            )

        metrics.record_keepa_request(endpoint, True, time.monotonic() - started)
        return data

    async def lookup(self, asins: List[str], domain: Optional[int] = None) -> List[ProductRecord]:
        """
        Fetch product records, splitting the request into provider-sized batches.

        Args:
            asins: ASINs to resolve (duplicates are requested once)
            domain: Keepa domain id (defaults to the gateway's marketplace)

        Returns:
            Records for the ASINs Keepa recognizes, in response order
        """
        unique_asins = list(dict.fromkeys(a.upper() for a in asins if a))
        if not unique_asins:
            return []

        records: List[ProductRecord] = []
        for start in range(0, len(unique_asins), self.lookup_batch_size):
            batch = unique_asins[start:start + self.lookup_batch_size]
            logger.debug(f"Keepa lookup: {len(batch)} ASINs (domain={domain or self.domain})")
            data = await self._get(
                "product",
                {"domain": domain or self.domain, "asin": ",".join(batch)},
            )
            for product in data.get("products") or []:
                record = parse_product(product)
                if record is not None:
                    records.append(record)

        logger.debug(f"Keepa returned {len(records)}/{len(unique_asins)} products")
        return records

    async def search_by_facets(self, brand: str, root_category: int) -> List[str]:
        """Product Finder search; failures are logged and yield an empty list."""
        selection = {
            "brand": [brand],
            "rootCategory": [root_category],
            "perPage": self.search_page_size,
        }
        try:
            data = await self._get(
                "query",
                {"domain": self.domain, "selection": json.dumps(selection)},
            )
        except UpstreamUnavailable as e:
            logger.warning(
                f"Keepa search failed for brand={brand!r} category={root_category}: {e.message}"
            )
            return []

        asins = [a.upper() for a in (data.get("asinList") or []) if isinstance(a, str)]
        logger.info(f"Keepa search returned {len(asins)} ASINs for brand={brand!r} category={root_category}")
        return asins[:self.search_page_size]


GatewayFactory = Callable[[str], ProductDataGateway]


def keepa_gateway_factory(client: Optional[httpx.AsyncClient] = None) -> GatewayFactory:
    """Return a factory that binds a shared HTTP client to per-owner API keys."""

    def factory(api_key: str) -> ProductDataGateway:
        return KeepaGateway(api_key=api_key, client=client)

    return factory
