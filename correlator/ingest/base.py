"""Base interface for product data sources."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from correlator.correlate.identifiers import normalize_asin


@dataclass
class ProductRecord:
    """Product as reported by the data provider."""

    asin: str
    title: Optional[str] = None
    brand: Optional[str] = None
    root_category: Optional[int] = None
    image_url: str = ""
    url: str = ""
    variation_asins: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.asin = normalize_asin(self.asin)
        self.variation_asins = [a.upper() for a in self.variation_asins if a]


class ProductDataGateway(ABC):
    """Abstract product data provider bound to one credential."""

    @abstractmethod
    async def lookup(self, asins: List[str], domain: Optional[int] = None) -> List[ProductRecord]:
        """
        Fetch product records for a batch of ASINs.

        Unknown ASINs are omitted from the result rather than raised.

        Raises:
            UpstreamUnavailable: If the provider call fails
        """

    @abstractmethod
    async def search_by_facets(self, brand: str, root_category: int) -> List[str]:
        """
        Find ASINs sharing a brand and root category.

        Returns an empty list when the provider fails.
        """

    async def is_available(self, asin: str, domain: int) -> bool:
        """
        Check whether an ASIN exists on the marketplace behind ``domain``.

        Raises:
            UpstreamUnavailable: If the provider call fails
        """
        records = await self.lookup([asin], domain=domain)
        return any(r.asin == asin.upper() and r.title for r in records)

    async def close(self):
        """Release resources held by the gateway."""
