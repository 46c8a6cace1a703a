"""Derive variant and similar-candidate sets from a primary product."""

import logging
from typing import List, Optional, Set

from correlator.config import settings
from correlator.correlate.types import CandidateKind, CandidateProduct, CandidateSet, PrimaryProduct
from correlator.errors import UpstreamUnavailable
from correlator.ingest.base import ProductDataGateway

logger = logging.getLogger(__name__)


class CandidateGenerator:
    """
    Build the two disjoint candidate sets for a discovery run.

    Variants come from the provider's variation list and are auto-approved.
    Similar candidates come from a brand + root category search with the
    exclusion set (primary + variants) removed, capped to
    ``similar_limit`` before they are resolved.
    """

    def __init__(
        self,
        gateway: ProductDataGateway,
        similar_limit: Optional[int] = None,
        variant_limit: Optional[int] = None,
    ):
        self.gateway = gateway
        self.similar_limit = similar_limit if similar_limit is not None else settings.similar_candidate_limit
        self.variant_limit = variant_limit if variant_limit is not None else settings.variant_limit

    async def generate(self, primary: PrimaryProduct) -> CandidateSet:
        variant_ids = [a for a in dict.fromkeys(primary.variation_asins) if a != primary.asin]
        exclusion: Set[str] = {primary.asin, *variant_ids}

        variants = await self._resolve_variants(primary, variant_ids)
        similar = await self._find_similar(primary, exclusion)

        logger.info(
            f"Candidates for {primary.asin}: {len(variants)} variants, "
            f"{len(similar)} similar to classify"
        )
        return CandidateSet(variants=variants, similar_candidates=similar)

    async def _resolve_variants(
        self,
        primary: PrimaryProduct,
        variant_ids: List[str],
    ) -> List[CandidateProduct]:
        if not variant_ids:
            return []

        if len(variant_ids) > self.variant_limit:
            logger.info(f"Capping {len(variant_ids)} variations of {primary.asin} to {self.variant_limit}")
            variant_ids = variant_ids[:self.variant_limit]

        try:
            records = await self.gateway.lookup(variant_ids)
        except UpstreamUnavailable as e:
            logger.warning(f"Variant lookup failed for {primary.asin}, continuing without variants: {e.message}")
            return []

        wanted = set(variant_ids)
        return [
            CandidateProduct.from_record(record, CandidateKind.VARIANT)
            for record in records
            if record.asin in wanted
        ]

    async def _find_similar(
        self,
        primary: PrimaryProduct,
        exclusion: Set[str],
    ) -> List[CandidateProduct]:
        if not primary.brand or not primary.root_category:
            logger.info(f"Skipping similar search for {primary.asin} (no brand or category)")
            return []

        found = await self.gateway.search_by_facets(primary.brand, primary.root_category)
        candidate_ids = [a for a in dict.fromkeys(found) if a not in exclusion]
        candidate_ids = candidate_ids[:self.similar_limit]
        logger.debug(f"{len(found)} search results, {len(candidate_ids)} after exclusion for {primary.asin}")

        if not candidate_ids:
            return []

        try:
            records = await self.gateway.lookup(candidate_ids)
        except UpstreamUnavailable as e:
            logger.warning(f"Similar candidate lookup failed for {primary.asin}: {e.message}")
            return []

        wanted = set(candidate_ids)
        return [
            CandidateProduct.from_record(record, CandidateKind.SIMILAR)
            for record in records
            if record.asin in wanted and record.asin not in exclusion
        ]
