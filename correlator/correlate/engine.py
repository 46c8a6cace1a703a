"""Discovery engine: check and sync correlations for a seed ASIN."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from correlator import metrics
from correlator.ai.prompt_personalizer import get_active_criteria
from correlator.ai.similarity_classifier import SimilarityClassifier
from correlator.config import settings
from correlator.correlate.candidate_generator import CandidateGenerator
from correlator.correlate.identifiers import normalize_asin
from correlator.correlate.types import CandidateKind, DiscoveryStats, PrimaryProduct
from correlator.db.correlation_store import CorrelationStore
from correlator.db.models import CorrelationRecord
from correlator.db.usage import track_usage
from correlator.errors import CorrelationError, InvalidFeedback, MissingCredential, NotFound, RunTimeout
from correlator.ingest.base import ProductDataGateway
from correlator.ingest.credentials import CredentialResolver
from correlator.logging_config import get_logger

logger = logging.getLogger(__name__)

SOURCE_TAG = "correlator-sync"
ACTIONS = ("check", "sync")


@dataclass
class SyncProgress:
    """Running counts for a sync, reported to job trackers."""

    total: int = 0
    processed: int = 0
    approved: int = 0
    rejected: int = 0


ProgressCallback = Callable[[SyncProgress], Awaitable[None]]


@dataclass
class DiscoveryResult:
    asin: str
    correlations: List[CorrelationRecord] = field(default_factory=list)
    source: str = "database"
    stats: Optional[DiscoveryStats] = None
    synced: bool = False
    elapsed_seconds: Optional[float] = None
    message: Optional[str] = None

    @property
    def exists(self) -> bool:
        return len(self.correlations) > 0

    @property
    def count(self) -> int:
        return len(self.correlations)


class CorrelationEngine:
    """
    Orchestrates discovery for one request.

    ``check`` reads the store. ``sync`` resolves a Keepa credential, looks up
    the primary product, persists its variants, classifies similar
    candidates and persists the approved ones, all within
    ``sync_timeout`` seconds.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway_factory: Callable[[str], ProductDataGateway],
        classifier: SimilarityClassifier,
        credentials: Optional[CredentialResolver] = None,
        sync_timeout: Optional[float] = None,
        similar_limit: Optional[int] = None,
        variant_limit: Optional[int] = None,
        source: str = SOURCE_TAG,
    ):
        self.db = db
        self.store = CorrelationStore(db)
        self.gateway_factory = gateway_factory
        self.classifier = classifier
        self.credentials = credentials or CredentialResolver(db)
        self.sync_timeout = sync_timeout or settings.sync_timeout_seconds
        self.similar_limit = similar_limit
        self.variant_limit = variant_limit
        self.source = source

    async def discover(
        self,
        owner_id: str,
        identifier: str,
        action: str = "check",
        credential_override: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> DiscoveryResult:
        """
        Entry point for both actions.

        Raises:
            InvalidIdentifier: Before any network call, for malformed ASINs
            MissingCredential: For sync without a usable Keepa key
            NotFound: If Keepa does not know the primary ASIN
            UpstreamUnavailable: If the primary lookup fails
            RunTimeout: If sync exceeds its wall-clock budget
        """
        asin = normalize_asin(identifier)
        if action not in ACTIONS:
            raise InvalidFeedback(f"Invalid action '{action}'", details={"allowed": list(ACTIONS)})

        started = time.monotonic()
        try:
            if action == "check":
                result = await self.check(owner_id, asin)
            else:
                result = await self.sync(owner_id, asin, credential_override, progress)
        except CorrelationError:
            metrics.record_run(action, False, time.monotonic() - started if action == "sync" else None)
            raise

        metrics.record_run(action, True, time.monotonic() - started if action == "sync" else None)
        return result

    async def check(self, owner_id: str, asin: str) -> DiscoveryResult:
        correlations = await self.store.check_existing(owner_id, asin)
        return DiscoveryResult(asin=asin, correlations=correlations, source="database")

    async def sync(
        self,
        owner_id: str,
        asin: str,
        credential_override: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> DiscoveryResult:
        api_key = await self.credentials.resolve(owner_id, override=credential_override)
        if not api_key:
            raise MissingCredential("keepa")

        criteria = await get_active_criteria(self.db, owner_id)
        gateway = self.gateway_factory(api_key)
        started = time.monotonic()
        try:
            return await asyncio.wait_for(
                self._run_sync(owner_id, asin, gateway, criteria, progress, started),
                timeout=self.sync_timeout,
            )
        except asyncio.TimeoutError as e:
            await self.db.rollback()
            saved = await self.store.count(owner_id, asin)
            logger.error(f"Sync for {asin} (owner={owner_id}) timed out after {self.sync_timeout:.0f}s")
            raise RunTimeout(
                f"Sync exceeded {self.sync_timeout:.0f} seconds",
                details={"asin": asin, "saved": saved},
            ) from e
        finally:
            await gateway.close()

    async def _run_sync(
        self,
        owner_id: str,
        asin: str,
        gateway: ProductDataGateway,
        criteria: Optional[str],
        progress: Optional[ProgressCallback],
        started: float,
    ) -> DiscoveryResult:
        log = get_logger(__name__, owner=owner_id, search_asin=asin)
        log.info(f"Starting correlation sync for {asin}")
        if criteria:
            log.info("Using custom matching criteria for this owner")

        records = await gateway.lookup([asin])
        record = next((r for r in records if r.asin == asin), None)
        if record is None:
            raise NotFound("Product not found on Amazon", details={"asin": asin})
        primary = PrimaryProduct.from_record(record)
        log.info(f"Primary: {primary.title[:60]!r} brand={primary.brand!r} category={primary.root_category}")

        generator = CandidateGenerator(gateway, self.similar_limit, self.variant_limit)
        candidates = await generator.generate(primary)

        state = SyncProgress(total=len(candidates.variants) + len(candidates.similar_candidates))
        await self._report(progress, state)

        stats = DiscoveryStats()
        saved_asins: List[str] = []

        # Variants first so a later timeout still keeps them
        if candidates.variants:
            stats.variants = await self.store.upsert_batch(owner_id, primary, candidates.variants, self.source)
            saved_asins.extend(c.asin for c in candidates.variants)
            metrics.record_candidates(CandidateKind.VARIANT.value, "saved", stats.variants)
        state.processed += len(candidates.variants)
        state.approved += stats.variants
        await self._report(progress, state)

        if candidates.similar_candidates:
            results = await self.classifier.classify_batch(primary, candidates.similar_candidates, criteria)
            approved = [r.candidate for r in results if r.approved]
            stats.similar_evaluated = len(results)
            stats.similar_rejected = len(results) - len(approved)
            if approved:
                stats.similar = await self.store.upsert_batch(owner_id, primary, approved, self.source)
                saved_asins.extend(c.asin for c in approved)
            metrics.record_candidates(CandidateKind.SIMILAR.value, "saved", stats.similar)
            metrics.record_candidates(CandidateKind.SIMILAR.value, "rejected", stats.similar_rejected)
            state.processed += len(results)
            state.approved += stats.similar
            state.rejected += stats.similar_rejected
            await self._report(progress, state)

        await track_usage(
            self.db, owner_id, "keepa", "correlation_sync",
            1 + len(candidates.variants) + len(candidates.similar_candidates),
        )
        await track_usage(self.db, owner_id, "openai", "similarity_classification", stats.similar_evaluated)

        correlations = await self.store.get_many(owner_id, asin, saved_asins)
        elapsed = round(time.monotonic() - started, 1)
        if correlations:
            message = f"Found {stats.variants} variations + {stats.similar} similar products"
        else:
            message = "No variations or similar products found"
        log.info(f"Sync complete in {elapsed}s: {stats.variants} variants + {stats.similar} similar")

        return DiscoveryResult(
            asin=asin,
            correlations=correlations,
            source=self.source,
            stats=stats,
            synced=True,
            elapsed_seconds=elapsed,
            message=message,
        )

    async def _report(self, progress: Optional[ProgressCallback], state: SyncProgress):
        if progress is not None:
            await progress(state)
