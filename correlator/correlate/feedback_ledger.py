"""User decisions against stored correlations."""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from correlator import metrics
from correlator.config import settings
from correlator.correlate.identifiers import normalize_asin
from correlator.correlate.types import Decision
from correlator.db.correlation_store import CorrelationStore
from correlator.db.models import CorrelationRecord, utcnow
from correlator.db.usage import track_usage
from correlator.errors import CorrelationError, InvalidFeedback, NotFound
from correlator.ingest.base import ProductDataGateway
from correlator.ingest.credentials import CredentialResolver
from correlator.logging_config import get_logger

logger = logging.getLogger(__name__)

MARKETPLACE_ALIASES = {
    "usa": "US",
    "us": "US",
    "uk": "UK",
    "de": "DE",
    "ca": "CA",
}


def normalize_marketplace(marketplace: Optional[str]) -> str:
    """Map a user-supplied marketplace code to US, UK, DE or CA."""
    code = MARKETPLACE_ALIASES.get((marketplace or "").strip().lower())
    if code is None:
        raise InvalidFeedback(
            f"Invalid marketplace: {marketplace!r}",
            details={"allowed": sorted(set(MARKETPLACE_ALIASES.values()))},
        )
    return code


class FeedbackLedger:
    """
    Record accept/decline decisions, undo them, and track publishing.

    Accepting a correlation also probes every configured marketplace for
    the candidate when the owner has stored a Keepa key. The decision is
    committed before the probe runs and a failed probe never fails the
    decision.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway_factory: Callable[[str], ProductDataGateway],
        credentials: Optional[CredentialResolver] = None,
        marketplaces: Optional[Dict[str, int]] = None,
    ):
        self.db = db
        self.store = CorrelationStore(db)
        self.gateway_factory = gateway_factory
        self.credentials = credentials or CredentialResolver(db)
        self.marketplaces = marketplaces or settings.availability_marketplaces

    async def _require(self, owner_id: str, search_asin: str, candidate_asin: str) -> CorrelationRecord:
        record = await self.store.get(owner_id, search_asin, candidate_asin)
        if record is None:
            raise NotFound(
                "Correlation not found",
                details={"search_asin": search_asin, "candidate_asin": candidate_asin},
            )
        return record

    async def get_feedback(self, owner_id: str, search_asin: str) -> List[CorrelationRecord]:
        return await self.store.check_existing(owner_id, normalize_asin(search_asin))

    async def set_decision(
        self,
        owner_id: str,
        search_asin: str,
        candidate_asin: str,
        decision: str,
        reason: Optional[str] = None,
    ) -> CorrelationRecord:
        """
        Attach a decision to an existing correlation.

        Raises:
            InvalidFeedback: If decision is not accepted or declined
            NotFound: If no correlation exists for the triple
        """
        search_asin = normalize_asin(search_asin)
        candidate_asin = normalize_asin(candidate_asin)
        try:
            decision = Decision(decision).value
        except ValueError:
            raise InvalidFeedback(
                f"Invalid decision: {decision!r}",
                details={"allowed": [d.value for d in Decision]},
            ) from None

        record = await self._require(owner_id, search_asin, candidate_asin)
        record.decision = decision
        record.decision_at = utcnow()
        record.decline_reason = None
        if decision == Decision.DECLINED.value and reason and reason.strip():
            record.decline_reason = reason.strip()[:255]
        await self.db.commit()
        metrics.record_feedback(decision)
        logger.info(f"Owner {owner_id} {decision} {candidate_asin} for {search_asin}")

        if decision == Decision.ACCEPTED.value:
            await self._enrich_availability(owner_id, record)
            # Reload in case enrichment rolled back and expired the row
            record = await self._require(owner_id, search_asin, candidate_asin)

        return record

    async def _enrich_availability(self, owner_id: str, record: CorrelationRecord):
        log = get_logger(__name__, owner=owner_id, candidate=record.similar_asin)
        try:
            # Probes spend the owner's own Keepa quota, never the system key
            api_key = await self.credentials.resolve(owner_id, allow_fallback=False)
            if not api_key:
                log.info("Owner has no Keepa key, skipping availability check")
                return

            availability = await self.probe_availability(record.similar_asin, api_key)
            for code, available in availability.items():
                setattr(record, f"available_{code.lower()}", available)
            record.availability_checked_at = utcnow()
            await self.db.commit()
            await track_usage(self.db, owner_id, "keepa", "availability_check", len(availability))
        except (CorrelationError, SQLAlchemyError) as e:
            log.warning(f"Availability enrichment failed, decision kept: {e}")
            await self.db.rollback()

    async def probe_availability(self, asin: str, api_key: str) -> Dict[str, Optional[bool]]:
        """
        Check the candidate on every configured marketplace concurrently.

        Returns True/False per marketplace code, or None where the probe failed.
        """
        gateway = self.gateway_factory(api_key)
        try:
            codes = list(self.marketplaces)
            results = await asyncio.gather(
                *(self._probe(gateway, asin, code, self.marketplaces[code]) for code in codes)
            )
        finally:
            await gateway.close()
        return dict(zip(codes, results))

    async def _probe(
        self,
        gateway: ProductDataGateway,
        asin: str,
        code: str,
        domain: int,
    ) -> Optional[bool]:
        try:
            available = await gateway.is_available(asin, domain)
        except Exception as e:
            get_logger(__name__, candidate=asin, marketplace=code).warning(
                f"Availability probe failed for {asin} on {code}: {e}"
            )
            metrics.record_availability_probe(code, "unknown")
            return None
        metrics.record_availability_probe(code, "available" if available else "unavailable")
        return available

    async def undo(self, owner_id: str, search_asin: str, candidate_asin: str) -> bool:
        """
        Clear a decision. Missing rows and undecided rows are a no-op.

        Returns True if a decision was cleared.
        """
        record = await self.store.get(owner_id, normalize_asin(search_asin), normalize_asin(candidate_asin))
        if record is None or record.decision is None:
            return False

        record.decision = None
        record.decision_at = None
        record.decline_reason = None
        await self.db.commit()
        metrics.record_feedback("undo")
        logger.info(f"Owner {owner_id} undid decision on {record.similar_asin} for {record.search_asin}")
        return True

    async def mark_published(
        self,
        owner_id: str,
        search_asin: str,
        candidate_asin: str,
        marketplace: str,
    ) -> Optional[CorrelationRecord]:
        """
        Flag the candidate as listed on a marketplace.

        Repeat calls keep the first timestamp. A missing correlation is a
        no-op and returns None.

        Raises:
            InvalidFeedback: For an unknown marketplace code
        """
        code = normalize_marketplace(marketplace)
        record = await self.store.get(owner_id, normalize_asin(search_asin), normalize_asin(candidate_asin))
        if record is None:
            logger.info(f"No correlation {candidate_asin} for {search_asin}, nothing to mark published")
            return None

        column = f"uploaded_{code.lower()}"
        if not getattr(record, column):
            setattr(record, column, True)
            setattr(record, f"{column}_at", utcnow())
            await self.db.commit()
            logger.info(f"Owner {owner_id} published {record.similar_asin} on {code}")
        metrics.record_feedback("mark_published")
        return record
