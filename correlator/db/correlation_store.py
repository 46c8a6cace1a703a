"""Idempotent persistence of discovered correlations."""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from correlator.correlate.types import CandidateProduct, PrimaryProduct
from correlator.db.models import CorrelationRecord, utcnow
from correlator.errors import PersistenceConflict

logger = logging.getLogger(__name__)

_CONFLICT_KEY = ["owner_id", "search_asin", "similar_asin"]


class CorrelationStore:
    """
    Read and write CorrelationRecords for one database session.

    Every query is scoped to an owner. Writes go through a unique-key
    ``INSERT ... ON CONFLICT DO UPDATE`` whose update clause only lists
    ``CorrelationRecord.DISCOVERY_FIELDS``, so decisions, availability and
    published flags survive any number of re-runs.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.bind.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(CorrelationRecord)
        if dialect == "sqlite":
            return sqlite.insert(CorrelationRecord)
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

    async def check_existing(self, owner_id: str, search_asin: str) -> List[CorrelationRecord]:
        """Return the owner's correlations for a search ASIN, newest first."""
        result = await self.db.execute(
            select(CorrelationRecord)
            .where(
                CorrelationRecord.owner_id == owner_id,
                CorrelationRecord.search_asin == search_asin,
            )
            .order_by(CorrelationRecord.created_at.desc(), CorrelationRecord.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get(
        self,
        owner_id: str,
        search_asin: str,
        candidate_asin: str,
    ) -> Optional[CorrelationRecord]:
        result = await self.db.execute(
            select(CorrelationRecord).where(
                CorrelationRecord.owner_id == owner_id,
                CorrelationRecord.search_asin == search_asin,
                CorrelationRecord.similar_asin == candidate_asin,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(
        self,
        owner_id: str,
        search_asin: str,
        candidate_asins: Iterable[str],
    ) -> List[CorrelationRecord]:
        candidate_asins = list(candidate_asins)
        if not candidate_asins:
            return []
        result = await self.db.execute(
            select(CorrelationRecord)
            .where(
                CorrelationRecord.owner_id == owner_id,
                CorrelationRecord.search_asin == search_asin,
                CorrelationRecord.similar_asin.in_(candidate_asins),
            )
            .order_by(CorrelationRecord.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def count(self, owner_id: str, search_asin: str) -> int:
        result = await self.db.execute(
            select(func.count(CorrelationRecord.id)).where(
                CorrelationRecord.owner_id == owner_id,
                CorrelationRecord.search_asin == search_asin,
            )
        )
        return result.scalar_one()

    async def upsert_batch(
        self,
        owner_id: str,
        primary: PrimaryProduct,
        items: List[CandidateProduct],
        source: str,
    ) -> int:
        """
        Insert or refresh correlations for a primary product.

        Args:
            owner_id: Owner of the rows
            primary: Search product (its image is denormalized into each row)
            items: Approved candidates
            source: Provenance tag of the pipeline that produced them

        Returns:
            Number of rows written
        """
        now = utcnow()
        rows = {}
        for item in items:
            if item.asin == primary.asin:
                logger.warning(f"Dropping self-correlation for {primary.asin}")
                continue
            # Last occurrence wins; ON CONFLICT cannot touch one row twice per statement
            rows[item.asin] = {
                "owner_id": owner_id,
                "search_asin": primary.asin,
                "similar_asin": item.asin,
                "correlated_title": item.title,
                "image_url": item.image_url,
                "search_image_url": primary.image_url,
                "suggested_type": item.kind.value,
                "source": source,
                "correlated_amazon_url": item.url,
                "correlation_score": None,
                "uploaded_us": False,
                "uploaded_uk": False,
                "uploaded_de": False,
                "uploaded_ca": False,
                "created_at": now,
                "updated_at": now,
            }

        if not rows:
            return 0

        stmt = self._insert().values(list(rows.values()))
        update_set = {name: stmt.excluded[name] for name in CorrelationRecord.DISCOVERY_FIELDS}
        update_set["updated_at"] = stmt.excluded.updated_at
        stmt = stmt.on_conflict_do_update(index_elements=_CONFLICT_KEY, set_=update_set)

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except IntegrityError as e:
            # Key collisions are absorbed above; anything left is a constraint violation
            await self.db.rollback()
            raise PersistenceConflict(
                f"Could not store correlations for {primary.asin}",
                details={"asin": primary.asin, "owner": owner_id},
            ) from e

        logger.info(f"Upserted {len(rows)} correlations for {primary.asin} (owner={owner_id}, source={source})")
        return len(rows)
