"""Background correlation sync jobs."""

import logging
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from correlator.ai.llm_service import LLMService
from correlator.ai.similarity_classifier import SimilarityClassifier
from correlator.correlate.engine import CorrelationEngine, SyncProgress
from correlator.correlate.identifiers import normalize_asin
from correlator.db.models import CorrelationJob, utcnow
from correlator.errors import CorrelationError, NotFound
from correlator.ingest.base import ProductDataGateway

logger = logging.getLogger(__name__)


async def create_job(db: AsyncSession, owner_id: str, asin: str) -> CorrelationJob:
    """Insert a pending job row for a sync of ``asin``."""
    job = CorrelationJob(owner_id=owner_id, search_asin=normalize_asin(asin), status="pending")
    db.add(job)
    await db.commit()
    await db.refresh(job)
    logger.info(f"Created correlation job {job.id} for {job.search_asin} (owner={owner_id})")
    return job


async def get_job(db: AsyncSession, owner_id: str, job_id: int) -> CorrelationJob:
    result = await db.execute(
        select(CorrelationJob)
        .where(CorrelationJob.id == job_id, CorrelationJob.owner_id == owner_id)
        .execution_options(populate_existing=True)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFound("Job not found", details={"job_id": job_id})
    return job


class SyncJobRunner:
    """
    Run a sync outside the request that started it.

    Each run opens its own session, moves the job through
    pending -> processing -> complete | error and copies the engine's
    progress counts onto the row as they change.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        gateway_factory: Callable[[str], ProductDataGateway],
        llm: LLMService,
        sync_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.gateway_factory = gateway_factory
        self.llm = llm
        self.sync_timeout = sync_timeout

    async def run(self, job_id: int, credential_override: Optional[str] = None):
        async with self.session_factory() as db:
            job = await db.get(CorrelationJob, job_id)
            if job is None:
                logger.error(f"Correlation job {job_id} not found")
                return

            job.status = "processing"
            job.started_at = utcnow()
            await db.commit()

            async def on_progress(progress: SyncProgress):
                job.total_count = progress.total
                job.processed_count = progress.processed
                job.approved_count = progress.approved
                job.rejected_count = progress.rejected
                await db.commit()

            engine = CorrelationEngine(
                db,
                self.gateway_factory,
                SimilarityClassifier(self.llm),
                sync_timeout=self.sync_timeout,
            )
            try:
                result = await engine.discover(
                    job.owner_id,
                    job.search_asin,
                    action="sync",
                    credential_override=credential_override,
                    progress=on_progress,
                )
            except CorrelationError as e:
                logger.warning(f"Correlation job {job_id} failed: {e.message}")
                await self._fail(db, job_id, e.message)
                return
            except Exception as e:
                logger.exception(f"Correlation job {job_id} crashed")
                await self._fail(db, job_id, str(e) or type(e).__name__)
                return

            job.status = "complete"
            job.completed_at = utcnow()
            await db.commit()
            logger.info(f"Correlation job {job_id} complete: {result.message}")

    async def _fail(self, db: AsyncSession, job_id: int, message: str):
        await db.rollback()
        job = await db.get(CorrelationJob, job_id, populate_existing=True)
        if job is None:
            return
        job.status = "error"
        job.error_message = message[:2000]
        job.completed_at = utcnow()
        await db.commit()
