"""Correlation discovery endpoints."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from correlator.api.deps import get_database, get_engine, get_job_runner, get_owner_id
from correlator.api.schemas import CamelModel, CorrelationView
from correlator.correlate.engine import CorrelationEngine
from correlator.correlate.identifiers import normalize_asin
from correlator.errors import MissingCredential
from correlator.ingest.credentials import CredentialResolver
from correlator.worker.jobs import SyncJobRunner, create_job, get_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/correlations", tags=["correlations"])


class CorrelationRequest(CamelModel):
    asin: str
    action: str = "check"
    keepa_key: Optional[str] = None


class CorrelationResponse(CamelModel):
    success: bool = True
    asin: str
    exists: bool
    correlations: List[CorrelationView]
    count: int
    source: str
    synced: Optional[bool] = None
    stats: Optional[Dict[str, int]] = None
    elapsed_seconds: Optional[float] = None
    message: Optional[str] = None


class JobRequest(CamelModel):
    asin: str
    keepa_key: Optional[str] = None


class JobResponse(CamelModel):
    id: int
    search_asin: str
    status: str
    total_count: int
    processed_count: int
    approved_count: int
    rejected_count: int
    progress_percent: float
    error_message: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime


@router.post("", response_model=CorrelationResponse, response_model_exclude_unset=True)
async def discover(
    request: CorrelationRequest,
    owner_id: str = Depends(get_owner_id),
    engine: CorrelationEngine = Depends(get_engine),
):
    """
    Check stored correlations or run a sync for an ASIN.

    ``check`` only reads the database. ``sync`` calls Keepa and the
    classifier and stores what it finds.
    """
    result = await engine.discover(
        owner_id,
        request.asin,
        action=request.action,
        credential_override=request.keepa_key,
    )
    response = CorrelationResponse(
        success=True,
        asin=result.asin,
        exists=result.exists,
        correlations=[CorrelationView.from_record(r) for r in result.correlations],
        count=result.count,
        source=result.source,
    )
    if result.synced:
        response.synced = True
        response.stats = result.stats.to_dict()
        response.elapsed_seconds = result.elapsed_seconds
        response.message = result.message
    return response


@router.post("/jobs", response_model=JobResponse, status_code=202)
async def start_job(
    request: JobRequest,
    background_tasks: BackgroundTasks,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_database),
    runner: SyncJobRunner = Depends(get_job_runner),
):
    """Queue a sync to run in the background."""
    asin = normalize_asin(request.asin)
    if not await CredentialResolver(db).resolve(owner_id, override=request.keepa_key):
        raise MissingCredential("keepa")

    job = await create_job(db, owner_id, asin)
    background_tasks.add_task(runner.run, job.id, request.keepa_key)
    return job


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def job_status(
    job_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_database),
):
    """Progress of a background sync."""
    return await get_job(db, owner_id, job_id)
