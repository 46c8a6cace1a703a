"""FastAPI dependencies."""

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from correlator.ai.llm_service import LLMService
from correlator.ai.prompt_personalizer import PromptPersonalizer
from correlator.ai.similarity_classifier import SimilarityClassifier
from correlator.correlate.engine import CorrelationEngine
from correlator.correlate.feedback_ledger import FeedbackLedger
from correlator.db.session import get_db
from correlator.ingest.keepa import GatewayFactory
from correlator.worker.jobs import SyncJobRunner


async def get_database() -> AsyncSession:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


async def get_owner_id(x_user_id: str = Header(None, alias="X-User-Id")) -> str:
    """
    Owner of the request.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header required",
        )
    return x_user_id.strip()


def get_llm_service(request: Request) -> LLMService:
    return request.app.state.llm_service


def get_gateway_factory(request: Request) -> GatewayFactory:
    return request.app.state.gateway_factory


def get_session_factory(request: Request) -> async_sessionmaker:
    return request.app.state.session_factory


def get_engine(
    db: AsyncSession = Depends(get_database),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    llm: LLMService = Depends(get_llm_service),
) -> CorrelationEngine:
    return CorrelationEngine(db, gateway_factory, SimilarityClassifier(llm))


def get_ledger(
    db: AsyncSession = Depends(get_database),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
) -> FeedbackLedger:
    return FeedbackLedger(db, gateway_factory)


def get_personalizer(
    db: AsyncSession = Depends(get_database),
    llm: LLMService = Depends(get_llm_service),
) -> PromptPersonalizer:
    return PromptPersonalizer(db, llm)


def get_job_runner(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    llm: LLMService = Depends(get_llm_service),
) -> SyncJobRunner:
    return SyncJobRunner(session_factory, gateway_factory, llm)
