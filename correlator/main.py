"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from correlator.ai.llm_service import LLMService
from correlator.api.routes import correlations, feedback, prompts
from correlator.config import settings
from correlator.db.models import Base
from correlator.db.session import AsyncSessionLocal, engine
from correlator.errors import CorrelationError
from correlator.ingest.keepa import keepa_gateway_factory

# Configure structured logging
from correlator.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Product Correlation Engine...")

    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    http_client = httpx.AsyncClient(timeout=settings.keepa_timeout_seconds, follow_redirects=True)
    app.state.llm_service = LLMService()
    app.state.gateway_factory = keepa_gateway_factory(http_client)
    app.state.session_factory = AsyncSessionLocal

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.llm_service.close()
    await http_client.aclose()
    await engine.dispose()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Product Correlation Engine",
    description="Discover related Amazon products and learn from reseller feedback",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=False,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])


@app.exception_handler(CorrelationError)
async def correlation_error_handler(request: Request, exc: CorrelationError):
    """Render engine errors as structured payloads."""
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


# Include API routes
app.include_router(correlations.router)
app.include_router(feedback.router)
app.include_router(prompts.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    # Run with uvicorn
    uvicorn.run(
        "correlator.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
