"""FastAPI application for the lead intelligence API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lead_intel.pipeline import ResearchPipeline
from lead_intel.web.deps import close_db, get_pipeline
from lead_intel.web.routers.leads import router as leads_router
from lead_intel.web.routers.research import router as research_router

logger = logging.getLogger(__name__)


def create_app(pipeline: ResearchPipeline | None = None) -> FastAPI:
    """Build the app. A supplied pipeline replaces the process-wide one (tests, embedding)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Lead Intel API...")
        if pipeline is None:
            get_pipeline()  # connects + runs migrations
        yield
        if pipeline is None:
            close_db()
        logger.info("Lead Intel API shut down.")

    app = FastAPI(
        title="Lead Intel",
        description="Web research, insight synthesis, lead scoring and CRM promotion",
        lifespan=lifespan,
    )
    if pipeline is not None:
        app.dependency_overrides[get_pipeline] = lambda: pipeline

    app.include_router(research_router, prefix="/api")
    app.include_router(leads_router, prefix="/api")
    return app


app = create_app()
