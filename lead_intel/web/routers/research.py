"""Research API: submit jobs, read results, retry, cancel, stream progress via SSE."""

from __future__ import annotations

import json
import logging
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from lead_intel.crm.tasks import ActionItemNotFound, convert_action_item
from lead_intel.models import ConversionResult, JobSnapshot, JobType, ProviderConfig
from lead_intel.pipeline import JobNotFound, JobStateError, ResearchPipeline
from lead_intel.web.deps import get_pipeline

logger = logging.getLogger(__name__)
router = APIRouter(tags=["research"])


class ResearchRequest(BaseModel):
    prompt: str
    user_id: str
    job_type: JobType = "RESEARCH"
    urls: list[str] | None = None
    provider: Literal["anthropic", "openai", "groq"] | None = None
    model: str | None = None
    strategy: Literal["jina", "browser", "http"] | None = None


class RetryRequest(BaseModel):
    provider: Literal["anthropic", "openai", "groq"]
    model: str | None = None


@router.post("/research")
async def start_research(req: ResearchRequest, pipeline: ResearchPipeline = Depends(get_pipeline)):
    """Create a research job and run it in the background. Returns the job id for SSE tracking."""
    provider_config = (
        ProviderConfig(provider=req.provider, model=req.model) if req.provider else None
    )
    job = pipeline.submit(
        req.user_id,
        req.prompt,
        job_type=req.job_type,
        provider_config=provider_config,
        urls=req.urls,
        strategy=req.strategy,
    )
    return {"job_id": job.id, "status": job.status}


@router.get("/research/{job_id}", response_model=JobSnapshot)
async def research_status(job_id: int, pipeline: ResearchPipeline = Depends(get_pipeline)):
    snapshot = pipeline.get_snapshot(job_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Research job not found")
    return snapshot


@router.post("/research/{job_id}/retry-analysis")
async def retry_analysis(
    job_id: int,
    req: RetryRequest,
    background_tasks: BackgroundTasks,
    pipeline: ResearchPipeline = Depends(get_pipeline),
):
    try:
        pipeline.check_retry(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Research job not found")
    except JobStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(pipeline.retry_analysis, job_id, req.provider, req.model)
    return {"job_id": job_id, "status": "ANALYZING", "provider": req.provider}


@router.post("/research/{job_id}/cancel")
async def cancel_research(job_id: int, pipeline: ResearchPipeline = Depends(get_pipeline)):
    if pipeline.repo.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail="Research job not found")
    cancelled = pipeline.cancel(job_id)
    return {"job_id": job_id, "cancelled": cancelled}


@router.get("/research/{job_id}/stream")
async def research_stream(job_id: int, pipeline: ResearchPipeline = Depends(get_pipeline)):
    """SSE stream of progress lines until the job ends or the client disconnects."""
    job = pipeline.repo.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Research job not found")

    broadcaster = pipeline.broadcaster

    async def event_generator():
        if job.is_terminal and not broadcaster.has_history(job_id):
            # Finished before this process started; report the stored outcome
            yield {
                "event": "progress",
                "data": json.dumps({
                    "message": job.error_message or "Research completed",
                    "timestamp": job.completed_at,
                    "status": job.status,
                }),
            }
            return

        sub = broadcaster.subscribe(job_id)
        try:
            async for evt in sub:
                yield {
                    "event": "progress",
                    "data": evt.model_dump_json(include={"message", "timestamp", "status"}),
                }
        finally:
            sub.close()

    return EventSourceResponse(event_generator())


@router.post("/action-items/{item_id}/convert", response_model=ConversionResult)
async def convert_item(item_id: int, pipeline: ResearchPipeline = Depends(get_pipeline)):
    try:
        return convert_action_item(pipeline.repo, item_id)
    except ActionItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/cache/stats")
async def cache_stats(pipeline: ResearchPipeline = Depends(get_pipeline)):
    return pipeline.cache.stats()
