"""Lead API: scoring, promotion into the sales pipeline, target profiles."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from lead_intel.models import PromotionSummary, TargetProfile, TierCounts
from lead_intel.pipeline import ResearchPipeline
from lead_intel.web.deps import get_pipeline

router = APIRouter(tags=["leads"])


class TargetProfileUpdate(BaseModel):
    target_industries: list[str] = Field(default_factory=list)
    target_company_size: str | None = None
    target_pain_points: list[str] = Field(default_factory=list)


def _require_group(pipeline: ResearchPipeline, group_id: int) -> None:
    if pipeline.repo.get_lead_group(group_id) is None:
        raise HTTPException(status_code=404, detail="Lead group not found")


@router.post("/lead-groups/{group_id}/score", response_model=TierCounts)
async def score_group(
    group_id: int,
    user_id: str = Query(...),
    rescore: bool = Query(False),
    pipeline: ResearchPipeline = Depends(get_pipeline),
):
    _require_group(pipeline, group_id)
    return pipeline.scoring.score_batch(group_id, user_id, rescore=rescore)


@router.post("/lead-groups/{group_id}/promote", response_model=PromotionSummary)
async def promote_group(
    group_id: int,
    user_id: str = Query(...),
    pipeline: ResearchPipeline = Depends(get_pipeline),
):
    _require_group(pipeline, group_id)
    return pipeline.promotion.promote_batch(group_id, user_id)


@router.put("/users/{user_id}/target-profile", response_model=TargetProfile)
async def put_target_profile(
    user_id: str,
    body: TargetProfileUpdate,
    pipeline: ResearchPipeline = Depends(get_pipeline),
):
    profile = TargetProfile(user_id=user_id, **body.model_dump())
    pipeline.repo.save_target_profile(profile)
    return profile


@router.get("/users/{user_id}/target-profile", response_model=TargetProfile)
async def get_target_profile(user_id: str, pipeline: ResearchPipeline = Depends(get_pipeline)):
    profile = pipeline.repo.get_target_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="No target profile for this user")
    return profile
