"""Pydantic data models for the research & lead intelligence pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

JobStatus = Literal["PENDING", "DISCOVERING", "SCRAPING", "ANALYZING", "COMPLETED", "FAILED"]
JobType = Literal["RESEARCH", "LEAD_GENERATION"]
Priority = Literal["LOW", "MEDIUM", "HIGH"]
Tier = Literal["HOT", "WARM", "COLD", "DISCARD", "UNSCORED"]

TERMINAL_STATUSES = ("COMPLETED", "FAILED")


# ---------------------------------------------------------------------------
# Research jobs
# ---------------------------------------------------------------------------

class ResearchJob(BaseModel):
    """One end-to-end run of the pipeline for a single prompt."""
    id: int
    user_id: str
    prompt: str
    prompt_hash: str
    job_type: JobType = "RESEARCH"
    status: JobStatus = "PENDING"
    error_message: str | None = None
    retryable: bool = False
    provider: str | None = None
    model: str | None = None
    cached_from_job_id: int | None = None
    created_at: str = ""
    completed_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ProviderConfig(BaseModel):
    """Which language-model provider (and optionally which model) to use."""
    provider: Literal["anthropic", "openai", "groq"] = "anthropic"
    model: str | None = None


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class ExtractedContent(BaseModel):
    """Cleaned content of one page, as returned by an extraction strategy."""
    url: str
    title: str = ""
    content: str = ""
    excerpt: str = ""


class CachedContent(BaseModel):
    """An L2 cache hit: a prior scrape of a URL."""
    source_id: int
    url: str
    title: str = ""
    content: str
    excerpt: str = ""
    scraped_at: str = ""


class Source(BaseModel):
    id: int
    url: str
    title: str = ""
    content: str = ""
    excerpt: str = ""
    scraped_at: str = ""


# ---------------------------------------------------------------------------
# Analysis output
# ---------------------------------------------------------------------------

class Insight(BaseModel):
    id: int | None = None
    job_id: int | None = None
    title: str
    category: str = "general"
    body: str = ""
    confidence: float = 0.5

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        try:
            v = float(v)
        except (TypeError, ValueError):
            return 0.5
        return min(1.0, max(0.0, v))


class ActionItem(BaseModel):
    id: int | None = None
    job_id: int | None = None
    description: str
    priority: Priority = "MEDIUM"
    effort: int = 3
    task_id: int | None = None
    converted_at: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def normalise_priority(cls, v):
        v = str(v or "MEDIUM").strip().upper()
        return v if v in ("LOW", "MEDIUM", "HIGH") else "MEDIUM"

    @field_validator("effort", mode="before")
    @classmethod
    def clamp_effort(cls, v):
        try:
            v = int(round(float(v)))
        except (TypeError, ValueError):
            return 3
        return min(5, max(1, v))


class AnalysisResult(BaseModel):
    """Structured output of the Analysis Stage."""
    summary: str = ""
    insights: list[Insight] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------

class LeadSignals(BaseModel):
    """Personalization signals tagged once at ingestion (matched keywords per category)."""
    tech_stack: list[str] = Field(default_factory=list)
    buying_intent: list[str] = Field(default_factory=list)


class ExtractedLead(BaseModel):
    """A lead as returned by the language model, before persistence."""
    name: str = "Unknown Contact"
    company: str = "Unknown Company"
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    industry: str | None = None
    company_size: str | None = None
    location: str | None = None
    pain_points: list[str] = Field(default_factory=list)
    personalization: str = ""

    @field_validator("company_size", "phone", "email", mode="before")
    @classmethod
    def coerce_to_str(cls, v):
        if v is None or v == "":
            return None
        return str(v)


class Lead(BaseModel):
    id: int
    group_id: int
    name: str = "Unknown Contact"
    company: str = "Unknown Company"
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    industry: str | None = None
    company_size: str | None = None
    location: str | None = None
    pain_points: list[str] = Field(default_factory=list)
    personalization: str = ""
    signals: LeadSignals = Field(default_factory=LeadSignals)
    score: int | None = None
    tier: Tier = "UNSCORED"
    promoted_to_crm_id: int | None = None


class LeadGroup(BaseModel):
    id: int
    job_id: int | None = None
    total_found: int = 0


class TargetProfile(BaseModel):
    """A user's ideal-customer profile used by the scoring engine."""
    user_id: str
    target_industries: list[str] = Field(default_factory=list)
    target_company_size: str | None = None
    target_pain_points: list[str] = Field(default_factory=list)


class LeadScore(BaseModel):
    score: int = 0
    tier: Tier = "UNSCORED"
    breakdown: dict[str, int] = Field(default_factory=dict)


class TierCounts(BaseModel):
    hot: int = 0
    warm: int = 0
    cold: int = 0
    discard: int = 0


# ---------------------------------------------------------------------------
# CRM
# ---------------------------------------------------------------------------

class Stage(BaseModel):
    id: int
    pipeline_id: int
    name: str
    order: int
    probability: float
    is_closed: bool = False
    is_won: bool = False


class SalesPipeline(BaseModel):
    id: int
    user_id: str
    name: str = "Sales Pipeline"
    is_default: bool = True
    stages: list[Stage] = Field(default_factory=list)


class CrmLead(BaseModel):
    id: int
    user_id: str
    lead_id: int | None = None
    status: Literal["NEW", "QUALIFIED"] = "NEW"
    score: int = 0
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    company_name: str = ""
    pipeline_id: int | None = None
    stage_id: int | None = None


class PromotionResult(BaseModel):
    promoted: bool
    tier: Tier
    crm_id: int | None = None


class PromotionSummary(BaseModel):
    promoted: int = 0
    skipped: int = 0
    hot: int = 0
    warm: int = 0


class ConversionResult(BaseModel):
    action_item_id: int
    task_id: int
    created: bool


# ---------------------------------------------------------------------------
# Progress + status read
# ---------------------------------------------------------------------------

class ProgressEvent(BaseModel):
    job_id: int
    message: str
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
    status: str | None = None


class JobSnapshot(BaseModel):
    """Job status read: the job plus any outputs produced so far."""
    job: ResearchJob
    source_count: int = 0
    insights: list[Insight] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    lead_group_id: int | None = None
    leads: list[Lead] = Field(default_factory=list)
