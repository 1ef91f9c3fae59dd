"""Research job orchestration.

A job moves PENDING -> DISCOVERING -> SCRAPING -> ANALYZING -> COMPLETED, or
to FAILED from any stage. Stages run sequentially within a job; each job
runs as its own asyncio task. Every transition is persisted and broadcast.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from pydantic import ValidationError

from lead_intel.analysis.extraction import Analyzer
from lead_intel.analysis.llm_client import resolve_model
from lead_intel.analysis.scoring import LeadScoringEngine
from lead_intel.analysis.signals import tag_signals
from lead_intel.cache.store import ResearchCache, compute_query_key
from lead_intel.config import Config
from lead_intel.crm.promotion import LeadPromotionService
from lead_intel.db.repository import ResearchRepository
from lead_intel.errors import (
    ConfigurationError,
    InvalidPromptError,
    JobCancelled,
    NoSourcesError,
    PipelineError,
)
from lead_intel.models import JobSnapshot, JobType, ProviderConfig, ResearchJob
from lead_intel.progress.broadcaster import ProgressBroadcaster
from lead_intel.scrape.extractor import ContentExtractor, ExtractionStrategy, build_strategy
from lead_intel.search.discovery import SourceDiscovery, filter_blocked

logger = logging.getLogger(__name__)

MIN_PROMPT_CHARS = 10
MAX_PROMPT_CHARS = 4000


class JobNotFound(LookupError):
    pass


class JobStateError(RuntimeError):
    """The requested operation does not apply to the job's current status."""


def validate_prompt(prompt: str) -> str:
    text = (prompt or "").strip()
    if len(text) < MIN_PROMPT_CHARS:
        raise InvalidPromptError(f"Prompt must be at least {MIN_PROMPT_CHARS} characters")
    if len(text) > MAX_PROMPT_CHARS:
        raise InvalidPromptError(f"Prompt must be at most {MAX_PROMPT_CHARS} characters")
    return text


class ResearchPipeline:
    """Runs research jobs end to end against one repository and broadcaster."""

    def __init__(
        self,
        config: Config,
        repo: ResearchRepository,
        broadcaster: ProgressBroadcaster,
        discovery: SourceDiscovery | None = None,
        analyzer: Analyzer | None = None,
        strategy_factory: Callable[[str], ExtractionStrategy] | None = None,
    ):
        self.config = config
        self.repo = repo
        self.broadcaster = broadcaster
        self.cache = ResearchCache(
            repo,
            query_ttl_hours=config.query_cache_ttl_hours,
            url_ttl_days=config.url_cache_ttl_days,
        )
        self.discovery = discovery or SourceDiscovery(config)
        self.analyzer = analyzer or Analyzer(config)
        self.strategy_factory = strategy_factory or (lambda name: build_strategy(name, config))
        self.scoring = LeadScoringEngine(repo)
        self.promotion = LeadPromotionService(repo)

        self._tasks: dict[int, asyncio.Task] = {}
        self._active: set[int] = set()
        self._cancelled: set[int] = set()

    # --- Job lifecycle ---

    def create_job(self, user_id: str, prompt: str, job_type: JobType = "RESEARCH") -> ResearchJob:
        job_id = self.repo.create_job(
            user_id, prompt, compute_query_key(user_id, prompt), job_type,
        )
        return self.repo.get_job(job_id)

    def submit(
        self,
        user_id: str,
        prompt: str,
        job_type: JobType = "RESEARCH",
        provider_config: ProviderConfig | None = None,
        urls: list[str] | None = None,
        strategy: str | None = None,
    ) -> ResearchJob:
        """Create a job and start it in the background. Must be called inside a running loop."""
        job = self.create_job(user_id, prompt, job_type)
        task = asyncio.create_task(
            self.run_job(job.id, provider_config=provider_config, urls=urls, strategy=strategy),
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, jid=job.id: self._tasks.pop(jid, None))
        return job

    async def run_job(
        self,
        job_id: int,
        provider_config: ProviderConfig | None = None,
        urls: list[str] | None = None,
        strategy: str | None = None,
    ) -> ResearchJob:
        job = self.repo.get_job(job_id)
        if job is None:
            raise JobNotFound(f"Research job {job_id} not found")
        if job.is_terminal:
            return job

        self._active.add(job_id)
        self.broadcaster.publish(job_id, "Research job started", "PENDING")

        try:
            provider_config = provider_config or self._default_provider_config()
            prompt = validate_prompt(job.prompt)

            if not urls:
                cached_job_id = self.cache.lookup_query_result(
                    job.prompt_hash, job_type=job.job_type,
                )
                if cached_job_id is not None and cached_job_id != job_id:
                    self._check_cancelled(job_id)
                    self.repo.complete_job(job_id, cached_from_job_id=cached_job_id)
                    self.broadcaster.publish(
                        job_id, f"Served from cache (job {cached_job_id})", "COMPLETED",
                    )
                    return self.repo.get_job(job_id)

            url_list = await self._discover(job_id, prompt, urls)
            await self._scrape(job_id, url_list, strategy or self.config.extraction_strategy)
            await self._analyze(job, provider_config)

            self._check_cancelled(job_id)
            self.repo.complete_job(job_id)
            self.broadcaster.publish(job_id, "Research completed", "COMPLETED")
        except asyncio.CancelledError as e:
            self._handle_failure(job_id, e)
            raise
        except Exception as e:
            self._handle_failure(job_id, e)
        finally:
            self._active.discard(job_id)
            self._cancelled.discard(job_id)

        return self.repo.get_job(job_id)

    def check_retry(self, job_id: int) -> ResearchJob:
        """Return the job if its analysis can be re-run now, else raise.

        Raises JobNotFound, or JobStateError while the job is still running
        (including a cancelled run that has not stopped yet) or when neither
        the job nor the job it was served from has stored sources.
        """
        job = self.repo.get_job(job_id)
        if job is None:
            raise JobNotFound(f"Research job {job_id} not found")
        if not job.is_terminal:
            raise JobStateError(f"Research job {job_id} is still {job.status}")
        if job_id in self._active:
            raise JobStateError(f"Research job {job_id} is still shutting down after cancellation")
        if self.repo.count_job_sources(self._sources_job_id(job)) == 0:
            raise JobStateError(f"Research job {job_id} has no stored sources to analyze")
        return job

    async def retry_analysis(
        self,
        job_id: int,
        provider: str,
        model: str | None = None,
    ) -> ResearchJob:
        """Re-run only the analysis stage over the job's persisted sources.

        A job served from the query cache takes over the sources of the job
        it was served from, and owns its outputs from then on.
        """
        job = self.check_retry(job_id)
        provider_config = ProviderConfig(provider=provider, model=model)

        sources_job_id = self._sources_job_id(job)
        if sources_job_id != job_id:
            for position, source in enumerate(self.repo.get_job_sources(sources_job_id)):
                self.repo.link_source(job_id, source.id, position)

        self._active.add(job_id)
        self.repo.reopen_job(job_id)
        self.broadcaster.reopen(job_id)
        self.broadcaster.publish(job_id, f"Retrying analysis with {provider}", "ANALYZING")

        try:
            await self._analyze(job, provider_config)
            self._check_cancelled(job_id)
            self.repo.complete_job(job_id)
            self.broadcaster.publish(job_id, "Research completed", "COMPLETED")
        except asyncio.CancelledError as e:
            self._handle_failure(job_id, e)
            raise
        except Exception as e:
            self._handle_failure(job_id, e)
        finally:
            self._active.discard(job_id)
            self._cancelled.discard(job_id)

        return self.repo.get_job(job_id)

    def cancel(self, job_id: int) -> bool:
        """Mark an unfinished job FAILED. Returns False if it was already terminal.

        A run in progress notices at its next stage or chunk boundary; a job
        with no live run (not started yet, or orphaned) is simply failed.
        """
        job = self.repo.get_job(job_id)
        if job is None:
            raise JobNotFound(f"Research job {job_id} not found")
        if job.is_terminal:
            return False
        if job_id in self._active:
            self._cancelled.add(job_id)
        self.repo.fail_job(job_id, "Cancelled by user", retryable=True)
        self.broadcaster.publish(job_id, "Research cancelled", "FAILED")
        logger.info("Job %d cancelled", job_id)
        return True

    async def wait(self, job_id: int) -> None:
        """Wait for a background job started with ``submit`` to finish."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # --- Stages ---

    async def _discover(self, job_id: int, prompt: str, urls: list[str] | None) -> list[str]:
        self._advance(job_id, "DISCOVERING", "Searching for sources")
        if urls:
            url_list = filter_blocked(list(dict.fromkeys(urls)))
            if not url_list:
                raise NoSourcesError("None of the supplied URLs can be scraped")
        else:
            url_list = await self.discovery.discover(prompt)
        self.broadcaster.publish(job_id, f"Found {len(url_list)} sources", "DISCOVERING")
        return url_list

    async def _scrape(self, job_id: int, url_list: list[str], strategy_name: str) -> None:
        self._advance(job_id, "SCRAPING", f"Reading {len(url_list)} sources")
        positions = {url: i for i, url in enumerate(url_list)}

        hits = self.cache.lookup_url_batch(url_list)
        for url, cached in hits.items():
            self.repo.link_source(job_id, cached.source_id, positions[url])
        if hits:
            self.broadcaster.publish(job_id, f"{len(hits)} sources served from cache", "SCRAPING")

        misses = [u for u in url_list if u not in hits]
        if misses:
            self._check_cancelled(job_id)
            extractor = ContentExtractor(
                self.strategy_factory(strategy_name),
                chunk_size=self.config.scrape_chunk_size,
                timeout=self.config.scrape_timeout,
            )
            pages = await extractor.extract_batch(
                misses, cancelled=lambda: job_id in self._cancelled,
            )
            self._check_cancelled(job_id)
            for page in pages:
                source_id = self.repo.add_source(page)
                self.repo.link_source(job_id, source_id, positions.get(page.url, len(url_list)))
            self.broadcaster.publish(
                job_id, f"Extracted {len(pages)} of {len(misses)} pages", "SCRAPING",
            )

        if self.repo.count_job_sources(job_id) == 0:
            raise NoSourcesError("No sources could be extracted")

    async def _analyze(self, job: ResearchJob, provider_config: ProviderConfig) -> None:
        job_id = job.id
        sources = self.repo.get_job_sources(job_id)
        if not sources:
            raise NoSourcesError("Research job has no stored sources to analyze")

        model = resolve_model(provider_config, self.config)
        self._advance(
            job_id, "ANALYZING",
            f"Analyzing {len(sources)} sources with {provider_config.provider} ({model})",
        )
        self.repo.set_provider(job_id, provider_config.provider, model)

        result = await self.analyzer.analyze(sources, job.prompt, provider_config)
        self._check_cancelled(job_id)

        leads = []
        if job.job_type == "LEAD_GENERATION":
            self.broadcaster.publish(job_id, "Extracting leads", "ANALYZING")
            leads = await self.analyzer.extract_leads(job.prompt, result, provider_config)
            self._check_cancelled(job_id)

        self.repo.save_analysis(job_id, result)
        self.broadcaster.publish(
            job_id,
            f"Generated {len(result.insights)} insights and {len(result.action_items)} action items",
            "ANALYZING",
        )

        if job.job_type == "LEAD_GENERATION":
            group_id = self.repo.get_or_create_lead_group(job_id)
            self.repo.add_leads(group_id, [(lead, tag_signals(lead.personalization)) for lead in leads])
            counts = self.scoring.score_batch(group_id, job.user_id)
            summary = self.promotion.promote_batch(group_id, job.user_id)
            self.broadcaster.publish(
                job_id,
                f"Scored {len(leads)} leads ({counts.hot} hot, {counts.warm} warm); "
                f"promoted {summary.promoted} to the sales pipeline",
                "ANALYZING",
            )

    # --- Helpers ---

    def _default_provider_config(self) -> ProviderConfig:
        try:
            return ProviderConfig(provider=self.config.llm_provider)
        except ValidationError as e:
            raise ConfigurationError(
                f"Unknown LLM provider configured: {self.config.llm_provider!r}",
            ) from e

    def _sources_job_id(self, job: ResearchJob) -> int:
        """Follow ``cached_from_job_id`` links to the job that owns the outputs."""
        output_job_id = job.id
        seen = {job.id}
        origin = job
        while origin is not None and origin.cached_from_job_id is not None:
            if origin.cached_from_job_id in seen:
                break
            output_job_id = origin.cached_from_job_id
            seen.add(output_job_id)
            origin = self.repo.get_job(output_job_id)
        return output_job_id

    def _check_cancelled(self, job_id: int) -> None:
        if job_id in self._cancelled:
            raise JobCancelled(f"Research job {job_id} was cancelled")

    def _advance(self, job_id: int, status: str, message: str) -> None:
        self._check_cancelled(job_id)
        self.repo.set_status(job_id, status)
        self.broadcaster.publish(job_id, message, status)

    def _handle_failure(self, job_id: int, exc: BaseException) -> None:
        if isinstance(exc, JobCancelled):
            logger.info("Job %d stopped after cancellation", job_id)
            return
        if isinstance(exc, asyncio.CancelledError):
            message, retryable = "Research job interrupted", True
            logger.warning("Job %d interrupted", job_id)
        elif isinstance(exc, PipelineError):
            message, retryable = exc.message, exc.retryable
            logger.warning("Job %d failed: %s (retryable=%s)", job_id, message, retryable)
        else:
            message, retryable = f"Unexpected error: {exc}", False
            logger.exception("Job %d failed unexpectedly", job_id, exc_info=exc)
        self.repo.fail_job(job_id, message, retryable)
        self.broadcaster.publish(job_id, f"Failed: {message}", "FAILED")

    # --- Reads ---

    def get_snapshot(self, job_id: int) -> JobSnapshot | None:
        """The job plus its outputs, resolved through the cache when served from L1."""
        job = self.repo.get_job(job_id)
        if job is None:
            return None

        output_job_id = self._sources_job_id(job)
        group = self.repo.get_lead_group_for_job(output_job_id)
        return JobSnapshot(
            job=job,
            source_count=self.repo.count_job_sources(output_job_id),
            insights=self.repo.get_insights(output_job_id),
            action_items=self.repo.get_action_items(output_job_id),
            lead_group_id=group.id if group else None,
            leads=self.repo.get_leads(group.id) if group else [],
        )
