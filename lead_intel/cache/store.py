"""Two-level research cache over the job store.

L1 maps a normalized (user, prompt) key to a recently completed job; L2 maps
individual URLs to recently scraped content. Both are read-only views over
``research_jobs`` and ``sources``: nothing is written here, the pipeline's
ordinary writes are what populate the cache.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timedelta

from lead_intel.db.database import Database
from lead_intel.db.repository import ResearchRepository
from lead_intel.models import CachedContent, JobType

logger = logging.getLogger(__name__)

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


def normalize_prompt(prompt: str) -> str:
    text = _SPACE_RE.sub(" ", prompt.lower().strip())
    return _PUNCT_RE.sub("", text)


def compute_query_key(user_id: str, prompt: str) -> str:
    """Deterministic L1 key: SHA-256 of ``user_id:normalized_prompt``."""
    return hashlib.sha256(f"{user_id}:{normalize_prompt(prompt)}".encode()).hexdigest()


class ResearchCache:
    """L1 (query to completed job) and L2 (URL to scraped content) lookups."""

    def __init__(
        self,
        repo: ResearchRepository,
        query_ttl_hours: int = 24,
        url_ttl_days: int = 7,
    ):
        self.repo = repo
        self.query_ttl = timedelta(hours=query_ttl_hours)
        self.url_ttl = timedelta(days=url_ttl_days)

    @property
    def db(self) -> Database:
        return self.repo.db

    # --- L1: query results ---

    def lookup_query_result(
        self,
        key: str,
        job_type: JobType | None = None,
        now: datetime | None = None,
    ) -> int | None:
        """Return the id of the newest completed job for ``key`` inside the TTL, or None.

        With ``job_type`` only jobs of that type count: a research answer has
        no leads, so it cannot stand in for a lead-generation job.
        """
        now = now or datetime.now()
        try:
            for row in self.repo.find_completed_jobs(key, job_type=job_type):
                if not _is_expired(row["completed_at"], self.query_ttl, now):
                    return row["id"]
                # Rows are newest first; once one is stale the rest are too.
                return None
        except Exception as e:
            logger.warning("L1 cache lookup failed, treating as miss: %s", e)
        return None

    # --- L2: URL content ---

    def lookup_url_batch(
        self,
        urls: list[str],
        now: datetime | None = None,
    ) -> dict[str, CachedContent]:
        """Most recent non-empty scrape per URL inside the TTL. Missing URLs are absent."""
        now = now or datetime.now()
        hits: dict[str, CachedContent] = {}
        try:
            for row in self.repo.find_sources_by_url(list(dict.fromkeys(urls))):
                url = row["url"]
                if url in hits or _is_expired(row["scraped_at"], self.url_ttl, now):
                    continue
                hits[url] = CachedContent(
                    source_id=row["id"],
                    url=url,
                    title=row["title"],
                    content=row["content"],
                    excerpt=row["excerpt"],
                    scraped_at=row["scraped_at"],
                )
        except Exception as e:
            logger.warning("L2 cache lookup failed, treating as miss: %s", e)
            return {}
        return hits

    # --- Repository stats ---

    def stats(self) -> dict:
        """Return counts and date ranges for each cache layer."""
        result = {}
        for label, sql in [
            (
                "queries",
                "SELECT COUNT(*), MIN(completed_at), MAX(completed_at) "
                "FROM research_jobs WHERE status = 'COMPLETED'",
            ),
            (
                "sources",
                "SELECT COUNT(*), MIN(scraped_at), MAX(scraped_at) FROM sources",
            ),
        ]:
            try:
                count, oldest, newest = tuple(self.db.fetchone(sql))
                result[label] = {"count": count, "oldest": oldest, "newest": newest}
            except Exception as e:
                logger.debug("Cache stats failed (%s): %s", label, e)
                result[label] = {"count": 0, "oldest": None, "newest": None}
        return result


def _is_expired(stamp: str | None, ttl: timedelta, now: datetime) -> bool:
    """Check if a cache entry has expired. Unparseable stamps count as expired."""
    if not stamp:
        return True
    try:
        created = datetime.fromisoformat(stamp)
    except ValueError:
        return True
    return now - created > ttl
