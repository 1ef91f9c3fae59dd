"""Persistence interface the pipeline reads and writes.

Every pipeline component talks to SQLite through ``ResearchRepository``;
nothing else issues SQL. Writes are per-entity (one job, one lead, one
action item) and multi-row writes that must not be seen half-done run in
a single transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime

from lead_intel.db.database import Database
from lead_intel.models import (
    ActionItem,
    AnalysisResult,
    CrmLead,
    ExtractedContent,
    ExtractedLead,
    Insight,
    JobType,
    Lead,
    LeadGroup,
    LeadSignals,
    ResearchJob,
    SalesPipeline,
    Source,
    Stage,
    TargetProfile,
)

logger = logging.getLogger(__name__)


def _ts(now: datetime | None = None) -> str:
    return (now or datetime.now()).isoformat()


class ResearchRepository:
    """Row-level access to jobs, sources, analysis output, leads and CRM records."""

    def __init__(self, db: Database):
        self.db = db

    # --- Research jobs ---

    def create_job(
        self,
        user_id: str,
        prompt: str,
        prompt_hash: str,
        job_type: JobType = "RESEARCH",
        now: datetime | None = None,
    ) -> int:
        return self.db.insert(
            "INSERT INTO research_jobs (user_id, prompt, prompt_hash, job_type, status, created_at) "
            "VALUES (?, ?, ?, ?, 'PENDING', ?)",
            (user_id, prompt, prompt_hash, job_type, _ts(now)),
        )

    def get_job(self, job_id: int) -> ResearchJob | None:
        row = self.db.fetchone("SELECT * FROM research_jobs WHERE id = ?", (job_id,))
        return _job_from_row(row) if row else None

    def set_status(self, job_id: int, status: str) -> None:
        self.db.update(
            "UPDATE research_jobs SET status = ? WHERE id = ?",
            (status, job_id),
        )

    def set_provider(self, job_id: int, provider: str, model: str | None) -> None:
        self.db.update(
            "UPDATE research_jobs SET provider = ?, model = ? WHERE id = ?",
            (provider, model, job_id),
        )

    def reopen_job(self, job_id: int) -> None:
        """Clear a terminal state before a user-triggered stage retry."""
        self.db.update(
            "UPDATE research_jobs SET status = 'ANALYZING', error_message = NULL, "
            "retryable = 0, completed_at = NULL, cached_from_job_id = NULL WHERE id = ?",
            (job_id,),
        )

    def complete_job(
        self,
        job_id: int,
        cached_from_job_id: int | None = None,
        now: datetime | None = None,
    ) -> None:
        self.db.update(
            "UPDATE research_jobs SET status = 'COMPLETED', cached_from_job_id = ?, "
            "error_message = NULL, retryable = 0, completed_at = ? WHERE id = ?",
            (cached_from_job_id, _ts(now), job_id),
        )

    def fail_job(
        self,
        job_id: int,
        message: str,
        retryable: bool,
        now: datetime | None = None,
    ) -> None:
        self.db.update(
            "UPDATE research_jobs SET status = 'FAILED', error_message = ?, retryable = ?, "
            "completed_at = ? WHERE id = ?",
            (message, int(retryable), _ts(now), job_id),
        )

    def find_completed_jobs(
        self,
        prompt_hash: str,
        job_type: JobType | None = None,
        limit: int = 5,
    ) -> list[sqlite3.Row]:
        """Completed jobs for a prompt hash (optionally of one job type), newest first."""
        sql = (
            "SELECT id, completed_at FROM research_jobs "
            "WHERE prompt_hash = ? AND status = 'COMPLETED' AND completed_at IS NOT NULL"
        )
        params: tuple = (prompt_hash,)
        if job_type is not None:
            sql += " AND job_type = ?"
            params += (job_type,)
        return self.db.fetchall(sql + " ORDER BY completed_at DESC LIMIT ?", params + (limit,))

    # --- Sources ---

    def add_source(self, page: ExtractedContent, now: datetime | None = None) -> int:
        if not page.content.strip():
            raise ValueError(f"Refusing to store empty content for {page.url}")
        return self.db.insert(
            "INSERT INTO sources (url, title, content, excerpt, scraped_at) VALUES (?, ?, ?, ?, ?)",
            (page.url, page.title, page.content, page.excerpt, _ts(now)),
        )

    def link_source(self, job_id: int, source_id: int, position: int = 0) -> None:
        self.db.update(
            "INSERT OR IGNORE INTO job_sources (job_id, source_id, position) VALUES (?, ?, ?)",
            (job_id, source_id, position),
        )

    def get_job_sources(self, job_id: int) -> list[Source]:
        rows = self.db.fetchall(
            "SELECT s.* FROM sources s JOIN job_sources js ON js.source_id = s.id "
            "WHERE js.job_id = ? ORDER BY js.position, s.id",
            (job_id,),
        )
        return [
            Source(
                id=r["id"], url=r["url"], title=r["title"], content=r["content"],
                excerpt=r["excerpt"], scraped_at=r["scraped_at"],
            )
            for r in rows
        ]

    def count_job_sources(self, job_id: int) -> int:
        row = self.db.fetchone(
            "SELECT COUNT(*) AS cnt FROM job_sources WHERE job_id = ?", (job_id,),
        )
        return row["cnt"] if row else 0

    def find_sources_by_url(self, urls: list[str]) -> list[sqlite3.Row]:
        """Non-empty sources for the given URLs, most recent scrape first."""
        if not urls:
            return []
        placeholders = ", ".join("?" for _ in urls)
        return self.db.fetchall(
            f"SELECT id, url, title, content, excerpt, scraped_at FROM sources "
            f"WHERE url IN ({placeholders}) AND content != '' "
            f"ORDER BY scraped_at DESC, id DESC",
            tuple(urls),
        )

    # --- Analysis output ---

    def save_analysis(self, job_id: int, result: AnalysisResult) -> None:
        """Replace the job's insights and action items in one transaction."""
        with self.db.transaction() as tx:
            tx.execute("DELETE FROM insights WHERE job_id = ?", (job_id,))
            tx.execute(
                "DELETE FROM action_items WHERE job_id = ? AND task_id IS NULL", (job_id,),
            )
            for position, insight in enumerate(result.insights):
                tx.execute(
                    "INSERT INTO insights (job_id, title, category, body, confidence, position) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (job_id, insight.title, insight.category, insight.body,
                     insight.confidence, position),
                )
            for item in result.action_items:
                tx.execute(
                    "INSERT INTO action_items (job_id, description, priority, effort) "
                    "VALUES (?, ?, ?, ?)",
                    (job_id, item.description, item.priority, item.effort),
                )

    def get_insights(self, job_id: int) -> list[Insight]:
        rows = self.db.fetchall(
            "SELECT * FROM insights WHERE job_id = ? ORDER BY position, id", (job_id,),
        )
        return [
            Insight(
                id=r["id"], job_id=r["job_id"], title=r["title"], category=r["category"],
                body=r["body"], confidence=r["confidence"],
            )
            for r in rows
        ]

    def get_action_items(self, job_id: int) -> list[ActionItem]:
        rows = self.db.fetchall(
            "SELECT * FROM action_items WHERE job_id = ? ORDER BY id", (job_id,),
        )
        return [_action_item_from_row(r) for r in rows]

    def get_action_item(self, item_id: int) -> ActionItem | None:
        row = self.db.fetchone("SELECT * FROM action_items WHERE id = ?", (item_id,))
        return _action_item_from_row(row) if row else None

    def create_task_for_action_item(
        self,
        item_id: int,
        user_id: str,
        title: str,
        description: str,
        priority: str,
        now: datetime | None = None,
    ) -> int | None:
        """Create a task and mark the action item converted, atomically.

        Returns the new task id, or None if the item was converted concurrently.
        """
        ts = _ts(now)
        with self.db.transaction() as tx:
            cur = tx.execute(
                "INSERT INTO tasks (user_id, title, description, priority, type, status, created_at) "
                "VALUES (?, ?, ?, ?, 'task', 'not_started', ?)",
                (user_id, title, description, priority, ts),
            )
            task_id = cur.lastrowid
            marked = tx.execute(
                "UPDATE action_items SET task_id = ?, converted_at = ? "
                "WHERE id = ? AND task_id IS NULL",
                (task_id, ts, item_id),
            ).rowcount
            if not marked:
                tx.conn.rollback()  # type: ignore[union-attr]
                return None
        return task_id

    def get_task(self, task_id: int) -> sqlite3.Row | None:
        return self.db.fetchone("SELECT * FROM tasks WHERE id = ?", (task_id,))

    def count_tasks(self, user_id: str) -> int:
        row = self.db.fetchone("SELECT COUNT(*) AS cnt FROM tasks WHERE user_id = ?", (user_id,))
        return row["cnt"] if row else 0

    # --- Leads ---

    def get_or_create_lead_group(self, job_id: int, now: datetime | None = None) -> int:
        row = self.db.fetchone("SELECT id FROM lead_groups WHERE job_id = ?", (job_id,))
        if row:
            return row["id"]
        return self.db.insert(
            "INSERT INTO lead_groups (job_id, total_found, created_at) VALUES (?, 0, ?)",
            (job_id, _ts(now)),
        )

    def get_lead_group(self, group_id: int) -> LeadGroup | None:
        row = self.db.fetchone("SELECT * FROM lead_groups WHERE id = ?", (group_id,))
        if not row:
            return None
        return LeadGroup(id=row["id"], job_id=row["job_id"], total_found=row["total_found"])

    def get_lead_group_for_job(self, job_id: int) -> LeadGroup | None:
        row = self.db.fetchone("SELECT id FROM lead_groups WHERE job_id = ?", (job_id,))
        return self.get_lead_group(row["id"]) if row else None

    def add_leads(
        self,
        group_id: int,
        leads: list[tuple[ExtractedLead, LeadSignals]],
    ) -> list[int]:
        """Insert extracted leads with their tagged signals, then refresh the group total."""
        ids: list[int] = []
        with self.db.transaction() as tx:
            for lead, signals in leads:
                cur = tx.execute(
                    "INSERT INTO leads (group_id, name, company, email, phone, website, industry, "
                    "company_size, location, pain_points_json, personalization, signals_json) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        group_id, lead.name, lead.company, lead.email, lead.phone,
                        lead.website, lead.industry, lead.company_size, lead.location,
                        json.dumps(lead.pain_points), lead.personalization,
                        signals.model_dump_json(),
                    ),
                )
                ids.append(cur.lastrowid)
            tx.execute(
                "UPDATE lead_groups SET total_found = "
                "(SELECT COUNT(*) FROM leads WHERE group_id = ?) WHERE id = ?",
                (group_id, group_id),
            )
        return ids

    def get_lead(self, lead_id: int) -> Lead | None:
        row = self.db.fetchone("SELECT * FROM leads WHERE id = ?", (lead_id,))
        return _lead_from_row(row) if row else None

    def get_leads(self, group_id: int) -> list[Lead]:
        rows = self.db.fetchall(
            "SELECT * FROM leads WHERE group_id = ? ORDER BY id", (group_id,),
        )
        return [_lead_from_row(r) for r in rows]

    def get_promotable_leads(self, group_id: int) -> list[Lead]:
        rows = self.db.fetchall(
            "SELECT * FROM leads WHERE group_id = ? AND promoted_to_crm_id IS NULL "
            "AND tier IN ('HOT', 'WARM') ORDER BY id",
            (group_id,),
        )
        return [_lead_from_row(r) for r in rows]

    def set_lead_score(self, lead_id: int, score: int, tier: str) -> None:
        self.db.update(
            "UPDATE leads SET score = ?, tier = ? WHERE id = ?",
            (score, tier, lead_id),
        )

    # --- Target profiles ---

    def get_target_profile(self, user_id: str) -> TargetProfile | None:
        row = self.db.fetchone("SELECT * FROM target_profiles WHERE user_id = ?", (user_id,))
        if not row:
            return None
        return TargetProfile(
            user_id=row["user_id"],
            target_industries=json.loads(row["target_industries_json"] or "[]"),
            target_company_size=row["target_company_size"],
            target_pain_points=json.loads(row["target_pain_points_json"] or "[]"),
        )

    def save_target_profile(self, profile: TargetProfile, now: datetime | None = None) -> None:
        self.db.update(
            "INSERT INTO target_profiles (user_id, target_industries_json, target_company_size, "
            "target_pain_points_json, updated_at) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET "
            "target_industries_json = excluded.target_industries_json, "
            "target_company_size = excluded.target_company_size, "
            "target_pain_points_json = excluded.target_pain_points_json, "
            "updated_at = excluded.updated_at",
            (
                profile.user_id,
                json.dumps(profile.target_industries),
                profile.target_company_size,
                json.dumps(profile.target_pain_points),
                _ts(now),
            ),
        )

    # --- Sales pipelines ---

    def get_default_pipeline(self, user_id: str) -> SalesPipeline | None:
        row = self.db.fetchone(
            "SELECT * FROM pipelines WHERE user_id = ? AND is_default = 1 ORDER BY id LIMIT 1",
            (user_id,),
        )
        if not row:
            return None
        return self._pipeline_with_stages(row)

    def create_pipeline(
        self,
        user_id: str,
        name: str,
        stages: list[dict],
        is_default: bool = True,
        now: datetime | None = None,
    ) -> SalesPipeline:
        with self.db.transaction() as tx:
            cur = tx.execute(
                "INSERT INTO pipelines (user_id, name, type, is_default, created_at) "
                "VALUES (?, ?, 'SALES', ?, ?)",
                (user_id, name, int(is_default), _ts(now)),
            )
            pipeline_id = cur.lastrowid
            for stage in stages:
                tx.execute(
                    "INSERT INTO pipeline_stages "
                    "(pipeline_id, name, stage_order, probability, is_closed, is_won) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        pipeline_id, stage["name"], stage["order"], stage["probability"],
                        int(stage.get("is_closed", False)), int(stage.get("is_won", False)),
                    ),
                )
        row = self.db.fetchone("SELECT * FROM pipelines WHERE id = ?", (pipeline_id,))
        return self._pipeline_with_stages(row)

    def count_pipelines(self, user_id: str) -> int:
        row = self.db.fetchone("SELECT COUNT(*) AS cnt FROM pipelines WHERE user_id = ?", (user_id,))
        return row["cnt"] if row else 0

    def _pipeline_with_stages(self, row: sqlite3.Row) -> SalesPipeline:
        stage_rows = self.db.fetchall(
            "SELECT * FROM pipeline_stages WHERE pipeline_id = ? ORDER BY stage_order",
            (row["id"],),
        )
        return SalesPipeline(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            is_default=bool(row["is_default"]),
            stages=[
                Stage(
                    id=s["id"], pipeline_id=s["pipeline_id"], name=s["name"],
                    order=s["stage_order"], probability=s["probability"],
                    is_closed=bool(s["is_closed"]), is_won=bool(s["is_won"]),
                )
                for s in stage_rows
            ],
        )

    # --- CRM leads ---

    def create_crm_lead_for(
        self,
        lead: Lead,
        user_id: str,
        status: str,
        first_name: str,
        last_name: str,
        pipeline_id: int,
        stage_id: int,
        now: datetime | None = None,
    ) -> int | None:
        """Create the CRM record and set the lead's one-time promotion marker.

        Both writes happen in one transaction. Returns None (and writes
        nothing) if the lead already carries a promotion marker.
        """
        with self.db.transaction() as tx:
            cur = tx.execute(
                "INSERT INTO crm_leads (user_id, lead_id, source, status, score, first_name, "
                "last_name, email, phone, company_name, company_website, industry, "
                "pain_points_json, pipeline_id, stage_id, estimated_value, created_at) "
                "VALUES (?, ?, 'OUTBOUND', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)",
                (
                    user_id, lead.id, status, lead.score or 0, first_name, last_name,
                    lead.email or "", lead.phone, lead.company or "Unknown Company",
                    lead.website, lead.industry, json.dumps(lead.pain_points),
                    pipeline_id, stage_id, _ts(now),
                ),
            )
            crm_id = cur.lastrowid
            marked = tx.execute(
                "UPDATE leads SET promoted_to_crm_id = ? WHERE id = ? AND promoted_to_crm_id IS NULL",
                (crm_id, lead.id),
            ).rowcount
            if not marked:
                tx.conn.rollback()  # type: ignore[union-attr]
                return None
        return crm_id

    def get_crm_lead(self, crm_id: int) -> CrmLead | None:
        row = self.db.fetchone("SELECT * FROM crm_leads WHERE id = ?", (crm_id,))
        if not row:
            return None
        return CrmLead(
            id=row["id"], user_id=row["user_id"], lead_id=row["lead_id"],
            status=row["status"], score=row["score"], first_name=row["first_name"],
            last_name=row["last_name"], email=row["email"],
            company_name=row["company_name"], pipeline_id=row["pipeline_id"],
            stage_id=row["stage_id"],
        )

    def count_crm_leads(self, user_id: str) -> int:
        row = self.db.fetchone(
            "SELECT COUNT(*) AS cnt FROM crm_leads WHERE user_id = ?", (user_id,),
        )
        return row["cnt"] if row else 0


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------

def _job_from_row(row: sqlite3.Row) -> ResearchJob:
    return ResearchJob(
        id=row["id"],
        user_id=row["user_id"],
        prompt=row["prompt"],
        prompt_hash=row["prompt_hash"],
        job_type=row["job_type"],
        status=row["status"],
        error_message=row["error_message"],
        retryable=bool(row["retryable"]),
        provider=row["provider"],
        model=row["model"],
        cached_from_job_id=row["cached_from_job_id"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
    )


def _action_item_from_row(row: sqlite3.Row) -> ActionItem:
    return ActionItem(
        id=row["id"],
        job_id=row["job_id"],
        description=row["description"],
        priority=row["priority"],
        effort=row["effort"],
        task_id=row["task_id"],
        converted_at=row["converted_at"],
    )


def _lead_from_row(row: sqlite3.Row) -> Lead:
    return Lead(
        id=row["id"],
        group_id=row["group_id"],
        name=row["name"],
        company=row["company"],
        email=row["email"],
        phone=row["phone"],
        website=row["website"],
        industry=row["industry"],
        company_size=row["company_size"],
        location=row["location"],
        pain_points=json.loads(row["pain_points_json"] or "[]"),
        personalization=row["personalization"] or "",
        signals=LeadSignals.model_validate_json(row["signals_json"] or "{}"),
        score=row["score"],
        tier=row["tier"],
        promoted_to_crm_id=row["promoted_to_crm_id"],
    )
