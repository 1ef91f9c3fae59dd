"""Promotion of qualified leads into the user's sales pipeline."""

from __future__ import annotations

import logging

from lead_intel.db.repository import ResearchRepository
from lead_intel.models import PromotionResult, PromotionSummary, SalesPipeline

logger = logging.getLogger(__name__)

DEFAULT_PIPELINE_NAME = "Sales Pipeline"

DEFAULT_STAGES = [
    {"name": "Discovery", "order": 1, "probability": 0.1},
    {"name": "Qualification", "order": 2, "probability": 0.25},
    {"name": "Proposal", "order": 3, "probability": 0.5},
    {"name": "Negotiation", "order": 4, "probability": 0.75},
    {"name": "Closed Won", "order": 5, "probability": 1.0, "is_closed": True, "is_won": True},
    {"name": "Closed Lost", "order": 6, "probability": 0.0, "is_closed": True},
]

PROMOTABLE_TIERS = ("HOT", "WARM")


def split_name(name: str | None) -> tuple[str, str]:
    """Split a contact name into (first, last), defaulting to Unknown / Contact."""
    parts = (name or "").split()
    first = parts[0] if parts else "Unknown"
    last = " ".join(parts[1:]) or "Contact"
    return first, last


class LeadPromotionService:
    def __init__(self, repo: ResearchRepository):
        self.repo = repo

    def get_or_create_default_pipeline(self, user_id: str) -> SalesPipeline:
        pipeline = self.repo.get_default_pipeline(user_id)
        if pipeline is None:
            logger.info("Creating default sales pipeline for user %s", user_id)
            pipeline = self.repo.create_pipeline(user_id, DEFAULT_PIPELINE_NAME, DEFAULT_STAGES)
        return pipeline

    def promote(self, lead_id: int, user_id: str) -> PromotionResult:
        """Create a CRM lead for a HOT or WARM lead, at most once per lead."""
        lead = self.repo.get_lead(lead_id)
        if lead is None:
            return PromotionResult(promoted=False, tier="UNSCORED")
        if lead.promoted_to_crm_id is not None:
            return PromotionResult(promoted=False, tier=lead.tier, crm_id=lead.promoted_to_crm_id)
        if lead.tier not in PROMOTABLE_TIERS:
            return PromotionResult(promoted=False, tier=lead.tier)

        pipeline = self.get_or_create_default_pipeline(user_id)
        landing = min(pipeline.stages, key=lambda s: s.order)
        first, last = split_name(lead.name)

        crm_id = self.repo.create_crm_lead_for(
            lead,
            user_id=user_id,
            status="QUALIFIED" if lead.tier == "HOT" else "NEW",
            first_name=first,
            last_name=last,
            pipeline_id=pipeline.id,
            stage_id=landing.id,
        )
        if crm_id is None:
            # Promoted concurrently between the read and the guarded write
            current = self.repo.get_lead(lead_id)
            return PromotionResult(
                promoted=False, tier=lead.tier,
                crm_id=current.promoted_to_crm_id if current else None,
            )

        logger.info("Promoted lead %d (%s) to CRM lead %d", lead_id, lead.tier, crm_id)
        return PromotionResult(promoted=True, tier=lead.tier, crm_id=crm_id)

    def promote_batch(self, group_id: int, user_id: str) -> PromotionSummary:
        summary = PromotionSummary()
        for lead in self.repo.get_promotable_leads(group_id):
            result = self.promote(lead.id, user_id)
            if not result.promoted:
                summary.skipped += 1
                continue
            summary.promoted += 1
            if result.tier == "HOT":
                summary.hot += 1
            else:
                summary.warm += 1
        return summary
