"""Algorithmic lead scoring: deterministic, no LLM involvement."""

from __future__ import annotations

import logging
import math
import re

from lead_intel.db.repository import ResearchRepository
from lead_intel.models import Lead, LeadScore, TargetProfile, TierCounts

logger = logging.getLogger(__name__)

FREE_EMAIL_PROVIDERS = {
    "gmail.com", "yahoo.com", "hotmail.com", "outlook.com",
    "icloud.com", "aol.com", "protonmail.com", "mail.com",
}

# Open-ended ranges ("500+") are capped here when comparing midpoints.
_SIZE_CAP = 10000

_RANGE_RE = re.compile(r"(\d+)\s*[-–to]+\s*(\d+)")
_PLUS_RE = re.compile(r"(\d+)\+")
_NUMBER_RE = re.compile(r"(\d+)")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def compute_lead_score(lead: Lead, profile: TargetProfile) -> LeadScore:
    """Compute a 0-100 lead score against a user's target profile.

    Six factors:
    - Industry fit (25)
    - Company size fit (20)
    - Pain point match (20)
    - Email quality (15)
    - Tech stack signal (10)
    - Buying intent signal (10)
    """
    breakdown = {
        "industry": score_industry_fit(lead.industry, profile.target_industries),
        "company_size": score_company_size_fit(lead.company_size, profile.target_company_size),
        "pain_points": score_pain_point_match(lead.pain_points, profile.target_pain_points),
        "email": score_email_quality(lead.email),
        "tech_stack": _signal_points(len(lead.signals.tech_stack)),
        "buying_intent": _signal_points(len(lead.signals.buying_intent)),
    }
    score = min(100, max(0, sum(breakdown.values())))
    return LeadScore(score=score, tier=tier_for(score), breakdown=breakdown)


def tier_for(score: int) -> str:
    if score >= 80:
        return "HOT"
    if score >= 60:
        return "WARM"
    if score >= 40:
        return "COLD"
    return "DISCARD"


# ---------------------------------------------------------------------------
# Factor scorers
# ---------------------------------------------------------------------------

def score_industry_fit(industry: str | None, targets: list[str]) -> int:
    if not industry or not targets:
        return 0
    normalised = industry.lower().strip()
    lowered = [t.lower().strip() for t in targets if t.strip()]
    if normalised in lowered:
        return 25
    if any(t in normalised or normalised in t for t in lowered):
        return 15
    return 0


def parse_size_range(text: str) -> tuple[float, float] | None:
    """Parse "10-50", "10 to 50", "500+" or a bare number into (min, max)."""
    m = _RANGE_RE.search(text)
    if m:
        return float(m.group(1)), float(m.group(2))
    m = _PLUS_RE.search(text)
    if m:
        return float(m.group(1)), math.inf
    m = _NUMBER_RE.search(text)
    if m:
        n = float(m.group(1))
        return n, n
    return None


def score_company_size_fit(size: str | None, target: str | None) -> int:
    if not size or not target:
        return 5
    lead_range = parse_size_range(size)
    target_range = parse_size_range(target)
    if lead_range is None or target_range is None:
        return 5

    lead_min, lead_max = lead_range
    target_min, target_max = target_range
    if lead_min <= target_max and lead_max >= target_min:
        return 20

    mid_lead = (lead_min + min(lead_max, _SIZE_CAP)) / 2
    mid_target = (target_min + min(target_max, _SIZE_CAP)) / 2
    low, high = sorted((mid_lead, mid_target))
    if low > 0 and high / low <= 2:
        return 10
    return 5


def _pain_point_matches(point: str, target: str) -> bool:
    point_words = point.lower().split()
    target_words = set(target.lower().split())
    overlap = sum(
        1 for w in point_words
        if any(tw in w or w in tw for tw in target_words)
    )
    return overlap >= 2 or (len(point_words) <= 2 and overlap >= 1)


def score_pain_point_match(pain_points: list[str], targets: list[str]) -> int:
    if not pain_points or not targets:
        return 0
    matched = sum(
        1 for point in pain_points
        if any(_pain_point_matches(point, t) for t in targets)
    )
    return _round_half_up(matched / len(targets) * 20)


def score_email_quality(email: str | None) -> int:
    if not email or "@" not in email:
        return 0
    domain = email.split("@", 1)[1].strip().lower()
    if not domain:
        return 0
    return 5 if domain in FREE_EMAIL_PROVIDERS else 15


def _signal_points(hits: int) -> int:
    if hits >= 3:
        return 10
    if hits >= 1:
        return 5
    return 0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class LeadScoringEngine:
    """Scores persisted leads and writes the score and tier back."""

    def __init__(self, repo: ResearchRepository):
        self.repo = repo

    def _profile(self, user_id: str) -> TargetProfile:
        return self.repo.get_target_profile(user_id) or TargetProfile(user_id=user_id)

    def score_lead(self, lead_id: int, user_id: str) -> LeadScore:
        lead = self.repo.get_lead(lead_id)
        if lead is None:
            return LeadScore(score=0, tier="UNSCORED")
        result = compute_lead_score(lead, self._profile(user_id))
        self.repo.set_lead_score(lead_id, result.score, result.tier)
        return result

    def score_batch(self, group_id: int, user_id: str, rescore: bool = False) -> TierCounts:
        """Score the group's unscored leads (all leads when ``rescore``).

        Returns tier counts over every lead in the group afterwards, so a
        repeated call reports the same counts.
        """
        profile = self._profile(user_id)
        counts = TierCounts()
        scored = 0
        for lead in self.repo.get_leads(group_id):
            tier = lead.tier
            if rescore or tier == "UNSCORED":
                result = compute_lead_score(lead, profile)
                self.repo.set_lead_score(lead.id, result.score, result.tier)
                tier = result.tier
                scored += 1
            if tier == "HOT":
                counts.hot += 1
            elif tier == "WARM":
                counts.warm += 1
            elif tier == "COLD":
                counts.cold += 1
            else:
                counts.discard += 1
        logger.info(
            "Scored %d leads in group %d: %d hot, %d warm, %d cold, %d discard",
            scored, group_id, counts.hot, counts.warm, counts.cold, counts.discard,
        )
        return counts
