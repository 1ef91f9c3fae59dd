"""Personalization signal tagging.

Leads arrive with free-text personalization notes. They are tagged once, at
ingestion, into a ``LeadSignals`` structure; scoring reads the tags and never
re-parses the text.
"""

from __future__ import annotations

from lead_intel.models import LeadSignals

TECH_SIGNALS = [
    "hubspot", "salesforce", "marketo", "mailchimp", "activecampaign", "zoho",
    "pipedrive", "intercom", "drift", "wordpress", "shopify", "webflow",
    "make.com", "zapier", "n8n", "airtable",
]

INTENT_SIGNALS = [
    "hiring", "looking for", "seeking", "outsource", "partner",
    "digital transformation", "growth", "expansion", "new office",
    "series a", "series b", "funding", "raised", "automation", "scaling",
]


def tag_signals(text: str | None) -> LeadSignals:
    """Return the tool keywords and intent phrases found in ``text`` (case-insensitive substring)."""
    if not text:
        return LeadSignals()
    lowered = text.lower()
    return LeadSignals(
        tech_stack=[kw for kw in TECH_SIGNALS if kw in lowered],
        buying_intent=[kw for kw in INTENT_SIGNALS if kw in lowered],
    )
