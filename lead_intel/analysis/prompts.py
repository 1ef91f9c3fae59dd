"""LLM prompt templates for research analysis, action items and lead extraction."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# PROMPT 1: Insight synthesis
# ---------------------------------------------------------------------------

ANALYSIS_PROMPT = """You are a Senior Research Analyst. Analyze the web content below for the research goal and extract:
1. Key insights, each with a title, detailed body, category and confidence score (0-1)
2. A comprehensive summary

**CRITICAL RULES:**
1. Base every insight on the provided content; do not invent facts
2. Confidence reflects how well the sources support the insight
3. Prefer specific, quantified findings over generic statements

**RESEARCH GOAL:** {prompt}

**========================================**
**CONTENT TO ANALYZE ({source_count} sources)**
**========================================**

{combined_content}

**========================================**
**REQUIRED OUTPUT STRUCTURE**
**========================================**

Respond with ONLY valid JSON (no markdown, no explanations):

{{
  "insights": [
    {{"title": "string", "body": "string", "category": "string", "confidence": 0.0}}
  ],
  "summary": "string"
}}"""


# ---------------------------------------------------------------------------
# PROMPT 2: Action items
# ---------------------------------------------------------------------------

ACTION_ITEMS_PROMPT = """Based on these research findings, generate up to 10 specific, high-impact action items.

Goal: {prompt}
Summary: {summary}

Key insights:
{insight_lines}

**CRITICAL INSTRUCTIONS:**
- Make actions CONCRETE (e.g. "Contact X" becomes "Email Head of Sales at Company X asking for Y")
- Include WHY the action is needed in the description
- Mix strategic (long-term) and tactical (immediate) actions

Respond with ONLY a JSON array (no markdown, no explanations):

[
  {{"description": "Specific action + rationale", "priority": "HIGH" | "MEDIUM" | "LOW", "effort": 1}}
]

effort is an integer from 1 (trivial) to 5 (major project)."""


# ---------------------------------------------------------------------------
# PROMPT 3: Lead extraction (LEAD_GENERATION jobs only)
# ---------------------------------------------------------------------------

LEAD_EXTRACTION_PROMPT = """Based on the following research findings, identify potential business leads: companies or organizations that would be relevant targets.

Research Goal: {prompt}

Research Summary:
{summary}

Key Insights:
{insight_lines}

Extract details for up to {max_leads} high-quality leads. Focus on specific companies, their website and likely decision makers.
Use null for anything the research does not state.

Respond with ONLY a JSON array (no markdown, no explanations):

[
  {{
    "name": "Contact name or 'General Inquiry'",
    "company": "Company name",
    "email": "Email if found or null",
    "phone": "Phone if found or null",
    "website": "Website URL",
    "industry": "Industry segment",
    "companySize": "Employee count or range, e.g. '10-50', '200+'",
    "location": "City/Country",
    "painPoints": ["pain point 1", "pain point 2"],
    "personalization": "Observed facts useful for outreach: tools they use, hiring, funding, expansion"
  }}
]"""


def format_insight_lines(insights) -> str:
    return "\n".join(f"- {i.title}: {i.body}" for i in insights) or "- (none)"
