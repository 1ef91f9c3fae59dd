"""Async Serper.dev (Google search) client."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

SERPER_BASE_URL = "https://google.serper.dev/search"


async def search_serper(
    query: str,
    api_key: str,
    num_results: int = 10,
    timeout: int = 20,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Execute a Google search via Serper.

    Returns a normalised dict with 'organic_results': list of
    {link, title, snippet, position}. Returns a dict with an 'error' key on
    failure.
    """
    headers = {"X-API-KEY": api_key, "Content-Type": "application/json"}
    payload = {"q": query, "num": num_results}

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(SERPER_BASE_URL, headers=headers, json=payload)
            response.raise_for_status()
            data = response.json()
    except httpx.TimeoutException:
        logger.warning("Serper timeout for query: %s", query[:80])
        return {"error": "timeout"}
    except httpx.HTTPStatusError as e:
        logger.warning("Serper HTTP %d for query: %s", e.response.status_code, query[:80])
        return {"error": f"http_{e.response.status_code}"}
    except Exception as e:
        logger.warning("Serper error for query '%s': %s", query[:80], e)
        return {"error": str(e)}

    organic_results = []
    for i, item in enumerate(data.get("organic") or []):
        link = item.get("link", "")
        if not link:
            continue
        organic_results.append({
            "link": link,
            "title": item.get("title", ""),
            "snippet": item.get("snippet", ""),
            "position": item.get("position", i + 1),
        })
    return {"organic_results": organic_results}
