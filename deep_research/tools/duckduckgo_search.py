from __future__ import annotations

import httpx
from bs4 import BeautifulSoup

from deep_research.config import settings
from deep_research.models.research import SearchResult
from deep_research.tools.web_utils import collapse_whitespace, unwrap_redirect_url

SEARCH_ENDPOINTS = {
    "duckduckgo": "https://duckduckgo.com/html/",
    "duckduckgo_html": "https://html.duckduckgo.com/html/",
}


def endpoint_for(source: str) -> str:
    try:
        return SEARCH_ENDPOINTS[source.lower().strip()]
    except KeyError:
        raise ValueError(f"Unsupported search source: {source}") from None


def parse_results(html: str, max_scanned: int | None = None) -> list[SearchResult]:
    """Parse the DuckDuckGo HTML results page.

    Title anchors carry class `result__a`; the snippet and display URL sit in
    the same result block under `result__snippet` and `result__url`.
    """
    limit = settings.search_max_scanned_results if max_scanned is None else max_scanned
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResult] = []

    for anchor in soup.select("a.result__a")[:limit]:
        title = collapse_whitespace(anchor.get_text(" "))
        if not title:
            continue

        block = anchor.find_parent(class_="result")
        url = unwrap_redirect_url(anchor.get("href", ""))
        snippet = ""
        if block is not None:
            snippet_el = block.select_one(".result__snippet")
            if snippet_el is not None:
                snippet = collapse_whitespace(snippet_el.get_text(" "))
            if not url:
                url_el = block.select_one("a.result__url")
                if url_el is not None:
                    url = unwrap_redirect_url(url_el.get("href", ""))

        results.append(SearchResult(title=title, url=url, snippet=snippet))

    return results


async def search(
    query: str,
    *,
    source: str = "duckduckgo",
    timeout: float | None = None,
    max_scanned: int | None = None,
) -> list[SearchResult]:
    """Execute one HTML search request. Raises on transport/HTTP errors."""
    endpoint = endpoint_for(source)
    async with httpx.AsyncClient(
        timeout=settings.search_timeout_seconds if timeout is None else timeout,
        follow_redirects=True,
    ) as client:
        response = await client.get(
            endpoint,
            params={"q": query},
            headers={"User-Agent": settings.search_user_agent},
        )
        response.raise_for_status()
        html = response.text

    return parse_results(html, max_scanned)
