from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

import httpx
from loguru import logger

from deep_research.config import settings
from deep_research.models.research import SearchResult
from deep_research.tools import duckduckgo_search
from deep_research.tools.web_utils import html_to_text, is_valid_url, search_page_url


def deduplicate_results(results: Iterable[SearchResult]) -> list[SearchResult]:
    """Drop repeated titles (case-insensitive, trimmed); first occurrence wins."""
    seen: set[str] = set()
    unique: list[SearchResult] = []
    for result in results:
        key = result.title.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique


class SearcherAgent:
    """Fetches web search results and page content.

    Network failures never propagate: `search` degrades to a single synthetic
    result and `fetch_page_content` to None.
    """

    name = "searcher"
    default_sources: tuple[str, ...] = ("duckduckgo", "duckduckgo_html")

    def __init__(
        self,
        *,
        timeout: float | None = None,
        page_timeout: float | None = None,
        page_max_chars: int | None = None,
    ):
        self.timeout = settings.search_timeout_seconds if timeout is None else timeout
        self.page_timeout = (
            settings.page_fetch_timeout_seconds if page_timeout is None else page_timeout
        )
        self.page_max_chars = (
            settings.page_content_max_chars if page_max_chars is None else page_max_chars
        )

    async def search(
        self, query: str, max_results: int = 10, *, source: str = "duckduckgo"
    ) -> list[SearchResult]:
        logger.info(f"Searching: {query}")
        try:
            results = await duckduckgo_search.search(query, source=source, timeout=self.timeout)
        except Exception as e:
            logger.warning(f"Search failed for '{query}': {e}")
            return self.fallback_results(query)

        return results[: max(max_results, 0)]

    @staticmethod
    def fallback_results(query: str) -> list[SearchResult]:
        """Synthetic placeholder that keeps the pipeline moving."""
        return [
            SearchResult(
                title=f"{query} - related information",
                url=search_page_url(query),
                snippet=f"Search results about {query}; open the link for details.",
            )
        ]

    async def search_multiple_sources(
        self,
        query: str,
        sources: Sequence[str] | None = None,
        max_results: int = 5,
    ) -> list[SearchResult]:
        """Search every source concurrently, then flatten and deduplicate."""
        sources = list(sources or self.default_sources)
        batches = await asyncio.gather(
            *(self.search(query, max_results, source=source) for source in sources),
            return_exceptions=True,
        )

        merged: list[SearchResult] = []
        for source, batch in zip(sources, batches):
            if isinstance(batch, BaseException):
                logger.warning(f"Search source '{source}' failed for '{query}': {batch}")
                continue
            merged.extend(r for r in batch if r.title)
        return deduplicate_results(merged)

    async def fetch_page_content(self, url: str) -> str | None:
        """Fetch a page and return its visible text, or None on any failure."""
        if not is_valid_url(url):
            return None

        try:
            async with httpx.AsyncClient(
                timeout=self.page_timeout,
                follow_redirects=True,
                max_redirects=settings.page_fetch_max_redirects,
            ) as client:
                response = await client.get(
                    url, headers={"User-Agent": settings.search_user_agent}
                )
                response.raise_for_status()
                html = response.text
        except Exception as e:
            logger.warning(f"Failed to fetch page content from {url}: {e}")
            return None

        return html_to_text(html, self.page_max_chars)
