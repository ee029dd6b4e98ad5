from __future__ import annotations

import re
from urllib.parse import parse_qs, quote_plus, urljoin, urlparse

from bs4 import BeautifulSoup


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def collapse_whitespace(text: str, max_length: int | None = None) -> str:
    """Collapse whitespace runs and optionally hard-truncate."""
    text = re.sub(r"\s+", " ", text).strip()
    if max_length is not None and len(text) > max_length:
        text = text[:max_length]
    return text


def html_to_text(html: str, max_length: int | None = None) -> str:
    """Strip script/style blocks and all markup, keeping the visible text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return collapse_whitespace(soup.get_text(" "), max_length)


def unwrap_redirect_url(href: str, base_url: str = "https://duckduckgo.com/") -> str:
    """Resolve DuckDuckGo `/l/?uddg=` redirect links to the target URL."""
    if not href:
        return ""
    absolute = urljoin(base_url, href)
    parsed = urlparse(absolute)
    target = parse_qs(parsed.query).get("uddg")
    if target:
        return target[0]
    return absolute if is_valid_url(absolute) else ""


def search_page_url(query: str) -> str:
    """Generic search-engine URL for a query, used by fallback results."""
    return f"https://www.google.com/search?q={quote_plus(query)}"


def extract_domain(url: str) -> str:
    """Extract domain from URL for display."""
    try:
        return urlparse(url).netloc
    except Exception:
        return url
