"""
Web access for the `web_search` tool: SerpAPI Google search and plain page fetch.
"""
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote_plus, urlparse

import httpx
from loguru import logger

from lesson_tutor.exceptions import ToolExecutionError

SERPAPI_URL = "https://serpapi.com/search"
USER_AGENT = "Mozilla/5.0 (compatible; WebBot/1.0)"
SEARCH_TIMEOUT = 15.0
FETCH_TIMEOUT = 10.0
MAX_PAGE_CHARS = 4000
MAX_SEARCH_RESULTS = 10

_DROP_BLOCKS = re.compile(r"<(script|style|noscript)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAGS = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")


def google_fallback(query: str) -> str:
    return f"https://www.google.com/search?q={quote_plus(query)}"


def extract_text_from_html(html: str) -> str:
    text = _DROP_BLOCKS.sub("", html)
    text = _TAGS.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def format_search_results(data: Dict[str, Any], query: str, num_results: int) -> str:
    results: List[str] = []

    kg = data.get("knowledge_graph") or {}
    if kg.get("title") and kg.get("description"):
        results.append(f"**{kg['title']}**\n{kg['description']}")
        source = (kg.get("source") or {}).get("link")
        if source:
            results.append(f"Source: {source}")

    box = data.get("answer_box")
    if box:
        if box.get("answer"):
            results.append(f"**Answer**: {box['answer']}")
        elif box.get("snippet"):
            results.append(f"**{box.get('title') or 'Answer'}**: {box['snippet']}")
        if box.get("link"):
            results.append(f"Source: {box['link']}")

    organic = data.get("organic_results") or []
    if organic:
        results.append("\n**Search Results:**")
        for i, item in enumerate(organic[:num_results], start=1):
            if item.get("title") and item.get("link"):
                lines = [f"{i}. **{item['title']}**"]
                if item.get("snippet"):
                    lines.append(f"   {item['snippet']}")
                lines.append(f"   Link: {item['link']}")
                results.append("\n".join(lines))

    local = data.get("local_results") or []
    if local:
        results.append("\n**Local Results:**")
        for i, item in enumerate(local[:3], start=1):
            if item.get("title"):
                lines = [f"{i}. **{item['title']}**"]
                if item.get("address"):
                    lines.append(f"   Address: {item['address']}")
                if item.get("phone"):
                    lines.append(f"   Phone: {item['phone']}")
                if item.get("rating"):
                    lines.append(f"   Rating: {item['rating']} stars")
                results.append("\n".join(lines))

    if not results:
        return f'No results found for "{query}". Try: {google_fallback(query)}'
    return f'🔍 Search results for "{query}":\n\n' + "\n\n".join(results)


async def perform_web_search(
    query: str,
    num_results: int = 5,
    api_key: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Search Google through SerpAPI. Failures degrade to a fallback link, never raise."""
    if not api_key:
        return (
            "🔍 Web search requires SerpAPI key. Get one at https://serpapi.com/\n"
            f"Fallback: {google_fallback(query)}"
        )

    num_results = max(1, min(int(num_results), MAX_SEARCH_RESULTS))
    params = {"engine": "google", "q": query, "api_key": api_key, "num": str(num_results)}
    headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    try:
        async with _http_session(client, SEARCH_TIMEOUT) as http:
            response = await http.get(SERPAPI_URL, params=params, headers=headers)
            response.raise_for_status()
            data = response.json()
        if data.get("error"):
            raise ToolExecutionError(f"SerpAPI error: {data['error']}")
        return format_search_results(data, query, num_results)
    except httpx.TimeoutException:
        logger.warning(f"Web search timed out for {query!r}")
        return f"Search failed: timeout. Try: {google_fallback(query)}"
    except (httpx.HTTPError, ValueError, ToolExecutionError) as e:
        logger.warning(f"Web search failed for {query!r}: {e}")
        return f"Search failed: API error. Try: {google_fallback(query)}"


async def fetch_web_content(url: str, client: Optional[httpx.AsyncClient] = None) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ToolExecutionError(f"Failed to fetch: invalid URL {url!r}")

    try:
        async with _http_session(client, FETCH_TIMEOUT) as http:
            response = await http.get(url, headers={"User-Agent": USER_AGENT}, follow_redirects=True)
            response.raise_for_status()
            content_type = response.headers.get("content-type", "")
            if "text/" not in content_type:
                raise ToolExecutionError("Failed to fetch: Unsupported content type")
            html = response.text
    except httpx.HTTPError as e:
        raise ToolExecutionError(f"Failed to fetch: {e}") from e

    text = extract_text_from_html(html)
    if not text:
        return f"No readable content found at {url}"
    suffix = "..." if len(text) > MAX_PAGE_CHARS else ""
    return f"Content from {url}:\n\n{text[:MAX_PAGE_CHARS]}{suffix}"


@asynccontextmanager
async def _http_session(client: Optional[httpx.AsyncClient], timeout: float) -> AsyncIterator[httpx.AsyncClient]:
    """Use the injected client as-is, or open a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned
