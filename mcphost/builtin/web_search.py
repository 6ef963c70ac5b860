"""
Web Search Tool
===============

DuckDuckGo Instant Answer search exposed as the web_search builtin.
"""

import logging
import re
import time
import urllib.parse
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..connection.types import ToolResult
from .types import BuiltinToolDefinition, ParameterType, ToolCategory, ToolParameter

logger = logging.getLogger(__name__)

API_URL = "https://api.duckduckgo.com/"
SEARCH_URL = "https://duckduckgo.com/"
MAX_QUERY_LENGTH = 200

BLOCKED_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (r"<script", r"javascript:", r"onerror=", r"onload=", r"data:text/html")
]

TAG_RE = re.compile(r"<[^>]+>")
CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


class WebSearchError(Exception):
    """Search could not be performed; the message is user-presentable."""
    pass


@dataclass
class SearchConfig:
    """Web search configuration."""
    user_agent: str = "mcphost/1.0 (AI tool host)"
    max_requests_per_minute: int = 10
    timeout: float = 10.0


@dataclass
class WebSearchResult:
    title: str
    url: str
    snippet: str
    source: str = "DuckDuckGo"


class WebSearchService:
    """
    Rate-limited DuckDuckGo search client.

    Args:
        config: Search configuration (uses defaults if None)
        transport: Optional httpx transport, for tests or proxies
    """

    def __init__(self, config: Optional[SearchConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or SearchConfig()
        self._transport = transport
        self._request_times: List[float] = []

    @staticmethod
    def sanitize_query(query: str) -> str:
        """Strip HTML tags and control characters, then trim."""
        return CONTROL_RE.sub("", TAG_RE.sub("", query)).strip()

    def _check_rate_limit(self) -> None:
        now = time.monotonic()
        self._request_times = [t for t in self._request_times if now - t < 60]
        if len(self._request_times) >= self.config.max_requests_per_minute:
            raise WebSearchError("Rate limit exceeded. Please wait before searching again.")

    async def search(self, query: str, max_results: int = 5) -> List[WebSearchResult]:
        """
        Search the web.

        Args:
            query: Search query (sanitized before use)
            max_results: Maximum number of results

        Returns:
            Up to max_results results; a search-page link when DuckDuckGo
            has no instant answer

        Raises:
            WebSearchError: On invalid input, rate limiting or HTTP failure
        """
        if not query or not query.strip():
            raise WebSearchError("Search query cannot be empty")
        if len(query) > MAX_QUERY_LENGTH:
            raise WebSearchError(f"Search query is too long (max {MAX_QUERY_LENGTH} characters)")

        sanitized = self.sanitize_query(query)
        self._check_rate_limit()
        if not sanitized or any(p.search(sanitized) for p in BLOCKED_PATTERNS):
            raise WebSearchError("Search query contains invalid characters")

        logger.info(f"Performing web search: {sanitized}")
        params = {"q": sanitized, "format": "json", "no_html": "1", "skip_disambig": "1"}
        headers = {"User-Agent": self.config.user_agent, "Accept": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                response = await client.get(API_URL, params=params, headers=headers)
            if response.status_code < 200 or response.status_code >= 300:
                raise WebSearchError(f"HTTP error: {response.status_code}")
            data = response.json()
        except httpx.RequestError as e:
            raise WebSearchError(f"Network error: {e}") from e
        except ValueError as e:
            raise WebSearchError("Invalid response from search service") from e

        self._request_times.append(time.monotonic())
        results = self._parse(data if isinstance(data, dict) else {}, max_results)

        if not results:
            results.append(WebSearchResult(
                title=f"Search: {sanitized}",
                url=f"{SEARCH_URL}?{urllib.parse.urlencode({'q': sanitized})}",
                snippet="No instant answer available. Click to search DuckDuckGo.",
            ))

        logger.info(f"Web search completed: {len(results)} results")
        return results[:max_results]

    @staticmethod
    def _parse(data: Dict[str, Any], max_results: int) -> List[WebSearchResult]:
        results = []
        abstract = data.get("Abstract")
        if abstract:
            results.append(WebSearchResult(
                title=data.get("Heading") or "Result",
                url=data.get("AbstractURL") or "",
                snippet=abstract,
            ))

        for topic in data.get("RelatedTopics") or []:
            if len(results) >= max_results:
                break
            if not isinstance(topic, dict):
                continue
            text, url = topic.get("Text"), topic.get("FirstURL")
            if text and url:
                results.append(WebSearchResult(
                    title=text.split(" - ")[0],
                    url=url,
                    snippet=text,
                ))
        return results


def format_results(query: str, results: List[WebSearchResult]) -> str:
    """Render results as markdown for the calling agent."""
    lines = [f"## Web Search Results for: {query}", ""]
    for index, result in enumerate(results, start=1):
        lines.append(f"### {index}. {result.title}")
        if result.url:
            lines.append(f"**URL:** {result.url}")
        lines.append(result.snippet)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


async def run_web_search(arguments: Dict[str, Any], service: Optional[WebSearchService]) -> ToolResult:
    """
    web_search handler.

    Args:
        arguments: {"query" or "q": str, "max_results" or "maxResults": int}
        service: Search service to use
    """
    if service is None:
        return ToolResult.failure("Error: Web search service is not available")

    query = arguments.get("query") or arguments.get("q")
    if not isinstance(query, str) or not query.strip():
        return ToolResult.failure("Error: Missing required 'query' argument")

    max_results = arguments.get("max_results", arguments.get("maxResults", 5))
    if not isinstance(max_results, int) or isinstance(max_results, bool):
        max_results = 5
    max_results = max(1, min(max_results, 10))

    try:
        results = await service.search(query, max_results=max_results)
    except WebSearchError as e:
        logger.warning(f"Web search failed: {e}")
        return ToolResult.failure(f"Search failed: {e}", e)

    return ToolResult.success(format_results(query, results))


WEB_SEARCH_TOOL = BuiltinToolDefinition(
    name="web_search",
    display_name="Web Search",
    description=(
        "Search the web for real-time information. Use for current events, factual data, "
        "technical docs, or to verify claims. Returns snippets and URLs from top results."
    ),
    category=ToolCategory.WEB,
    parameters=[
        ToolParameter(
            name="query",
            type=ParameterType.STRING,
            description="Specific search query with relevant keywords, dates, or context",
        ),
        ToolParameter(
            name="max_results",
            type=ParameterType.INTEGER,
            description="Number of results to return (1-10). Default: 5",
            required=False,
            default=5,
            minimum=1,
            maximum=10,
        ),
    ],
)
