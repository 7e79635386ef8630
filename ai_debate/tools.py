"""Web search tool for evidence-backed debates.

The bridge exposes one tool, ``web_search``, backed by a SearchProvider
(Tavily over httpx in production). Search failures are handed back to the
model as error results; only unparseable arguments abort the Turn.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx

from config.config_loader import SearchConfig
from ai_debate.errors import SearchError, ToolArgumentsError
from ai_debate.models import ToolInvocation
from ai_debate.providers.base import ToolDefinition

logger = logging.getLogger(__name__)

WEB_SEARCH = ToolDefinition(
    name="web_search",
    description=(
        "Search the web for factual evidence, statistics, news, or data to support "
        "your argument. Use specific, factual queries."
    ),
    parameters={
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": (
                    "Search query - be specific and factual, "
                    "e.g. 'remote work productivity statistics 2025'"
                ),
            }
        },
        "required": ["query"],
    },
)


@dataclass(frozen=True)
class SearchHit:
    title: str
    snippet: str
    url: str


@dataclass(frozen=True)
class SearchResponse:
    hits: list[SearchHit] = field(default_factory=list)
    answer: str = ""


@dataclass(frozen=True)
class ToolResult:
    content: str                      # text fed back to the model
    invocation: ToolInvocation
    is_error: bool = False


class SearchProvider(ABC):
    """Abstract search backend."""

    @abstractmethod
    async def search(self, query: str) -> SearchResponse:
        """Run one search.

        Raises:
            SearchError: If the backend is unreachable or answers with an error.
        """
        ...


class TavilySearch(SearchProvider):
    """Tavily search API over httpx."""

    def __init__(self, config: SearchConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client

    async def search(self, query: str) -> SearchResponse:
        if not self._config.api_key:
            raise SearchError(f"{self._config.api_key_env} not set")
        payload = {
            "api_key": self._config.api_key,
            "query": query,
            "search_depth": self._config.search_depth,
            "include_answer": True,
            "max_results": self._config.max_results,
        }
        try:
            if self._client is not None:
                resp = await self._client.post(self._config.base_url, json=payload)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(self._config.base_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise SearchError(f"Search request failed: {exc}") from exc
        except ValueError as exc:
            raise SearchError(f"Search response parse failed: {exc}") from exc

        hits = [
            SearchHit(
                title=str(r.get("title") or ""),
                snippet=str(r.get("content") or "")[: self._config.snippet_chars],
                url=str(r.get("url") or ""),
            )
            for r in data.get("results") or []
        ]
        return SearchResponse(hits=hits, answer=str(data.get("answer") or ""))


def format_results(response: SearchResponse) -> str:
    """Render search results as plain text for model consumption."""
    formatted: list[str] = []
    if response.answer:
        formatted.append(f"Direct Answer: {response.answer}\n")
    for hit in response.hits:
        formatted.append(f"Source: {hit.title}\n{hit.snippet}\nURL: {hit.url}\n")
    if not formatted:
        return "No relevant results found."
    return "\n".join(formatted)


def parse_query(arguments: str) -> str:
    """Extract the ``query`` argument from raw tool-call JSON.

    Raises:
        ToolArgumentsError: If the JSON is invalid or lacks a non-empty query.
    """
    try:
        parsed = json.loads(arguments or "")
    except json.JSONDecodeError as exc:
        raise ToolArgumentsError(f"Tool arguments are not valid JSON: {arguments!r}") from exc
    if not isinstance(parsed, dict):
        raise ToolArgumentsError(f"Tool arguments must be a JSON object, got {type(parsed).__name__}")
    query = parsed.get("query")
    if not isinstance(query, str) or not query.strip():
        raise ToolArgumentsError("Tool arguments are missing a non-empty 'query'")
    return query.strip()


class ToolBridge:
    """Executes tool calls requested by a model, one external call per invocation."""

    def __init__(self, provider: SearchProvider, timeout: float = 20.0) -> None:
        self._provider = provider
        self._timeout = timeout

    def definitions(self) -> tuple[ToolDefinition, ...]:
        return (WEB_SEARCH,)

    async def invoke(self, name: str, arguments: str) -> ToolResult:
        if name != WEB_SEARCH.name:
            message = f"Unknown tool '{name}'. Available tools: {WEB_SEARCH.name}."
            logger.warning("Model requested unknown tool %s", name)
            return ToolResult(message, ToolInvocation(query="", summary=message, is_error=True), is_error=True)

        query = parse_query(arguments)
        logger.info("Web search: %s", query)
        try:
            response = await asyncio.wait_for(self._provider.search(query), self._timeout)
        except TimeoutError:
            message = f"Search timed out after {self._timeout:.0f}s."
            logger.warning("Web search timed out: %s", query)
            return ToolResult(message, ToolInvocation(query=query, summary=message, is_error=True), is_error=True)
        except SearchError as exc:
            message = f"Search failed: {exc}"
            logger.warning("Web search failed for %r: %s", query, exc)
            return ToolResult(message, ToolInvocation(query=query, summary=message, is_error=True), is_error=True)

        text = format_results(response)
        invocation = ToolInvocation(
            query=query,
            summary=text,
            sources=tuple(hit.url for hit in response.hits if hit.url),
        )
        return ToolResult(text, invocation)
