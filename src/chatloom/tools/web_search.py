"""Web search tool using DuckDuckGo."""

import asyncio
import json
import logging
from typing import Any

from ddgs import DDGS

from .. import config
from ..llm.models import ToolCall
from ..sessions.models import ToolInvocationRecord
from .base import BaseTool, SendToolResponse, ToolCallResult

logger = logging.getLogger(__name__)


class WebSearchTool(BaseTool):
    """Searches the web and returns titles, URLs and snippets.

    Hidden design decisions:
    - Search backend (ddgs metasearch, DuckDuckGo by default, run in a worker thread)
    - Result formatting for the model
    """

    def __init__(
        self,
        max_results: int = config.WEB_SEARCH_MAX_RESULTS,
        backend: str = config.DEFAULT_WEB_SEARCH_ENGINE,
        region: str = "wt-wt",
        safesearch: str = "moderate",
        send_tool_response: SendToolResponse | None = None,
    ):
        super().__init__(send_tool_response)
        self._max_results = max_results
        self._backend = backend
        self._region = region
        self._safesearch = safesearch

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return (
            "Search the web for current information. "
            "Use this for recent events, facts you are unsure about, or anything "
            "that needs an up-to-date source."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query"
                }
            },
            "required": ["query"]
        }

    def _search(self, query: str) -> list[dict[str, str]]:
        with DDGS() as ddgs:
            results = list(ddgs.text(
                query,
                region=self._region,
                safesearch=self._safesearch,
                max_results=self._max_results,
                backend=self._backend,
            ))
        return [
            {
                "title": r.get("title", ""),
                "url": r.get("href", r.get("link", "")),
                "snippet": r.get("body", r.get("snippet", "")),
            }
            for r in results
        ]

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        """Execute the search."""
        query = tool_call.arguments.get("query", "")
        if not query:
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content="Error: query parameter is required",
                error=True
            )

        try:
            results = await asyncio.to_thread(self._search, query)
        except Exception as e:
            logger.warning("Web search failed: %s", e)
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content=f"Error executing web search: {e}",
                error=True
            )

        if not results:
            content = f"No results found for query: {query}"
        else:
            content = f"Found {len(results)} results:\n" + json.dumps(results, indent=2)

        self.report(ToolInvocationRecord(
            tool_name=self.name,
            tool_args={"query": query},
            render_args={"results": results},
            response=content,
        ))
        return ToolCallResult(tool_call_id=tool_call.id_, content=content)
