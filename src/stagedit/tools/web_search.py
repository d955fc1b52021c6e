"""Web search tool backed by the DuckDuckGo instant answer API."""

from typing import Optional

import httpx

from stagedit.cache import TTLCache
from stagedit.tools.base import Tool, ToolContext, ToolResult

SEARCH_URL = "https://api.duckduckgo.com/"
MAX_RESULTS = 8


def _flatten_topics(topics: list) -> list[dict]:
    """RelatedTopics mixes plain topics and named groups of topics."""
    flat = []
    for topic in topics or []:
        if "Topics" in topic:
            flat.extend(_flatten_topics(topic["Topics"]))
        elif topic.get("FirstURL"):
            flat.append({"title": topic.get("Text", ""), "url": topic["FirstURL"]})
    return flat


class WebSearchTool(Tool):
    """Search the web and return a short abstract plus related links."""

    name = "web_search"
    description = "Search the web for information and return a summary with links."
    category = "search"

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.cache = cache if cache is not None else TTLCache()
        self._http_client = http_client
        self.timeout = timeout

    @property
    def client(self) -> httpx.Client:
        """Lazy-load the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self.timeout)
        return self._http_client

    def execute(self, context: ToolContext, query: str) -> ToolResult:
        query = (query or "").strip()
        if not query:
            return ToolResult.fail("Query must not be empty")

        key = ("web_search", query.lower())
        cached = self.cache.get(key)
        if cached is not None:
            return ToolResult.ok(cached)

        try:
            response = self.client.get(
                SEARCH_URL,
                params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            return ToolResult.fail(f"Web search failed with status {e.response.status_code}")
        except httpx.HTTPError as e:
            return ToolResult.fail(f"Web search failed: {e}")
        except ValueError:
            return ToolResult.fail("Web search returned an unreadable response")

        payload = {
            "query": query,
            "heading": data.get("Heading", ""),
            "abstract": data.get("AbstractText", ""),
            "source": data.get("AbstractURL", ""),
            "results": _flatten_topics(data.get("RelatedTopics", []))[:MAX_RESULTS],
        }
        self.cache.set(key, payload)
        return ToolResult.ok(payload)

    def get_schema(self) -> dict:
        """Return JSON schema for LLM function calling."""
        return {
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query"
                }
            },
            "required": ["query"]
        }
