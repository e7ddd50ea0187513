"""Web search through Google Custom Search, with result caching."""

import logging
from typing import Any, Optional
from urllib.parse import quote_plus

import httpx
from pydantic import BaseModel, Field

from qualia_chat.cache import BoundedCache
from qualia_chat.errors import ProviderUnavailable

logger = logging.getLogger(__name__)

RESPONSE_FIELDS = "items(title,link,snippet,htmlTitle,htmlSnippet,formattedUrl,pagemap),queries,searchInformation"
USER_AGENT = "Qualia-AI-Assistant (gzip)"

SearchKey = tuple[str, int, int, str, str]


class SearchResult(BaseModel):
    title: str
    link: str
    snippet: str = ""
    html_title: Optional[str] = None
    html_snippet: Optional[str] = None
    formatted_url: Optional[str] = None
    pagemap: Optional[dict[str, Any]] = None


class SearchResponse(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)
    has_next_page: bool = False
    total_results: int = 0
    search_time: float = 0.0
    search_terms: str = ""
    from_cache: bool = False
    fallback: bool = False


def fallback_response(query: str) -> SearchResponse:
    """Placeholder returned when search credentials are not configured."""
    return SearchResponse(
        results=[
            SearchResult(
                title=f"Search results for: {query}",
                link=f"https://www.google.com/search?q={quote_plus(query)}",
                snippet=(
                    "This is a fallback response. Configure a search API key and engine id "
                    "to enable real search functionality."
                ),
            )
        ],
        search_terms=query,
        fallback=True,
    )


def parse_search_response(data: dict[str, Any], query: str) -> SearchResponse:
    results = [
        SearchResult(
            title=item.get("title", ""),
            link=item.get("link", ""),
            snippet=item.get("snippet") or "",
            html_title=item.get("htmlTitle"),
            html_snippet=item.get("htmlSnippet"),
            formatted_url=item.get("formattedUrl"),
            pagemap=item.get("pagemap"),
        )
        for item in data.get("items") or []
    ]
    info = data.get("searchInformation") or {}
    queries = data.get("queries") or {}
    request = (queries.get("request") or [{}])[0]
    try:
        total_results = int(info.get("totalResults") or 0)
    except (TypeError, ValueError):
        total_results = 0
    return SearchResponse(
        results=results,
        has_next_page=bool(queries.get("nextPage")),
        total_results=total_results,
        search_time=float(info.get("searchTime") or 0.0),
        search_terms=request.get("searchTerms") or query,
    )


class WebSearchClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        cache: BoundedCache[SearchKey, SearchResponse],
        api_key: Optional[str],
        engine_id: Optional[str],
        url: str = "https://www.googleapis.com/customsearch/v1",
    ):
        self.http = http
        self.cache = cache
        self.api_key = api_key
        self.engine_id = engine_id
        self.url = url

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.engine_id)

    async def search(
        self, query: str, num: int = 10, start: int = 1, lr: str = "", safe: str = "off"
    ) -> SearchResponse:
        query = query.strip()
        if not query:
            raise ValueError("Search query is required")
        if not self.configured:
            logger.warning("Search credentials missing, returning fallback results")
            return fallback_response(query)

        key: SearchKey = (query.lower(), num, start, lr, safe)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.model_copy(update={"from_cache": True})

        params: dict[str, Any] = {
            "key": self.api_key,
            "cx": self.engine_id,
            "q": query,
            "num": num,
            "start": start,
            "safe": safe,
            "fields": RESPONSE_FIELDS,
        }
        if lr:
            params["lr"] = lr

        try:
            response = await self.http.get(
                self.url, params=params, headers={"Accept-Encoding": "gzip", "User-Agent": USER_AGENT}
            )
        except httpx.TransportError as e:
            logger.warning(f"Search request failed: {e}")
            raise ProviderUnavailable("Search request failed", offline=isinstance(e, httpx.ConnectError)) from e

        if response.is_error:
            logger.error(f"Search failed with {response.status_code}: {response.text}")
            raise ProviderUnavailable(
                f"Search failed with status {response.status_code}",
                user_message="An error occurred while searching. Please try again.",
            )

        result = parse_search_response(response.json(), query)
        self.cache.put(key, result)
        return result
