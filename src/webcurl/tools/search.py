"""
Google Custom Search 客户端

google_search 与 multi_search 共用。需要 APIKEY_GOOGLE_SEARCH / CX_GOOGLE_SEARCH。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import Settings, settings as default_settings
from ..core.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "https://www.googleapis.com/customsearch/v1"


@dataclass(frozen=True)
class SearchResult:
    title: str
    link: str
    snippet: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "link": self.link, "snippet": self.snippet}


def build_search_params(
    query: str,
    *,
    num: int | None = None,
    start: int | None = None,
    language: str | None = None,
    region: str | None = None,
    site: str | None = None,
    date_restrict: str | None = None,
) -> dict[str, Any]:
    """把工具参数映射为 Custom Search 查询参数（不含 key / cx）。"""
    if not query or not str(query).strip():
        raise ValidationError("'query' must be a non-empty string")
    if num is not None and not 1 <= num <= 10:
        raise ValidationError(f"'num' must be between 1 and 10, got {num}")
    if start is not None and start < 1:
        raise ValidationError(f"'start' must be >= 1, got {start}")

    params: dict[str, Any] = {"q": query}
    if num is not None:
        params["num"] = num
    if start is not None:
        params["start"] = start
    if language:
        params["lr"] = f"lang_{language}"
    if region:
        params["cr"] = f"country{region}"
    if site:
        params["siteSearch"] = site
    if date_restrict:
        params["dateRestrict"] = date_restrict
    return params


class GoogleSearchClient:
    """Custom Search JSON API 的薄封装"""

    def __init__(
        self,
        api_key: str | None = None,
        cx: str | None = None,
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        s = settings or default_settings
        self.api_key = s.apikey_google_search if api_key is None else api_key
        self.cx = s.cx_google_search if cx is None else cx
        self.timeout = s.search_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.cx)

    def ensure_configured(self) -> None:
        if not self.configured:
            raise UpstreamError(
                "Google Search is not configured: set APIKEY_GOOGLE_SEARCH and CX_GOOGLE_SEARCH"
            )

    async def search(self, query: str, **options: Any) -> list[SearchResult]:
        """执行一次搜索，返回 [SearchResult]。非 2xx / 网络错误抛 UpstreamError。"""
        self.ensure_configured()
        params = build_search_params(query, **options)
        params.update({"key": self.api_key, "cx": self.cx})

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.get(SEARCH_ENDPOINT, params=params)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPStatusError as e:
                detail = e.response.text[:200]
                logger.warning(f"[Search] Query {query!r} failed: HTTP {e.response.status_code}")
                raise UpstreamError(
                    f"Search request failed with HTTP {e.response.status_code}: {detail}"
                ) from e
            except httpx.HTTPError as e:
                logger.warning(f"[Search] Query {query!r} failed: {e}")
                raise UpstreamError(f"Search request failed: {type(e).__name__}: {e}") from e
            except ValueError as e:
                raise UpstreamError(f"Search response is not valid JSON: {e}") from e

        return [
            SearchResult(
                title=item.get("title", ""),
                link=item.get("link", ""),
                snippet=item.get("snippet", ""),
            )
            for item in data.get("items", [])
        ]
