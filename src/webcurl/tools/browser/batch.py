"""
BatchOrchestrator - 批量操作

- batch_navigate: 依次为每个 URL 新开标签页并导航（受标签池容量约束，
  超出容量时按创建顺序淘汰更早的标签页），单个 URL 失败只记录在自己的条目里
- multi_search: 并发发出全部搜索请求再统一等待，单个查询失败写入该查询自己的结果槽
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ...core.errors import ValidationError, WebCurlError
from ..search import GoogleSearchClient
from .tabs import TabPool

logger = logging.getLogger(__name__)

NavigateFn = Callable[[Any, str], Awaitable[Any]]


@dataclass
class BatchItem:
    """批量操作中的一项及其独立结果。"""

    target: str
    ok: bool
    payload: Any = None
    error: str | None = None


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, WebCurlError):
        return exc.describe()
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__


def _require_list(name: str, values: Any) -> list[str]:
    if not isinstance(values, (list, tuple)) or not values:
        raise ValidationError(f"'{name}' must be a non-empty array")
    for v in values:
        if not isinstance(v, str) or not v.strip():
            raise ValidationError(f"'{name}' entries must be non-empty strings, got {v!r}")
    return list(values)


async def batch_navigate(pool: TabPool, navigate: NavigateFn, urls: list[str]) -> list[dict[str, Any]]:
    """顺序导航，返回每个 URL 的状态：

    成功 ``{"url", "status": "success", "tabIndex"}``，
    失败 ``{"url", "status": "error", "error"}``。
    """
    urls = _require_list("urls", urls)
    items: list[BatchItem] = []

    for url in urls:
        try:
            tab, _ = await pool.create_tab()
            await navigate(tab.page, url)
            # 后续淘汰会移动下标，这里取导航完成时的实际位置
            index = pool.index_of(tab.page)
            if index is None:
                raise WebCurlError(f"Tab for {url} was closed during navigation")
            items.append(BatchItem(target=url, ok=True, payload=index))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info(f"[Batch] Navigation to {url} failed: {e}")
            items.append(BatchItem(target=url, ok=False, error=_error_text(e)))

    return [
        {"url": it.target, "status": "success", "tabIndex": it.payload}
        if it.ok
        else {"url": it.target, "status": "error", "error": it.error}
        for it in items
    ]


async def multi_search(
    client: GoogleSearchClient, queries: list[str], **options: Any
) -> list[dict[str, Any]]:
    """并发执行多个搜索，返回 ``[{"query", "results": [...]}]``，失败的槽额外带 ``error``。"""
    queries = _require_list("queries", queries)
    # 缺少凭据时一个请求都发不出去，整体失败
    client.ensure_configured()

    outcomes = await asyncio.gather(
        *(client.search(q, **options) for q in queries),
        return_exceptions=True,
    )

    items: list[BatchItem] = []
    for query, outcome in zip(queries, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            logger.info(f"[Batch] Search {query!r} failed: {outcome}")
            items.append(BatchItem(target=query, ok=False, error=_error_text(outcome)))
        else:
            items.append(BatchItem(target=query, ok=True, payload=[r.to_dict() for r in outcome]))

    results = []
    for it in items:
        entry: dict[str, Any] = {"query": it.target, "results": it.payload if it.ok else []}
        if not it.ok:
            entry["error"] = it.error
        results.append(entry)
    return results
