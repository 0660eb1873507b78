"""
TabPool - 标签页池

按创建顺序维护活跃标签页列表，容量固定为 MAX_TABS。
超出容量时关闭**最早创建**的标签页（位置 0），不是最近最少使用的那个。
对外文案里叫 "LRU rotation"，但实际行为是按创建顺序 FIFO 淘汰，保持不变。
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ...core.errors import ValidationError
from .events import EventRecorder

logger = logging.getLogger(__name__)

MAX_TABS = 10


@dataclass
class Tab:
    page: Any
    created_at: float = field(default_factory=time.time)

    @property
    def url(self) -> str:
        try:
            return self.page.url
        except Exception:
            return ""


class TabPool:
    """有界标签页池（FIFO 淘汰 + 活跃指针）。"""

    def __init__(
        self,
        context: Any,
        recorder: EventRecorder,
        *,
        max_tabs: int = MAX_TABS,
        viewport: dict[str, int] | None = None,
        user_agent: str | None = None,
    ):
        self._context = context
        self._recorder = recorder
        self.max_tabs = max_tabs
        self.viewport = viewport
        self.user_agent = user_agent
        self._tabs: list[Tab] = []
        self.active_index = 0

    # ── 属性 ────────────────────────────────────────

    @property
    def tabs(self) -> list[Tab]:
        return list(self._tabs)

    def __len__(self) -> int:
        return len(self._tabs)

    def index_of(self, page: Any) -> int | None:
        for i, tab in enumerate(self._tabs):
            if tab.page is page:
                return i
        return None

    # ── 创建 / 淘汰 ─────────────────────────────────

    async def create_tab(self) -> tuple[Tab, int]:
        """打开新标签页并追加到列表末尾，超出容量时淘汰位置 0 的标签页。

        Returns:
            (tab, index) - index 为淘汰之后新标签页所在的位置
        """
        page = await self._context.new_page()
        await self._setup_page(page)
        tab = Tab(page=page)
        self._tabs.append(tab)

        while len(self._tabs) > self.max_tabs:
            oldest = self._tabs[0]
            logger.info(f"[Tabs] Pool full ({self.max_tabs}), evicting oldest tab: {oldest.url}")
            await self._close_page(oldest.page)

        return tab, len(self._tabs) - 1

    async def adopt(self, page: Any) -> int | None:
        """把已存在的页面纳入池中（持久化 context 启动时自带的页面）。池满时不纳入。"""
        if self.index_of(page) is not None:
            return self.index_of(page)
        if len(self._tabs) >= self.max_tabs:
            return None
        await self._setup_page(page)
        self._tabs.append(Tab(page=page))
        return len(self._tabs) - 1

    async def _setup_page(self, page: Any) -> None:
        if self.viewport:
            await page.set_viewport_size(self.viewport)
        if self.user_agent:
            await page.set_extra_http_headers({"User-Agent": self.user_agent})
        self._recorder.attach(page)
        page.on("close", lambda _page: self._discard(page))
        page.on("crash", lambda _page: self._on_crash(page))

    def _on_crash(self, page: Any) -> None:
        logger.warning(f"[Tabs] Page crashed: {getattr(page, 'url', '')}")
        self._discard(page)
        try:
            asyncio.get_running_loop().create_task(self._close_page(page))
        except RuntimeError:
            pass

    async def _close_page(self, page: Any) -> None:
        try:
            await page.close()
        except Exception as e:
            logger.debug(f"[Tabs] Error closing page: {e}")
        # close 事件未必在 close() 返回前触发，这里再移除一次（幂等）
        self._discard(page)

    def _discard(self, page: Any) -> None:
        """移除标签页及其事件缓冲，修正活跃指针。"""
        self._recorder.forget(page)
        idx = self.index_of(page)
        if idx is None:
            return
        del self._tabs[idx]

        if idx < self.active_index:
            self.active_index -= 1
        elif idx == self.active_index or self.active_index >= len(self._tabs):
            self.active_index = max(0, len(self._tabs) - 1)

    # ── 查询 / 选择 ─────────────────────────────────

    def _validate_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool):
            raise ValidationError(f"Tab index must be an integer, got {index!r}")
        if index < 0 or index >= len(self._tabs):
            if not self._tabs:
                raise ValidationError(f"Invalid tab index {index}: no open tabs")
            raise ValidationError(
                f"Invalid tab index {index}. Valid range: 0-{len(self._tabs) - 1}"
            )

    async def get_active(self, index: int | None = None) -> Tab:
        """返回指定下标的标签页，未指定时返回活跃标签页（池为空时自动创建）。"""
        if index is not None:
            self._validate_index(index)
            return self._tabs[index]

        if not self._tabs:
            _, self.active_index = await self.create_tab()
        if self.active_index >= len(self._tabs):
            self.active_index = len(self._tabs) - 1
        return self._tabs[self.active_index]

    async def list_tabs(self) -> list[dict[str, Any]]:
        result = []
        for i, tab in enumerate(self._tabs):
            try:
                title = await tab.page.title()
            except Exception:
                title = ""
            result.append({
                "index": i,
                "active": i == self.active_index,
                "url": tab.url,
                "title": title,
            })
        return result

    async def new_tab(self) -> int:
        _, index = await self.create_tab()
        self.active_index = index
        return index

    async def select_tab(self, index: int) -> Tab:
        self._validate_index(index)
        self.active_index = index
        tab = self._tabs[index]
        try:
            await tab.page.bring_to_front()
        except Exception as e:
            logger.debug(f"[Tabs] bring_to_front failed: {e}")
        return tab

    async def close_tab(self, index: int | None = None) -> int:
        """关闭指定标签页，未指定下标时关闭活跃标签页。返回被关闭的下标。"""
        target = self.active_index if index is None else index
        self._validate_index(target)
        await self._close_page(self._tabs[target].page)
        return target

    async def set_viewport(self, viewport: dict[str, int]) -> None:
        """更新视口，应用到所有现有标签页和之后创建的标签页。"""
        self.viewport = viewport
        for tab in self.tabs:
            await tab.page.set_viewport_size(viewport)

    async def close_all(self) -> None:
        for tab in self.tabs:
            await self._close_page(tab.page)
        self._tabs.clear()
        self._recorder.reset()
        self.active_index = 0

    def drop_all(self) -> None:
        """浏览器已断开时只清理引用，不再尝试关闭页面。"""
        self._tabs.clear()
        self._recorder.reset()
        self.active_index = 0
