"""
EventRecorder - 标签页控制台 / 网络事件记录

每个标签页两个独立的环形缓冲（console / network），容量固定，
超出容量时丢弃最旧的记录。读取返回不可变快照，不阻塞也不修改状态。
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100

# 默认过滤掉的静态资源类型（browser_network_requests includeStatic=false）
STATIC_RESOURCE_TYPES = frozenset({"image", "font", "stylesheet", "media"})


@dataclass(frozen=True)
class ConsoleEntry:
    type: str
    text: str
    location: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "text": self.text,
            "location": dict(self.location),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class NetworkEntry:
    method: str
    url: str
    resource_type: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "resourceType": self.resource_type,
            "timestamp": self.timestamp,
        }


class EventRecorder:
    """按标签页（page 对象）索引的 console / network 环形缓冲。"""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._console: dict[Any, deque[ConsoleEntry]] = {}
        self._network: dict[Any, deque[NetworkEntry]] = {}

    # ── 监听 ──────────────────────────────────────────

    def attach(self, page: Any) -> None:
        """为 page 建立空缓冲并订阅 console / request 事件。"""
        self._console[page] = deque(maxlen=self.capacity)
        self._network[page] = deque(maxlen=self.capacity)
        page.on("console", lambda msg: self._on_console(page, msg))
        page.on("request", lambda request: self._on_request(page, request))

    def _on_console(self, page: Any, msg: Any) -> None:
        try:
            location = msg.location or {}
        except Exception:
            location = {}
        self.push_console(page, ConsoleEntry(type=msg.type, text=msg.text, location=dict(location)))

    def _on_request(self, page: Any, request: Any) -> None:
        self.push_network(
            page,
            NetworkEntry(
                method=request.method,
                url=request.url,
                resource_type=request.resource_type,
            ),
        )

    # ── 写入 ──────────────────────────────────────────

    def push_console(self, page: Any, entry: ConsoleEntry) -> None:
        buf = self._console.get(page)
        if buf is None:
            # 已关闭的标签页上迟到的事件直接丢弃
            return
        buf.append(entry)

    def push_network(self, page: Any, entry: NetworkEntry) -> None:
        buf = self._network.get(page)
        if buf is None:
            return
        buf.append(entry)

    def clear(self, page: Any) -> None:
        """顶层导航时清空该标签页的两个缓冲。"""
        if page in self._console:
            self._console[page].clear()
        if page in self._network:
            self._network[page].clear()

    def forget(self, page: Any) -> None:
        """标签页关闭时移除其缓冲。"""
        self._console.pop(page, None)
        self._network.pop(page, None)

    def reset(self) -> None:
        """丢弃全部缓冲（会话关闭）。"""
        self._console.clear()
        self._network.clear()

    # ── 读取 ──────────────────────────────────────────

    def is_tracking(self, page: Any) -> bool:
        return page in self._console or page in self._network

    def console_messages(self, page: Any) -> tuple[ConsoleEntry, ...]:
        return tuple(self._console.get(page, ()))

    def network_requests(self, page: Any, include_static: bool = False) -> tuple[NetworkEntry, ...]:
        entries = tuple(self._network.get(page, ()))
        if include_static:
            return entries
        return tuple(e for e in entries if e.resource_type not in STATIC_RESOURCE_TYPES)
