"""
浏览器自动化模块

核心组件：
- BrowserManager: 浏览器会话生命周期（多策略启动 + 空闲回收 + 孤儿进程清理）
- TabPool: 有界标签页池（按创建顺序淘汰）
- EventRecorder: 每个标签页的 console / network 环形缓冲
- SnapshotEngine: 页面大纲（带 ref）与 HTML 切片
- ActionDispatcher: click / type / hover / scroll / press_key / waitForSelector
- ScreenshotLifecycle: 截图目录解析与过期清理
- batch_navigate / multi_search: 批量操作
"""

from .actions import ActionDispatcher
from .batch import BatchItem, batch_navigate, multi_search
from .events import ConsoleEntry, EventRecorder, NetworkEntry
from .manager import BrowserConfig, BrowserManager, BrowserSession, BrowserState, ConnectionMode
from .screenshots import ScreenshotLifecycle
from .snapshot import AccessibilityNode, SnapshotEngine
from .tabs import MAX_TABS, Tab, TabPool

__all__ = [
    "ActionDispatcher",
    "BatchItem",
    "batch_navigate",
    "multi_search",
    "ConsoleEntry",
    "EventRecorder",
    "NetworkEntry",
    "BrowserConfig",
    "BrowserManager",
    "BrowserSession",
    "BrowserState",
    "ConnectionMode",
    "ScreenshotLifecycle",
    "AccessibilityNode",
    "SnapshotEngine",
    "MAX_TABS",
    "Tab",
    "TabPool",
]
