"""
浏览器处理器

工具调用的分发边界：
- 参数校验在触达浏览器之前完成（ValidationError 直接返回）
- 每次调用先经过 BrowserManager（保证浏览器存活、重置空闲计时器），
  再由 TabPool 解析目标标签页，最后路由到具体组件
- 所有异常在这里转换为 {"success": False, "error": "..."}，不会穿透到传输层
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ...config import Settings, settings as default_settings
from ...core.errors import NavigationError, SelectorError, ValidationError, WebCurlError
from ..browser.actions import ActionDispatcher, validate_action
from ..browser.batch import batch_navigate, multi_search
from ..browser.manager import BrowserManager
from ..browser.screenshots import ScreenshotLifecycle, validate_windows_path
from ..browser.snapshot import SNAPSHOT_MODES, SnapshotEngine, validate_slice_bounds
from ..search import GoogleSearchClient, build_search_params

logger = logging.getLogger(__name__)

TAB_ACTIONS = ("list", "new", "select", "close")
COOKIE_ACTIONS = ("get", "set", "delete", "clear")

# Playwright 在页面 / 浏览器被关闭后抛出的错误消息特征
_DISCONNECT_MARKERS = ("has been closed", "target closed", "connection closed", "browser has disconnected")


def _is_disconnect(error: BaseException) -> bool:
    if isinstance(error, (ValidationError, SelectorError)):
        return False
    text = str(error).lower()
    return any(marker in text for marker in _DISCONNECT_MARKERS)


def normalize_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("'url' must be a non-empty string")
    url = url.strip()
    if "://" not in url and not url.startswith(("about:", "data:")):
        url = "https://" + url
    return url


class BrowserHandler:
    """
    浏览器处理器

    通过 BrowserManager / TabPool / SnapshotEngine / ActionDispatcher 路由浏览器工具调用
    """

    TOOLS = [
        "browser_navigate",
        "browser_snapshot",
        "browser_action",
        "browser_tabs",
        "take_screenshot",
        "browser_network_requests",
        "browser_console_messages",
        "batch_navigate",
        "multi_search",
        "browser_close",
        "browser_cookies",
        "browser_configure",
        "browser_links",
        "google_search",
    ]

    def __init__(
        self,
        manager: BrowserManager | None = None,
        *,
        settings: Settings | None = None,
        screenshots: ScreenshotLifecycle | None = None,
        search_client: GoogleSearchClient | None = None,
    ):
        self.settings = settings or default_settings
        self.manager = manager or BrowserManager(settings=self.settings)
        self.screenshots = screenshots or ScreenshotLifecycle(self.settings)
        self.search_client = search_client or GoogleSearchClient(settings=self.settings)
        self.snapshot = SnapshotEngine()
        self.dispatcher = ActionDispatcher()

    async def handle(self, tool_name: str, params: dict[str, Any] | None = None) -> dict:
        """处理工具调用，返回 {"success": bool, "result" | "error": ...}。"""
        params = params or {}
        if tool_name not in self.TOOLS:
            return {"success": False, "error": f"Unknown tool: {tool_name}"}

        try:
            self._validate(tool_name, params)
        except ValidationError as e:
            return {"success": False, "error": e.describe()}

        with self.manager.in_use():
            return await self._dispatch(tool_name, params)

    # ── 参数校验 ────────────────────────────────────────

    def _validate(self, tool_name: str, params: dict[str, Any]) -> None:
        if tool_name == "browser_navigate":
            normalize_url(params.get("url"))
        elif tool_name == "browser_snapshot":
            mode = params.get("mode", "tree")
            if mode not in SNAPSHOT_MODES:
                raise ValidationError(f"'mode' must be one of: {', '.join(SNAPSHOT_MODES)}")
            if mode == "html":
                validate_slice_bounds(params.get("startIndex", 0), params.get("endIndex"))
        elif tool_name == "browser_action":
            validate_action(
                params.get("action", ""),
                selector=params.get("selector"),
                text=params.get("text"),
                direction=params.get("direction"),
                key=params.get("key"),
                timeout=params.get("timeout"),
            )
        elif tool_name == "browser_tabs":
            action = params.get("action", "list")
            if action not in TAB_ACTIONS:
                raise ValidationError(f"'action' must be one of: {', '.join(TAB_ACTIONS)}")
            if action == "select" and params.get("index") is None:
                raise ValidationError("'index' is required for action 'select'")
        elif tool_name == "take_screenshot":
            ScreenshotLifecycle.build_filename(params.get("filename"))
            destination = params.get("destinationFolder")
            if destination and os.name == "nt":
                validate_windows_path(destination)
        elif tool_name == "batch_navigate":
            urls = params.get("urls")
            if not isinstance(urls, list) or not urls:
                raise ValidationError("'urls' must be a non-empty array")
            params["urls"] = [normalize_url(u) for u in urls]
        elif tool_name == "multi_search":
            queries = params.get("queries")
            if not isinstance(queries, list) or not queries:
                raise ValidationError("'queries' must be a non-empty array")
        elif tool_name == "browser_cookies":
            action = params.get("action", "get")
            if action not in COOKIE_ACTIONS:
                raise ValidationError(f"'action' must be one of: {', '.join(COOKIE_ACTIONS)}")
            cookies = params.get("cookies")
            if action in ("set", "delete") and (not isinstance(cookies, list) or not cookies):
                raise ValidationError(f"'cookies' must be a non-empty array for action '{action}'")
        elif tool_name == "browser_configure":
            viewport = params.get("viewport")
            if viewport is not None:
                if not isinstance(viewport, dict) or not all(
                    isinstance(viewport.get(k), int) and viewport.get(k) > 0 for k in ("width", "height")
                ):
                    raise ValidationError("'viewport' must be {width: int > 0, height: int > 0}")
        elif tool_name == "google_search":
            for key in ("num", "start"):
                value = params.get(key)
                if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                    raise ValidationError(f"'{key}' must be an integer")
            build_search_params(
                params.get("query", ""),
                num=params.get("num"),
                start=params.get("start"),
            )

    # ── 分发 ────────────────────────────────────────────

    async def _dispatch(self, tool_name: str, params: dict[str, Any]) -> dict:
        """将工具调用路由到对应的组件。"""
        manager = self.manager

        try:
            # 搜索不需要浏览器，只重置空闲计时器
            if tool_name == "multi_search":
                manager.touch()
                results = await multi_search(self.search_client, params["queries"])
                return {"success": True, "result": results}
            elif tool_name == "google_search":
                manager.touch()
                return await self._google_search(params)
            elif tool_name == "browser_close":
                closed = await manager.close()
                return {"success": True, "result": "Browser closed" if closed else "No browser session was open"}
            elif tool_name == "browser_configure":
                return await self._configure(params)

            session = await manager.ensure_session()
            pool = session.pool

            if tool_name == "browser_navigate":
                tab = await pool.get_active()
                return {"success": True, "result": await self._navigate_page(tab.page, normalize_url(params["url"]))}
            elif tool_name == "browser_snapshot":
                tab = await pool.get_active()
                mode = params.get("mode", "tree")
                if mode == "html":
                    sliced = await self.snapshot.html(tab.page, params.get("startIndex", 0), params.get("endIndex"))
                    return {"success": True, "result": sliced}
                outline = await self.snapshot.tree(tab.page, viewport_only=(mode == "viewport"))
                return {"success": True, "result": outline}
            elif tool_name == "browser_action":
                tab = await pool.get_active()
                message = await self.dispatcher.perform(
                    tab.page,
                    params["action"],
                    selector=params.get("selector"),
                    text=params.get("text"),
                    direction=params.get("direction"),
                    key=params.get("key"),
                    timeout=params.get("timeout"),
                )
                return {"success": True, "result": message}
            elif tool_name == "browser_tabs":
                return await self._tabs(pool, params)
            elif tool_name == "take_screenshot":
                tab = await pool.get_active()
                path = await self.screenshots.capture(
                    tab.page,
                    filename=params.get("filename"),
                    full_page=params.get("fullPage", True),
                    destination=params.get("destinationFolder"),
                )
                return {"success": True, "result": str(path)}
            elif tool_name == "browser_network_requests":
                tab = await pool.get_active()
                entries = session.recorder.network_requests(tab.page, include_static=bool(params.get("includeStatic", False)))
                return {"success": True, "result": [e.to_dict() for e in entries]}
            elif tool_name == "browser_console_messages":
                tab = await pool.get_active()
                entries = session.recorder.console_messages(tab.page)
                return {"success": True, "result": [e.to_dict() for e in entries]}
            elif tool_name == "batch_navigate":
                results = await batch_navigate(pool, self._navigate_page, params["urls"])
                return {"success": True, "result": results}
            elif tool_name == "browser_cookies":
                return await self._cookies(session, params)
            elif tool_name == "browser_links":
                tab = await pool.get_active()
                return {"success": True, "result": await self.snapshot.links(tab.page)}
            else:
                return {"success": False, "error": f"Unknown tool: {tool_name}"}
        except asyncio.CancelledError:
            raise
        except WebCurlError as e:
            logger.warning(f"[Browser] {tool_name} failed: {e.describe()}")
            if _is_disconnect(e):
                await self._reset_after_disconnect()
            return {"success": False, "error": e.describe()}
        except Exception as e:
            logger.error(f"[Browser] {tool_name} error: {type(e).__name__}: {e}")
            if _is_disconnect(e):
                await self._reset_after_disconnect()
                return {
                    "success": False,
                    "error": "SessionError: Browser connection was lost; state has been reset. "
                    "Retry the call to start a fresh browser.",
                }
            return {"success": False, "error": f"{type(e).__name__}: {e}"}

    async def _reset_after_disconnect(self) -> None:
        logger.warning("[Browser] Browser/page closed detected, resetting state")
        try:
            await self.manager.reset_state()
        except Exception as e:
            logger.warning(f"[Browser] Reset failed: {e}")

    # ── 导航 ────────────────────────────────────────────

    async def _navigate_page(self, page: Any, url: str) -> str:
        """顶层导航：清空事件缓冲 → domcontentloaded → 尽力等待网络空闲 → 短暂稳定等待。"""
        session = self.manager.session
        if session is not None:
            session.recorder.clear(page)

        timeout = self.settings.navigation_timeout_ms
        try:
            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timed out after {timeout}ms loading {url}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e.message}") from e

        try:
            await page.wait_for_load_state("networkidle", timeout=self.settings.network_idle_timeout_ms)
        except PlaywrightError as e:
            logger.debug(f"[Browser] Network idle wait skipped for {url}: {e}")

        if self.settings.settle_delay_seconds > 0:
            await asyncio.sleep(self.settings.settle_delay_seconds)

        status = getattr(response, "status", None) if response else None
        if status and status >= 400:
            return f"Navigated to {page.url} (HTTP {status})"
        return f"Navigated to {page.url}"

    # ── 标签页 ──────────────────────────────────────────

    async def _tabs(self, pool: Any, params: dict[str, Any]) -> dict:
        action = params.get("action", "list")
        if action == "list":
            return {"success": True, "result": await pool.list_tabs()}
        elif action == "new":
            index = await pool.new_tab()
            return {"success": True, "result": f"Opened new tab at index {index}"}
        elif action == "select":
            index = params["index"]
            await pool.select_tab(index)
            return {"success": True, "result": f"Switched to tab {index}"}
        else:
            closed = await pool.close_tab(params.get("index"))
            return {"success": True, "result": f"Closed tab {closed}"}

    # ── cookies / 配置 / 搜索 ───────────────────────────

    async def _cookies(self, session: Any, params: dict[str, Any]) -> dict:
        action = params.get("action", "get")
        context = session.context

        if action == "clear":
            await context.clear_cookies()
            return {"success": True, "result": "All cookies cleared"}

        tab = await session.pool.get_active()
        page_url = tab.url
        if action == "get":
            if page_url.startswith(("http://", "https://")):
                cookies = await context.cookies(page_url)
            else:
                cookies = await context.cookies()
            return {"success": True, "result": cookies}

        cookies = [dict(c) for c in params["cookies"]]
        if action == "set":
            for cookie in cookies:
                if "url" not in cookie and "domain" not in cookie:
                    if not page_url.startswith(("http://", "https://")):
                        raise ValidationError(
                            f"Cookie {cookie.get('name')!r} needs 'url' or 'domain' (active tab has no http URL)"
                        )
                    cookie["url"] = page_url
            await context.add_cookies(cookies)
            return {"success": True, "result": f"Set {len(cookies)} cookie(s)"}

        for cookie in cookies:
            await context.clear_cookies(
                name=cookie.get("name"), domain=cookie.get("domain"), path=cookie.get("path"),
            )
        return {"success": True, "result": f"Deleted {len(cookies)} cookie(s)"}

    async def _configure(self, params: dict[str, Any]) -> dict:
        restarted = await self.manager.reconfigure(
            proxy=params.get("proxy"),
            user_agent=params.get("userAgent"),
            persist_session=params.get("persistSession"),
            viewport=params.get("viewport"),
        )
        self.manager.touch()
        message = "Configuration updated"
        if restarted:
            message += " (Browser restarted)"
        return {"success": True, "result": message}

    async def _google_search(self, params: dict[str, Any]) -> dict:
        results = await self.search_client.search(
            params["query"],
            num=params.get("num"),
            start=params.get("start"),
            language=params.get("language"),
            region=params.get("region"),
            site=params.get("site"),
            date_restrict=params.get("dateRestrict"),
        )
        return {"success": True, "result": [r.to_dict() for r in results]}
