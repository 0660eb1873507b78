"""
web-curl MCP 服务器

把浏览器会话 / 标签池 / 快照 / 交互 / 批量操作封装为 MCP 工具，通过 stdio 对外提供。
工具失败时抛出 ToolError，客户端看到的是 isError=true 的结果而不是连接中断。

启动方式：
    python -m webcurl
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from ..config import settings
from ..tools.browser.profile import kill_orphan_browser
from ..tools.handlers.browser import BrowserHandler

logger = logging.getLogger(__name__)

handler = BrowserHandler(settings=settings)


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    kill_orphan_browser(settings.pid_file)
    handler.screenshots.start()
    logger.info("[Server] web-curl ready")
    try:
        yield
    finally:
        await handler.screenshots.stop()
        try:
            await handler.manager.close()
        except Exception as e:
            logger.warning(f"[Server] Error closing browser on shutdown: {e}")
        logger.info("[Server] web-curl stopped")


mcp = FastMCP(
    name="web-curl",
    instructions="""web-curl - 浏览器自动化服务。

单个浏览器进程，最多 10 个并发标签页（超出时自动轮换最早的标签页）。

典型工作流：
1. browser_navigate(url) 打开页面
2. browser_snapshot() 获取带 ref 的页面大纲
3. browser_action(action="click", selector="ref:e12") 操作元素
4. 再次 browser_snapshot() 验证结果

浏览器空闲 60 秒后自动关闭，下次调用时重新启动。
""",
    lifespan=lifespan,
)


async def _run(tool_name: str, params: dict[str, Any]) -> str:
    result = await handler.handle(tool_name, params)
    if not result.get("success"):
        raise ToolError(result.get("error") or "Unknown error")
    value = result.get("result")
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, indent=2)


def _compact(**params: Any) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


@mcp.tool()
async def browser_navigate(url: str) -> str:
    """
    Navigate the active tab to a URL.

    Args:
        url: Address to open (https:// is assumed when no scheme is given)

    Returns:
        Confirmation with the final URL.
    """
    return await _run("browser_navigate", {"url": url})


@mcp.tool()
async def browser_snapshot(
    mode: str = "tree",
    startIndex: int | None = None,
    endIndex: int | None = None,
) -> str:
    """
    Capture the state of the active tab.

    Args:
        mode: "tree" (outline of the whole page with element refs),
              "viewport" (outline limited to what is currently visible),
              or "html" (raw markup slice)
        startIndex: html mode only, first character to return (default 0)
        endIndex: html mode only, end of the slice (default startIndex + 20000)

    Returns:
        Indented outline text, or JSON {totalLength, startIndex, endIndex,
        remainingCharacters, content} in html mode.
        Target elements later with selector "ref:<id>".
    """
    return await _run("browser_snapshot", _compact(mode=mode, startIndex=startIndex, endIndex=endIndex))


@mcp.tool()
async def browser_action(
    action: str,
    selector: str | None = None,
    text: str | None = None,
    direction: str | None = None,
    key: str | None = None,
    timeout: int | None = None,
) -> str:
    """
    Interact with the active tab.

    Args:
        action: "click", "hover", "type", "waitForSelector", "scroll" or "press_key"
        selector: CSS selector or "ref:<id>" from browser_snapshot
        text: Text to type (action "type")
        direction: "up" or "down" (action "scroll", 500px per call)
        key: Key name such as "Enter" (action "press_key")
        timeout: Milliseconds to wait for the selector (default 30000)

    Returns:
        Short confirmation of what was done.
    """
    return await _run(
        "browser_action",
        _compact(action=action, selector=selector, text=text, direction=direction, key=key, timeout=timeout),
    )


@mcp.tool()
async def browser_tabs(action: str = "list", index: int | None = None) -> str:
    """
    Manage tabs. Up to 10 concurrent tabs with automatic LRU rotation.

    Args:
        action: "list", "new", "select" or "close"
        index: Tab index for "select" / "close" (close defaults to the active tab)

    Returns:
        Tab list as JSON [{index, active, url, title}] or a confirmation.
    """
    return await _run("browser_tabs", _compact(action=action, index=index))


@mcp.tool()
async def take_screenshot(
    filename: str | None = None,
    fullPage: bool = True,
    destinationFolder: str | None = None,
) -> str:
    """
    Save a PNG screenshot of the active tab.

    Args:
        filename: File name (default screenshot-<timestamp>.png)
        fullPage: Capture the whole scrollable page instead of the viewport
        destinationFolder: Output folder, relative paths resolve against the project root.
            Files older than 5 days are cleaned up automatically.

    Returns:
        Path of the saved file.
    """
    return await _run(
        "take_screenshot",
        _compact(filename=filename, fullPage=fullPage, destinationFolder=destinationFolder),
    )


@mcp.tool()
async def browser_network_requests(includeStatic: bool = False) -> str:
    """
    List network requests recorded on the active tab since its last navigation (last 100).

    Args:
        includeStatic: Also include images, fonts, stylesheets and media

    Returns:
        JSON array of {method, url, resourceType, timestamp}.
    """
    return await _run("browser_network_requests", {"includeStatic": includeStatic})


@mcp.tool()
async def browser_console_messages() -> str:
    """
    List console messages recorded on the active tab since its last navigation (last 100).

    Returns:
        JSON array of {type, text, location, timestamp}.
    """
    return await _run("browser_console_messages", {})


@mcp.tool()
async def batch_navigate(urls: list[str]) -> str:
    """
    Open each URL in its own new tab, one after another.
    Up to 10 concurrent tabs with automatic LRU rotation, so long batches close earlier tabs.

    Args:
        urls: URLs to open

    Returns:
        JSON array of {url, status: "success", tabIndex} or {url, status: "error", error}.
    """
    return await _run("batch_navigate", {"urls": urls})


@mcp.tool()
async def multi_search(queries: list[str]) -> str:
    """
    Run several Google searches concurrently.

    Args:
        queries: Search queries

    Returns:
        JSON array of {query, results: [{title, link, snippet}]}; a failed query carries an "error" field.
    """
    return await _run("multi_search", {"queries": queries})


@mcp.tool()
async def google_search(
    query: str,
    num: int | None = None,
    start: int | None = None,
    language: str | None = None,
    region: str | None = None,
    site: str | None = None,
    dateRestrict: str | None = None,
) -> str:
    """
    Run one Google Custom Search query.

    Args:
        query: Search query
        num: Number of results (1-10)
        start: 1-based index of the first result
        language: Language code such as "en" (lr=lang_<language>)
        region: Country code such as "US" (cr=country<region>)
        site: Restrict results to this site
        dateRestrict: Recency filter such as "d7", "m1"

    Returns:
        JSON array of {title, link, snippet}.
    """
    return await _run(
        "google_search",
        _compact(
            query=query, num=num, start=start, language=language,
            region=region, site=site, dateRestrict=dateRestrict,
        ),
    )


@mcp.tool()
async def browser_cookies(action: str = "get", cookies: list[dict[str, Any]] | None = None) -> str:
    """
    Read or modify cookies of the browser session.

    Args:
        action: "get", "set", "delete" or "clear"
        cookies: Cookie objects for "set" / "delete" ({name, value, url | domain, path, ...})

    Returns:
        Cookie list as JSON, or a confirmation.
    """
    return await _run("browser_cookies", _compact(action=action, cookies=cookies))


@mcp.tool()
async def browser_configure(
    persistSession: bool | None = None,
    proxy: str | None = None,
    userAgent: str | None = None,
    viewport: dict[str, int] | None = None,
) -> str:
    """
    Change browser configuration. Changing proxy, user agent or persistence restarts the browser.

    Args:
        persistSession: Keep cookies and logins in a persistent profile
        proxy: Proxy server such as "http://proxy:8080" (empty string removes it)
        userAgent: Custom user agent (empty string restores the default)
        viewport: {"width": int, "height": int} applied to all tabs

    Returns:
        "Configuration updated", with "(Browser restarted)" when a restart happened.
    """
    return await _run(
        "browser_configure",
        _compact(persistSession=persistSession, proxy=proxy, userAgent=userAgent, viewport=viewport),
    )


@mcp.tool()
async def browser_links() -> str:
    """
    List all http(s) links on the active tab.

    Returns:
        JSON array of {text, href}.
    """
    return await _run("browser_links", {})


@mcp.tool()
async def browser_close() -> str:
    """
    Close the browser and drop all tabs. The next browser tool call starts a fresh one.

    Returns:
        Confirmation.
    """
    return await _run("browser_close", {})

