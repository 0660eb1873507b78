"""
BrowserManager - 浏览器会话生命周期管理

整个进程只持有一个浏览器会话（BrowserSession），启动策略按优先级：
1. 显式配置的远程调试地址（browser_url）
2. 自动连接本地调试端口（如果可达）
3. 清理上次遗留的孤儿进程后，以固定参数 + 持久化 profile 启动新的 Chromium

每次工具调用都会重置空闲计时器；空闲超时后强制关闭会话并丢弃全部标签页 / 事件缓冲。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import httpx
from playwright.async_api import async_playwright

from ...config import Settings, settings as default_settings
from ...core.errors import SessionError
from .events import EventRecorder
from .profile import (
    clear_pid_marker,
    find_browser_pid,
    kill_orphan_browser,
    kill_process_tree,
    resolve_profile_dir,
    write_pid_marker,
)
from .tabs import TabPool

logger = logging.getLogger(__name__)

_LAUNCH_TIMEOUT = 30  # seconds
_CONNECT_TIMEOUT = 15  # seconds
_DRIVER_START_TIMEOUT = 20  # seconds

_COMMON_CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--font-render-hinting=none",
    "--window-size=1920,1080",
]


class BrowserState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    ERROR = "error"
    STOPPING = "stopping"


class ConnectionMode(Enum):
    LAUNCHED = "launched"
    ATTACHED = "attached"


class StartupStrategy(Enum):
    REMOTE_ENDPOINT = "remote_endpoint"
    AUTO_ATTACH = "auto_attach"
    LAUNCH = "launch"


@dataclass
class BrowserConfig:
    """浏览器级配置（browser_configure 修改的是这里，而不是全局 settings）。"""

    proxy: str | None = None
    user_agent: str | None = None
    viewport: dict[str, int] = field(default_factory=lambda: {"width": 1280, "height": 800})
    persist_session: bool = True
    headless: bool = True
    browser_url: str | None = None
    cdp_port: int = 9222
    auto_attach: bool = True

    @classmethod
    def from_settings(cls, s: Settings) -> BrowserConfig:
        return cls(
            proxy=s.proxy or None,
            user_agent=s.user_agent or None,
            viewport={"width": s.viewport_width, "height": s.viewport_height},
            persist_session=s.persist_session,
            headless=s.headless,
            browser_url=s.browser_url or None,
            cdp_port=s.cdp_port,
            auto_attach=s.auto_attach,
        )


@dataclass
class BrowserSession:
    mode: ConnectionMode
    context: Any
    pool: TabPool
    recorder: EventRecorder
    browser: Any | None = None
    pid: int | None = None
    started_at: float = field(default_factory=time.time)


class BrowserManager:
    """浏览器会话管理（单会话 + 空闲回收 + 孤儿进程清理）"""

    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        settings: Settings | None = None,
        playwright_factory: Callable[[], Any] | None = None,
    ):
        self._settings = settings or default_settings
        self.config = config or BrowserConfig.from_settings(self._settings)
        self._playwright_factory = playwright_factory or async_playwright

        self.idle_timeout: float = self._settings.idle_timeout_seconds
        self.max_tabs: int = self._settings.max_tabs

        self.state = BrowserState.IDLE
        self._playwright: Any | None = None
        self._session: BrowserSession | None = None
        self._startup_lock = asyncio.Lock()
        self._idle_task: asyncio.Task | None = None
        self._active_calls = 0
        self._startup_errors: list[str] = []

    # ── 公共属性 ────────────────────────────────────────

    @property
    def session(self) -> BrowserSession | None:
        return self._session

    @property
    def is_ready(self) -> bool:
        return self.state == BrowserState.READY and self._session is not None

    @property
    def pool(self) -> TabPool | None:
        return self._session.pool if self._session else None

    @property
    def pid_file(self):
        return self._settings.pid_file

    # ── 会话获取 / 空闲计时 ──────────────────────────────

    async def ensure_session(self) -> BrowserSession:
        """返回活跃会话（必要时启动浏览器），并重置空闲计时器。"""
        self.touch()
        if self.is_ready:
            return self._session

        async with self._startup_lock:
            if not self.is_ready:
                await self._start()

        self.touch()
        return self._session

    def touch(self) -> None:
        """重新布置空闲计时器。"""
        if self._idle_task and not self._idle_task.done():
            self._idle_task.cancel()
        self._idle_task = None

        if self.idle_timeout <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        self._idle_task = loop.create_task(self._idle_watchdog(self.idle_timeout))

    @contextlib.contextmanager
    def in_use(self):
        """标记一次进行中的工具调用；调用期间不做空闲回收，结束时重新计时。"""
        self._active_calls += 1
        try:
            yield
        finally:
            self._active_calls -= 1
            self.touch()

    async def _idle_watchdog(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self._session is None:
            return
        if self._active_calls > 0:
            # 调用结束时 in_use() 会重新计时
            logger.debug(f"[Browser] Idle timer fired with {self._active_calls} call(s) in flight, skipping")
            return
        logger.info(f"[Browser] Idle for {timeout}s, closing...")
        try:
            await self.close()
        except Exception as e:
            logger.warning(f"[Browser] Error while closing idle browser: {e}")

    # ── 启动 ────────────────────────────────────────────

    async def _start(self) -> None:
        self.state = BrowserState.STARTING
        self._startup_errors.clear()

        try:
            self._playwright = await asyncio.wait_for(
                self._playwright_factory().start(), timeout=_DRIVER_START_TIMEOUT,
            )
        except Exception as e:
            self.state = BrowserState.ERROR
            self._playwright = None
            raise SessionError(f"Playwright driver failed to start: {type(e).__name__}: {e}") from e

        session: BrowserSession | None = None
        for strategy in self._build_strategy_order():
            try:
                session = await self._try_strategy(strategy)
            except Exception as e:
                self._startup_errors.append(f"{strategy.value}: {e}")
                logger.warning(f"[Browser] Strategy {strategy.value} failed: {e}")
                continue
            if session is not None:
                logger.info(
                    f"[Browser] Session ready via {strategy.value} "
                    f"(mode={session.mode.value}, pid={session.pid})"
                )
                break

        if session is None:
            self.state = BrowserState.ERROR
            await self._cleanup_playwright()
            detail = "; ".join(self._startup_errors) or "no startup strategy succeeded"
            raise SessionError(f"Browser failed to start: {detail}")

        self._session = session
        self.state = BrowserState.READY

    def _build_strategy_order(self) -> list[StartupStrategy]:
        if self.config.browser_url:
            # 显式配置了远程地址时不回退到本地启动
            return [StartupStrategy.REMOTE_ENDPOINT]
        order = []
        if self.config.auto_attach:
            order.append(StartupStrategy.AUTO_ATTACH)
        order.append(StartupStrategy.LAUNCH)
        return order

    async def _try_strategy(self, strategy: StartupStrategy) -> BrowserSession | None:
        if strategy == StartupStrategy.REMOTE_ENDPOINT:
            return await self._connect(self.config.browser_url)
        elif strategy == StartupStrategy.AUTO_ATTACH:
            return await self._try_auto_attach()
        elif strategy == StartupStrategy.LAUNCH:
            return await self._launch()
        return None

    async def _try_auto_attach(self) -> BrowserSession | None:
        """本地调试端口可达时连接已运行的 Chrome。"""
        endpoint = f"http://localhost:{self.config.cdp_port}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{endpoint}/json/version", timeout=2.0)
        except httpx.HTTPError as e:
            logger.debug(f"[Browser] No debugging endpoint at {endpoint}: {e}")
            return None
        if response.status_code != 200:
            return None

        logger.info(f"[Browser] Found Chrome at {endpoint}")
        return await self._connect(endpoint)

    async def _connect(self, endpoint: str) -> BrowserSession:
        browser = await asyncio.wait_for(
            self._playwright.chromium.connect_over_cdp(endpoint),
            timeout=_CONNECT_TIMEOUT,
        )
        contexts = browser.contexts
        if contexts:
            # 复用已有 context 时 UA 只能按页面设置
            context = contexts[0]
            page_user_agent = self.config.user_agent
        else:
            kwargs = {"user_agent": self.config.user_agent} if self.config.user_agent else {}
            context = await browser.new_context(**kwargs)
            page_user_agent = None

        session = self._make_session(
            ConnectionMode.ATTACHED, context, browser=browser, user_agent=page_user_agent,
        )
        browser.on("disconnected", lambda _browser: self._on_disconnected(session))
        logger.info(f"[Browser] Connected to {endpoint}")
        return session

    def _build_launch_args(self) -> list[str]:
        args = list(_COMMON_CHROMIUM_ARGS)
        if self.config.proxy:
            args.append(f"--proxy-server={self.config.proxy}")
        return args

    async def _launch(self) -> BrowserSession:
        kill_orphan_browser(self.pid_file)

        user_data = resolve_profile_dir(self._settings.user_data_dir, self.config.persist_session)
        kwargs: dict[str, Any] = {
            "user_data_dir": user_data,
            "headless": self.config.headless,
            "args": self._build_launch_args(),
            "viewport": self.config.viewport,
            "timeout": _LAUNCH_TIMEOUT * 1000,
        }
        if self.config.user_agent:
            kwargs["user_agent"] = self.config.user_agent

        logger.info(
            f"[Browser] Launching Chromium (headless={self.config.headless}, "
            f"persist={self.config.persist_session})"
        )
        context = await asyncio.wait_for(
            self._playwright.chromium.launch_persistent_context(**kwargs),
            timeout=_LAUNCH_TIMEOUT + 5,
        )

        pid = find_browser_pid()
        write_pid_marker(self.pid_file, pid)

        session = self._make_session(ConnectionMode.LAUNCHED, context, pid=pid)
        context.on("close", lambda _context: self._on_disconnected(session))

        # 持久化 context 自带的初始页面直接纳入标签池
        for page in list(context.pages)[: self.max_tabs]:
            await session.pool.adopt(page)
        return session

    def _make_session(
        self, mode: ConnectionMode, context: Any, *, user_agent: str | None = None, **kwargs: Any,
    ) -> BrowserSession:
        recorder = EventRecorder()
        pool = TabPool(
            context,
            recorder,
            max_tabs=self.max_tabs,
            viewport=self.config.viewport,
            user_agent=user_agent,
        )
        return BrowserSession(mode=mode, context=context, pool=pool, recorder=recorder, **kwargs)

    def _on_disconnected(self, session: BrowserSession) -> None:
        if self._session is not session:
            return
        logger.warning("[Browser] Browser disconnected, dropping session")
        session.pool.drop_all()
        self._session = None
        self.state = BrowserState.IDLE
        if session.mode == ConnectionMode.LAUNCHED:
            clear_pid_marker(self.pid_file)

    # ── 关闭 ────────────────────────────────────────────

    async def close(self) -> bool:
        """关闭浏览器并丢弃全部标签页状态。没有活跃会话时返回 False。"""
        if self._idle_task and self._idle_task is not asyncio.current_task():
            self._idle_task.cancel()
        self._idle_task = None

        session = self._session
        self._session = None
        if session is None:
            await self._cleanup_playwright()
            self.state = BrowserState.IDLE
            return False

        self.state = BrowserState.STOPPING
        try:
            if session.mode == ConnectionMode.ATTACHED:
                await session.pool.close_all()
                if session.browser:
                    await session.browser.close()
            else:
                await session.context.close()
        except Exception as e:
            logger.warning(f"[Browser] Error stopping browser: {e}")

        session.pool.drop_all()
        if session.mode == ConnectionMode.LAUNCHED:
            if session.pid:
                # context.close() 之后进程应已退出，兜底再杀一次
                kill_process_tree(session.pid)
            clear_pid_marker(self.pid_file)

        await self._cleanup_playwright()
        self.state = BrowserState.IDLE
        logger.info("[Browser] Browser stopped")
        return True

    async def reset_state(self) -> None:
        """不走正常关闭流程，直接丢弃会话（浏览器已被外部关闭或崩溃时）。

        自己启动的浏览器进程如果还活着会被强制结束，避免留下孤儿进程。
        """
        session = self._session
        self._session = None
        if session is not None:
            session.pool.drop_all()
            if session.mode == ConnectionMode.LAUNCHED:
                if session.pid:
                    kill_process_tree(session.pid)
                clear_pid_marker(self.pid_file)
        await self._cleanup_playwright()
        self.state = BrowserState.IDLE
        logger.info("[Browser] State reset")

    def kill_sync(self) -> None:
        """进程退出前同步杀掉自己启动的浏览器（atexit / 信号处理）。"""
        session = self._session
        if session is None or session.mode != ConnectionMode.LAUNCHED:
            return
        if session.pid:
            kill_process_tree(session.pid)
        clear_pid_marker(self.pid_file)

    async def _cleanup_playwright(self) -> None:
        if self._playwright:
            with contextlib.suppress(Exception):
                await self._playwright.stop()
            self._playwright = None

    # ── 配置 / 状态 ─────────────────────────────────────

    async def reconfigure(
        self,
        *,
        proxy: str | None = None,
        user_agent: str | None = None,
        persist_session: bool | None = None,
        viewport: dict[str, int] | None = None,
    ) -> bool:
        """更新浏览器配置。代理 / UA / 持久化开关变化时重启浏览器，返回是否重启。"""
        restart_needed = False
        if proxy is not None and (proxy or None) != self.config.proxy:
            self.config.proxy = proxy or None
            restart_needed = True
        if user_agent is not None and (user_agent or None) != self.config.user_agent:
            self.config.user_agent = user_agent or None
            restart_needed = True
        if persist_session is not None and persist_session != self.config.persist_session:
            self.config.persist_session = persist_session
            restart_needed = True

        if viewport:
            self.config.viewport = dict(viewport)

        restarted = False
        if restart_needed and self._session is not None:
            logger.info("[Browser] Configuration changed, restarting browser")
            await self.close()
            restarted = True

        if viewport and self._session is not None:
            await self._session.pool.set_viewport(self.config.viewport)

        return restarted

