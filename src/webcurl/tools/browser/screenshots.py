"""
ScreenshotLifecycle - 截图输出目录与过期清理

- 默认目录：<project_root>/screenshots
- 自定义目录：相对路径以项目根目录为基准解析（不是进程工作目录），
  进程生命周期内用过的自定义目录都会被记录
- 清理：启动时执行一次，之后按间隔定时执行，删除超过保留期的文件
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import time
from pathlib import Path
from typing import Any

from ...config import Settings, settings as default_settings
from ...core.errors import ResourceError, ValidationError

logger = logging.getLogger(__name__)

_WINDOWS_INVALID_CHARS = re.compile(r'[<>:"|?*]')
_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


def validate_windows_path(raw: str) -> None:
    """Windows 路径语法校验：盘符之后不允许保留字符，绝对路径必须带盘符或 UNC 前缀。"""
    body = raw[2:] if _WINDOWS_DRIVE.match(raw) else raw
    if _WINDOWS_INVALID_CHARS.search(body):
        raise ValidationError(f"Invalid characters in destination folder: {raw}")
    if raw.startswith(("\\", "/")) and not raw.startswith(("\\\\", "//")):
        raise ValidationError(
            f"Absolute Windows path must start with a drive letter or UNC prefix: {raw}"
        )


class ScreenshotLifecycle:
    """截图写入 + 按保留期清理"""

    def __init__(self, settings: Settings | None = None):
        s = settings or default_settings
        self.project_root = Path(s.project_root)
        self.default_dir = s.screenshot_dir
        self.retention_seconds = s.screenshot_retention_days * 24 * 3600
        self.cleanup_interval = s.screenshot_cleanup_interval_seconds
        self._custom_dirs: set[Path] = set()
        self._sweeper: asyncio.Task | None = None

    @property
    def tracked_dirs(self) -> list[Path]:
        return [self.default_dir, *sorted(self._custom_dirs)]

    # ── 目录解析 ────────────────────────────────────────

    def resolve_dir(self, destination: str | None = None) -> Path:
        if not destination:
            target = self.default_dir
        else:
            if os.name == "nt":
                validate_windows_path(destination)
            path = Path(destination).expanduser()
            target = path if path.is_absolute() else self.project_root / path
            target = target.resolve()

        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ResourceError(f"Cannot create screenshot directory {target}: {e}") from e

        if target.resolve() != self.default_dir.resolve():
            self._custom_dirs.add(target)
        return target

    @staticmethod
    def build_filename(filename: str | None = None) -> str:
        if not filename:
            return f"screenshot-{int(time.time() * 1000)}.png"
        if "/" in filename or "\\" in filename:
            raise ValidationError(f"'filename' must not contain path separators: {filename}")
        return filename if filename.lower().endswith(".png") else f"{filename}.png"

    # ── 截图 ────────────────────────────────────────────

    async def capture(
        self,
        page: Any,
        filename: str | None = None,
        full_page: bool = True,
        destination: str | None = None,
    ) -> Path:
        name = self.build_filename(filename)
        target = self.resolve_dir(destination) / name
        try:
            await page.screenshot(path=str(target), full_page=full_page, type="png")
        except OSError as e:
            raise ResourceError(f"Cannot write screenshot {target}: {e}") from e
        logger.info(f"[Screenshot] Saved {target}")
        return target

    # ── 清理 ────────────────────────────────────────────

    def sweep(self, now: float | None = None) -> int:
        """删除默认目录和所有已记录目录中超过保留期的 PNG 截图，返回删除数量。"""
        cutoff = (now if now is not None else time.time()) - self.retention_seconds
        removed = 0
        for directory in self.tracked_dirs:
            if not directory.is_dir():
                continue
            for entry in directory.glob("*.png"):
                try:
                    if entry.is_file() and entry.stat().st_mtime < cutoff:
                        entry.unlink()
                        removed += 1
                except OSError as e:
                    logger.warning(f"[Screenshot] Cannot remove {entry}: {e}")
        if removed:
            logger.info(f"[Screenshot] Cleanup removed {removed} expired file(s)")
        return removed

    def start(self) -> None:
        """启动时清理一次，并按间隔启动后台清理任务。"""
        self.sweep()
        if self.cleanup_interval > 0 and self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as e:
                logger.warning(f"[Screenshot] Cleanup failed: {e}")

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
