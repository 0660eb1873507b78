"""
浏览器进程标记与 Profile 管理

- PID 标记文件：启动浏览器后写入其进程号，下次启动时据此清理上次遗留的孤儿进程
- 持久化 profile 目录：cookies / 登录状态跨重启保留
"""

import logging
import tempfile
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

_BROWSER_PROCESS_MARKERS = ("chrome", "chromium", "headless_shell")


def is_browser_process(proc: psutil.Process) -> bool:
    try:
        name = proc.name().lower()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False
    return any(marker in name for marker in _BROWSER_PROCESS_MARKERS)


def find_browser_pid() -> int | None:
    """在当前进程的子孙进程里找到顶层浏览器进程（Playwright 驱动拉起的那个）。"""
    try:
        children = psutil.Process().children(recursive=True)
    except psutil.Error as e:
        logger.debug(f"[Browser] Cannot enumerate child processes: {e}")
        return None

    for proc in children:
        if not is_browser_process(proc):
            continue
        try:
            parent = proc.parent()
        except psutil.Error:
            parent = None
        if parent is None or not is_browser_process(parent):
            return proc.pid
    return None


def read_pid_marker(pid_file: Path) -> int | None:
    try:
        raw = pid_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning(f"[Browser] Cannot read pid marker {pid_file}: {e}")
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def write_pid_marker(pid_file: Path, pid: int | None) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(pid) if pid else "", encoding="utf-8")


def clear_pid_marker(pid_file: Path) -> None:
    try:
        pid_file.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[Browser] Cannot remove pid marker {pid_file}: {e}")


def kill_process_tree(pid: int) -> bool:
    """同步杀掉浏览器进程及其子进程。进程不存在或不是浏览器时返回 False。"""
    try:
        proc = psutil.Process(pid)
        if not is_browser_process(proc):
            logger.info(f"[Browser] PID {pid} is not a browser process, leaving it alone")
            return False
        victims = proc.children(recursive=True) + [proc]
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied as e:
        logger.warning(f"[Browser] No permission to inspect PID {pid}: {e}")
        return False

    for victim in victims:
        try:
            victim.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            logger.warning(f"[Browser] No permission to kill PID {victim.pid}: {e}")
    psutil.wait_procs(victims, timeout=3)
    return True


def kill_orphan_browser(pid_file: Path) -> bool:
    """清理上次运行遗留的浏览器进程，并删除标记文件。"""
    pid = read_pid_marker(pid_file)
    killed = False
    if pid:
        killed = kill_process_tree(pid)
        if killed:
            logger.info(f"[Browser] Killed orphaned browser process {pid}")
    clear_pid_marker(pid_file)
    return killed


def resolve_profile_dir(user_data_dir: Path, persist: bool) -> str:
    """持久化模式返回固定 profile 目录，否则返回一次性临时目录。"""
    if persist:
        user_data_dir.mkdir(parents=True, exist_ok=True)
        return str(user_data_dir)
    return tempfile.mkdtemp(prefix="webcurl_chromium_")
