"""
web-curl 包入口点 - 支持 `python -m webcurl` 和 `web-curl` 命令
"""

import atexit
import logging
import signal
import sys

from .logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _install_exit_hooks() -> None:
    """进程退出前同步结束自己启动的浏览器（lifespan 来不及执行时的兜底）。"""
    from .mcp_servers.web_curl import handler

    atexit.register(handler.manager.kill_sync)

    def _on_sigterm(signum, frame):
        logger.info(f"[Server] Received signal {signum}, shutting down")
        handler.manager.kill_sync()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _on_sigterm)


def main() -> None:
    setup_logging()
    _install_exit_hooks()

    from .mcp_servers.web_curl import mcp

    mcp.run()


if __name__ == "__main__":
    main()
