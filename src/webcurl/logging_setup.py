"""
日志初始化

stdout 归 stdio 传输使用，日志只写 stderr 和滚动日志文件。
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import Settings, settings as default_settings

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: Settings | None = None) -> logging.Logger:
    """配置根 logger（重复调用不会重复添加 handler）。"""
    s = settings or default_settings
    level = getattr(logging, s.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, "_webcurl_configured", False):
        return root

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    try:
        s.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            s.log_file_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as e:
        root.warning(f"Cannot open log file {s.log_file_path}: {e}")

    root._webcurl_configured = True
    return root
