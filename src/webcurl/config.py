"""
web-curl 配置模块
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

# 项目根目录：src/webcurl/config.py 向上三级
# 截图、日志、浏览器 profile 等相对路径都以此为基准，而不是进程的工作目录
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """应用配置"""

    # 路径配置
    project_root: Path = Field(
        default=PROJECT_ROOT,
        description="项目根目录 (相对路径都基于此解析)"
    )

    # 日志
    log_level: str = Field(default="INFO", description="日志级别")
    log_file: str = Field(default="logs/web-curl.log", description="日志文件路径（相对项目根目录）")

    # === 浏览器会话 ===
    browser_url: str = Field(
        default="",
        description="远程浏览器调试地址（如 http://127.0.0.1:9222），设置后直接连接而不启动新进程"
    )
    cdp_port: int = Field(default=9222, description="本地调试端口，用于自动连接已运行的 Chrome")
    auto_attach: bool = Field(default=True, description="是否尝试自动连接本地调试端口")
    headless: bool = Field(default=True, description="是否以无头模式启动")
    proxy: str = Field(default="", description="代理服务器（如 http://proxy.example.com:8080）")
    user_agent: str = Field(default="", description="自定义 User-Agent")
    viewport_width: int = Field(default=1280, description="视口宽度")
    viewport_height: int = Field(default=800, description="视口高度")
    persist_session: bool = Field(
        default=True,
        description="是否使用持久化 profile（cookies / 登录状态跨重启保留）"
    )
    idle_timeout_seconds: float = Field(default=60, description="空闲多少秒后自动关闭浏览器")
    max_tabs: int = Field(default=10, description="最大并发标签页数")

    # === 导航 ===
    navigation_timeout_ms: int = Field(default=90000, description="页面导航超时（毫秒）")
    network_idle_timeout_ms: int = Field(default=30000, description="等待网络空闲超时（毫秒）")
    settle_delay_seconds: float = Field(default=1.5, description="导航完成后的稳定等待（秒）")

    # === 截图 ===
    screenshot_retention_days: float = Field(default=5, description="截图保留天数")
    screenshot_cleanup_interval_seconds: float = Field(
        default=3600, description="截图清理间隔（秒），0 表示只在启动时清理"
    )

    # === Google Custom Search ===
    apikey_google_search: str = Field(default="", description="Google Custom Search API Key")
    cx_google_search: str = Field(default="", description="Google Custom Search Engine ID")
    search_timeout_seconds: float = Field(default=30, description="搜索请求超时（秒）")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def logs_path(self) -> Path:
        """日志目录路径"""
        return self.project_root / "logs"

    @property
    def log_file_path(self) -> Path:
        """日志文件完整路径"""
        return self.project_root / self.log_file

    @property
    def pid_file(self) -> Path:
        """浏览器进程 PID 标记文件"""
        return self.logs_path / "browser.pid"

    @property
    def user_data_dir(self) -> Path:
        """持久化浏览器 profile 目录"""
        return self.project_root / "user_data"

    @property
    def screenshot_dir(self) -> Path:
        """默认截图目录"""
        return self.project_root / "screenshots"


# 全局配置实例
settings = Settings()
