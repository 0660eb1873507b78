"""
web-curl MCP 服务器模块

- web_curl: 浏览器自动化工具（导航、快照、交互、标签页、截图、批量操作、搜索）
"""

from .web_curl import mcp as web_curl_mcp

__all__ = ["web_curl_mcp"]
