"""
工具处理器
"""

from .browser import BrowserHandler

__all__ = ["BrowserHandler"]
