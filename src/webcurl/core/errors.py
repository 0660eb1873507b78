"""
核心异常类

工具调用失败按类别划分，分发边界（BrowserHandler）统一捕获并转成结构化错误：

- ValidationError: 参数缺失或非法，在触达浏览器之前拒绝
- NavigationError: 导航超时 / 网络失败
- SelectorError: 目标元素在超时内未出现
- SessionError: 浏览器启动或连接失败
- ResourceError: 文件系统操作失败
- UpstreamError: 外部 API（搜索）失败
"""


class WebCurlError(Exception):
    """所有工具错误的基类。

    Attributes:
        kind: 错误类别名，用于拼接返回给调用方的错误消息
    """

    kind = "Error"

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)

    def describe(self) -> str:
        return f"{self.kind}: {self.message}"


class ValidationError(WebCurlError):
    kind = "ValidationError"


class NavigationError(WebCurlError):
    kind = "NavigationError"


class SelectorError(WebCurlError):
    """元素选择器在超时时间内未匹配到元素。"""

    kind = "SelectorError"

    def __init__(self, selector: str, message: str = ""):
        self.selector = selector
        super().__init__(message or f"Element not found: {selector}")


class SessionError(WebCurlError):
    kind = "SessionError"


class ResourceError(WebCurlError):
    kind = "ResourceError"


class UpstreamError(WebCurlError):
    kind = "UpstreamError"
