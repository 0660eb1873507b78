"""
web-curl - 面向 Agent 的浏览器自动化 MCP 服务

单浏览器进程 + 有界标签池 + 结构化页面快照。
"""


def _resolve_version() -> str:
    """
    解析版本号。
    优先级：
      1. pyproject.toml（editable 安装时始终最新）
      2. importlib.metadata（正式 pip install 后可用）
    """
    from pathlib import Path

    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    if pyproject_path.exists():
        try:
            import tomllib
            with open(pyproject_path, "rb") as f:
                return tomllib.load(f)["project"]["version"]
        except Exception:
            pass

    try:
        from importlib.metadata import version
        return version("web-curl")
    except Exception:
        pass

    return "0.0.0-dev"


__version__ = _resolve_version()
