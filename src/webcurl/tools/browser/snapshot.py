"""
SnapshotEngine - 页面状态快照

两种模式：
- tree / viewport: 遍历 DOM 生成缩进文本大纲（角色、名称、ref），
  viewport 模式只保留与当前视口相交的分支
- html: 返回原始 HTML 的 [startIndex, endIndex) 切片，附带剩余字符数便于续读

ref 以 DOM 属性形式写在元素上，同一次导航内重复快照得到相同的 ref，
后续动作通过 ``ref:<id>`` 定位元素。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from ...core.errors import ValidationError

logger = logging.getLogger(__name__)

REF_ATTRIBUTE = "data-mcp-ref"
MAX_NAME_LENGTH = 60
HTML_SLICE_DEFAULT = 20000

SNAPSHOT_MODES = ("tree", "viewport", "html")

_TREE_JS = r"""
({ refAttr, maxNameLength }) => {
  if (!document.body) return null;
  if (!Number.isInteger(window.__mcpRefCounter) || window.__mcpRefCounter < 1) {
    window.__mcpRefCounter = 1;
  }

  const SKIP_TAGS = new Set(["SCRIPT", "STYLE", "NOSCRIPT", "TEMPLATE", "META", "LINK", "HEAD"]);
  const INTERACTIVE = new Set([
    "button", "link", "textbox", "searchbox", "checkbox", "radio", "combobox",
    "listbox", "option", "slider", "spinbutton", "switch", "tab", "menuitem"
  ]);
  const vw = window.innerWidth || document.documentElement.clientWidth;
  const vh = window.innerHeight || document.documentElement.clientHeight;

  const roleOf = (el) => {
    const aria = (el.getAttribute("role") || "").trim();
    if (aria) return aria.split(/\s+/)[0];
    const tag = el.tagName.toLowerCase();
    switch (tag) {
      case "button": return "button";
      case "a": return el.hasAttribute("href") ? "link" : "generic";
      case "input": {
        const type = (el.getAttribute("type") || "text").toLowerCase();
        if (["button", "submit", "reset", "image"].includes(type)) return "button";
        if (type === "checkbox") return "checkbox";
        if (type === "radio") return "radio";
        if (type === "range") return "slider";
        if (type === "search") return "searchbox";
        return "textbox";
      }
      case "textarea": return "textbox";
      case "select": return "combobox";
      case "option": return "option";
      case "h1": case "h2": case "h3": case "h4": case "h5": case "h6": return "heading";
      case "img": return "image";
      case "table": return "table";
      case "tr": return "row";
      case "td": return "cell";
      case "th": return "columnheader";
      case "ul": case "ol": return "list";
      case "li": return "listitem";
      case "nav": return "navigation";
      case "main": return "main";
      case "header": return "banner";
      case "footer": return "contentinfo";
      case "aside": return "complementary";
      case "form": return "form";
      case "dialog": return "dialog";
      case "p": return "paragraph";
      case "label": return "label";
      default: return "generic";
    }
  };

  const clip = (value) => String(value || "").trim().slice(0, maxNameLength).trim();

  const nameOf = (el, role) => {
    const aria = el.getAttribute("aria-label");
    if (aria && aria.trim()) return clip(aria);
    // generic 容器只从 aria-label 取名，文本归属到真正承载它的子元素
    if (role === "generic" && el.children.length > 0) return "";
    const text = String(el.innerText || "").trim().split("\n")[0];
    if (text.trim()) return clip(text);
    const placeholder = el.getAttribute("placeholder");
    if (placeholder && placeholder.trim()) return clip(placeholder);
    const alt = el.getAttribute("alt");
    if (alt && alt.trim()) return clip(alt);
    if (el.tagName === "INPUT" && role === "button") return clip(el.value);
    return "";
  };

  const build = (el, parentCursor) => {
    if (SKIP_TAGS.has(el.tagName)) return null;
    const style = window.getComputedStyle(el);
    if (!style) return null;
    if (style.display === "none" || style.visibility === "hidden" || parseFloat(style.opacity) === 0) {
      return null;
    }
    if (el.tagName === "INPUT" && (el.getAttribute("type") || "").toLowerCase() === "hidden") return null;

    const rect = el.getBoundingClientRect();
    const visible = rect.width > 0 && rect.height > 0;
    const inViewport = visible && rect.bottom > 0 && rect.right > 0 && rect.top < vh && rect.left < vw;
    const role = roleOf(el);
    const pointer = style.cursor === "pointer" && parentCursor !== "pointer";

    const node = { role, name: nameOf(el, role), ref: null, visible, inViewport, children: [] };
    if (role === "link") node.href = el.href || el.getAttribute("href");
    if (role === "heading") {
      const m = el.tagName.match(/^H([1-6])$/);
      node.level = m ? Number(m[1]) : (Number(el.getAttribute("aria-level")) || null);
    }
    if (pointer) node.cursor = "pointer";

    if (INTERACTIVE.has(role) || typeof el.onclick === "function" || pointer) {
      let ref = el.getAttribute(refAttr);
      if (!ref) {
        ref = `e${window.__mcpRefCounter++}`;
        el.setAttribute(refAttr, ref);
      }
      node.ref = ref;
    }

    for (const child of Array.from(el.children)) {
      const built = build(child, style.cursor);
      if (built) node.children.push(built);
    }
    return node;
  };

  return build(document.body, "auto");
}
"""

_LINKS_JS = """() => Array.from(document.querySelectorAll('a'))
    .map(a => ({ text: (a.innerText || '').trim(), href: a.href }))
    .filter(l => l.href && l.href.startsWith('http'))"""


@dataclass
class AccessibilityNode:
    role: str
    name: str = ""
    ref: str | None = None
    visible: bool = True
    in_viewport: bool = True
    href: str | None = None
    level: int | None = None
    cursor: str | None = None
    children: list[AccessibilityNode] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessibilityNode:
        return cls(
            role=data.get("role") or "generic",
            name=data.get("name") or "",
            ref=data.get("ref") or None,
            visible=bool(data.get("visible", True)),
            in_viewport=bool(data.get("inViewport", True)),
            href=data.get("href") or None,
            level=data.get("level") or None,
            cursor=data.get("cursor") or None,
            children=[cls.from_dict(c) for c in data.get("children") or []],
        )

    def is_plain_wrapper(self, parent_name: str = "") -> bool:
        if self.role != "generic" or self.ref:
            return False
        # <button><span>Submit</span></button> 中的 span 不重复输出
        return not self.name or self.name == parent_name


def prune_tree(
    node: AccessibilityNode,
    viewport_only: bool = False,
    parent_name: str = "",
) -> list[AccessibilityNode]:
    """裁剪不可见分支并展开无名 generic 包装节点。

    不在视口（或无尺寸）的容器仍会保留，只要它有可见的后代；
    整个分支都不可见时才删除。返回裁剪后的节点森林。
    """
    kept_children: list[AccessibilityNode] = []
    for child in node.children:
        kept_children.extend(prune_tree(child, viewport_only, node.name or parent_name))

    shown = node.visible and (node.in_viewport or not viewport_only)
    if not shown and not kept_children:
        return []
    if node.is_plain_wrapper(parent_name):
        return kept_children
    return [replace(node, children=kept_children)]


def _format_line(node: AccessibilityNode, depth: int) -> str:
    name = node.name.replace('"', '\\"')
    line = f'{"  " * depth}{node.role}: "{name}"'
    if node.ref:
        line += f" [ref:{node.ref}]"
    if node.level:
        line += f" [level={node.level}]"
    if node.href:
        line += f" [href={node.href}]"
    if node.cursor:
        line += f" [cursor={node.cursor}]"
    return line


def render_outline(nodes: list[AccessibilityNode], depth: int = 0) -> str:
    lines: list[str] = []

    def walk(node: AccessibilityNode, level: int) -> None:
        lines.append(_format_line(node, level))
        for child in node.children:
            walk(child, level + 1)

    for node in nodes:
        walk(node, depth)
    return "\n".join(lines)


def validate_slice_bounds(start_index: int, end_index: int | None) -> int:
    """校验切片参数，返回实际使用的 end_index（默认 start_index + 20000）。"""
    if isinstance(start_index, bool) or not isinstance(start_index, int) or start_index < 0:
        raise ValidationError(f"startIndex must be a non-negative integer, got {start_index!r}")
    if end_index is None:
        return start_index + HTML_SLICE_DEFAULT
    if isinstance(end_index, bool) or not isinstance(end_index, int) or end_index < start_index:
        raise ValidationError(
            f"endIndex must be an integer >= startIndex ({start_index}), got {end_index!r}"
        )
    return end_index


def slice_html(content: str, start_index: int = 0, end_index: int | None = None) -> dict[str, Any]:
    """按 [start_index, end_index) 切片 HTML，end_index 默认 start_index + 20000 并截断到内容长度。"""
    end_index = validate_slice_bounds(start_index, end_index)

    total = len(content)
    start = min(start_index, total)
    end = min(end_index, total)
    return {
        "totalLength": total,
        "startIndex": start,
        "endIndex": end,
        "remainingCharacters": total - end,
        "content": content[start:end],
    }


class SnapshotEngine:
    """在 page 上生成结构化大纲或 HTML 切片。"""

    def __init__(self, ref_attribute: str = REF_ATTRIBUTE, max_name_length: int = MAX_NAME_LENGTH):
        self.ref_attribute = ref_attribute
        self.max_name_length = max_name_length

    async def capture(self, page: Any) -> AccessibilityNode | None:
        raw = await page.evaluate(
            _TREE_JS,
            {"refAttr": self.ref_attribute, "maxNameLength": self.max_name_length},
        )
        if not raw:
            return None
        return AccessibilityNode.from_dict(raw)

    async def tree(self, page: Any, viewport_only: bool = False) -> str:
        root = await self.capture(page)
        if root is None:
            return "(empty page)"
        nodes = prune_tree(root, viewport_only=viewport_only)
        if not nodes:
            return "(no visible elements)"
        return render_outline(nodes)

    async def html(self, page: Any, start_index: int = 0, end_index: int | None = None) -> dict:
        content = await page.content()
        return slice_html(content, start_index, end_index)

    async def links(self, page: Any) -> list[dict[str, str]]:
        return await page.evaluate(_LINKS_JS)
