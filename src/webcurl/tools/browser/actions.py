"""
ActionDispatcher - 页面交互

选择器解析：``ref:<id>`` 改写为快照写入的 DOM 属性选择器，其余按 CSS 选择器原样使用。
click / hover / type / waitForSelector 先在超时内等待元素出现再操作；
scroll 固定滚动 500px；press_key 发送单个按键。
"""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ...core.errors import SelectorError, ValidationError
from .snapshot import REF_ATTRIBUTE

logger = logging.getLogger(__name__)

ACTIONS = ("click", "type", "scroll", "press_key", "hover", "waitForSelector")
SELECTOR_ACTIONS = frozenset({"click", "type", "hover", "waitForSelector"})
SCROLL_DIRECTIONS = ("up", "down")
SCROLL_STEP = 500
DEFAULT_ACTION_TIMEOUT_MS = 30000


def resolve_selector(selector: str, ref_attribute: str = REF_ATTRIBUTE) -> str:
    """``ref:e12`` -> ``[data-mcp-ref="e12"]``，其他选择器原样返回。"""
    if selector.startswith("ref:"):
        ref = selector[4:].strip()
        if not ref:
            raise ValidationError("Empty ref in selector 'ref:'")
        return f'[{ref_attribute}="{ref}"]'
    return selector


def validate_action(
    action: str,
    selector: str | None = None,
    text: str | None = None,
    direction: str | None = None,
    key: str | None = None,
    timeout: int | None = None,
) -> None:
    """参数校验，失败抛 ValidationError（在触达浏览器之前调用）。"""
    if action not in ACTIONS:
        raise ValidationError(f"Unknown action {action!r}. Expected one of: {', '.join(ACTIONS)}")
    if action in SELECTOR_ACTIONS and not selector:
        raise ValidationError(f"'selector' is required for action '{action}'")
    if action == "type" and text is None:
        raise ValidationError("'text' is required for action 'type'")
    if action == "scroll" and direction not in SCROLL_DIRECTIONS:
        raise ValidationError("'direction' must be 'up' or 'down' for action 'scroll'")
    if action == "press_key" and not key:
        raise ValidationError("'key' is required for action 'press_key'")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ValidationError(f"'timeout' must be a positive number of milliseconds, got {timeout!r}")


class ActionDispatcher:
    """在指定 page 上执行一次交互，返回简短确认文本。"""

    def __init__(self, ref_attribute: str = REF_ATTRIBUTE, default_timeout: int = DEFAULT_ACTION_TIMEOUT_MS):
        self.ref_attribute = ref_attribute
        self.default_timeout = default_timeout

    async def perform(
        self,
        page: Any,
        action: str,
        *,
        selector: str | None = None,
        text: str | None = None,
        direction: str | None = None,
        key: str | None = None,
        timeout: int | None = None,
    ) -> str:
        validate_action(action, selector, text, direction, key, timeout)
        timeout = timeout or self.default_timeout

        if action == "scroll":
            delta = -SCROLL_STEP if direction == "up" else SCROLL_STEP
            await page.evaluate("(dy) => window.scrollBy(0, dy)", delta)
            return f"Scrolled {direction} by {SCROLL_STEP}px"

        if action == "press_key":
            await page.keyboard.press(key)
            return f"Pressed {key}"

        resolved = resolve_selector(selector, self.ref_attribute)
        await self._wait_for(page, selector, resolved, timeout)

        try:
            if action == "click":
                await page.click(resolved, timeout=timeout)
                return f"Clicked {selector}"
            if action == "hover":
                await page.hover(resolved, timeout=timeout)
                return f"Hovered {selector}"
            if action == "type":
                await page.type(resolved, text, timeout=timeout)
                return f"Typed into {selector}"
        except PlaywrightTimeoutError as e:
            raise SelectorError(selector, f"Timed out after {timeout}ms acting on {selector}: {e}") from e

        return f"Found {selector}"

    async def _wait_for(self, page: Any, selector: str, resolved: str, timeout: int) -> None:
        try:
            await page.wait_for_selector(resolved, timeout=timeout)
        except PlaywrightTimeoutError as e:
            logger.info(f"[Action] Selector wait timed out: {selector} ({timeout}ms)")
            raise SelectorError(selector, f"Timed out after {timeout}ms waiting for {selector}") from e
        except PlaywrightError as e:
            raise SelectorError(selector, f"Cannot resolve {selector}: {e}") from e
