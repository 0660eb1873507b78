"""In-memory stand-ins for the Playwright objects BrowserManager / TabPool touch."""

from collections import defaultdict
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FakeEmitter:
    def __init__(self):
        self._handlers = defaultdict(list)

    def on(self, event, handler):
        self._handlers[event].append(handler)

    def emit(self, event, *args):
        for handler in list(self._handlers[event]):
            handler(*args)


class FakeConsoleMessage:
    def __init__(self, text, type="log", location=None):
        self.text = text
        self.type = type
        self.location = location or {"url": "", "lineNumber": 0, "columnNumber": 0}


class FakeRequest:
    def __init__(self, url, resource_type="xhr", method="GET"):
        self.url = url
        self.resource_type = resource_type
        self.method = method


class FakeResponse:
    def __init__(self, status=200):
        self.status = status


class FakeKeyboard:
    def __init__(self):
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)


class FakePage(FakeEmitter):
    def __init__(self, context=None, url="about:blank"):
        super().__init__()
        self.context = context
        self.url = url
        self.closed = False
        self.viewport = None
        self.keyboard = FakeKeyboard()
        self.html = "<html><body></body></html>"
        self.title_text = ""
        self.selectors = set()
        self.actions = []
        self.evaluate_calls = []
        self.evaluate_result = None
        self.goto_calls = []
        self.screenshots = []
        self.extra_headers = {}

    def is_closed(self):
        return self.closed

    async def close(self):
        if self.closed:
            return
        self.closed = True
        if self.context is not None and self in self.context.pages:
            self.context.pages.remove(self)
        self.emit("close", self)

    async def set_viewport_size(self, viewport):
        self.viewport = dict(viewport)

    async def set_extra_http_headers(self, headers):
        self.extra_headers.update(headers)

    async def title(self):
        return self.title_text

    async def bring_to_front(self):
        self.actions.append(("bring_to_front", None))

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if "bad" in url:
            raise PlaywrightError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.url = url
        return FakeResponse(200)

    async def wait_for_load_state(self, state, timeout=None):
        return None

    async def evaluate(self, script, arg=None):
        self.evaluate_calls.append((script, arg))
        if callable(self.evaluate_result):
            return self.evaluate_result(script, arg)
        return self.evaluate_result

    async def content(self):
        return self.html

    async def wait_for_selector(self, selector, timeout=None):
        if selector not in self.selectors:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def click(self, selector, timeout=None):
        self.actions.append(("click", selector))

    async def hover(self, selector, timeout=None):
        self.actions.append(("hover", selector))

    async def type(self, selector, text, timeout=None):
        self.actions.append(("type", selector, text))

    async def screenshot(self, path=None, full_page=False, type="png"):
        self.screenshots.append({"path": path, "full_page": full_page})
        Path(path).write_bytes(b"\x89PNG\r\n\x1a\n")


class FakeContext(FakeEmitter):
    def __init__(self, initial_pages=0):
        super().__init__()
        self.pages = []
        self.closed = False
        self.cookie_jar = []
        for _ in range(initial_pages):
            self.pages.append(FakePage(context=self))

    async def new_page(self):
        page = FakePage(context=self)
        self.pages.append(page)
        return page

    async def close(self):
        if self.closed:
            return
        self.closed = True
        for page in list(self.pages):
            await page.close()
        self.emit("close", self)

    async def cookies(self, urls=None):
        return list(self.cookie_jar)

    async def add_cookies(self, cookies):
        self.cookie_jar.extend(cookies)

    async def clear_cookies(self, name=None, domain=None, path=None):
        self.cookie_jar = [
            c for c in self.cookie_jar
            if not (
                (name is None or c.get("name") == name)
                and (domain is None or c.get("domain") == domain)
                and (path is None or c.get("path") == path)
            )
        ]


class FakeBrowser(FakeEmitter):
    def __init__(self, contexts=1):
        super().__init__()
        self.contexts = [FakeContext() for _ in range(contexts)]
        self.new_context_calls = []
        self.closed = False

    async def new_context(self, **kwargs):
        self.new_context_calls.append(kwargs)
        context = FakeContext()
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True
        self.emit("disconnected", self)


class FakeChromium:
    def __init__(self):
        self.launch_calls = []
        self.connect_calls = []
        self.contexts = []
        self.browsers = []
        self.initial_pages = 0
        self.attached_contexts = 1
        self.fail_launch = None

    async def launch_persistent_context(self, **kwargs):
        self.launch_calls.append(kwargs)
        if self.fail_launch:
            raise self.fail_launch
        context = FakeContext(initial_pages=self.initial_pages)
        self.contexts.append(context)
        return context

    async def connect_over_cdp(self, endpoint):
        self.connect_calls.append(endpoint)
        browser = FakeBrowser(contexts=self.attached_contexts)
        self.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self):
        self.chromium = FakeChromium()
        self.started = 0
        self.stopped = 0

    async def start(self):
        self.started += 1
        return self

    async def stop(self):
        self.stopped += 1

    def factory(self):
        return self
