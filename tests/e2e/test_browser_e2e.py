"""L4 E2E Tests: real Chromium via Playwright.

Skipped when Chromium is not installed. Install it with:
    playwright install chromium
Run with: pytest tests/e2e -v
"""

import pytest
import pytest_asyncio
from playwright.async_api import async_playwright

from webcurl.tools.browser.actions import ActionDispatcher
from webcurl.tools.browser.snapshot import SnapshotEngine, prune_tree

pytestmark = pytest.mark.e2e

SUBMIT_FORM = """
<html><body>
  <div class="wrapper">
    <form>
      <button type="button" onclick="document.title = 'clicked'"><span>Submit</span></button>
      <input type="hidden" name="token" value="x">
      <div style="display:none"><button>Hidden</button></div>
    </form>
  </div>
</body></html>
"""


@pytest_asyncio.fixture
async def page():
    pw = await async_playwright().start()
    try:
        browser = await pw.chromium.launch(headless=True, args=["--no-sandbox"])
    except Exception as e:
        await pw.stop()
        pytest.skip(f"Chromium unavailable: {e}")
    context = await browser.new_context()
    p = await context.new_page()
    yield p
    await browser.close()
    await pw.stop()


def _collect(nodes, role):
    found = []
    for node in nodes:
        if node.role == role:
            found.append(node)
        found.extend(_collect(node.children, role))
    return found


class TestSnapshotRefs:
    @pytest.mark.asyncio
    async def test_single_submit_button_with_stable_ref(self, page):
        await page.set_content(SUBMIT_FORM)
        engine = SnapshotEngine()

        first = prune_tree(await engine.capture(page))
        buttons = _collect(first, "button")
        assert len(buttons) == 1
        assert buttons[0].name == "Submit"
        assert buttons[0].ref

        second = prune_tree(await engine.capture(page))
        assert _collect(second, "button")[0].ref == buttons[0].ref

    @pytest.mark.asyncio
    async def test_click_by_ref(self, page):
        await page.set_content(SUBMIT_FORM)
        engine = SnapshotEngine()
        [button] = _collect(prune_tree(await engine.capture(page)), "button")

        result = await ActionDispatcher().perform(page, "click", selector=f"ref:{button.ref}", timeout=5000)

        assert result == f"Clicked ref:{button.ref}"
        assert await page.title() == "clicked"

    @pytest.mark.asyncio
    async def test_viewport_mode_skips_content_below_fold(self, page):
        await page.set_viewport_size({"width": 800, "height": 600})
        await page.set_content(
            '<body><a href="https://top.example/">Top</a>'
            '<div style="height:3000px"></div>'
            '<a href="https://bottom.example/">Bottom</a></body>'
        )
        outline = await SnapshotEngine().tree(page, viewport_only=True)
        assert "Top" in outline
        assert "Bottom" not in outline
        full = await SnapshotEngine().tree(page)
        assert "Bottom" in full


class TestHandlerRoundTrip:
    @pytest.mark.asyncio
    async def test_navigate_snapshot_close(self, tmp_path):
        from webcurl.config import Settings
        from webcurl.tools.handlers.browser import BrowserHandler

        settings = Settings(
            _env_file=None,
            project_root=tmp_path,
            auto_attach=False,
            idle_timeout_seconds=0,
            settle_delay_seconds=0,
            network_idle_timeout_ms=2000,
        )
        handler = BrowserHandler(settings=settings)

        nav = await handler.handle("browser_navigate", {"url": "data:text/html,<button>Submit</button>"})
        if not nav["success"] and nav["error"].startswith("SessionError"):
            pytest.skip(f"Chromium unavailable: {nav['error']}")
        assert nav["success"], nav

        snapshot = await handler.handle("browser_snapshot", {"mode": "tree"})
        assert 'button: "Submit" [ref:e1]' in snapshot["result"]

        shot = await handler.handle("take_screenshot", {"filename": "page"})
        assert (tmp_path / "screenshots" / "page.png").exists(), shot

        closed = await handler.handle("browser_close", {})
        assert closed["result"] == "Browser closed"
        assert not settings.pid_file.exists()
