"""Shared fixtures: isolated settings under tmp_path plus a fake Playwright driver."""

import pytest

from tests.fakes import FakePlaywright
from webcurl.config import Settings


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        project_root=tmp_path,
        auto_attach=False,
        browser_url="",
        idle_timeout_seconds=0,
        settle_delay_seconds=0,
        screenshot_cleanup_interval_seconds=0,
        apikey_google_search="",
        cx_google_search="",
    )


@pytest.fixture
def fake_playwright():
    return FakePlaywright()


@pytest.fixture
def manager(test_settings, fake_playwright):
    from webcurl.tools.browser.manager import BrowserManager

    return BrowserManager(settings=test_settings, playwright_factory=fake_playwright.factory)


@pytest.fixture
def handler(test_settings, manager):
    from webcurl.tools.handlers.browser import BrowserHandler

    return BrowserHandler(manager, settings=test_settings)
