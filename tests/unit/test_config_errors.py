"""L1 Unit Tests: settings defaults/derived paths and the error taxonomy."""

from webcurl.config import Settings
from webcurl.core.errors import (
    NavigationError,
    ResourceError,
    SelectorError,
    SessionError,
    UpstreamError,
    ValidationError,
    WebCurlError,
)


class TestSettings:
    def test_defaults(self, tmp_path):
        s = Settings(_env_file=None, project_root=tmp_path)
        assert s.max_tabs == 10
        assert s.idle_timeout_seconds == 60
        assert (s.viewport_width, s.viewport_height) == (1280, 800)
        assert s.screenshot_retention_days == 5

    def test_derived_paths_follow_project_root(self, tmp_path):
        s = Settings(_env_file=None, project_root=tmp_path)
        assert s.pid_file == tmp_path / "logs" / "browser.pid"
        assert s.user_data_dir == tmp_path / "user_data"
        assert s.screenshot_dir == tmp_path / "screenshots"
        assert s.log_file_path == tmp_path / "logs" / "web-curl.log"

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APIKEY_GOOGLE_SEARCH", "secret")
        monkeypatch.setenv("MAX_TABS", "4")
        s = Settings(_env_file=None, project_root=tmp_path)
        assert s.apikey_google_search == "secret"
        assert s.max_tabs == 4


class TestErrors:
    def test_describe_prefixes_kind(self):
        cases = [
            (ValidationError("bad"), "ValidationError: bad"),
            (NavigationError("slow"), "NavigationError: slow"),
            (SessionError("dead"), "SessionError: dead"),
            (ResourceError("disk"), "ResourceError: disk"),
            (UpstreamError("api"), "UpstreamError: api"),
        ]
        for error, text in cases:
            assert isinstance(error, WebCurlError)
            assert error.describe() == text

    def test_selector_error_default_message(self):
        error = SelectorError("#go")
        assert error.selector == "#go"
        assert error.describe() == "SelectorError: Element not found: #go"
