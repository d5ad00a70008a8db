"""
Tests for the fetch module.

Tests cover:
- Session creation with retry configuration
- Cookie loading from a JSON export
- Fetching the grade page and error handling
"""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from grade_watcher.fetch import (
    DEFAULT_USER_AGENT,
    SourceFetchError,
    create_session,
    fetch_grade_page,
    fetch_portal_html,
    load_cookies,
    validate_url,
)


GRADES_URL = "https://wd10.myworkday.com/ubc/d/task/2998$30300.htmld"


class TestCreateSession:
    """Tests for session creation."""

    def test_session_has_retry_adapter(self):
        """Test that session is configured with retry adapter."""
        session = create_session(max_retries=5)

        adapter = session.get_adapter("https://example.com")
        assert adapter.max_retries.total == 5

    def test_session_has_user_agent(self):
        """Test that session has browser user agent set."""
        session = create_session()

        assert session.headers["User-Agent"] == DEFAULT_USER_AGENT


class TestValidateUrl:
    """Tests for URL validation."""

    def test_valid_urls(self):
        """Test HTTP and HTTPS URLs are accepted."""
        assert validate_url(GRADES_URL) is True
        assert validate_url("http://example.com/grades") is True

    def test_invalid_urls(self):
        """Test malformed or non-HTTP URLs are rejected."""
        assert validate_url("not-a-url") is False
        assert validate_url("ftp://example.com") is False
        assert validate_url("") is False


class TestLoadCookies:
    """Tests for cookie loading."""

    def test_loads_cookie_export(self, tmp_path):
        """Test cookies from a browser export are added to the session."""
        cookies_file = tmp_path / "cookies.json"
        cookies_file.write_text(json.dumps([
            {"name": "JSESSIONID", "value": "abc", "domain": "wd10.myworkday.com", "path": "/ubc"},
            {"name": "PLAY_SESSION", "value": "xyz"},
            {"value": "no-name"},
        ]))
        session = requests.Session()

        loaded = load_cookies(session, str(cookies_file))

        assert loaded == 2
        assert session.cookies.get("JSESSIONID", domain="wd10.myworkday.com") == "abc"
        assert session.cookies.get("PLAY_SESSION") == "xyz"

    def test_missing_file(self, tmp_path):
        """Test that a missing cookie file loads nothing."""
        assert load_cookies(requests.Session(), str(tmp_path / "none.json")) == 0

    def test_unexpected_format(self, tmp_path):
        """Test that a non-list export is ignored."""
        cookies_file = tmp_path / "cookies.json"
        cookies_file.write_text(json.dumps({"name": "x"}))

        assert load_cookies(requests.Session(), str(cookies_file)) == 0


class TestFetchGradePage:
    """Tests for fetching the grade page."""

    def test_successful_fetch(self):
        """Test successful page fetch returns HTML."""
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.text = "<html><body>Grades</body></html>"
        mock_session = Mock()
        mock_session.get.return_value = mock_response

        html = fetch_grade_page(GRADES_URL, mock_session, timeout=10)

        assert html == "<html><body>Grades</body></html>"
        mock_session.get.assert_called_once_with(GRADES_URL, timeout=10)

    def test_http_error(self):
        """Test that non-200 responses raise with the status code."""
        mock_response = Mock()
        mock_response.status_code = 403
        mock_session = Mock()
        mock_session.get.return_value = mock_response

        with pytest.raises(SourceFetchError) as exc_info:
            fetch_grade_page(GRADES_URL, mock_session)

        assert exc_info.value.status_code == 403

    def test_timeout(self):
        """Test that timeouts raise SourceFetchError."""
        mock_session = Mock()
        mock_session.get.side_effect = requests.exceptions.Timeout("Connection timed out")

        with pytest.raises(SourceFetchError, match="timeout"):
            fetch_grade_page(GRADES_URL, mock_session)

    def test_connection_error(self):
        """Test that connection errors raise SourceFetchError."""
        mock_session = Mock()
        mock_session.get.side_effect = requests.exceptions.ConnectionError("DNS lookup failed")

        with pytest.raises(SourceFetchError, match="Connection error"):
            fetch_grade_page(GRADES_URL, mock_session)

    def test_invalid_url_rejected(self):
        """Test invalid URLs are rejected without making request."""
        mock_session = Mock()

        with pytest.raises(SourceFetchError, match="Invalid URL"):
            fetch_grade_page("not-a-valid-url", mock_session)

        mock_session.get.assert_not_called()


class TestFetchPortalHtml:
    """Tests for the session-managing fetch."""

    @patch("grade_watcher.fetch.fetch_grade_page")
    @patch("grade_watcher.fetch.load_cookies")
    @patch("grade_watcher.fetch.create_session")
    def test_session_closed_after_fetch(self, mock_create_session, mock_load_cookies, mock_fetch):
        """Test cookies are loaded and the session closed."""
        mock_session = Mock()
        mock_create_session.return_value = mock_session
        mock_fetch.return_value = "<html></html>"

        html = fetch_portal_html(GRADES_URL, "cookies.json", timeout=5)

        assert html == "<html></html>"
        mock_load_cookies.assert_called_once_with(mock_session, "cookies.json")
        mock_fetch.assert_called_once_with(GRADES_URL, mock_session, 5)
        mock_session.close.assert_called_once()

    @patch("grade_watcher.fetch.fetch_grade_page")
    @patch("grade_watcher.fetch.load_cookies")
    @patch("grade_watcher.fetch.create_session")
    def test_session_closed_on_error(self, mock_create_session, mock_load_cookies, mock_fetch):
        """Test the session is closed when the fetch fails."""
        mock_session = Mock()
        mock_create_session.return_value = mock_session
        mock_fetch.side_effect = SourceFetchError("HTTP 500", status_code=500)

        with pytest.raises(SourceFetchError):
            fetch_portal_html(GRADES_URL, "cookies.json")

        mock_session.close.assert_called_once()
