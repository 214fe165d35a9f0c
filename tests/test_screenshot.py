"""screenshot モジュールのテスト（外部 API はすべてモック）."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from voteboard.errors import UpstreamUnavailable, ValidationError
from voteboard.screenshot import (
    capture_screenshot,
    clear_example_cache,
    example_screenshot_url,
    fetch_microlink,
    fetch_pagespeed,
    validate_url,
)

SITE = "https://acme.com"


def _json_response(payload, status=200):
    resp = MagicMock(status_code=status, ok=status < 400)
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status}")
    return resp


def _microlink(url):
    return _json_response({"status": "success", "data": {"screenshot": {"url": url}}})


def _pagespeed(data):
    return _json_response({"lighthouseResult": {"audits": {"final-screenshot": {"details": {"data": data}}}}})


@pytest.fixture(autouse=True)
def _reset_cache():
    clear_example_cache()
    yield
    clear_example_cache()


class TestValidateUrl:
    """validate_url のテスト."""

    def test_valid(self):
        assert validate_url(" https://acme.com/path ") == "https://acme.com/path"

    def test_missing(self):
        with pytest.raises(ValidationError) as exc:
            validate_url("")
        assert exc.value.rule == "missing_url"

    @pytest.mark.parametrize("url", ["acme.com", "ftp://acme.com", "https://"])
    def test_invalid(self, url):
        with pytest.raises(ValidationError) as exc:
            validate_url(url)
        assert exc.value.rule == "invalid_url"


class TestProviders:
    """個別プロバイダのテスト."""

    @patch("voteboard.screenshot.requests.get")
    def test_microlink_params(self, mock_get):
        mock_get.return_value = _microlink("https://cdn.test/a.png")

        assert fetch_microlink(SITE) == "https://cdn.test/a.png"
        params = mock_get.call_args.kwargs["params"]
        assert params["url"] == SITE
        assert params["screenshot"] == "true"

    @patch("voteboard.screenshot.requests.get")
    def test_microlink_without_screenshot(self, mock_get):
        mock_get.return_value = _json_response({"status": "fail", "data": None})
        assert fetch_microlink(SITE) is None

    @patch("voteboard.screenshot.requests.get")
    def test_pagespeed_http_error(self, mock_get):
        mock_get.return_value = _json_response({}, status=500)
        assert fetch_pagespeed(SITE) is None


class TestCaptureScreenshot:
    """capture_screenshot のテスト."""

    @patch("voteboard.screenshot.requests.head")
    @patch("voteboard.screenshot.requests.get")
    def test_microlink_first(self, mock_get, mock_head):
        mock_get.return_value = _microlink("https://cdn.test/a.png")

        result = capture_screenshot(SITE, allow_browser=False)

        assert result.source == "microlink"
        assert result.screenshot_url == "https://cdn.test/a.png"
        assert result.is_base64 is False
        assert result.favicon == "https://www.google.com/s2/favicons?domain=acme.com&sz=64"
        mock_head.assert_not_called()

    @patch("voteboard.screenshot.requests.head")
    @patch("voteboard.screenshot.requests.get")
    def test_thumio_fallback(self, mock_get, mock_head):
        mock_get.side_effect = requests.Timeout("slow")
        mock_head.return_value = MagicMock(ok=True, status_code=200)

        result = capture_screenshot(SITE, allow_browser=False)

        assert result.source == "thumio"
        assert result.screenshot_url.endswith("/noanimate/https://acme.com")
        assert mock_get.call_count == 1

    @patch("voteboard.screenshot.requests.head")
    @patch("voteboard.screenshot.requests.get")
    def test_pagespeed_fallback(self, mock_get, mock_head):
        mock_get.side_effect = [requests.ConnectionError("x"), _pagespeed("data:image/jpeg;base64,AAAA")]
        mock_head.return_value = MagicMock(ok=False, status_code=503)

        result = capture_screenshot(SITE, allow_browser=False)

        assert result.source == "pagespeed"
        assert result.is_base64 is True
        assert result.warning is None

    @patch("voteboard.screenshot.requests.head")
    @patch("voteboard.screenshot.requests.get")
    def test_large_pagespeed_warns(self, mock_get, mock_head):
        big = "data:image/jpeg;base64," + "A" * 1_000_001
        mock_get.side_effect = [requests.ConnectionError("x"), _pagespeed(big)]
        mock_head.side_effect = requests.ConnectionError("x")

        result = capture_screenshot(SITE, allow_browser=False)

        assert result.warning == "Screenshot is large and may cause upload issues"

    @patch("voteboard.screenshot.capture_with_browser")
    @patch("voteboard.screenshot.requests.head")
    @patch("voteboard.screenshot.requests.get")
    def test_browser_last(self, mock_get, mock_head, mock_browser):
        mock_get.side_effect = requests.ConnectionError("x")
        mock_head.side_effect = requests.ConnectionError("x")
        mock_browser.return_value = "data:image/png;base64,AAAA"

        result = capture_screenshot(SITE, allow_browser=True)

        assert result.source == "playwright"
        mock_browser.assert_called_once_with(SITE)

    @patch("voteboard.screenshot.capture_with_browser")
    @patch("voteboard.screenshot.requests.head")
    @patch("voteboard.screenshot.requests.get")
    def test_all_fail(self, mock_get, mock_head, mock_browser):
        mock_get.side_effect = requests.ConnectionError("x")
        mock_head.side_effect = requests.ConnectionError("x")

        with pytest.raises(UpstreamUnavailable):
            capture_screenshot(SITE, allow_browser=False)
        mock_browser.assert_not_called()

    def test_invalid_url_makes_no_request(self):
        with patch("voteboard.screenshot.requests.get") as mock_get:
            with pytest.raises(ValidationError):
                capture_screenshot("not a url", allow_browser=False)
        mock_get.assert_not_called()


class TestExampleScreenshot:
    """デモ用スクリーンショットのキャッシュ."""

    @patch("voteboard.screenshot.requests.get")
    def test_cached_for_an_hour(self, mock_get):
        mock_get.return_value = _microlink("https://cdn.test/demo.png")

        assert example_screenshot_url(now=1000.0) == "https://cdn.test/demo.png"
        assert example_screenshot_url(now=1000.0 + 3599) == "https://cdn.test/demo.png"
        assert mock_get.call_count == 1

        example_screenshot_url(now=1000.0 + 3601)
        assert mock_get.call_count == 2

    @patch("voteboard.screenshot.requests.get")
    def test_fallback_not_cached(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("x")

        url = example_screenshot_url(now=1000.0)
        assert url.startswith("https://image.thum.io/")

        mock_get.side_effect = None
        mock_get.return_value = _microlink("https://cdn.test/demo.png")
        assert example_screenshot_url(now=1001.0) == "https://cdn.test/demo.png"
