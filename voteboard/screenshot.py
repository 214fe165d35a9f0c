"""サイトのスクリーンショット取得.

取得戦略（上から順に試し、最初に成功したものを返す）:
  1. Microlink API（無料・高速）
  2. thum.io（HEAD で疎通確認のみ）
  3. PageSpeed Insights の final-screenshot（base64, 大きいことがある）
  4. Playwright によるローカル取得（制約環境では使わない）
"""

from __future__ import annotations

import base64
import logging
import time
from urllib.parse import urlparse

import requests

from voteboard.config import (
    BROWSER_CAPTURE_ENABLED,
    BROWSER_TIMEOUT,
    EXAMPLE_CACHE_SECONDS,
    EXAMPLE_CLIENT,
    FAVICON_URL_TEMPLATE,
    LARGE_SCREENSHOT_CHARS,
    MICROLINK_TIMEOUT,
    MICROLINK_URL,
    PAGESPEED_TIMEOUT,
    PAGESPEED_URL,
    PC_USER_AGENT,
    THUMIO_TIMEOUT,
    THUMIO_URL_TEMPLATE,
    VIEWPORT_HEIGHT,
    VIEWPORT_WIDTH,
)
from voteboard.errors import UpstreamUnavailable, ValidationError
from voteboard.models import ScreenshotResult

logger = logging.getLogger(__name__)

# クッキーバナーの「拒否」ボタン
COOKIE_REJECT_SELECTORS = [
    "#onetrust-reject-all-handler",
    "#CybotCookiebotDialogBodyButtonDecline",
    "#didomi-notice-disagree-button",
    ".didomi-continue-without-agreeing",
    "#tarteaucitronAllDenied2",
    ".cc-deny",
    "#reject-cookies",
    'button[data-cookiebanner="reject_button"]',
]


def validate_url(url: str) -> str:
    """http/https の URL のみ受け付ける."""
    if not url:
        raise ValidationError("URL is required", rule="missing_url")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError(f"Invalid URL: {url!r}", rule="invalid_url")
    return parsed.geturl()


def favicon_url(hostname: str, size: int = 64) -> str:
    return FAVICON_URL_TEMPLATE.format(domain=hostname, size=size)


def thumio_url(url: str) -> str:
    return THUMIO_URL_TEMPLATE.format(url=url)


def fetch_microlink(url: str) -> str | None:
    """Microlink のホスト済みスクリーンショット URL."""
    params = {
        "url": url,
        "screenshot": "true",
        "meta": "false",
        "viewport.width": VIEWPORT_WIDTH,
        "viewport.height": VIEWPORT_HEIGHT,
    }
    try:
        resp = requests.get(MICROLINK_URL, params=params, timeout=MICROLINK_TIMEOUT,
                            headers={"Accept": "application/json"})
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Microlink 失敗: url=%s, error=%s", url, e)
        return None
    return ((data.get("data") or {}).get("screenshot") or {}).get("url")


def probe_thumio(url: str) -> str | None:
    """thum.io は URL 自体が画像なので、HEAD が通れば URL を返す."""
    target = thumio_url(url)
    try:
        resp = requests.head(target, timeout=THUMIO_TIMEOUT, allow_redirects=True)
    except requests.RequestException as e:
        logger.warning("thum.io 失敗: url=%s, error=%s", url, e)
        return None
    if not resp.ok:
        logger.warning("thum.io 失敗: url=%s, status=%d", url, resp.status_code)
        return None
    return target


def fetch_pagespeed(url: str) -> str | None:
    """PageSpeed の final-screenshot（data URI）."""
    params = {"url": url, "strategy": "desktop", "category": "performance"}
    try:
        resp = requests.get(PAGESPEED_URL, params=params, timeout=PAGESPEED_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("PageSpeed 失敗: url=%s, error=%s", url, e)
        return None
    audits = (data.get("lighthouseResult") or {}).get("audits") or {}
    return ((audits.get("final-screenshot") or {}).get("details") or {}).get("data")


def capture_with_browser(url: str) -> str | None:
    """Playwright の Chromium で撮影し data URI を返す."""
    try:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright
    except ImportError:
        logger.warning("playwright が未インストールのためブラウザ取得をスキップ")
        return None

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            try:
                context = browser.new_context(
                    viewport={"width": VIEWPORT_WIDTH, "height": VIEWPORT_HEIGHT},
                    user_agent=PC_USER_AGENT,
                )
                page = context.new_page()
                page.goto(url, wait_until="domcontentloaded", timeout=BROWSER_TIMEOUT * 1000)
                _reject_cookies(page, PlaywrightError)
                page.wait_for_timeout(500)
                png = page.screenshot(type="png", full_page=False)
            finally:
                browser.close()
    except PlaywrightError as e:
        logger.warning("Playwright 失敗: url=%s, error=%s", url, e)
        return None

    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def _reject_cookies(page, error_cls) -> None:
    for selector in COOKIE_REJECT_SELECTORS:
        try:
            button = page.query_selector(selector)
            if button and button.is_visible():
                button.click()
                page.wait_for_timeout(300)
                return
        except error_cls:
            continue


def capture_screenshot(url: str, *, allow_browser: bool = BROWSER_CAPTURE_ENABLED) -> ScreenshotResult:
    """取得手段を順に試す.

    Raises:
        ValidationError: URL が不正
        UpstreamUnavailable: すべての手段が失敗
    """
    url = validate_url(url)
    favicon = favicon_url(urlparse(url).hostname)

    shot = fetch_microlink(url)
    if shot:
        return ScreenshotResult(screenshot_url=shot, favicon=favicon, source="microlink")

    shot = probe_thumio(url)
    if shot:
        return ScreenshotResult(screenshot_url=shot, favicon=favicon, source="thumio")

    shot = fetch_pagespeed(url)
    if shot:
        warning = None
        if len(shot) > LARGE_SCREENSHOT_CHARS:
            warning = "Screenshot is large and may cause upload issues"
        return ScreenshotResult(screenshot_url=shot, favicon=favicon, source="pagespeed",
                                is_base64=True, warning=warning)

    if allow_browser:
        shot = capture_with_browser(url)
        if shot:
            return ScreenshotResult(screenshot_url=shot, favicon=favicon, source="playwright",
                                    is_base64=True)

    logger.error("スクリーンショット取得手段がすべて失敗: url=%s", url)
    raise UpstreamUnavailable(
        "Impossible de capturer ce site. Vous pouvez coller une capture manuellement."
    )


# --- デモ用スクリーンショット（1 スロットのキャッシュ）---

_example_cache: dict = {"url": None, "at": 0.0}


def example_screenshot_url(now: float | None = None) -> str:
    """デモ用クライアントのスクリーンショット URL. Microlink の結果を 1 時間キャッシュする."""
    now = time.time() if now is None else now
    if _example_cache["url"] and now - _example_cache["at"] < EXAMPLE_CACHE_SECONDS:
        return _example_cache["url"]

    site_url = EXAMPLE_CLIENT["site_url"]
    shot = fetch_microlink(site_url)
    if shot:
        _example_cache["url"] = shot
        _example_cache["at"] = now
        return shot
    return thumio_url(site_url)


def clear_example_cache() -> None:
    _example_cache["url"] = None
    _example_cache["at"] = 0.0
