"""クライアントサイトのトップページ情報とファビコン.

取得戦略:
  - テーマカラー: <meta name="theme-color">
  - サイト名: <meta property="og:site_name">、なければ <title>
"""

from __future__ import annotations

import logging
import re

import requests
from bs4 import BeautifulSoup

from voteboard.config import PC_USER_AGENT, REQUEST_TIMEOUT
from voteboard.errors import UpstreamUnavailable, ValidationError
from voteboard.models import SiteMeta
from voteboard.screenshot import favicon_url

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")
_DOMAIN = re.compile(r"^[A-Za-z0-9.-]+$")


def fetch_home_page(url: str) -> str | None:
    """トップページの HTML. 失敗時は None."""
    headers = {
        "User-Agent": PC_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }
    try:
        resp = requests.get(url, headers=headers, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.text
    except requests.RequestException as e:
        logger.warning("トップページ取得失敗: url=%s, error=%s", url, e)
        return None


def parse_site_meta(html: str) -> SiteMeta:
    soup = BeautifulSoup(html, "html.parser")

    theme_color = None
    tag = soup.find("meta", attrs={"name": "theme-color"})
    if tag and tag.get("content"):
        value = tag["content"].strip()
        if _HEX_COLOR.match(value):
            theme_color = value.lower()

    site_name = None
    tag = soup.find("meta", attrs={"property": "og:site_name"})
    if tag and tag.get("content"):
        site_name = tag["content"].strip()
    elif soup.title and soup.title.string:
        site_name = soup.title.string.strip()

    return SiteMeta(site_name=site_name or None, theme_color=theme_color)


def fetch_site_meta(url: str) -> SiteMeta:
    html = fetch_home_page(url)
    if html is None:
        return SiteMeta(site_name=None, theme_color=None)
    return parse_site_meta(html)


def fetch_favicon(domain: str, size: int = 64) -> tuple[bytes, str]:
    """ファビコン CDN から画像を取得する. (バイト列, Content-Type) を返す."""
    if not domain or not _DOMAIN.match(domain):
        raise ValidationError("Domain required", rule="missing_domain")
    try:
        resp = requests.get(favicon_url(domain, size), timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error("ファビコン取得失敗: domain=%s, error=%s", domain, e)
        raise UpstreamUnavailable("Failed to fetch favicon") from e
    return resp.content, resp.headers.get("Content-Type", "image/png")
