"""Notion API クライアントとプロパティ操作ヘルパー.

Notion をデータベース代わりに使う。ページ・インラインデータベース・
型付きプロパティ（title, rich_text, select, checkbox, files, url, date）のみ扱う。
自動リトライは行わない。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

import requests

from voteboard.config import NOTION_API_BASE, NOTION_API_KEY, NOTION_VERSION, REQUEST_TIMEOUT
from voteboard.errors import ConfigurationError, StoreError

logger = logging.getLogger(__name__)


class NotionStore:
    """Notion REST API の薄いラッパー."""

    def __init__(self, api_key: str, *, timeout: float = REQUEST_TIMEOUT,
                 session: requests.Session | None = None):
        if not api_key:
            raise ConfigurationError("NOTION_API_KEY not configured")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Notion-Version": NOTION_VERSION,
        })

    def _request(self, method: str, path: str, *, json: dict | None = None,
                 params: dict | None = None, files: dict | None = None) -> dict:
        url = f"{NOTION_API_BASE}{path}"
        try:
            resp = self.session.request(
                method, url, json=json, params=params, files=files, timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Notion 通信失敗: %s %s, error=%s", method, path, e)
            raise StoreError(str(e)) from e

        if not resp.ok:
            try:
                message = resp.json().get("message") or resp.text
            except ValueError:
                message = resp.text
            logger.error("Notion API エラー: %s %s, status=%d, message=%s",
                         method, path, resp.status_code, message)
            raise StoreError(message, upstream_status=resp.status_code)
        return resp.json()

    # --- ページ ---

    def retrieve_page(self, page_id: str) -> dict:
        return self._request("GET", f"/pages/{page_id}")

    def create_page(self, parent: dict, properties: dict, *,
                    children: list[dict] | None = None, icon: dict | None = None) -> dict:
        payload: dict = {"parent": parent, "properties": properties}
        if children:
            payload["children"] = children
        if icon:
            payload["icon"] = icon
        return self._request("POST", "/pages", json=payload)

    def update_page(self, page_id: str, properties: dict) -> dict:
        return self._request("PATCH", f"/pages/{page_id}", json={"properties": properties})

    # --- ブロック ---

    def list_children(self, block_id: str, page_size: int = 100,
                      start_cursor: str | None = None) -> dict:
        params: dict = {"page_size": page_size}
        if start_cursor:
            params["start_cursor"] = start_cursor
        return self._request("GET", f"/blocks/{block_id}/children", params=params)

    def iter_children(self, block_id: str, page_size: int = 100) -> Iterator[dict]:
        """子ブロックを next_cursor を辿って全件返す."""
        cursor = None
        while True:
            resp = self.list_children(block_id, page_size=page_size, start_cursor=cursor)
            yield from resp.get("results", [])
            if not resp.get("has_more"):
                return
            cursor = resp.get("next_cursor")
            if not cursor:
                return

    def append_children(self, block_id: str, children: list[dict]) -> dict:
        return self._request("PATCH", f"/blocks/{block_id}/children", json={"children": children})

    def update_block(self, block_id: str, payload: dict) -> dict:
        return self._request("PATCH", f"/blocks/{block_id}", json=payload)

    # --- データベース ---

    def retrieve_database(self, database_id: str) -> dict:
        return self._request("GET", f"/databases/{database_id}")

    def create_database(self, parent_page_id: str, title: str, properties: dict, *,
                        icon: dict | None = None) -> dict:
        payload: dict = {
            "parent": {"type": "page_id", "page_id": parent_page_id},
            "title": [{"type": "text", "text": {"content": title}}],
            "is_inline": True,
            "properties": properties,
        }
        if icon:
            payload["icon"] = icon
        return self._request("POST", "/databases", json=payload)

    def query_database(self, database_id: str, *, filter: dict | None = None,
                       page_size: int = 100, start_cursor: str | None = None) -> dict:
        payload: dict = {"page_size": page_size}
        if filter:
            payload["filter"] = filter
        if start_cursor:
            payload["start_cursor"] = start_cursor
        return self._request("POST", f"/databases/{database_id}/query", json=payload)

    def iter_database(self, database_id: str, *, filter: dict | None = None,
                      page_size: int = 100) -> Iterator[dict]:
        """クエリ結果を全ページ分返す."""
        cursor = None
        while True:
            resp = self.query_database(database_id, filter=filter, page_size=page_size,
                                       start_cursor=cursor)
            yield from resp.get("results", [])
            if not resp.get("has_more") or not resp.get("next_cursor"):
                return
            cursor = resp["next_cursor"]

    # --- ファイル ---

    def upload_file(self, filename: str, content: bytes, content_type: str = "image/png") -> str:
        """2 段階アップロード（登録 → 送信）. file_upload ID を返す."""
        upload = self._request("POST", "/file_uploads", json={
            "mode": "single_part",
            "filename": filename,
            "content_type": content_type,
        })
        upload_id = upload["id"]
        self._request("POST", f"/file_uploads/{upload_id}/send",
                      files={"file": (filename, content, content_type)})
        logger.info("ファイルアップロード完了: %s (%d bytes)", filename, len(content))
        return upload_id


def get_store() -> NotionStore:
    """環境変数の API キーでクライアントを作る."""
    return NotionStore(NOTION_API_KEY)


# --- プロパティ読み取り ---

def plain_text(prop: dict | None) -> str:
    """title / rich_text プロパティを平文にする."""
    if not prop:
        return ""
    items = prop.get("title")
    if items is None:
        items = prop.get("rich_text")
    if not isinstance(items, list):
        return ""
    return "".join(t.get("plain_text", "") for t in items)


def block_text(block: dict) -> str:
    """ブロック（code, paragraph 等）の本文を平文にする."""
    body = block.get(block.get("type", ""), {}) or {}
    return "".join(t.get("plain_text", "") for t in body.get("rich_text", []))


def select_name(prop: dict | None) -> str | None:
    if not prop or not prop.get("select"):
        return None
    return prop["select"].get("name")


def checkbox(prop: dict | None) -> bool:
    return bool(prop and prop.get("checkbox"))


def file_url(prop: dict | None) -> str:
    """files プロパティの先頭ファイルの URL. アップロード済みを優先する."""
    if not prop:
        return ""
    files = prop.get("files") or []
    for f in files:
        if f.get("type") == "file" and f.get("file"):
            return f["file"].get("url", "")
    for f in files:
        if f.get("type") == "external" and f.get("external"):
            return f["external"].get("url", "")
    return ""


# --- プロパティ書き込み ---

def title_prop(text: str) -> dict:
    return {"title": [{"type": "text", "text": {"content": text}}]}


def rich_text_prop(text: str | None) -> dict:
    if not text:
        return {"rich_text": []}
    return {"rich_text": [{"type": "text", "text": {"content": text}}]}


def select_prop(name: str | None) -> dict:
    return {"select": {"name": name} if name else None}


def checkbox_prop(value: bool) -> dict:
    return {"checkbox": bool(value)}


def url_prop(url: str | None) -> dict:
    return {"url": url or None}


def date_prop(start: str | None) -> dict:
    return {"date": {"start": start} if start else None}


def files_prop(*, upload_id: str | None = None, external_url: str | None = None,
               name: str = "image.png") -> dict:
    if upload_id:
        return {"files": [{"type": "file_upload", "file_upload": {"id": upload_id}, "name": name}]}
    if external_url:
        return {"files": [{"type": "external", "external": {"url": external_url}, "name": name}]}
    return {"files": []}


def code_block(content: str, language: str = "json") -> dict:
    return {
        "object": "block",
        "type": "code",
        "code": {
            "language": language,
            "rich_text": [{"type": "text", "text": {"content": content}}],
        },
    }


def paragraph_block(text: str, link: str | None = None) -> dict:
    rt: dict = {"type": "text", "text": {"content": text}}
    if link:
        rt["text"]["link"] = {"url": link}
    return {"object": "block", "type": "paragraph", "paragraph": {"rich_text": [rt]}}
