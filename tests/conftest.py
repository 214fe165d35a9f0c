"""テスト共通: Notion API のインメモリ実装."""

from __future__ import annotations

import copy
import re
import uuid
from collections import defaultdict

import pytest

from voteboard.errors import StoreError
from voteboard.notion import NotionStore

ROOT_PAGE_ID = "2ff6c41f-4b3a-81ad-b92d-d0af513a04ac"

_EMPTY = {
    "title": [],
    "rich_text": [],
    "select": None,
    "checkbox": False,
    "files": [],
    "url": None,
    "date": None,
}


def _with_plain_text(items: list[dict]) -> list[dict]:
    return [{**t, "plain_text": t.get("plain_text", t.get("text", {}).get("content", ""))}
            for t in items]


def _materialize(value: dict) -> dict:
    """書き込み形式のプロパティ値を読み取り形式にする."""
    v = copy.deepcopy(value)
    for key in ("title", "rich_text"):
        if key in v:
            v[key] = _with_plain_text(v[key])
    if "files" in v:
        files = []
        for f in v["files"]:
            if f.get("type") == "file_upload":
                files.append({
                    "type": "file",
                    "name": f.get("name"),
                    "file": {"url": f"https://files.test/{f['file_upload']['id']}"},
                })
            else:
                files.append(f)
        v["files"] = files
    return v


class FakeNotionStore(NotionStore):
    """REST ルートをメモリ上で再現する. ページング・アップロードは本物のロジックを通る."""

    def __init__(self, root_page_id: str = ROOT_PAGE_ID):
        super().__init__("test-key")
        self.pages: dict[str, dict] = {root_page_id: {
            "object": "page", "id": root_page_id, "parent": {"type": "workspace"},
            "properties": {"title": {"type": "title", "title": _with_plain_text(
                [{"type": "text", "text": {"content": "Vote Widget"}}])}},
        }}
        self.databases: dict[str, dict] = {}
        self.blocks: dict[str, dict] = {}
        self.children: dict[str, list[str]] = defaultdict(list)
        self.rows: dict[str, list[str]] = defaultdict(list)
        self.uploads: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self._seq = 0

    # --- 補助 ---

    def _new_id(self) -> str:
        self._seq += 1
        return str(uuid.UUID(int=0xABC000 + self._seq))

    def _not_found(self, kind: str, oid: str):
        raise StoreError(f"Could not find {kind} with ID: {oid}.", upstream_status=404)

    def writes(self, method: str = "PATCH", prefix: str = "/pages/") -> list[str]:
        return [path for m, path in self.calls if m == method and path.startswith(prefix)]

    def child_pages(self, parent_id: str) -> list[dict]:
        return [self.blocks[b] for b in self.children[parent_id]
                if self.blocks[b]["type"] == "child_page"]

    def child_databases(self, parent_id: str) -> list[dict]:
        return [self.blocks[b] for b in self.children[parent_id]
                if self.blocks[b]["type"] == "child_database"]

    def db_rows(self, database_id: str) -> list[dict]:
        return [self.pages[r] for r in self.rows[database_id] if not self.pages[r].get("archived")]

    # --- ルーティング ---

    def _request(self, method, path, *, json=None, params=None, files=None):
        self.calls.append((method, path))
        json = json or {}
        params = params or {}

        m = re.fullmatch(r"/pages/([\w-]+)", path)
        if m and method == "GET":
            return self._get_page(m.group(1))
        if m and method == "PATCH":
            return self._update_page(m.group(1), json["properties"])
        if path == "/pages" and method == "POST":
            return self._create_page(json)

        m = re.fullmatch(r"/blocks/([\w-]+)/children", path)
        if m and method == "GET":
            return self._list(self.children[m.group(1)], params.get("page_size", 100),
                              params.get("start_cursor"), self.blocks)
        if m and method == "PATCH":
            return {"results": [self._add_block(m.group(1), b) for b in json["children"]]}

        m = re.fullmatch(r"/blocks/([\w-]+)", path)
        if m and method == "PATCH":
            return self._update_block(m.group(1), json)

        m = re.fullmatch(r"/databases/([\w-]+)", path)
        if m and method == "GET":
            if m.group(1) not in self.databases:
                self._not_found("database", m.group(1))
            return copy.deepcopy(self.databases[m.group(1)])
        if path == "/databases" and method == "POST":
            return self._create_database(json)

        m = re.fullmatch(r"/databases/([\w-]+)/query", path)
        if m and method == "POST":
            return self._query(m.group(1), json)

        if path == "/file_uploads" and method == "POST":
            upload_id = self._new_id()
            self.uploads[upload_id] = {**json, "status": "pending"}
            return {"id": upload_id, "status": "pending"}
        m = re.fullmatch(r"/file_uploads/([\w-]+)/send", path)
        if m and method == "POST":
            name, content, content_type = files["file"]
            self.uploads[m.group(1)].update(status="uploaded", content=content)
            return {"id": m.group(1), "status": "uploaded"}

        raise AssertionError(f"unexpected request: {method} {path}")

    # --- ページ ---

    def _get_page(self, page_id: str) -> dict:
        if page_id not in self.pages:
            self._not_found("page", page_id)
        return copy.deepcopy(self.pages[page_id])

    def _create_page(self, payload: dict) -> dict:
        parent = payload["parent"]
        page_id = self._new_id()
        if parent["type"] == "database_id":
            db_id = parent["database_id"]
            if db_id not in self.databases:
                self._not_found("database", db_id)
            schema = self.databases[db_id]["properties"]
            self._check_keys(payload["properties"], schema)
            props = {name: {"type": col["type"], col["type"]: copy.deepcopy(_EMPTY[col["type"]])}
                     for name, col in schema.items()}
            for name, value in payload["properties"].items():
                props[name].update(_materialize(value))
            self.rows[db_id].append(page_id)
        else:
            parent_id = parent["page_id"]
            props = {"title": {"type": "title", **_materialize(payload["properties"]["title"])}}
            title = "".join(t["plain_text"] for t in props["title"]["title"])
            self.blocks[page_id] = {"object": "block", "id": page_id, "type": "child_page",
                                    "child_page": {"title": title}}
            self.children[parent_id].append(page_id)
            for block in payload.get("children", []):
                self._add_block(page_id, block)

        self.pages[page_id] = {"object": "page", "id": page_id, "parent": parent,
                               "properties": props, "url": f"https://www.notion.so/{page_id}"}
        return copy.deepcopy(self.pages[page_id])

    def _update_page(self, page_id: str, properties: dict) -> dict:
        page = self.pages.get(page_id) or self._not_found("page", page_id)
        if page["parent"]["type"] == "database_id":
            self._check_keys(properties, self.databases[page["parent"]["database_id"]]["properties"])
        for name, value in properties.items():
            page["properties"].setdefault(name, {}).update(_materialize(value))
        if page_id in self.blocks and "title" in properties:
            self.blocks[page_id]["child_page"]["title"] = "".join(
                t["plain_text"] for t in page["properties"]["title"]["title"])
        return copy.deepcopy(page)

    @staticmethod
    def _check_keys(properties: dict, schema: dict) -> None:
        unknown = [k for k in properties if k not in schema]
        if unknown:
            raise StoreError(f"{unknown[0]} is not a property that exists.", upstream_status=400)

    # --- ブロック ---

    def _add_block(self, parent_id: str, block: dict) -> dict:
        block_id = self._new_id()
        kind = block["type"]
        body = copy.deepcopy(block[kind])
        if "rich_text" in body:
            body["rich_text"] = _with_plain_text(body["rich_text"])
        self.blocks[block_id] = {"object": "block", "id": block_id, "type": kind, kind: body}
        self.children[parent_id].append(block_id)
        return copy.deepcopy(self.blocks[block_id])

    def _update_block(self, block_id: str, payload: dict) -> dict:
        block = self.blocks.get(block_id) or self._not_found("block", block_id)
        kind = block["type"]
        body = copy.deepcopy(payload[kind])
        if "rich_text" in body:
            body["rich_text"] = _with_plain_text(body["rich_text"])
        block[kind].update(body)
        return copy.deepcopy(block)

    def _list(self, ids: list[str], page_size: int, cursor: str | None, source: dict) -> dict:
        start = int(cursor) if cursor else 0
        chunk = ids[start:start + page_size]
        has_more = start + page_size < len(ids)
        return {
            "object": "list",
            "results": [copy.deepcopy(source[i]) for i in chunk],
            "has_more": has_more,
            "next_cursor": str(start + page_size) if has_more else None,
        }

    # --- データベース ---

    def _create_database(self, payload: dict) -> dict:
        parent_id = payload["parent"]["page_id"]
        db_id = self._new_id()
        title = "".join(t["text"]["content"] for t in payload["title"])
        schema = {}
        for name, cfg in payload["properties"].items():
            kind = next(iter(cfg))
            schema[name] = {"id": name, "name": name, "type": kind, kind: cfg[kind]}
        self.databases[db_id] = {"object": "database", "id": db_id, "title": title,
                                 "parent": payload["parent"], "properties": schema}
        self.blocks[db_id] = {"object": "block", "id": db_id, "type": "child_database",
                              "child_database": {"title": title}}
        self.children[parent_id].append(db_id)
        return copy.deepcopy(self.databases[db_id])

    def _query(self, db_id: str, payload: dict) -> dict:
        if db_id not in self.databases:
            self._not_found("database", db_id)
        rows = self.db_rows(db_id)
        flt = payload.get("filter")
        if flt:
            prop = flt["property"]
            if prop not in self.databases[db_id]["properties"]:
                raise StoreError(f"Could not find property with name or id: {prop}",
                                 upstream_status=400)
            kind = "title" if "title" in flt else "rich_text"
            expected = flt[kind]["equals"]
            rows = [r for r in rows
                    if "".join(t["plain_text"] for t in r["properties"][prop][kind]) == expected]
        ids = [r["id"] for r in rows]
        return self._list(ids, payload.get("page_size", 100), payload.get("start_cursor"),
                          self.pages)


@pytest.fixture
def store() -> FakeNotionStore:
    return FakeNotionStore()


@pytest.fixture
def root_page_id() -> str:
    return ROOT_PAGE_ID
