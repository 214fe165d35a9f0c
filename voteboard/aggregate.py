"""全クライアント共通の集計テーブル（Résultats / Results / Resultados）.

ルートページ直下に 1 つだけ存在し、クライアント 1 件につき 1 行を持つ。
行とクライアントページはクライアント ID カラムで結び、
ID カラムが空の古い行はタイトル（クライアント名）一致で拾う。
"""

from __future__ import annotations

import logging
from datetime import date

from voteboard.labels import (
    ARCHIVE_PREFIX,
    LABELS,
    RESULT_TITLE_COL,
    RESULTS_DB_TITLES,
    Labels,
    detect_results_lang,
    get_labels,
)
from voteboard.notion import NotionStore, plain_text, rich_text_prop

logger = logging.getLogger(__name__)


def results_schema(labels: Labels) -> dict:
    """集計テーブルのカラム定義."""
    props: dict = {RESULT_TITLE_COL: {"title": {}}}
    for col in labels.result_rank_cols:
        props[col] = {"rich_text": {}}
    props[labels.result_comment] = {"rich_text": {}}
    props[labels.result_date] = {"date": {}}
    props[labels.result_vote_link] = {"url": {}}
    props[labels.result_site_link] = {"url": {}}
    props[labels.result_client_id] = {"rich_text": {}}
    return props


def archive_line(titles: list[str], today: date | None = None) -> str:
    """過去の順位を 1 行に畳む（"[Archive 18/10: A, B, C]"）."""
    today = today or date.today()
    return f"{ARCHIVE_PREFIX} {today.strftime('%d/%m')}: {', '.join(titles)}]"


def prepend_archive(line: str, comment: str) -> str:
    return f"{line}\n{comment}" if comment else line


def archive_lines(comment: str) -> list[str]:
    """コメント欄の先頭に積まれたアーカイブ行."""
    return [ln for ln in comment.splitlines() if ln.startswith(ARCHIVE_PREFIX)]


class AggregateTable:
    """ルート直下の集計テーブルを扱う."""

    def __init__(self, store: NotionStore, root_page_id: str):
        self.store = store
        self.root_page_id = root_page_id

    def locate(self) -> str | None:
        """既存の集計テーブル ID. 言語違いのタイトルも受け付ける."""
        for block in self.store.iter_children(self.root_page_id):
            if block.get("type") != "child_database":
                continue
            if block.get("child_database", {}).get("title") in RESULTS_DB_TITLES:
                return block["id"]
        return None

    def locate_or_create(self, lang: str) -> str:
        """なければ最初に公開したクライアントの言語で作成する."""
        database_id = self.locate()
        if database_id:
            return database_id

        labels = get_labels(lang)
        db = self.store.create_database(
            self.root_page_id,
            labels.results_db_title,
            results_schema(labels),
            icon={"type": "emoji", "emoji": "📊"},
        )
        logger.info("集計テーブル作成: %s (%s)", db["id"], lang)
        return db["id"]

    def find_by_name(self, database_id: str, client_name: str) -> dict | None:
        """タイトル完全一致（大文字小文字区別）の行."""
        resp = self.store.query_database(
            database_id,
            filter={"property": RESULT_TITLE_COL, "title": {"equals": client_name}},
            page_size=1,
        )
        results = resp.get("results", [])
        return results[0] if results else None

    def find_by_client_id(self, database_id: str, client_page_id: str) -> dict | None:
        """クライアント ID カラムで行を引く. カラムのない旧テーブルでは None."""
        db = self.store.retrieve_database(database_id)
        column = client_id_column(db.get("properties", {}))
        if column is None:
            return None
        resp = self.store.query_database(
            database_id,
            filter={"property": column, "rich_text": {"equals": client_page_id}},
            page_size=1,
        )
        results = resp.get("results", [])
        return results[0] if results else None

    def find_row(self, database_id: str, client_page_id: str | None,
                 client_name: str) -> dict | None:
        """ID で引き、なければ名前で引いて ID を補完する.

        名前で見つかった行が別のページに紐付いていれば None.
        """
        if client_page_id:
            row = self.find_by_client_id(database_id, client_page_id)
            if row:
                return row

        row = self.find_by_name(database_id, client_name)
        if row and client_page_id and not self.link_client(row, client_page_id):
            return None
        return row

    def link_client(self, row: dict, client_page_id: str) -> bool:
        """空のクライアント ID を補完する. 別ページに紐付け済みなら False.

        カラムのない旧テーブルでは何もせず True を返す。
        """
        labels = row_labels(row)
        props = row.get("properties", {})
        if labels.result_client_id not in props:
            return True
        current = plain_text(props[labels.result_client_id])
        if current:
            if current != client_page_id:
                logger.warning("集計行は別ページに紐付け済み: row=%s, linked=%s, requested=%s",
                               row["id"], current, client_page_id)
                return False
            return True
        self.store.update_page(row["id"], {
            labels.result_client_id: rich_text_prop(client_page_id),
        })
        logger.info("集計行にクライアント ID を補完: row=%s, client=%s", row["id"], client_page_id)
        return True


def client_id_column(properties: dict) -> str | None:
    for labels in LABELS.values():
        if labels.result_client_id in properties:
            return labels.result_client_id
    return None


def row_labels(row: dict) -> Labels:
    """集計行のカラム名から言語を判定してラベルを返す."""
    return get_labels(detect_results_lang(row.get("properties", {}).keys()))
