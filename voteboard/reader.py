"""投票ページ用データの取得.

処理フロー:
  1. スラッグまたはページ ID をクライアントページ ID に解決
  2. ページタイトルからクライアント名を取得
  3. 子ブロックから色設定（code ブロックの JSON）とデザインテーブルを探す
  4. テーブルのカラム名から言語を判定
  5. デザイン行を読み、投票済みか判定
  6. 集計テーブルの対応行を探す（見つからなくても続行）
"""

from __future__ import annotations

import json
import logging

from voteboard.aggregate import AggregateTable
from voteboard.config import RANK_SLOT_COUNT
from voteboard.errors import NotFound, StoreError
from voteboard.labels import (
    DESIGN_TITLE_COL,
    PLACEHOLDER_CLIENT_NAME,
    detect_design_lang,
    get_labels,
)
from voteboard.models import VoteDesign, VoteLabels, VoteView
from voteboard.notion import (
    NotionStore,
    block_text,
    checkbox,
    file_url,
    plain_text,
    select_name,
)
from voteboard.slug import SlugResolver

logger = logging.getLogger(__name__)

# デザイン数はクライアントごとに固定（4〜6 件）なのでページングしない
DESIGN_PAGE_SIZE = 10
CHILD_BLOCK_PAGE_SIZE = 20


def page_title(page: dict) -> str:
    """ページの title プロパティ. 空なら仮の名前."""
    props = page.get("properties", {})
    prop = props.get("title") or props.get("Title")
    return plain_text(prop) or PLACEHOLDER_CLIENT_NAME


def parse_colors(text: str) -> tuple[str | None, str | None]:
    """code ブロックに埋め込まれた色設定 JSON をパースする.

    壊れた JSON は警告を出して無視する。
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("色設定の JSON パースエラー: %s", e)
        return None, None
    if not isinstance(data, dict):
        logger.warning("色設定が JSON オブジェクトではありません: %r", text[:80])
        return None, None
    return data.get("buttonColor") or None, data.get("presenceColor") or None


def parse_design_row(row: dict, labels) -> VoteDesign:
    props = row.get("properties", {})
    return VoteDesign(
        page_id=row["id"],
        title=plain_text(props.get(DESIGN_TITLE_COL)),
        description=plain_text(props.get(labels.description)),
        recommended=checkbox(props.get(labels.recommended)),
        image_url=file_url(props.get(labels.image)),
        ranking=select_name(props.get(labels.ranking)),
        comment=plain_text(props.get(labels.comment)),
    )


class VoteReader:
    """クライアント 1 件分の投票ビューを組み立てる."""

    def __init__(self, store: NotionStore, root_page_id: str):
        self.store = store
        self.resolver = SlugResolver(store, root_page_id)
        self.aggregate = AggregateTable(store, root_page_id)

    def read(self, identifier: str) -> VoteView:
        """
        Raises:
            NotFound: スラッグ未解決、またはページにテーブルがない
            StoreError: Notion API の失敗
        """
        page_id = self.resolver.resolve(identifier)

        page = self.store.retrieve_page(page_id)
        client_name = page_title(page)

        blocks = self.store.list_children(page_id, page_size=CHILD_BLOCK_PAGE_SIZE).get("results", [])
        button_color = presence_color = None
        database_id = None
        for block in blocks:
            kind = block.get("type")
            if kind == "code":
                button, presence = parse_colors(block_text(block))
                button_color = button or button_color
                presence_color = presence or presence_color
            elif kind == "child_database" and database_id is None:
                database_id = block["id"]

        if database_id is None:
            raise NotFound("No database found on this page")

        db = self.store.retrieve_database(database_id)
        lang = detect_design_lang(db.get("properties", {}).keys())
        labels = get_labels(lang)

        rows = self.store.query_database(database_id, page_size=DESIGN_PAGE_SIZE).get("results", [])
        designs = [parse_design_row(row, labels) for row in rows]
        has_voted = any(d.ranking is not None for d in designs)

        result_row_id = self._find_result_row(page_id, client_name)

        logger.info("投票データ取得: client=%s, designs=%d, voted=%s, lang=%s",
                    client_name, len(designs), has_voted, lang)
        return VoteView(
            client_page_id=page_id,
            client_name=client_name,
            database_id=database_id,
            lang=lang,
            labels=VoteLabels(
                ranking=labels.ranking,
                description=labels.description,
                recommended=labels.recommended,
                image=labels.image,
                comment=labels.comment,
            ),
            designs=designs,
            has_voted=has_voted,
            rank_options=list(labels.rank_options[:RANK_SLOT_COUNT]),
            result_row_id=result_row_id,
            button_color=button_color,
            presence_color=presence_color,
        )

    def _find_result_row(self, page_id: str, client_name: str) -> str | None:
        """集計行の ID. 失敗しても投票は続行できるので None を返す."""
        try:
            database_id = self.aggregate.locate()
            if database_id is None:
                return None
            row = self.aggregate.find_row(database_id, page_id, client_name)
        except StoreError as e:
            logger.error("集計行の検索に失敗: client=%s, error=%s", client_name, e)
            return None
        return row["id"] if row else None
