"""クライアントの公開（新規作成・再公開）.

処理フロー:
  1. サイト URL からクライアント名・スラッグ・投票 URL を決める
  2. 埋め込み画像（data URI）を Notion にアップロード（同一画像は 1 回だけ）
  3. 集計テーブルを探す（なければ作成）
  4. 集計行とクライアントページを探す
     - 集計行あり: 過去の順位をアーカイブ行にしてコメント先頭へ、順位・日付をクリア
     - 集計行なし: 新規行を作成
  5. クライアントページ
     - あり: 色設定を更新し、各デザイン行の順位・コメントをクリアして画像を差し替え
       （行は作り直さない）
     - なし: ページ・デザインテーブル・デザイン行を作成
  6. スラッグから投票 URL を返す

途中で失敗してもロールバックはしない。集計行だけ残った場合は
次回の公開でクライアントページが作成され、紐付けられる。
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from urllib.parse import urlparse

from voteboard.aggregate import (
    AggregateTable,
    archive_line,
    client_id_column,
    prepend_archive,
    row_labels,
)
from voteboard.config import PUBLIC_BASE_URL
from voteboard.errors import ValidationError
from voteboard.labels import (
    CONCEPTS,
    DEFAULT_CONCEPT_ORDER,
    DESIGN_TITLE_COL,
    RANK_COLORS,
    RESULT_TITLE_COL,
    Labels,
    detect_design_lang,
    detect_results_lang,
    get_labels,
)
from voteboard.models import ImagePayload, PublishRequest, PublishResult
from voteboard.notion import (
    NotionStore,
    checkbox_prop,
    code_block,
    date_prop,
    files_prop,
    paragraph_block,
    plain_text,
    rich_text_prop,
    select_prop,
    title_prop,
    url_prop,
)
from voteboard.slug import SlugResolver, slugify

logger = logging.getLogger(__name__)

_DATA_URI_PATTERN = re.compile(r"^data:(?P<type>[\w/+.-]+)?(?:;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)
_OPTION_PATTERN = re.compile(r"^Option ([A-F])\b")

CHILD_BLOCK_PAGE_SIZE = 20
DESIGN_PAGE_SIZE = 10


def normalize_site_url(site_url: str) -> str:
    site_url = site_url.strip()
    if not site_url.startswith(("http://", "https://")):
        site_url = f"https://{site_url}"
    return site_url


def client_name_from_url(site_url: str) -> str:
    """ホスト名からクライアント名を作る（"https://www.example.com" -> "Example"）."""
    host = urlparse(normalize_site_url(site_url)).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    label = host.split(".")[0]
    if not label:
        raise ValidationError(f"Cannot derive a client name from {site_url!r}", rule="invalid_site_url")
    return label[:1].upper() + label[1:]


def decode_data_uri(data_uri: str) -> tuple[bytes, str]:
    """data URI をバイト列と MIME タイプに分解する."""
    m = _DATA_URI_PATTERN.match(data_uri)
    if not m:
        raise ValidationError("Screenshot is not a base64 data URI", rule="invalid_image")
    try:
        content = base64.b64decode(m.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Screenshot could not be decoded: {e}", rule="invalid_image") from e
    return content, m.group("type") or "image/png"


def colors_blob(button_color: str, presence_color: str) -> str:
    return json.dumps({"buttonColor": button_color, "presenceColor": presence_color})


def design_schema(labels: Labels) -> dict:
    """デザインテーブルのカラム定義."""
    return {
        DESIGN_TITLE_COL: {"title": {}},
        labels.image: {"files": {}},
        labels.description: {"rich_text": {}},
        labels.recommended: {"checkbox": {}},
        labels.ranking: {
            "select": {
                "options": [
                    {"name": name, "color": color}
                    for name, color in zip(labels.rank_options, RANK_COLORS)
                ],
            },
        },
        labels.comment: {"rich_text": {}},
    }


def concept_for_title(title: str) -> str | None:
    """行タイトルの "Option X" からデザイン案 ID を逆引きする."""
    m = _OPTION_PATTERN.match(title)
    if not m:
        return None
    for concept in CONCEPTS.values():
        if concept.letter == m.group(1):
            return concept.id
    return None


class _ImageUploader:
    """公開 1 回分の画像アップロード. 同じ data URI は 1 回しか送らない."""

    def __init__(self, store: NotionStore):
        self.store = store
        self._uploaded: dict[str, str] = {}

    def files(self, payload: ImagePayload | None, name: str) -> dict | None:
        if payload is None:
            return None
        if not payload.is_embedded:
            return files_prop(external_url=payload.source, name=name)
        if payload.source not in self._uploaded:
            content, content_type = decode_data_uri(payload.source)
            self._uploaded[payload.source] = self.store.upload_file(
                payload.filename, content, content_type,
            )
        return files_prop(upload_id=self._uploaded[payload.source], name=name)

    @property
    def upload_count(self) -> int:
        return len(self._uploaded)


class Publisher:
    """クライアントページと集計行を作成・更新する."""

    def __init__(self, store: NotionStore, root_page_id: str, *, base_url: str = PUBLIC_BASE_URL):
        self.store = store
        self.root_page_id = root_page_id
        self.base_url = base_url.rstrip("/")
        self.resolver = SlugResolver(store, root_page_id)
        self.aggregate = AggregateTable(store, root_page_id)

    def vote_url(self, slug: str) -> str:
        return f"{self.base_url}/vote/{slug}"

    def publish(self, req: PublishRequest) -> PublishResult:
        site_url = normalize_site_url(req.site_url)
        client_name = (req.client_name or "").strip() or client_name_from_url(site_url)
        slug = slugify(client_name)
        if not slug:
            raise ValidationError(f"Client name {client_name!r} has no usable characters",
                                  rule="invalid_client_name")
        concepts = tuple(req.concepts or DEFAULT_CONCEPT_ORDER)
        unknown = [c for c in concepts if c not in CONCEPTS]
        if unknown:
            raise ValidationError(f"Unknown concepts: {', '.join(unknown)}", rule="unknown_concept")

        vote_url = self.vote_url(slug)
        logger.info("公開開始: client=%s, slug=%s, lang=%s", client_name, slug, req.lang)

        # 画像を先に確定させる（失敗しても Notion 上に痕跡が残らない）
        uploader = _ImageUploader(self.store)
        images = {
            cid: uploader.files(req.images.get(cid) or req.screenshot, f"widget-{cid}.png")
            for cid in concepts
        }

        results_db = self.aggregate.locate_or_create(req.lang)
        results_props = self.store.retrieve_database(results_db).get("properties", {})
        result_labels = get_labels(detect_results_lang(results_props.keys()))

        client_page_id = self.resolver.find(client_name)
        row = None
        if client_page_id:
            row = self.aggregate.find_by_client_id(results_db, client_page_id)
        if row is None:
            row = self.aggregate.find_by_name(results_db, client_name)

        if row:
            self._reset_row(row, vote_url, site_url, client_page_id)
            row_id = row["id"]
        else:
            row_id = self._create_row(results_db, results_props, result_labels, client_name,
                                      vote_url, site_url, client_page_id)

        was_update = row is not None or client_page_id is not None

        if client_page_id:
            database_id = self._refresh_client(client_page_id, req, concepts, images, uploader)
        else:
            client_page_id, database_id = self._create_client(client_name, site_url, req,
                                                              concepts, images)
            column = client_id_column(results_props)
            if column:
                self.store.update_page(row_id, {column: rich_text_prop(client_page_id)})

        logger.info("公開完了: client=%s, page=%s, row=%s, update=%s, uploads=%d",
                    client_name, client_page_id, row_id, was_update, uploader.upload_count)
        return PublishResult(
            client_page_id=client_page_id,
            aggregate_row_id=row_id,
            database_id=database_id,
            client_name=client_name,
            slug=slug,
            vote_url=vote_url,
            was_update=was_update,
        )

    # --- 集計行 ---

    def _create_row(self, results_db: str, results_props: dict, labels: Labels,
                    client_name: str, vote_url: str, site_url: str,
                    client_page_id: str | None) -> str:
        properties = {RESULT_TITLE_COL: title_prop(client_name)}
        if labels.result_vote_link in results_props:
            properties[labels.result_vote_link] = url_prop(vote_url)
        if labels.result_site_link in results_props:
            properties[labels.result_site_link] = url_prop(site_url)
        column = client_id_column(results_props)
        if column and client_page_id:
            properties[column] = rich_text_prop(client_page_id)

        row = self.store.create_page({"type": "database_id", "database_id": results_db}, properties)
        logger.info("集計行作成: client=%s, row=%s", client_name, row["id"])
        return row["id"]

    def _reset_row(self, row: dict, vote_url: str, site_url: str,
                   client_page_id: str | None) -> None:
        """再公開: 過去の順位をアーカイブしてから順位・日付をクリアする."""
        labels = row_labels(row)
        props = row.get("properties", {})

        previous = [plain_text(props.get(col)) for col in labels.result_rank_cols]
        previous = [t for t in previous if t]
        comment = plain_text(props.get(labels.result_comment))
        if previous:
            comment = prepend_archive(archive_line(previous), comment)

        update: dict = {
            labels.result_comment: rich_text_prop(comment),
            labels.result_date: date_prop(None),
        }
        for col in labels.result_rank_cols:
            if col in props:
                update[col] = rich_text_prop(None)
        if labels.result_vote_link in props:
            update[labels.result_vote_link] = url_prop(vote_url)
        if labels.result_site_link in props:
            update[labels.result_site_link] = url_prop(site_url)
        column = client_id_column(props)
        if column and client_page_id:
            update[column] = rich_text_prop(client_page_id)

        self.store.update_page(row["id"], update)
        logger.info("集計行リセット: row=%s, archived=%d", row["id"], len(previous))

    # --- クライアントページ ---

    def _create_client(self, client_name: str, site_url: str, req: PublishRequest,
                       concepts: tuple[str, ...], images: dict[str, dict | None]) -> tuple[str, str]:
        page = self.store.create_page(
            {"type": "page_id", "page_id": self.root_page_id},
            {"title": title_prop(client_name)},
            children=[
                paragraph_block(site_url, link=site_url),
                code_block(colors_blob(req.button_color, req.presence_color)),
            ],
            icon={"type": "emoji", "emoji": "🎨"},
        )
        page_id = page["id"]
        database_id = self._create_design_table(page_id, req.lang, concepts, images)
        logger.info("クライアントページ作成: client=%s, page=%s", client_name, page_id)
        return page_id, database_id

    def _create_design_table(self, page_id: str, lang: str, concepts: tuple[str, ...],
                             images: dict[str, dict | None]) -> str:
        labels = get_labels(lang)
        db = self.store.create_database(
            page_id, labels.db_title, design_schema(labels),
            icon={"type": "emoji", "emoji": "🗳️"},
        )
        for cid in concepts:
            concept = CONCEPTS[cid]
            properties = {
                DESIGN_TITLE_COL: title_prop(concept.title(lang)),
                labels.description: rich_text_prop(concept.describe(lang)),
                labels.recommended: checkbox_prop(concept.recommended),
            }
            if images.get(cid):
                properties[labels.image] = images[cid]
            self.store.create_page({"type": "database_id", "database_id": db["id"]}, properties)
        return db["id"]

    def _refresh_client(self, page_id: str, req: PublishRequest, concepts: tuple[str, ...],
                        images: dict[str, dict | None], uploader: _ImageUploader) -> str:
        """既存ページを再利用する. 行 ID を保つため削除・再作成はしない."""
        blocks = self.store.list_children(page_id, page_size=CHILD_BLOCK_PAGE_SIZE).get("results", [])
        blob = colors_blob(req.button_color, req.presence_color)

        code = next((b for b in blocks if b.get("type") == "code"), None)
        if code:
            self.store.update_block(code["id"], {
                "code": {
                    "language": "json",
                    "rich_text": [{"type": "text", "text": {"content": blob}}],
                },
            })
        else:
            self.store.append_children(page_id, [code_block(blob)])

        table = next((b for b in blocks if b.get("type") == "child_database"), None)
        if table is None:
            logger.warning("デザインテーブルがないため作成: page=%s", page_id)
            return self._create_design_table(page_id, req.lang, concepts, images)

        database_id = table["id"]
        db = self.store.retrieve_database(database_id)
        labels = get_labels(detect_design_lang(db.get("properties", {}).keys()))

        rows = self.store.query_database(database_id, page_size=DESIGN_PAGE_SIZE).get("results", [])
        for row in rows:
            title = plain_text(row.get("properties", {}).get(DESIGN_TITLE_COL))
            cid = concept_for_title(title)
            payload = (req.images.get(cid) if cid else None) or req.screenshot
            update = {
                labels.ranking: select_prop(None),
                labels.comment: rich_text_prop(None),
            }
            files = uploader.files(payload, f"widget-{cid or 'design'}.png")
            if files:
                update[labels.image] = files
            self.store.update_page(row["id"], update)

        logger.info("クライアントページ更新: page=%s, designs=%d", page_id, len(rows))
        return database_id
