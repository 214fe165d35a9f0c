"""データモデル定義."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class VoteDesign:
    """クライアントページ内デザインテーブルの 1 行."""

    page_id: str
    title: str  # 例: "Option B - Présence Intégrée ⭐"
    description: str
    recommended: bool
    image_url: str  # アップロード済みファイル優先、なければ外部 URL
    ranking: str | None  # None = 未投票
    comment: str


@dataclass
class VoteLabels:
    """画面表示用のカラム名."""

    ranking: str
    description: str
    recommended: str
    image: str
    comment: str


@dataclass
class VoteView:
    """投票ページ 1 件分の統合ビュー."""

    client_page_id: str
    client_name: str
    database_id: str
    lang: str
    labels: VoteLabels
    designs: list[VoteDesign]
    has_voted: bool
    rank_options: list[str]  # 投票で使う順位ラベル（スロット数分）
    result_row_id: str | None = None
    button_color: str | None = None
    presence_color: str | None = None


@dataclass
class DesignVote:
    """投票 1 件（デザイン行 × 順位）."""

    page_id: str
    ranking: str  # 例: "1er choix", "1st choice"


@dataclass
class SubmitResult:
    """投票送信の結果."""

    ranked_titles: list[str]  # 1 位から順
    aggregate_updated: bool


@dataclass
class ImagePayload:
    """Notion に載せる画像. data URI か外部 URL のどちらか."""

    source: str
    filename: str = "screenshot.png"

    @property
    def is_embedded(self) -> bool:
        return self.source.startswith("data:")


@dataclass
class PublishRequest:
    """公開（新規作成・再公開）のリクエスト."""

    site_url: str
    screenshot: ImagePayload | None
    button_color: str
    presence_color: str
    lang: str = "fr"
    client_name: str | None = None
    images: dict[str, ImagePayload] = field(default_factory=dict)  # concept_id -> 画像
    concepts: tuple[str, ...] | None = None  # None = 既定の並び


@dataclass
class PublishResult:
    """公開の結果."""

    client_page_id: str
    aggregate_row_id: str
    database_id: str
    client_name: str
    slug: str
    vote_url: str
    was_update: bool


@dataclass
class ScreenshotResult:
    """スクリーンショット取得結果."""

    screenshot_url: str  # ホスト済み画像 URL または data URI
    favicon: str
    source: str  # "microlink" | "thumio" | "pagespeed" | "playwright"
    is_base64: bool = False
    warning: str | None = None


@dataclass
class SiteMeta:
    """トップページから拾えるメタ情報."""

    site_name: str | None
    theme_color: str | None


@dataclass
class TallyEntry:
    """コミュニティ投票の集計 1 行."""

    design: str  # "Option X"
    votes: int
    percent: int
