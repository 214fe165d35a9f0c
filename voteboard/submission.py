"""投票の送信.

処理フロー:
  1. 投票内容を検証（書き込み前. 不正なら何も書かない）
  2. 各デザイン行に順位を書き込む（コメントは 1 位の行だけ）.
     投票に含まれない行に残った前回の順位・コメントは消す
  3. 集計行があれば、順位順のタイトル・コメント・日付を 1 回の更新で上書き

デザイン行と集計行の間に原子性はない。
"""

from __future__ import annotations

import logging
from datetime import date

from voteboard.aggregate import archive_lines, row_labels
from voteboard.config import MAX_RANK_SLOTS, RANK_SLOT_COUNT
from voteboard.errors import ValidationError
from voteboard.labels import DESIGN_TITLE_COL, Labels, get_labels, rank_ordinal
from voteboard.models import DesignVote, SubmitResult
from voteboard.notion import (
    NotionStore,
    date_prop,
    plain_text,
    rich_text_prop,
    select_name,
    select_prop,
)
from voteboard.reader import DESIGN_PAGE_SIZE

logger = logging.getLogger(__name__)


def validate_ballot(votes: list[DesignVote], slots: int = RANK_SLOT_COUNT) -> list[int]:
    """順位・デザインの重複と未使用スロットを検出する. 各投票の序数を返す.

    Raises:
        ValidationError: rule は "missing_votes" / "unknown_rank" /
            "duplicate_rank" / "duplicate_design" / "incomplete_ballot" のいずれか
    """
    if not votes:
        raise ValidationError("Votes are required", rule="missing_votes")

    ordinals = []
    for vote in votes:
        ordinal = rank_ordinal(vote.ranking)
        if ordinal is None or ordinal > slots:
            raise ValidationError(f"Unknown rank: {vote.ranking!r}", rule="unknown_rank")
        ordinals.append(ordinal)

    if len(set(ordinals)) != len(votes):
        raise ValidationError("Each rank may be used only once", rule="duplicate_rank")
    if len({vote.page_id for vote in votes}) != len(votes):
        raise ValidationError("Each design may be ranked only once", rule="duplicate_design")
    if len(votes) != slots:
        raise ValidationError(f"All {slots} ranks must be filled", rule="incomplete_ballot")
    return ordinals


class VoteSubmitter:
    """デザイン行と集計行に投票結果を書き込む."""

    def __init__(self, store: NotionStore, *, slots: int = RANK_SLOT_COUNT):
        if not 1 <= slots <= MAX_RANK_SLOTS:
            raise ValueError(f"rank slots must be between 1 and {MAX_RANK_SLOTS}: {slots}")
        self.store = store
        self.slots = slots

    def submit(self, votes: list[DesignVote], comment: str | None, client_page_id: str,
               aggregate_row_id: str | None, lang: str) -> SubmitResult:
        """
        Args:
            votes: デザイン行 ID × 順位ラベル（どの言語のラベルでも可）
            comment: 自由記述. 1 位の行と集計行に書く
            client_page_id: 投票対象のクライアントページ（ログ用）
            aggregate_row_id: 集計行. None なら集計は更新しない
            lang: デザインテーブルの言語
        """
        ordinals = validate_ballot(votes, self.slots)
        labels = get_labels(lang)
        comment = (comment or "").strip()

        ranked: list[tuple[int, str]] = []
        database_id = None
        for vote, ordinal in zip(votes, ordinals):
            # コメントは 1 位の行だけ. 他の行の前回コメントは消す
            properties = {
                labels.ranking: select_prop(labels.rank_options[ordinal - 1]),
                labels.comment: rich_text_prop(comment if ordinal == 1 else None),
            }

            updated = self.store.update_page(vote.page_id, properties)
            title = plain_text(updated.get("properties", {}).get(DESIGN_TITLE_COL))
            ranked.append((ordinal, title))
            database_id = database_id or updated.get("parent", {}).get("database_id")

        if database_id:
            self._clear_unranked(database_id, {vote.page_id for vote in votes}, labels)

        ranked.sort(key=lambda item: item[0])
        titles = [title for _, title in ranked]
        logger.info("投票書き込み: client=%s, ranking=%s", client_page_id, titles)

        if not aggregate_row_id:
            logger.warning("集計行がないため集計は更新しません: client=%s", client_page_id)
            return SubmitResult(ranked_titles=titles, aggregate_updated=False)

        self._update_aggregate(aggregate_row_id, titles, comment)
        return SubmitResult(ranked_titles=titles, aggregate_updated=True)

    def _clear_unranked(self, database_id: str, ranked_ids: set[str], labels: Labels) -> None:
        """今回の投票に含まれない行に残った前回の順位・コメントを消す."""
        rows = self.store.query_database(database_id, page_size=DESIGN_PAGE_SIZE).get("results", [])
        for row in rows:
            if row["id"] in ranked_ids:
                continue
            props = row.get("properties", {})
            if select_name(props.get(labels.ranking)) is None and not plain_text(props.get(labels.comment)):
                continue
            self.store.update_page(row["id"], {
                labels.ranking: select_prop(None),
                labels.comment: rich_text_prop(None),
            })
            logger.info("前回の順位を削除: row=%s", row["id"])

    def _update_aggregate(self, row_id: str, titles: list[str], comment: str) -> None:
        """集計行を上書きする. コメント先頭のアーカイブ行は残す."""
        row = self.store.retrieve_page(row_id)
        labels = row_labels(row)
        props = row.get("properties", {})

        kept = archive_lines(plain_text(props.get(labels.result_comment)))
        merged = "\n".join([*kept, comment]) if comment else "\n".join(kept)

        update: dict = {
            labels.result_date: date_prop(date.today().isoformat()),
            labels.result_comment: rich_text_prop(merged),
        }
        for i, col in enumerate(labels.result_rank_cols):
            if col not in props:
                continue
            update[col] = rich_text_prop(titles[i] if i < len(titles) else None)

        self.store.update_page(row_id, update)
        logger.info("集計行更新: row=%s", row_id)
