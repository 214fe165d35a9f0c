"""コミュニティ投票（匿名・1 票制）と Slack への集計通知.

集計テーブルに 1 票 1 行で追記し、1 位カラムを "Option X" 単位で数えて
リーダーボードを Slack に投稿する。通知の失敗はログのみ。
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import date

import requests

from voteboard.aggregate import AggregateTable
from voteboard.config import SLACK_BOT_TOKEN, SLACK_CHANNEL_ID, SLACK_POST_URL, SLACK_TIMEOUT
from voteboard.errors import StoreError, ValidationError
from voteboard.labels import ANONYMOUS_VOTER, RESULT_TITLE_COL, detect_results_lang, get_labels
from voteboard.models import TallyEntry
from voteboard.notion import NotionStore, date_prop, plain_text, rich_text_prop, title_prop

logger = logging.getLogger(__name__)

_OPTION_KEY = re.compile(r"^(Option [A-F])")
BAR_WIDTH = 20


def tally_rows(rows: list[dict]) -> tuple[list[TallyEntry], int]:
    """1 位カラムの値を "Option X" 単位で数える. 票数の多い順."""
    counts: Counter[str] = Counter()
    for row in rows:
        props = row.get("properties", {})
        labels = get_labels(detect_results_lang(props.keys()))
        text = plain_text(props.get(labels.result_rank_cols[0])).strip()
        if not text:
            continue
        m = _OPTION_KEY.match(text)
        counts[m.group(1) if m else text] += 1

    total = sum(counts.values())
    entries = [
        TallyEntry(design=design, votes=votes, percent=round(votes / total * 100) if total else 0)
        for design, votes in counts.most_common()
    ]
    return entries, total


def _plural(n: int) -> str:
    return f"{n} vote{'s' if n > 1 else ''}"


def render_leaderboard(voter_name: str, concept_label: str,
                       entries: list[TallyEntry], total: int) -> str:
    lines = [
        "🗳️ *Nouveau vote !*",
        f"*{voter_name}* a voté pour *{concept_label}*",
        "",
        f"📊 *Classement en temps réel* ({_plural(total)})",
    ]
    for e in entries:
        filled = round(e.percent / 5)
        bar = "█" * filled + "░" * (BAR_WIDTH - filled)
        lines.append(f"{e.design}: {bar} {_plural(e.votes)} ({e.percent}%)")
    if entries:
        leader = entries[0]
        lines += ["", f"🏆 *En tête : {leader.design}* avec {_plural(leader.votes)}"]
    return "\n".join(lines)


def post_to_slack(text: str, *, token: str = SLACK_BOT_TOKEN,
                  channel: str = SLACK_CHANNEL_ID) -> bool:
    """Slack に投稿する. 未設定・失敗時は False."""
    if not token or not channel:
        logger.debug("Slack 未設定のため通知しません")
        return False
    try:
        resp = requests.post(
            SLACK_POST_URL,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json; charset=utf-8",
            },
            json={"channel": channel, "text": text},
            timeout=SLACK_TIMEOUT,
        )
        resp.raise_for_status()
        body = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("Slack 通知失敗: %s", e)
        return False
    if not body.get("ok"):
        logger.error("Slack 通知エラー: %s", body.get("error"))
        return False
    return True


class CommunityVotes:
    """コミュニティ投票を集計テーブルに記録する."""

    def __init__(self, store: NotionStore, root_page_id: str):
        self.store = store
        self.aggregate = AggregateTable(store, root_page_id)

    def submit(self, concept_id: str, concept_label: str, voter_name: str | None = None,
               site_url: str | None = None) -> tuple[str, str]:
        """1 票を追記する. (集計テーブル ID, 投票者名) を返す."""
        if not concept_id or not concept_label:
            raise ValidationError("conceptId and conceptLabel are required", rule="missing_concept")

        voter = (voter_name or "").strip() or ANONYMOUS_VOTER
        database_id = self.aggregate.locate_or_create("fr")
        props = self.store.retrieve_database(database_id).get("properties", {})
        labels = get_labels(detect_results_lang(props.keys()))

        properties = {
            RESULT_TITLE_COL: title_prop(voter),
            labels.result_rank_cols[0]: rich_text_prop(concept_label),
            labels.result_date: date_prop(date.today().isoformat()),
        }
        if site_url:
            properties[labels.result_comment] = rich_text_prop(site_url)

        self.store.create_page({"type": "database_id", "database_id": database_id}, properties)
        logger.info("コミュニティ投票: voter=%s, concept=%s", voter, concept_id)
        return database_id, voter

    def notify(self, database_id: str, voter_name: str, concept_label: str) -> bool:
        """全行を集計して Slack に投稿する. バックグラウンド実行前提で例外は外に出さない."""
        try:
            rows = list(self.store.iter_database(database_id))
        except StoreError as e:
            logger.error("集計用の行取得に失敗: %s", e)
            return False
        entries, total = tally_rows(rows)
        return post_to_slack(render_leaderboard(voter_name, concept_label, entries, total))
