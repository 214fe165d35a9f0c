"""クライアント名 ⇔ スラッグ ⇔ Notion ページ ID の解決.

スラッグ化ルール:
  1. 小文字化
  2. Unicode 分解（NFD）してダイアクリティカルマークを除去
  3. 英数字以外の連続を 1 つのハイフンに
  4. 先頭・末尾のハイフンを除去

ルート直下の子ページを全件走査する線形探索。クライアント数は数十〜数百件想定。
"""

from __future__ import annotations

import logging
import re
import unicodedata

from voteboard.errors import NotFound
from voteboard.notion import NotionStore

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_RECORD_ID = re.compile(r"^[a-f0-9-]{32,36}$")


def slugify(name: str) -> str:
    """表示名を URL 用スラッグにする（"Société Général" -> "societe-general"）."""
    decomposed = unicodedata.normalize("NFD", name.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_ALNUM.sub("-", stripped).strip("-")


def is_record_id(value: str) -> bool:
    """Notion のページ ID 形式（16 進 + ハイフン, 32〜36 文字）か判定する."""
    return bool(_RECORD_ID.match(value)) and len(value.replace("-", "")) == 32


class SlugResolver:
    """ルートページ直下の子ページをスラッグで引く."""

    def __init__(self, store: NotionStore, root_page_id: str):
        self.store = store
        self.root_page_id = root_page_id

    def find(self, identifier: str) -> str | None:
        """スラッグが一致する子ページの ID. 見つからなければ None."""
        slug = slugify(identifier)
        logger.debug("スラッグ解決: %r -> %r", identifier, slug)
        if not slug:
            return None

        for block in self.store.iter_children(self.root_page_id):
            if block.get("type") != "child_page":
                continue
            title = block.get("child_page", {}).get("title", "")
            if slugify(title) == slug:
                logger.debug("  一致: %r -> %s", title, block["id"])
                return block["id"]
        return None

    def resolve(self, identifier: str) -> str:
        """ページ ID 形式ならそのまま返し、それ以外はスラッグとして解決する.

        Raises:
            NotFound: 一致する子ページがない
        """
        if is_record_id(identifier):
            return identifier
        page_id = self.find(identifier)
        if page_id is None:
            logger.info("スラッグ未解決: %r", identifier)
            raise NotFound("Client not found")
        return page_id
