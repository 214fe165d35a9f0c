"""投票ボード API — メインエントリーポイント.

起動:
  python -m voteboard.main
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime

import uvicorn

from voteboard.config import HOST, LOG_DIR, NOTION_API_KEY, PORT, VOTE_ROOT_PAGE_ID


def setup_logging() -> None:
    """ロギングの初期設定."""
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / f"voteboard_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def run() -> None:
    """メイン処理."""
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("=== 投票ボード API 起動 ===")

    if not NOTION_API_KEY:
        logger.warning("NOTION_API_KEY が未設定です。Notion を使う API は 500 を返します。")
    if not VOTE_ROOT_PAGE_ID:
        logger.warning("VOTE_ROOT_PAGE_ID が未設定です。")

    uvicorn.run("voteboard.api:app", host=HOST, port=PORT, log_config=None)


if __name__ == "__main__":
    run()
