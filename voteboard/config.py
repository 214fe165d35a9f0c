"""設定モジュール — 環境変数・定数定義."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env はプロジェクトルートに配置
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- Notion ---
# 未設定でも import は失敗させない。初回利用時に ConfigurationError を送出する。
NOTION_API_KEY: str = os.getenv("NOTION_API_KEY", "")
NOTION_API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

# 全クライアントページの親となるワークスペースルート
VOTE_ROOT_PAGE_ID: str = os.getenv("VOTE_ROOT_PAGE_ID", "")

# --- 投票 ---
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/")
RANK_SLOT_COUNT: int = int(os.getenv("RANK_SLOT_COUNT", "3"))
MAX_RANK_SLOTS = 4

# --- Slack ---
SLACK_BOT_TOKEN: str = os.getenv("SLACK_BOT_TOKEN", "")
SLACK_CHANNEL_ID: str = os.getenv("SLACK_CHANNEL_ID", "")
SLACK_POST_URL = "https://slack.com/api/chat.postMessage"

# --- スクリーンショット ---
MICROLINK_URL = "https://api.microlink.io/"
THUMIO_URL_TEMPLATE = "https://image.thum.io/get/width/1280/crop/720/noanimate/{url}"
PAGESPEED_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
FAVICON_URL_TEMPLATE = "https://www.google.com/s2/favicons?domain={domain}&sz={size}"
VIEWPORT_WIDTH = 1280
VIEWPORT_HEIGHT = 720
LARGE_SCREENSHOT_CHARS = 1_000_000

# Vercel 等の制約環境ではヘッドレスブラウザを使わない
BROWSER_CAPTURE_ENABLED: bool = not os.getenv("VERCEL")

# --- デモ用クライアント ---
EXAMPLE_CLIENT = {
    "client_name": "ViaSay",
    "site_url": "https://www.viasay.io",
    "button_color": "#0066FF",
    "presence_color": "#22c55e",
}
EXAMPLE_CACHE_SECONDS = 3600

DEFAULT_BUTTON_COLOR = "#4A90D9"
DEFAULT_PRESENCE_COLOR = "#22c55e"

# --- User-Agent ---
PC_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

# --- リクエスト設定 ---
REQUEST_TIMEOUT = 10  # 秒
MICROLINK_TIMEOUT = 8
THUMIO_TIMEOUT = 5
PAGESPEED_TIMEOUT = 15
BROWSER_TIMEOUT = 10
SLACK_TIMEOUT = 5

# --- サーバー ---
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))

# --- ログ ---
LOG_DIR = _PROJECT_ROOT / "logs"
