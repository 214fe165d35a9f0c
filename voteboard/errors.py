"""例外定義.

HTTP 層はここで定義した status_code をそのままレスポンスに使う。
"""

from __future__ import annotations


class VoteError(Exception):
    """本パッケージの例外基底クラス."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def public_message(self) -> str:
        """利用者に返してよいメッセージ."""
        return self.message


class ValidationError(VoteError):
    """投票内容が不正."""

    status_code = 400

    def __init__(self, message: str, rule: str):
        super().__init__(message)
        self.rule = rule


class NotFound(VoteError):
    """スラッグ・ページ・テーブルが見つからない."""

    status_code = 404


class ConfigurationError(VoteError):
    """必須の設定値（API キー等）が未設定."""

    status_code = 500

    @property
    def public_message(self) -> str:
        return "Internal server error"


class StoreError(VoteError):
    """Notion API 呼び出しの失敗."""

    status_code = 500

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamUnavailable(VoteError):
    """スクリーンショット取得手段がすべて失敗した."""

    status_code = 502
