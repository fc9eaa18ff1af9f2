"""
例外クラス定義
"""


class PomoTaskerError(Exception):
    """基底例外"""


class CloudStoreError(PomoTaskerError):
    """リモートストアへのリクエスト失敗"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class LocalStoreError(PomoTaskerError):
    """ローカル永続ストアの読み書き失敗"""


class ActiveTaskError(PomoTaskerError):
    """別のタスクが実行中"""


class NotSignedInError(PomoTaskerError):
    """ユーザー未ログインでタスク操作が行われた"""
