"""
設定値の読み込みとログ設定
"""
import logging
import os

from dotenv import load_dotenv

# 環境変数を読み込み
load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")

# 未設定ならゲストとして起動（リモート保存・称号なし）
POMO_EMAIL = os.getenv("POMO_EMAIL", "")
POMO_PASSWORD = os.getenv("POMO_PASSWORD", "")

# ローカル永続ストア（SQLite）のパス
DB_PATH = os.getenv("POMO_DB_PATH", "pomo_tasker.db")

DEFAULT_MINUTES = int(os.getenv("POMO_DEFAULT_MINUTES", "25"))

# トースト表示時間とクールダウン（秒）
TOAST_VISIBLE_SECONDS = float(os.getenv("POMO_TOAST_VISIBLE_SECONDS", "4"))
TOAST_COOLDOWN_SECONDS = float(os.getenv("POMO_TOAST_COOLDOWN_SECONDS", "0.3"))

LOG_LEVEL = os.getenv("POMO_LOG_LEVEL", "INFO")

# --- ローカルストアのキー ---
TIMER_END_TIME_KEY = "@pomodoro_end_time"
TIMER_STATUS_KEY = "@pomodoro_status"
PERSISTENT_NOTIFICATION_ID = "timer-notification-id"


def setup_logging(level: str = None):
    """ルートロガーを設定"""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
