"""
時刻ユーティリティ（テスト時は now_ms を差し替える）
"""
import time
from datetime import date, datetime


def now_ms() -> int:
    """現在時刻（エポックミリ秒）"""
    return int(time.time() * 1000)


def local_date(ms: int) -> date:
    """エポックミリ秒をローカルの暦日に変換"""
    return datetime.fromtimestamp(ms / 1000).date()


def date_str(d: date) -> str:
    return d.strftime("%Y-%m-%d")
