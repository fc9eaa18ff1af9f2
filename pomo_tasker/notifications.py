"""
システム通知ブリッジ
残り時間の常駐通知と、完了時刻に発火する完了通知を管理する
"""
import asyncio
import itertools
import logging
from typing import Callable, Dict, Optional

from .clock import now_ms
from .config import PERSISTENT_NOTIFICATION_ID

logger = logging.getLogger(__name__)


def format_time_for_notification(sec: int) -> str:
    """残り時間を整形（MM:SS）"""
    minutes = sec // 60
    seconds = sec % 60
    return f"{minutes:02d}:{seconds:02d}"


class LocalNotifier:
    """
    プロセス内通知スケジューラ（asyncioのタイマーで発火）

    deliver(identifier, title, body) が実際の表示を担当する。
    同じ identifier で schedule すると前の通知は置き換えられる。
    """

    def __init__(self, deliver: Callable[[str, str, str], None],
                 clock: Callable[[], int] = now_ms):
        self.deliver = deliver
        self.clock = clock
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._presented: Dict[str, tuple] = {}
        self._ids = itertools.count(1)

    @property
    def presented(self) -> Dict[str, tuple]:
        """表示中の通知 {identifier: (title, body)}"""
        return dict(self._presented)

    @property
    def pending(self) -> list:
        """発火待ちの通知ID"""
        return list(self._handles)

    def schedule(self, identifier: Optional[str], title: str, body: str,
                 trigger_at: Optional[int] = None) -> str:
        """通知を予約（trigger_at はエポックミリ秒、Noneなら即時）"""
        if identifier is None:
            identifier = f"notification-{next(self._ids)}"
        self.cancel(identifier)

        if trigger_at is None:
            self._fire(identifier, title, body)
            return identifier

        delay = max(0.0, (trigger_at - self.clock()) / 1000)
        loop = asyncio.get_running_loop()
        self._handles[identifier] = loop.call_later(delay, self._fire, identifier, title, body)
        return identifier

    def cancel(self, identifier: str):
        handle = self._handles.pop(identifier, None)
        if handle:
            handle.cancel()
        self._presented.pop(identifier, None)

    def _fire(self, identifier: str, title: str, body: str):
        self._handles.pop(identifier, None)
        self._presented[identifier] = (title, body)
        self.deliver(identifier, title, body)


class TimerNotifications:
    """タイマー用の通知操作（失敗してもタイマー動作には影響させない）"""

    def __init__(self, notifier):
        self.notifier = notifier

    def schedule_timer_notification(self, remaining_seconds: int, task_title: Optional[str] = None):
        """常駐カウントダウン通知を更新（固定IDで置き換え）"""
        try:
            self.notifier.cancel(PERSISTENT_NOTIFICATION_ID)
            if remaining_seconds <= 0:
                return

            time_text = format_time_for_notification(remaining_seconds)
            task_text = f" - {task_title}" if task_title else ""
            self.notifier.schedule(
                PERSISTENT_NOTIFICATION_ID,
                f"🍅 Pomodoro Timer - {time_text}",
                f"Keep focused! {time_text} remaining{task_text}",
            )
        except Exception as e:
            logger.warning("常駐通知の更新に失敗: %s", e)

    def cancel_timer_notification(self):
        try:
            self.notifier.cancel(PERSISTENT_NOTIFICATION_ID)
        except Exception as e:
            logger.warning("常駐通知の取り消しに失敗: %s", e)

    def schedule_completion_notification(self, trigger_at: int,
                                         task_title: Optional[str] = None) -> Optional[str]:
        """完了通知を予約し、取り消し用のIDを返す"""
        try:
            task_text = f" - {task_title}" if task_title else ""
            notification_id = self.notifier.schedule(
                None,
                "⏰ Timer Complete!",
                f"Great work! Your focus session is complete{task_text}",
                trigger_at,
            )
            logger.info("完了通知を予約: %s", notification_id)
            return notification_id
        except Exception as e:
            logger.warning("完了通知の予約に失敗: %s", e)
            return None

    def cancel_completion_notification(self, notification_id: Optional[str]):
        if not notification_id:
            return
        try:
            self.notifier.cancel(notification_id)
            logger.info("完了通知を取り消し: %s", notification_id)
        except Exception as e:
            logger.warning("完了通知の取り消しに失敗: %s", e)
