"""
称号トースト通知キュー
同時に表示されるのは常に1件だけで、到着順に表示する
"""
import asyncio
import logging
from collections import deque
from typing import Callable, Iterable, List, Optional

from ..config import TOAST_COOLDOWN_SECONDS
from ..models import AchievementUnlock

logger = logging.getLogger(__name__)

ToastListener = Callable[[Optional[AchievementUnlock], bool], None]


class Subscription:
    """subscribe() が返す購読ハンドル"""

    def __init__(self, queue: "ToastQueue", listener: ToastListener):
        self._queue = queue
        self.listener = listener

    @property
    def active(self) -> bool:
        return self._queue is not None

    def unsubscribe(self):
        if self._queue is not None:
            self._queue._remove(self)
            self._queue = None


class ToastQueue:
    """
    トースト表示の待ち行列

    プロセスで1つ生成し、エンジンとUIに注入して共有する。
    UIは表示時間が過ぎたら（またはユーザーが閉じたら）on_dismiss() を呼ぶ。
    """

    def __init__(self, cooldown_seconds: float = TOAST_COOLDOWN_SECONDS):
        self.cooldown_seconds = cooldown_seconds
        self._pending = deque()
        self._visible: Optional[AchievementUnlock] = None
        self._subscriptions: List[Subscription] = []

    @property
    def visible(self) -> Optional[AchievementUnlock]:
        """表示中の称号"""
        return self._visible

    @property
    def is_visible(self) -> bool:
        return self._visible is not None

    @property
    def pending(self) -> List[AchievementUnlock]:
        return list(self._pending)

    def subscribe(self, listener: ToastListener) -> Subscription:
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def enqueue(self, achievement: AchievementUnlock):
        """1件追加（何も表示されていなければ即表示）"""
        if achievement is None:
            return
        logger.info("トーストを追加: %s", achievement.name)
        self._pending.append(achievement)
        if not self.is_visible:
            self._show_next()

    def enqueue_many(self, achievements: Iterable[AchievementUnlock]):
        """まとめて追加"""
        achievements = [a for a in achievements or [] if a is not None]
        if not achievements:
            return
        logger.info("トーストを %d 件追加", len(achievements))
        self._pending.extend(achievements)
        if not self.is_visible:
            self._show_next()

    async def on_dismiss(self):
        """表示中のトーストを閉じ、クールダウン後に次を表示"""
        if self._visible is None:
            return
        self._visible = None
        await asyncio.sleep(self.cooldown_seconds)
        # クールダウン中に enqueue で表示済みなら何もしない
        if self._visible is None:
            self._show_next()

    def _show_next(self):
        if not self._pending:
            self._visible = None
            self._notify(None, False)
            return

        self._visible = self._pending.popleft()
        logger.info("トーストを表示: %s", self._visible.name)
        self._notify(self._visible, True)

    def _notify(self, achievement: Optional[AchievementUnlock], is_visible: bool):
        for subscription in list(self._subscriptions):
            try:
                subscription.listener(achievement, is_visible)
            except Exception:
                logger.exception("トーストリスナーでエラー")
