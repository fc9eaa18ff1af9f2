"""
セッション完了後の進捗処理（ストリーク → 集計 → 称号判定 → トースト）
"""
import logging
from typing import Iterable, List, Optional, Tuple

from ..errors import PomoTaskerError
from ..models import AchievementType, AchievementUnlock, CompletedSession, Task, TaskStatus

logger = logging.getLogger(__name__)


def summarize_tasks(tasks: Iterable[Task]) -> Tuple[int, int]:
    """完了タスクから (累計集中分, 完了数) を集計"""
    focus_minutes = 0
    completed = 0
    for task in tasks:
        if task.status != TaskStatus.COMPLETED:
            continue
        completed += 1
        if task.completed_at:
            focus_minutes += task.duration or 0
    return focus_minutes, completed


class ProgressTracker:
    """ストリークと称号の更新をまとめて行う"""

    def __init__(self, cloud_db, streaks, achievements, toasts=None):
        self.cloud_db = cloud_db
        self.streaks = streaks
        self.achievements = achievements
        self.toasts = toasts
        self.streak: int = 0

    async def on_session_completed(self, user_id: str,
                                   session: Optional[CompletedSession] = None) -> List[AchievementUnlock]:
        """セッション完了時: 新しい称号はトーストに流す"""
        if session:
            logger.info("セッション完了: %s (%.1f分)", session.task_title, session.duration_minutes)
        unlocked = await self._evaluate_all(user_id)
        if unlocked and self.toasts is not None:
            self.toasts.enqueue_many(unlocked)
        return unlocked

    async def on_app_open(self, user_id: str) -> List[AchievementUnlock]:
        """アプリ起動時: 称号は記録するだけで通知しない"""
        await self.achievements.cleanup_duplicates(user_id)
        return await self._evaluate_all(user_id)

    async def _evaluate_all(self, user_id: str) -> List[AchievementUnlock]:
        self.streak = await self.streaks.touch(user_id)
        unlocked = await self.achievements.evaluate(user_id, AchievementType.STREAK, self.streak)

        try:
            tasks = await self.cloud_db.list_tasks(user_id)
        except PomoTaskerError as e:
            logger.error("タスク集計の取得に失敗 (%s): %s", user_id, e)
            return unlocked

        focus_minutes, completed = summarize_tasks(tasks)
        unlocked += await self.achievements.evaluate(user_id, AchievementType.FOCUS_TIME, focus_minutes)
        unlocked += await self.achievements.evaluate(user_id, AchievementType.TASKS_COMPLETED, completed)
        return unlocked
