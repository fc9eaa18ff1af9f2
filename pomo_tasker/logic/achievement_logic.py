"""
称号（アチーブメント）達成判定ロジック
"""
import asyncio
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from ..clock import now_ms
from ..errors import PomoTaskerError
from ..models import AchievementDefinition, AchievementType, AchievementUnlock

logger = logging.getLogger(__name__)


ACHIEVEMENTS: List[AchievementDefinition] = [
    # ストリーク
    AchievementDefinition("streak_3", AchievementType.STREAK, 3,
                          "3-Day Streak", "Completed focus sessions for 3 consecutive days"),
    AchievementDefinition("streak_7", AchievementType.STREAK, 7,
                          "7-Day Streak", "Completed focus sessions for 7 consecutive days"),
    AchievementDefinition("streak_30", AchievementType.STREAK, 30,
                          "30-Day Streak", "Completed focus sessions for 30 consecutive days"),
    # 累計集中時間（分）
    AchievementDefinition("focus_60", AchievementType.FOCUS_TIME, 60,
                          "1 Hour Focus", "Accumulated 60 minutes of focus time"),
    AchievementDefinition("focus_300", AchievementType.FOCUS_TIME, 300,
                          "5 Hour Focus", "Accumulated 300 minutes of focus time"),
    AchievementDefinition("focus_1000", AchievementType.FOCUS_TIME, 1000,
                          "1000 Minute Focus", "Accumulated 1000 minutes of focus time"),
    # 完了タスク数
    AchievementDefinition("tasks_10", AchievementType.TASKS_COMPLETED, 10,
                          "Task Starter", "Completed 10 tasks"),
    AchievementDefinition("tasks_25", AchievementType.TASKS_COMPLETED, 25,
                          "Task Champion", "Completed 25 tasks"),
    AchievementDefinition("tasks_50", AchievementType.TASKS_COMPLETED, 50,
                          "Task Master", "Completed 50 tasks"),
]


def find_definition(achievement_id: str) -> Optional[AchievementDefinition]:
    for definition in ACHIEVEMENTS:
        if definition.id == achievement_id:
            return definition
    return None


class AchievementSystem:
    """称号システム - 達成判定・獲得処理"""

    def __init__(self, cloud_db, clock: Callable[[], int] = now_ms):
        self.cloud_db = cloud_db
        self.clock = clock
        # ユーザーごとに判定を直列化
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def evaluate(self, user_id: str, metric: AchievementType, value: int) -> List[AchievementUnlock]:
        """指標の値で到達した称号を解放し、新たに解放されたものだけを返す"""
        eligible = [
            a for a in ACHIEVEMENTS
            if a.type == metric and a.threshold <= value
        ]
        if not eligible:
            return []

        logger.debug("称号判定 user=%s metric=%s value=%s 候補=%s",
                     user_id, metric.value, value, [a.id for a in eligible])

        unlocked = []
        async with self._locks[user_id]:
            for definition in eligible:
                unlock = await self._unlock(user_id, definition)
                if unlock:
                    logger.info("🏆 称号を獲得: %s (%s)", definition.name, user_id)
                    unlocked.append(unlock)
        return unlocked

    async def unlock(self, user_id: str, achievement_id: str) -> Optional[AchievementUnlock]:
        """未獲得なら称号を解放（獲得済み・未定義なら None）"""
        definition = find_definition(achievement_id)
        if definition is None:
            logger.error("未定義の称号: %s", achievement_id)
            return None
        async with self._locks[user_id]:
            return await self._unlock(user_id, definition)

    async def _unlock(self, user_id: str, definition: AchievementDefinition) -> Optional[AchievementUnlock]:
        try:
            if await self.cloud_db.get_unlock(user_id, definition.id):
                return None

            unlock = AchievementUnlock(
                id=definition.id,
                user_id=user_id,
                unlocked_at=self.clock(),
                type=definition.type,
                name=definition.name,
                description=definition.description,
            )
            if not await self.cloud_db.insert_unlock(unlock.to_row()):
                # 他の書き込みが先に記録済み
                return None
            return unlock
        except PomoTaskerError as e:
            logger.error("称号の解放に失敗 (%s, %s): %s", user_id, definition.id, e)
            return None

    async def get_user_achievements(self, user_id: str) -> List[AchievementUnlock]:
        try:
            rows = await self.cloud_db.list_unlocks(user_id)
        except PomoTaskerError as e:
            logger.error("称号一覧の取得に失敗 (%s): %s", user_id, e)
            return []
        return [AchievementUnlock.from_row(row) for row in rows]

    async def cleanup_duplicates(self, user_id: str) -> int:
        """同じ称号の重複記録を削除し、最も早いものだけ残す"""
        try:
            rows = await self.cloud_db.list_unlocks(user_id)
        except PomoTaskerError as e:
            logger.error("重複チェックの取得に失敗 (%s): %s", user_id, e)
            return 0

        groups: Dict[str, list] = defaultdict(list)
        for row in rows:
            groups[row["achievement_id"]].append(row)

        removed = 0
        for achievement_id, docs in groups.items():
            if len(docs) <= 1:
                continue
            docs.sort(key=lambda r: r.get("unlocked_at") or 0)
            for duplicate in docs[1:]:
                try:
                    await self.cloud_db.delete_unlock(duplicate["id"])
                    removed += 1
                except PomoTaskerError as e:
                    logger.error("重複の削除に失敗 (%s): %s", duplicate["id"], e)

        if removed:
            logger.info("重複した称号を %d 件削除 (%s)", removed, user_id)
        return removed

    def get_progress(self, definition: AchievementDefinition, value: int) -> Tuple[int, int]:
        """称号の進捗を取得 (current, target)"""
        return (min(max(value, 0), definition.threshold), definition.threshold)
