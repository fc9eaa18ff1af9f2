"""
連続利用日数（ストリーク）判定ロジック
"""
import logging
from datetime import date, timedelta
from typing import Callable, Iterable

from ..clock import date_str, local_date, now_ms
from ..errors import PomoTaskerError
from ..models import UserActivity

logger = logging.getLogger(__name__)


def compute_streak(active_days: Iterable[str], today: date) -> int:
    """今日から遡って連続している日数を数える"""
    days = set(active_days)
    streak = 0
    cursor = today
    while date_str(cursor) in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


class StreakTracker:
    """
    ストリーク管理

    アプリ起動時とセッション完了時に touch() を呼ぶ。
    同じ日に何度呼んでも結果は変わらない。
    """

    def __init__(self, cloud_db, clock: Callable[[], int] = now_ms):
        self.cloud_db = cloud_db
        self.clock = clock

    async def touch(self, user_id: str) -> int:
        """
        最終利用日時を更新して新しいストリークを返す

        - 同じ暦日: 変化なし
        - 前日: +1
        - 2日以上空いた / 記録なし: 1 にリセット

        読み込みに失敗した場合は 0 を返す。
        """
        now = self.clock()
        today = local_date(now)
        today_str = date_str(today)

        try:
            row = await self.cloud_db.get_user(user_id)
        except PomoTaskerError as e:
            logger.error("ストリーク読み込みエラー (%s): %s", user_id, e)
            return 0

        if row is None:
            activity = UserActivity(
                user_id=user_id, streak=1, last_active=now,
                active_days=[today_str], streak_start_date=today_str,
            )
            await self._save(activity, create=True)
            return 1

        activity = UserActivity.from_row(row)
        activity.user_id = user_id

        if activity.last_active is None:
            activity.streak = 1
            activity.active_days = [today_str]
            activity.streak_start_date = today_str
        else:
            gap = (today - local_date(activity.last_active)).days
            if gap == 1:
                activity.streak += 1
            elif gap > 1:
                activity.streak = 1
                activity.active_days = []
                activity.streak_start_date = today_str
            # gap <= 0 は同日（時計の巻き戻りも同日扱い）
            if today_str not in activity.active_days:
                activity.active_days.append(today_str)
            if activity.streak_start_date is None:
                activity.streak_start_date = today_str

        activity.streak = max(activity.streak, 1)
        activity.last_active = now
        await self._save(activity)
        return activity.streak

    async def recalculate(self, user_id: str) -> int:
        """保存済みの active_days からストリークを再計算"""
        now = self.clock()
        today = local_date(now)
        try:
            row = await self.cloud_db.get_user(user_id)
        except PomoTaskerError as e:
            logger.error("ストリーク再計算の読み込みエラー (%s): %s", user_id, e)
            return 0
        if row is None:
            return 0

        activity = UserActivity.from_row(row)
        activity.user_id = user_id
        activity.active_days = sorted(set(activity.active_days))
        activity.streak = compute_streak(activity.active_days, today)
        if activity.streak > 0:
            activity.streak_start_date = date_str(today - timedelta(days=activity.streak - 1))
        else:
            activity.streak_start_date = ""
        await self._save(activity)
        logger.info("ストリークを再計算: %s -> %d", user_id, activity.streak)
        return activity.streak

    async def _save(self, activity: UserActivity, create: bool = False):
        fields = {
            "streak": activity.streak,
            "last_active": activity.last_active,
            "active_days": activity.active_days,
            "streak_start_date": activity.streak_start_date,
        }
        try:
            if create:
                await self.cloud_db.create_user(activity.user_id, fields)
            else:
                await self.cloud_db.update_user(activity.user_id, fields)
        except PomoTaskerError as e:
            logger.error("ストリーク保存エラー (%s): %s", activity.user_id, e)
