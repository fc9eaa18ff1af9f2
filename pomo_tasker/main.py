"""
Pomo Tasker - メインアプリケーション
"""
import logging
import os

import flet as ft

from .cloud.supabase_client import get_auth, get_cloud_db
from .config import POMO_EMAIL, POMO_PASSWORD, setup_logging
from .logic.achievement_logic import AchievementSystem
from .logic.progress_logic import ProgressTracker
from .logic.streak_logic import StreakTracker
from .logic.timer_logic import TimerController
from .logic.toast_queue import ToastQueue
from .notifications import LocalNotifier, TimerNotifications
from .storage import LocalStore
from .views.achievement_toast import AchievementToast
from .views.timer_view import TimerView

logger = logging.getLogger(__name__)


async def main(page: ft.Page):
    """アプリケーションエントリーポイント"""
    setup_logging()

    # ページ設定
    page.title = "Pomo Tasker"
    page.theme_mode = ft.ThemeMode.DARK
    page.bgcolor = "#0f0f1a"
    page.padding = 20

    def deliver(identifier: str, title: str, body: str):
        """通知をページ下部に表示"""
        logger.debug("通知 %s: %s", identifier, title)
        page.open(ft.SnackBar(ft.Text(f"{title}\n{body}")))

    toasts = ToastQueue()
    auth = get_auth()
    cloud_db = None
    progress = None

    if auth.is_configured and POMO_EMAIL:
        result = await auth.sign_in_with_email(POMO_EMAIL, POMO_PASSWORD)
        if result.get("success"):
            cloud_db = get_cloud_db()
            progress = ProgressTracker(
                cloud_db,
                StreakTracker(cloud_db),
                AchievementSystem(cloud_db),
                toasts,
            )
        else:
            logger.warning("ログイン失敗: %s（ゲストとして起動）", result.get("error"))

    timer = TimerController(
        LocalStore(),
        TimerNotifications(LocalNotifier(deliver)),
        cloud_db=cloud_db,
        progress=progress,
    )
    timer.user_id = auth.user_id

    page.add(
        AchievementToast(toasts, page),
        TimerView(timer, page),
    )

    # バックグラウンドからの復帰でタイマーを復元
    def on_lifecycle_change(e):
        if e.data == "resume":
            page.run_task(timer.restore_on_foreground)

    page.on_app_lifecycle_state_change = on_lifecycle_change

    if progress is not None:
        await progress.on_app_open(timer.user_id)
    await timer.restore_on_foreground()


if __name__ == "__main__":
    port = int(os.environ.get("FLET_SERVER_PORT", 8080))
    ft.app(target=main, port=port, host="0.0.0.0", view=None)
