"""
称号獲得トースト（ToastQueue を購読して1件ずつ表示）
"""
import asyncio

import flet as ft

from ..config import TOAST_VISIBLE_SECONDS
from ..logic.toast_queue import ToastQueue


class AchievementToast(ft.Container):
    """画面上部に表示するトースト"""

    def __init__(self, queue: ToastQueue, page: ft.Page,
                 visible_seconds: float = TOAST_VISIBLE_SECONDS):
        super().__init__()
        self.queue = queue
        self._page = page
        self.visible_seconds = visible_seconds
        self.visible = False
        self.bgcolor = "#1e3a5f"
        self.border_radius = 15
        self.padding = 20

        self.name_text = ft.Text("", size=20, weight=ft.FontWeight.BOLD, color="#ffc107")
        self.description_text = ft.Text("", size=14)
        self.content = ft.Row([
            ft.Text("🏆", size=32),
            ft.Column([self.name_text, self.description_text], spacing=2, expand=True),
            ft.IconButton(icon="close", on_click=self.close_clicked),
        ])

        self.subscription = queue.subscribe(self.on_toast)

    def on_toast(self, achievement, is_visible: bool):
        """キューの状態変化を反映"""
        if achievement is not None:
            self.name_text.value = achievement.name
            self.description_text.value = achievement.description
        self.visible = is_visible
        self._page.update()
        if is_visible:
            self._page.run_task(self._auto_dismiss, achievement)

    async def _auto_dismiss(self, achievement):
        await asyncio.sleep(self.visible_seconds)
        # ユーザーが先に閉じていれば何もしない
        if self.queue.visible is achievement:
            await self.queue.on_dismiss()

    def close_clicked(self, e):
        self.visible = False
        self._page.update()
        self._page.run_task(self.queue.on_dismiss)

    def will_unmount(self):
        self.subscription.unsubscribe()
