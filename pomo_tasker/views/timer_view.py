"""
タイマー画面
"""
import flet as ft

from ..errors import ActiveTaskError, NotSignedInError
from ..logic.timer_logic import TimerController
from ..models import CompletedSession, TimerMode, TimerStatus


class TimerView(ft.Column):
    """タイマー画面"""

    def __init__(self, timer: TimerController, page: ft.Page):
        super().__init__()
        self.timer = timer
        self._page = page
        self.spacing = 20
        self.horizontal_alignment = ft.CrossAxisAlignment.CENTER

        # UIコンポーネント
        self.timer_display = ft.Text(timer.get_formatted_time(), size=96,
                                     weight=ft.FontWeight.BOLD, font_family="Consolas")
        self.status_text = ft.Text("タスク名を入力して開始", size=20, color="#9e9e9e")
        self.task_input = ft.TextField(label="タスク名", width=300)

        self.start_button = ft.ElevatedButton(
            "開始",
            on_click=self.start_pause_clicked,
            icon="play_arrow",
            style=ft.ButtonStyle(bgcolor="#4caf50", color="white"),
        )
        self.controls = [
            self.timer_display,
            self.status_text,
            self.task_input,
            ft.Row([
                self.start_button,
                ft.OutlinedButton("リセット", icon="replay", on_click=self.reset_clicked),
                ft.OutlinedButton("+1分", on_click=self.add_minute_clicked),
                ft.TextButton("中断", on_click=self.abandon_clicked,
                              style=ft.ButtonStyle(color="red")),
            ], alignment=ft.MainAxisAlignment.CENTER),
        ]

        # タイマーコールバック設定
        self.timer.on_tick = self.on_timer_tick
        self.timer.on_status_change = self.on_status_change
        self.timer.on_complete = self.on_session_complete

    # === タイマーからの通知 ===

    def on_timer_tick(self, remaining_seconds: int, mode: TimerMode):
        self.timer_display.value = self.timer.get_formatted_time()
        self._page.update()

    def on_status_change(self, status: TimerStatus):
        if status == TimerStatus.ACTIVE:
            self.start_button.text = "一時停止"
            self.start_button.icon = "pause"
            title = self.timer.title or "Focus Session"
            self.status_text.value = f"作業中: {title}"
        else:
            self.start_button.text = "開始"
            self.start_button.icon = "play_arrow"
            self.status_text.value = "一時停止中" if status == TimerStatus.PAUSED else "タスク名を入力して開始"
        self._page.update()

    def on_session_complete(self, session: CompletedSession):
        self._page.open(ft.SnackBar(ft.Text(f"🎉 お疲れさまでした！ {session.task_title}")))

    # === ボタン操作 ===

    def start_pause_clicked(self, e):
        self._page.run_task(self._start_pause)

    async def _start_pause(self):
        title = (self.task_input.value or "").strip()
        try:
            if title and self.timer.status == TimerStatus.IDLE and self.timer.current_task is None:
                if self.timer.user_id:
                    await self.timer.start_task(title)
                else:
                    # ゲストはタスクを保存せずタイマーだけ動かす
                    await self.timer.start(None, TimerMode.FOCUS, title)
                self.task_input.value = ""
            else:
                await self.timer.toggle()
        except (ActiveTaskError, NotSignedInError) as ex:
            self._page.open(ft.SnackBar(ft.Text(str(ex))))

    def reset_clicked(self, e):
        self._page.run_task(self.timer.reset)

    def add_minute_clicked(self, e):
        self._page.run_task(self.timer.add_time, 60)

    def abandon_clicked(self, e):
        self._page.run_task(self.timer.abandon)
