"""
タイマー制御ロジック

残り時間はメモリ上のカウンタではなく、保存した終了時刻から毎回計算する。
アプリがバックグラウンドに回ったり終了されたりしても、
restore_on_foreground() で正確な残り時間を復元できる。
"""
import asyncio
import logging
from typing import Callable, Optional

from ..clock import now_ms
from ..config import DEFAULT_MINUTES, TIMER_END_TIME_KEY, TIMER_STATUS_KEY
from ..errors import ActiveTaskError, NotSignedInError, PomoTaskerError
from ..models import CompletedSession, Task, TaskStatus, TimerMode, TimerSession, TimerStatus

logger = logging.getLogger(__name__)

# 常駐通知の更新間隔（tick数）
NOTIFICATION_UPDATE_TICKS = 10


class TimerController:
    """セッションタイマー制御クラス"""

    def __init__(self, local_store, notifications, cloud_db=None, progress=None,
                 clock: Callable[[], int] = now_ms,
                 default_minutes: int = DEFAULT_MINUTES,
                 tick_interval: Optional[float] = 1.0):
        self.local_store = local_store
        self.notifications = notifications
        self.cloud_db = cloud_db
        self.progress = progress
        self.clock = clock
        self.tick_interval = tick_interval

        self.default_seconds: int = default_minutes * 60
        self.session = TimerSession(duration_seconds=self.default_seconds)
        # 表示用キャッシュ（正は session.end_timestamp）
        self.remaining_seconds: int = self.default_seconds

        self.user_id: Optional[str] = None
        self.current_task: Optional[Task] = None
        self.title: Optional[str] = None
        self.completion_notification_id: Optional[str] = None

        self._tick_task: Optional[asyncio.Task] = None
        self._ticks_since_notification: int = 0
        self._last_completed_end: Optional[int] = None

        # コールバック
        self.on_tick: Optional[Callable] = None  # (remaining_seconds, mode)
        self.on_complete: Optional[Callable] = None  # (CompletedSession)
        self.on_status_change: Optional[Callable] = None  # (TimerStatus)

    # ---- 状態 ----

    @property
    def status(self) -> TimerStatus:
        return self.session.status

    @property
    def mode(self) -> TimerMode:
        return self.session.mode

    @property
    def is_running(self) -> bool:
        return self.session.status == TimerStatus.ACTIVE

    def get_formatted_time(self) -> str:
        """残り時間を整形（MM:SS）"""
        minutes = self.remaining_seconds // 60
        seconds = self.remaining_seconds % 60
        return f"{minutes:02d}:{seconds:02d}"

    # ---- 基本操作 ----

    async def start(self, duration_seconds: Optional[int] = None,
                    mode: TimerMode = TimerMode.FOCUS, title: Optional[str] = None):
        """
        カウントダウンを開始

        duration_seconds が None なら表示中の残り時間、
        それも 0 なら既定の時間で開始する。
        """
        if duration_seconds is None:
            duration_seconds = self.remaining_seconds if self.remaining_seconds > 0 else self.default_seconds
        if duration_seconds <= 0:
            raise ValueError(f"タイマーの時間は1秒以上が必要です: {duration_seconds}")

        now = self.clock()
        self.session = TimerSession(
            end_timestamp=now + duration_seconds * 1000,
            status=TimerStatus.ACTIVE,
            mode=mode,
            duration_seconds=duration_seconds,
        )
        self.remaining_seconds = duration_seconds
        if title is not None:
            self.title = title
        elif self.current_task:
            self.title = self.current_task.title

        logger.info("タイマー開始: %d秒 (%s)", duration_seconds, mode.value)
        self._begin_countdown()
        await self._persist_active()
        self._schedule_completion_notification()

    async def pause(self):
        """一時停止（残り秒数はメモリに保持）"""
        if not self.is_running:
            return

        remaining = self.session.remaining_seconds(self.clock())
        if remaining <= 0:
            # 終了時刻を過ぎていれば一時停止ではなく完了
            await self._complete()
            return

        self.remaining_seconds = remaining
        self.session.end_timestamp = None
        self.session.status = TimerStatus.PAUSED
        self._stop_countdown()
        self._cancel_notifications()
        self._emit_status()

        logger.info("タイマー一時停止: 残り%d秒", self.remaining_seconds)
        await self._remove_keys(TIMER_END_TIME_KEY)
        await self._set_key(TIMER_STATUS_KEY, TimerStatus.PAUSED.value)
        await self._set_task_status(TaskStatus.PENDING)

    async def resume(self):
        """一時停止から再開（終了時刻を再計算）"""
        if self.session.status != TimerStatus.PAUSED or self.remaining_seconds <= 0:
            return

        self.session.end_timestamp = self.clock() + self.remaining_seconds * 1000
        self.session.status = TimerStatus.ACTIVE

        logger.info("タイマー再開: 残り%d秒", self.remaining_seconds)
        self._begin_countdown()
        await self._persist_active()
        self._schedule_completion_notification()
        await self._set_task_status(TaskStatus.ACTIVE)

    async def toggle(self):
        """開始 / 一時停止の切り替え"""
        if self.is_running:
            await self.pause()
        elif self.session.status == TimerStatus.PAUSED:
            await self.resume()
        else:
            await self.start(None, TimerMode.FOCUS, self.title)

    async def reset(self):
        """初期状態に戻す（実行中のタスクは pending に戻す）"""
        self._stop_countdown()
        self._cancel_notifications()
        self.session = TimerSession(duration_seconds=self.default_seconds)
        self.remaining_seconds = self.default_seconds
        self._emit_status()
        self._emit_tick()

        logger.info("タイマーリセット")
        await self._remove_keys(TIMER_END_TIME_KEY, TIMER_STATUS_KEY)
        if self.current_task and self.current_task.status == TaskStatus.ACTIVE:
            await self._set_task_status(TaskStatus.PENDING)

    async def add_time(self, delta_seconds: int):
        """残り時間を増減（実行中なら終了時刻と通知も更新）"""
        if self.is_running:
            self.session.end_timestamp += delta_seconds * 1000
            self.remaining_seconds = self.session.remaining_seconds(self.clock())
            self._emit_tick()
            if self.remaining_seconds <= 0:
                await self._complete()
                return
            await self._persist_active()
            self.notifications.schedule_timer_notification(self.remaining_seconds, self.title)
            self._schedule_completion_notification()
        else:
            self.remaining_seconds = max(0, self.remaining_seconds + delta_seconds)
            self._emit_tick()

    def set_default_duration(self, minutes: int):
        """既定の時間を変更（実行中でなければ表示も更新）"""
        self.default_seconds = minutes * 60
        if self.session.status == TimerStatus.IDLE:
            self.session.duration_seconds = self.default_seconds
            self.remaining_seconds = self.default_seconds
            self._emit_tick()

    # ---- タスク連携 ----

    async def start_task(self, title: str, duration_minutes: Optional[int] = None,
                         subject_id: Optional[str] = None) -> Task:
        """新しいタスクを active で作成してタイマーを開始"""
        if not self.user_id:
            raise NotSignedInError("タスクを開始するにはログインが必要です")
        self._ensure_no_active_task()

        if duration_minutes is None:
            duration_minutes = self.default_seconds // 60
        task = Task(
            title=title,
            duration=duration_minutes,
            created_at=self.clock(),
            status=TaskStatus.ACTIVE,
            user_id=self.user_id,
            subject_id=subject_id,
        )
        self.current_task = task
        if self.cloud_db is not None:
            try:
                await self.cloud_db.create_task(task)
                logger.info("タスクを作成: %s", task.id)
            except PomoTaskerError as e:
                logger.error("タスク作成エラー: %s", e)

        await self.start(duration_minutes * 60, TimerMode.FOCUS, title)
        return task

    async def play_task(self, task: Task):
        """既存の pending タスクを開始"""
        self._ensure_no_active_task()
        self.current_task = task
        await self._set_task_status(TaskStatus.ACTIVE)
        await self.start(task.duration * 60, TimerMode.FOCUS, task.title)

    async def abandon(self):
        """現在のタスクを中断扱いにしてタイマーを止める"""
        task = self.current_task
        self._stop_countdown()
        self._cancel_notifications()
        self.session = TimerSession(duration_seconds=self.default_seconds)
        self.remaining_seconds = self.default_seconds
        self._emit_status()
        self._emit_tick()

        await self._remove_keys(TIMER_END_TIME_KEY, TIMER_STATUS_KEY)
        if task:
            abandoned_at = self.clock()
            task.status = TaskStatus.ABANDONED
            task.abandoned_at = abandoned_at
            await self._update_task(task, {"status": TaskStatus.ABANDONED.value, "abandoned_at": abandoned_at})
            logger.info("タスクを中断: %s", task.id)
        self.current_task = None

    def _ensure_no_active_task(self):
        if self.current_task and self.current_task.status == TaskStatus.ACTIVE:
            raise ActiveTaskError("実行中のタスクを完了または停止してから開始してください")

    # ---- カウントダウン ----

    async def tick(self):
        """終了時刻から残り時間を再計算（取りこぼしたtickの影響を受けない）"""
        if not self.is_running:
            return

        self.remaining_seconds = self.session.remaining_seconds(self.clock())
        self._ticks_since_notification += 1
        self._emit_tick()

        if self.remaining_seconds <= 0:
            await self._complete()
            return

        if self._should_update_notification(self.remaining_seconds):
            self.notifications.schedule_timer_notification(self.remaining_seconds, self.title)
            self._ticks_since_notification = 0

    def _should_update_notification(self, remaining: int) -> bool:
        return (
            self._ticks_since_notification >= NOTIFICATION_UPDATE_TICKS
            or remaining % 60 == 0
            or remaining <= 60
        )

    async def _countdown(self):
        """1秒ごとに tick（page.run_task ではなくエンジン側で管理）"""
        while self.is_running:
            await asyncio.sleep(self.tick_interval)
            await self.tick()

    def _begin_countdown(self):
        self._ticks_since_notification = 0
        self._emit_status()
        self._emit_tick()
        self.notifications.schedule_timer_notification(self.remaining_seconds, self.title)
        if self.tick_interval is None:
            return
        self._stop_countdown()
        self._tick_task = asyncio.create_task(self._countdown())

    def _stop_countdown(self):
        task = self._tick_task
        self._tick_task = None
        # 完了処理は tick タスク自身から呼ばれることがある
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ---- 完了 ----

    async def _complete(self) -> Optional[CompletedSession]:
        """完了処理（1セッションにつき1回だけ実行）"""
        if not self.is_running:
            return None
        end = self.session.end_timestamp
        if end is not None and end == self._last_completed_end:
            return None
        self._last_completed_end = end

        mode = self.session.mode
        duration_seconds = self.session.duration_seconds
        self.session = TimerSession(duration_seconds=duration_seconds)
        self.remaining_seconds = 0
        self._stop_countdown()
        self._cancel_notifications()
        self._emit_status()
        self._emit_tick()
        logger.info("⏰ タイマー完了")

        await self._remove_keys(TIMER_END_TIME_KEY, TIMER_STATUS_KEY)

        completed_at = self.clock()
        task = self.current_task
        if task:
            task.status = TaskStatus.COMPLETED
            task.completed_at = completed_at
            await self._update_task(task, {"status": TaskStatus.COMPLETED.value, "completed_at": completed_at})
        self.current_task = None

        session = CompletedSession(
            task_title=(task.title if task else None) or self.title or "Pomodoro Session",
            duration_minutes=duration_seconds / 60,
            completed_at=completed_at,
            mode=mode,
            task_id=task.id if task else None,
            subject_id=task.subject_id if task else None,
        )
        self.title = None

        if self.progress is not None and self.user_id:
            await self.progress.on_session_completed(self.user_id, session)

        if self.on_complete:
            self.on_complete(session)
        return session

    # ---- 復元 ----

    async def restore_on_foreground(self):
        """
        フォアグラウンド復帰時に保存済みの終了時刻から状態を復元

        - 終了時刻が未来: 残り時間を再計算してカウントダウン継続
        - 終了時刻が過去: バックグラウンド中に完了したものとして完了処理
        - 値が壊れている: セッションなし（idle）として扱う
        """
        try:
            end_str = await self.local_store.get_item(TIMER_END_TIME_KEY)
            status = await self.local_store.get_item(TIMER_STATUS_KEY)
        except PomoTaskerError as e:
            logger.error("タイマー復元の読み込みエラー: %s", e)
            return

        if status != TimerStatus.ACTIVE.value or not end_str:
            if self.is_running:
                await self.tick()
            elif self.session.status == TimerStatus.IDLE and (status or end_str):
                # 前回プロセスが残したキー（実行中のセッションなし）
                await self._remove_keys(TIMER_END_TIME_KEY, TIMER_STATUS_KEY)
            return

        try:
            end = int(end_str)
        except ValueError:
            logger.warning("保存された終了時刻が不正: %r", end_str)
            await self._remove_keys(TIMER_END_TIME_KEY, TIMER_STATUS_KEY)
            return

        if end == self._last_completed_end:
            await self._remove_keys(TIMER_END_TIME_KEY, TIMER_STATUS_KEY)
            return

        was_running = self.is_running
        if not was_running:
            await self._restore_task()

        remaining = max(0, (end - self.clock()) // 1000)
        self.session.end_timestamp = end
        self.session.status = TimerStatus.ACTIVE
        if not was_running:
            self.session.mode = TimerMode.FOCUS
            if self.current_task:
                self.session.duration_seconds = self.current_task.duration * 60

        if remaining > 0:
            logger.info("タイマーを復元: 残り%d秒", remaining)
            self.remaining_seconds = remaining
            if not was_running or self._tick_task is None:
                self._begin_countdown()
            else:
                self._emit_tick()
        else:
            logger.info("⏰ バックグラウンド中にタイマーが完了")
            await self._complete()

    async def _restore_task(self):
        """プロセス再起動後、リモートから実行中のタスクを探す"""
        if self.current_task or not self.user_id or self.cloud_db is None:
            return
        try:
            self.current_task = await self.cloud_db.get_active_task(self.user_id)
        except PomoTaskerError as e:
            logger.error("実行中タスクの取得エラー: %s", e)
            return
        if self.current_task:
            self.title = self.current_task.title

    # ---- 永続化・通知（失敗してもメモリ上の状態を優先） ----

    async def _persist_active(self):
        await self._set_key(TIMER_END_TIME_KEY, str(self.session.end_timestamp))
        await self._set_key(TIMER_STATUS_KEY, TimerStatus.ACTIVE.value)

    async def _set_key(self, key: str, value: str):
        try:
            await self.local_store.set_item(key, value)
        except PomoTaskerError as e:
            logger.error("ローカル保存エラー (%s): %s", key, e)

    async def _remove_keys(self, *keys: str):
        try:
            await self.local_store.remove_items(*keys)
        except PomoTaskerError as e:
            logger.error("ローカル削除エラー (%s): %s", ", ".join(keys), e)

    async def _set_task_status(self, status: TaskStatus):
        task = self.current_task
        if task is None:
            return
        task.status = status
        await self._update_task(task, {"status": status.value})

    async def _update_task(self, task: Task, fields: dict):
        if self.cloud_db is None or task.id is None:
            return
        try:
            await self.cloud_db.update_task(task.id, fields)
        except PomoTaskerError as e:
            logger.error("タスク更新エラー (%s): %s", task.id, e)

    def _schedule_completion_notification(self):
        self.notifications.cancel_completion_notification(self.completion_notification_id)
        title = "Break Time" if self.session.mode == TimerMode.BREAK else (self.title or "Focus Session")
        self.completion_notification_id = self.notifications.schedule_completion_notification(
            self.session.end_timestamp, title)

    def _cancel_notifications(self):
        self.notifications.cancel_timer_notification()
        self.notifications.cancel_completion_notification(self.completion_notification_id)
        self.completion_notification_id = None

    def _emit_tick(self):
        if self.on_tick:
            self.on_tick(self.remaining_seconds, self.session.mode)

    def _emit_status(self):
        if self.on_status_change:
            self.on_status_change(self.session.status)
