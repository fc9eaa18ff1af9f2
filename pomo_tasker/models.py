"""
データモデル定義
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class TimerStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"


class TimerMode(str, Enum):
    FOCUS = "focus"
    BREAK = "break"
    IDLE = "idle"


class TaskStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class AchievementType(str, Enum):
    STREAK = "streak"
    FOCUS_TIME = "focus_time"
    TASKS_COMPLETED = "tasks_completed"


@dataclass
class TimerSession:
    """カウントダウンの状態（残り時間は end_timestamp から算出）"""
    end_timestamp: Optional[int] = None  # エポックミリ秒
    status: TimerStatus = TimerStatus.IDLE
    mode: TimerMode = TimerMode.IDLE
    duration_seconds: int = 25 * 60

    def remaining_seconds(self, now_ms: int) -> int:
        """残り秒数を再計算"""
        if self.end_timestamp is None:
            return 0
        return max(0, (self.end_timestamp - now_ms) // 1000)


@dataclass
class Task:
    """タスクモデル"""
    id: Optional[str] = None
    title: str = ""
    duration: int = 25  # 分単位
    created_at: Optional[int] = None
    completed_at: Optional[int] = None
    abandoned_at: Optional[int] = None
    status: TaskStatus = TaskStatus.PENDING
    user_id: str = ""
    subject_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "Task":
        return cls(
            id=row.get("id"),
            title=row.get("title", ""),
            duration=row.get("duration") or 0,
            created_at=row.get("created_at"),
            completed_at=row.get("completed_at"),
            abandoned_at=row.get("abandoned_at"),
            status=TaskStatus(row.get("status", "pending")),
            user_id=row.get("user_id", ""),
            subject_id=row.get("subject_id"),
        )

    def to_row(self) -> dict:
        row = {
            "title": self.title,
            "duration": self.duration,
            "created_at": self.created_at,
            "status": self.status.value,
            "user_id": self.user_id,
        }
        # subject_id は指定時のみ送る
        if self.subject_id:
            row["subject_id"] = self.subject_id
        return row


@dataclass
class UserActivity:
    """ストリーク記録"""
    user_id: str = ""
    streak: int = 0
    last_active: Optional[int] = None  # エポックミリ秒
    active_days: List[str] = field(default_factory=list)  # YYYY-MM-DD
    streak_start_date: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "UserActivity":
        return cls(
            user_id=row.get("id", ""),
            streak=row.get("streak") or 0,
            last_active=row.get("last_active"),
            active_days=list(row.get("active_days") or []),
            streak_start_date=row.get("streak_start_date"),
        )


@dataclass(frozen=True)
class AchievementDefinition:
    """称号定義（静的カタログ）"""
    id: str
    type: AchievementType
    threshold: int
    name: str = ""
    description: str = ""


@dataclass
class AchievementUnlock:
    """獲得済み称号"""
    id: str
    user_id: str
    unlocked_at: int
    type: AchievementType = AchievementType.STREAK
    name: str = ""
    description: str = ""

    @property
    def doc_id(self) -> str:
        """ユーザーと称号の複合キー"""
        return f"{self.user_id}_{self.id}"

    @classmethod
    def from_row(cls, row: dict) -> "AchievementUnlock":
        return cls(
            id=row["achievement_id"],
            user_id=row["user_id"],
            unlocked_at=row.get("unlocked_at") or 0,
            type=AchievementType(row.get("type", "streak")),
            name=row.get("name", ""),
            description=row.get("description", ""),
        )

    def to_row(self) -> dict:
        return {
            "id": self.doc_id,
            "achievement_id": self.id,
            "user_id": self.user_id,
            "unlocked_at": self.unlocked_at,
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
        }


@dataclass
class CompletedSession:
    """セッション完了イベント（UI層へ渡す）"""
    task_title: str
    duration_minutes: float
    completed_at: int
    mode: TimerMode = TimerMode.FOCUS
    task_id: Optional[str] = None
    subject_id: Optional[str] = None
