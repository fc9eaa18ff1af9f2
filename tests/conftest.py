"""Pytest fixtures: fake clock, in-memory cloud store, recording notifier, temp SQLite store."""
from datetime import datetime

import pytest

from pomo_tasker.errors import CloudStoreError
from pomo_tasker.models import Task, TaskStatus
from pomo_tasker.notifications import TimerNotifications
from pomo_tasker.storage import LocalStore


def ms(dt: datetime) -> int:
    """Local datetime -> epoch milliseconds."""
    return int(dt.timestamp() * 1000)


class FakeClock:
    def __init__(self, start_ms: int):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


class FakeCloudDB:
    """In-memory stand-in for SupabaseDB with the same async surface."""

    def __init__(self):
        self.tasks = {}
        self.users = {}
        self.unlocks = {}
        self.task_updates = []
        self.fail = set()
        self.calls = []
        self._next_id = 1

    def _check(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise CloudStoreError(f"{name} unavailable", status_code=503)

    async def list_tasks(self, user_id):
        self._check("list_tasks")
        return [Task.from_row(dict(row)) for row in self.tasks.values() if row["user_id"] == user_id]

    async def get_active_task(self, user_id):
        self._check("get_active_task")
        for row in self.tasks.values():
            if row["user_id"] == user_id and row["status"] == "active":
                return Task.from_row(dict(row))
        return None

    async def create_task(self, task):
        self._check("create_task")
        if task.id is None:
            task.id = f"task-{self._next_id}"
            self._next_id += 1
        row = task.to_row()
        row["id"] = task.id
        self.tasks[task.id] = row
        return task

    async def update_task(self, task_id, fields):
        self._check("update_task")
        self.task_updates.append((task_id, dict(fields)))
        if task_id in self.tasks:
            self.tasks[task_id].update(fields)

    async def get_user(self, user_id):
        self._check("get_user")
        row = self.users.get(user_id)
        return dict(row) if row else None

    async def create_user(self, user_id, fields):
        self._check("create_user")
        self.users[user_id] = dict(fields, id=user_id)

    async def update_user(self, user_id, fields):
        self._check("update_user")
        self.users.setdefault(user_id, {"id": user_id}).update(fields)

    async def get_unlock(self, user_id, achievement_id):
        self._check("get_unlock")
        for row in self.unlocks.values():
            if row["user_id"] == user_id and row["achievement_id"] == achievement_id:
                return dict(row)
        return None

    async def insert_unlock(self, row):
        self._check("insert_unlock")
        if row["id"] in self.unlocks:
            return False
        self.unlocks[row["id"]] = dict(row)
        return True

    async def list_unlocks(self, user_id):
        self._check("list_unlocks")
        return [dict(row) for row in self.unlocks.values() if row["user_id"] == user_id]

    async def delete_unlock(self, row_id):
        self._check("delete_unlock")
        self.unlocks.pop(row_id, None)

    def add_task(self, task_id, user_id="user-1", status=TaskStatus.PENDING, duration=25, **extra):
        row = {
            "id": task_id,
            "title": extra.pop("title", f"Task {task_id}"),
            "duration": duration,
            "created_at": extra.pop("created_at", 0),
            "status": status.value,
            "user_id": user_id,
        }
        row.update(extra)
        self.tasks[task_id] = row
        return Task.from_row(dict(row))


class RecordingNotifier:
    """Notifier that records schedule/cancel calls instead of presenting anything."""

    def __init__(self):
        self.scheduled = {}
        self.history = []
        self.cancelled = []
        self._count = 0

    def schedule(self, identifier, title, body, trigger_at=None):
        if identifier is None:
            self._count += 1
            identifier = f"completion-{self._count}"
        self.scheduled[identifier] = (title, body, trigger_at)
        self.history.append((identifier, title, body, trigger_at))
        return identifier

    def cancel(self, identifier):
        self.cancelled.append(identifier)
        self.scheduled.pop(identifier, None)


@pytest.fixture
def clock():
    return FakeClock(ms(datetime(2026, 3, 10, 9, 0, 0)))


@pytest.fixture
def cloud_db():
    return FakeCloudDB()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def notifications(notifier):
    return TimerNotifications(notifier)


@pytest.fixture
def local_store(tmp_path):
    return LocalStore(str(tmp_path / "test.db"))
