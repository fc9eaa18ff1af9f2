"""Streak evaluation tests (calendar days in local time)."""
import asyncio
from datetime import date, datetime

from conftest import FakeClock, ms
from pomo_tasker.logic.streak_logic import StreakTracker, compute_streak

DAY = 24 * 60 * 60


def run(coro):
    return asyncio.run(coro)


class TestTouch:
    def test_first_touch_creates_record(self, cloud_db, clock):
        tracker = StreakTracker(cloud_db, clock)
        assert run(tracker.touch("user-1")) == 1

        row = cloud_db.users["user-1"]
        assert row["streak"] == 1
        assert row["last_active"] == clock.now
        assert row["active_days"] == ["2026-03-10"]
        assert row["streak_start_date"] == "2026-03-10"
        assert "create_user" in cloud_db.calls

    def test_consecutive_days_increment(self, cloud_db, clock):
        tracker = StreakTracker(cloud_db, clock)

        async def scenario():
            first = await tracker.touch("user-1")
            clock.advance(DAY)
            second = await tracker.touch("user-1")
            return first, second

        assert run(scenario()) == (1, 2)
        assert cloud_db.users["user-1"]["active_days"] == ["2026-03-10", "2026-03-11"]

    def test_gap_resets_to_one(self, cloud_db, clock):
        tracker = StreakTracker(cloud_db, clock)

        async def scenario():
            await tracker.touch("user-1")
            clock.advance(DAY)
            await tracker.touch("user-1")
            clock.advance(2 * DAY)
            return await tracker.touch("user-1")

        assert run(scenario()) == 1
        row = cloud_db.users["user-1"]
        assert row["active_days"] == ["2026-03-13"]
        assert row["streak_start_date"] == "2026-03-13"

    def test_same_day_is_idempotent(self, cloud_db, clock):
        tracker = StreakTracker(cloud_db, clock)

        async def scenario():
            results = [await tracker.touch("user-1")]
            for _ in range(3):
                clock.advance(60 * 60)
                results.append(await tracker.touch("user-1"))
            return results

        assert run(scenario()) == [1, 1, 1, 1]
        assert cloud_db.users["user-1"]["active_days"] == ["2026-03-10"]

    def test_calendar_day_not_24_hours(self, cloud_db):
        clock = FakeClock(ms(datetime(2026, 3, 10, 23, 30)))
        tracker = StreakTracker(cloud_db, clock)

        async def scenario():
            await tracker.touch("user-1")
            clock.advance(40 * 60)
            return await tracker.touch("user-1")

        assert run(scenario()) == 2

    def test_existing_record_without_last_active(self, cloud_db, clock):
        cloud_db.users["user-1"] = {"id": "user-1", "streak": 0}
        tracker = StreakTracker(cloud_db, clock)
        assert run(tracker.touch("user-1")) == 1
        assert "update_user" in cloud_db.calls

    def test_streak_never_drops_below_one(self, cloud_db, clock):
        cloud_db.users["user-1"] = {"id": "user-1", "streak": 0, "last_active": clock.now - 60_000}
        tracker = StreakTracker(cloud_db, clock)
        assert run(tracker.touch("user-1")) == 1

    def test_read_failure_returns_zero(self, cloud_db, clock):
        cloud_db.fail.add("get_user")
        tracker = StreakTracker(cloud_db, clock)
        assert run(tracker.touch("user-1")) == 0
        assert cloud_db.users == {}

    def test_write_failure_still_returns_streak(self, cloud_db, clock):
        cloud_db.fail.add("create_user")
        tracker = StreakTracker(cloud_db, clock)
        assert run(tracker.touch("user-1")) == 1


class TestComputeStreak:
    def test_counts_back_from_today(self):
        days = ["2026-03-08", "2026-03-09", "2026-03-10", "2026-03-05"]
        assert compute_streak(days, date(2026, 3, 10)) == 3

    def test_zero_when_today_missing(self):
        assert compute_streak(["2026-03-09"], date(2026, 3, 10)) == 0

    def test_crosses_month_boundary(self):
        days = ["2026-02-27", "2026-02-28", "2026-03-01"]
        assert compute_streak(days, date(2026, 3, 1)) == 3


class TestRecalculate:
    def test_rebuilds_from_active_days(self, cloud_db, clock):
        cloud_db.users["user-1"] = {
            "id": "user-1",
            "streak": 40,
            "last_active": clock.now,
            "active_days": ["2026-03-10", "2026-03-08", "2026-03-09", "2026-03-09", "2026-03-01"],
        }
        tracker = StreakTracker(cloud_db, clock)
        assert run(tracker.recalculate("user-1")) == 3

        row = cloud_db.users["user-1"]
        assert row["streak"] == 3
        assert row["streak_start_date"] == "2026-03-08"
        assert row["active_days"] == ["2026-03-01", "2026-03-08", "2026-03-09", "2026-03-10"]

    def test_unknown_user(self, cloud_db, clock):
        tracker = StreakTracker(cloud_db, clock)
        assert run(tracker.recalculate("nobody")) == 0
