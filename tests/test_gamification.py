import datetime
import os
import sqlite3
import sys
import tempfile
import threading
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import UserSettingsRepository
from errors import NotAuthenticated, UpstreamFailure
from gamification_service import PointsLedger, record_streak, streak_days, xp_from_points

UTC = datetime.timezone.utc
NOW = datetime.datetime(2024, 3, 6, 18, 0, tzinfo=UTC)


def days_ago(n: int, hour: int = 9) -> datetime.datetime:
    return NOW.replace(hour=hour) - datetime.timedelta(days=n)


class StreakTest(unittest.TestCase):
    def test_empty(self) -> None:
        self.assertEqual(streak_days([], NOW, UTC), 0)

    def test_single_completion_today(self) -> None:
        self.assertEqual(streak_days([days_ago(0)], NOW, UTC), 1)

    def test_today_and_yesterday(self) -> None:
        self.assertEqual(streak_days([days_ago(0), days_ago(1)], NOW, UTC), 2)

    def test_gap_stops_the_walk(self) -> None:
        stamps = [days_ago(0), days_ago(1), days_ago(3), days_ago(4)]
        self.assertEqual(streak_days(stamps, NOW, UTC), 2)

    def test_run_ending_yesterday_counts_zero(self) -> None:
        stamps = [days_ago(1), days_ago(2), days_ago(3)]
        self.assertEqual(streak_days(stamps, NOW, UTC), 0)

    def test_same_day_counted_once(self) -> None:
        stamps = [days_ago(0, 7), days_ago(0, 12), days_ago(0, 17)]
        self.assertEqual(streak_days(stamps, NOW, UTC), 1)

    def test_unordered_iso_strings(self) -> None:
        stamps = [days_ago(2).isoformat(), days_ago(0).isoformat(), days_ago(1).isoformat()]
        self.assertEqual(streak_days(stamps, NOW, UTC), 3)

    def test_run_of_k_days_with_gap(self) -> None:
        for k in range(10):
            stamps = [days_ago(i) for i in range(k + 1)] + [days_ago(k + 2), days_ago(k + 9)]
            self.assertEqual(streak_days(stamps, NOW, UTC), k + 1)

    def test_record_streak(self) -> None:
        stamps = [days_ago(10), days_ago(9), days_ago(8), days_ago(8, 20), days_ago(2), days_ago(1)]
        self.assertEqual(record_streak(stamps, UTC), 3)
        self.assertEqual(record_streak([], UTC), 0)
        self.assertEqual(record_streak([days_ago(4)], UTC), 1)


class XPTest(unittest.TestCase):
    def test_example_values(self) -> None:
        xp = xp_from_points(250)
        self.assertEqual(xp.level, 3)
        self.assertEqual(xp.in_level, 50)
        self.assertEqual(xp.pct, 0.5)
        self.assertEqual(xp.next_at, 300)

    def test_level_edges(self) -> None:
        self.assertEqual(xp_from_points(0).model_dump(), {"level": 1, "in_level": 0, "pct": 0.0, "next_at": 100})
        self.assertEqual(xp_from_points(99).level, 1)
        self.assertEqual(xp_from_points(99).in_level, 99)
        self.assertEqual(xp_from_points(100).level, 2)
        self.assertEqual(xp_from_points(100).in_level, 0)

    def test_level_formula_holds(self) -> None:
        for points in range(0, 1500, 7):
            xp = xp_from_points(points)
            self.assertEqual(xp.level, points // 100 + 1)
            self.assertGreaterEqual(xp.pct, 0.0)
            self.assertLessEqual(xp.pct, 1.0)

    def test_negative_points_treated_as_zero(self) -> None:
        self.assertEqual(xp_from_points(-40).level, 1)
        self.assertEqual(xp_from_points(-40).in_level, 0)


class PointsLedgerTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "ledger.db")
        self.repo = UserSettingsRepository(self.db_path)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _ledger(self, atomic: bool) -> PointsLedger:
        return PointsLedger(self.repo, atomic=atomic, clock=lambda: NOW)

    def test_award_creates_row(self) -> None:
        for atomic in (True, False):
            user = f"user-{atomic}"
            ledger = self._ledger(atomic)
            self.assertEqual(ledger.award(user, 10), 10)
            self.assertEqual(ledger.award(user, 5), 15)
            row = self.repo.fetch(user)
            self.assertEqual(row["points"], 15)
            self.assertEqual(row["goal"], "General Fitness")
            self.assertEqual(row["updated_at"], NOW.isoformat())
            self.assertEqual(ledger.balance(user), 15)

    def test_award_keeps_other_settings(self) -> None:
        self.repo.upsert({"user_id": "u1", "weekly_target": 5, "reminder_time": "07:30", "points": 40})
        for atomic in (True, False):
            self._ledger(atomic).award("u1", 10)
        row = self.repo.fetch("u1")
        self.assertEqual(row["points"], 60)
        self.assertEqual(row["weekly_target"], 5)
        self.assertEqual(row["reminder_time"], "07:30")

    def test_requires_user(self) -> None:
        with self.assertRaises(NotAuthenticated):
            self._ledger(True).award(None, 10)
        with self.assertRaises(NotAuthenticated):
            self._ledger(True).balance("")

    def test_rejects_negative_delta(self) -> None:
        with self.assertRaises(ValueError):
            self._ledger(False).award("u1", -1)
        self.assertEqual(self.repo.fetch_points("u1"), 0)

    def test_serialized_awards_do_not_lose_points(self) -> None:
        ledger = self._ledger(False)
        threads = [threading.Thread(target=ledger.award, args=("u1", 1)) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(self.repo.fetch_points("u1"), 10)

    def test_store_failure_propagates(self) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute("DROP TABLE user_settings;")
        conn.commit()
        conn.close()
        for atomic in (True, False):
            with self.assertRaises(UpstreamFailure):
                self._ledger(atomic).award("u1", 10)


if __name__ == "__main__":
    unittest.main()
