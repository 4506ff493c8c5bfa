import os
import sqlite3
import sys
import tempfile
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import BaseRepository, CompletionRepository, WorkoutRepository
from migrate import migrate


class RowInterfaceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "rows.db")
        self.repo = BaseRepository(self.db_path)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_insert_query_delete(self) -> None:
        row = self.repo.insert_row(
            "workout_completions",
            {"user_id": "u1", "workout_id": None, "completed_at": "2024-03-01T09:00:00+00:00"},
        )
        self.assertEqual(row["id"], 1)
        self.repo.insert_row(
            "workout_completions",
            {"user_id": "u1", "workout_id": None, "completed_at": "2024-03-02T09:00:00+00:00"},
        )
        rows = self.repo.query_rows(
            "workout_completions", {"user_id": "u1"}, "completed_at", descending=True
        )
        self.assertEqual([r["id"] for r in rows], [2, 1])
        self.repo.delete_row("workout_completions", 2)
        self.assertEqual(len(self.repo.query_rows("workout_completions")), 1)

    def test_upsert_replaces_by_key(self) -> None:
        self.repo.upsert_row("profiles", {"user_id": "u1", "full_name": "Sam"})
        self.repo.upsert_row("profiles", {"user_id": "u1", "avatar_url": "http://x/a.jpg"})
        rows = self.repo.query_rows("profiles", {"user_id": "u1"})
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["full_name"], "Sam")
        self.assertEqual(rows[0]["avatar_url"], "http://x/a.jpg")

    def test_unknown_names_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.repo.query_rows("sqlite_master")
        with self.assertRaises(ValueError):
            self.repo.query_rows("profiles", {"1=1; --": 1})
        with self.assertRaises(ValueError):
            self.repo.upsert_row("profiles", {"full_name": "no key"})

    def test_schema_upgrade_keeps_rows(self) -> None:
        conn = sqlite3.connect(self.db_path)
        conn.execute("DROP TABLE profiles;")
        conn.execute("CREATE TABLE profiles (user_id TEXT PRIMARY KEY, full_name TEXT);")
        conn.execute("INSERT INTO profiles VALUES ('u1', 'Sam');")
        conn.commit()
        conn.close()
        repo = BaseRepository(self.db_path)
        rows = repo.query_rows("profiles")
        self.assertEqual(rows[0]["full_name"], "Sam")
        self.assertIsNone(rows[0]["avatar_url"])


class WorkoutDeletionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "planner.db")
        self.workouts = WorkoutRepository(self.db_path)
        self.completions = CompletionRepository(self.db_path)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_completion_survives_workout_delete(self) -> None:
        wid = self.workouts.create("u1", "Legs", ["Squat"], "2024-03-01T08:00:00+00:00")
        self.completions.add("u1", wid, "2024-03-01T09:00:00+00:00")
        self.workouts.delete(wid, "u1")
        rows = self.completions.fetch_for_user("u1")
        self.assertEqual(len(rows), 1)
        self.assertIsNone(rows[0]["workout_id"])

    def test_plan_round_trip(self) -> None:
        wid = self.workouts.create("u1", "Legs", ["Squat 3x8", "Lunges"], "2024-03-01T08:00:00+00:00")
        self.assertEqual(self.workouts.fetch_detail(wid)["plan"], ["Squat 3x8", "Lunges"])
        self.assertIsNone(self.workouts.fetch_detail(wid, "someone-else"))

    def test_migrate_legacy_markers(self) -> None:
        wid = self.workouts.create("u1", "Legs", ["Squat"], "2024-03-01T08:00:00+00:00")
        self.workouts.create("u1", "Arms", ["Curl"], "2024-03-01T08:00:00+00:00")
        self.workouts.execute(
            "UPDATE workouts SET completed_at = ? WHERE id = ?;",
            ("2024-03-01T10:00:00+00:00", wid),
        )
        self.assertEqual(migrate(self.db_path), 1)
        self.assertEqual(migrate(self.db_path), 0)
        rows = self.completions.fetch_for_user("u1")
        self.assertEqual([(r["workout_id"], r["completed_at"]) for r in rows], [(wid, "2024-03-01T10:00:00+00:00")])


if __name__ == "__main__":
    unittest.main()
