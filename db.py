import sqlite3
import aiosqlite
import json
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional

from errors import UpstreamFailure, WorkoutNotFound

logger = logging.getLogger(__name__)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workouts": (
            """CREATE TABLE workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    plan TEXT NOT NULL DEFAULT '[]',
                    category TEXT,
                    image_url TEXT,
                    video_url TEXT,
                    created_at TEXT NOT NULL,
                    completed_at TEXT
                );""",
            [
                "id",
                "user_id",
                "name",
                "plan",
                "category",
                "image_url",
                "video_url",
                "created_at",
                "completed_at",
            ],
        ),
        "workout_completions": (
            """CREATE TABLE workout_completions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    workout_id INTEGER,
                    completed_at TEXT NOT NULL,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE SET NULL
                );""",
            ["id", "user_id", "workout_id", "completed_at"],
        ),
        "user_settings": (
            """CREATE TABLE user_settings (
                    user_id TEXT PRIMARY KEY,
                    goal TEXT NOT NULL DEFAULT 'General Fitness',
                    level TEXT NOT NULL DEFAULT 'Beginner',
                    weekly_target INTEGER NOT NULL DEFAULT 3,
                    reminders_enabled INTEGER NOT NULL DEFAULT 0,
                    reminder_time TEXT NOT NULL DEFAULT '19:00',
                    points INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT
                );""",
            [
                "user_id",
                "goal",
                "level",
                "weekly_target",
                "reminders_enabled",
                "reminder_time",
                "points",
                "updated_at",
            ],
        ),
        "profiles": (
            """CREATE TABLE profiles (
                    user_id TEXT PRIMARY KEY,
                    full_name TEXT,
                    avatar_url TEXT,
                    updated_at TEXT
                );""",
            ["user_id", "full_name", "avatar_url", "updated_at"],
        ),
        "notifications": (
            """CREATE TABLE notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    message TEXT NOT NULL,
                    read INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "user_id", "timestamp", "message", "read"],
        ),
        "reminder_schedules": (
            """CREATE TABLE reminder_schedules (
                    user_id TEXT PRIMARY KEY,
                    hour INTEGER NOT NULL,
                    minute INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    body TEXT NOT NULL,
                    last_fired TEXT
                );""",
            ["user_id", "hour", "minute", "title", "body", "last_fired"],
        ),
    }

    _UNIQUE_KEYS = {
        "workouts": "id",
        "workout_completions": "id",
        "user_settings": "user_id",
        "profiles": "user_id",
        "notifications": "id",
        "reminder_schedules": "user_id",
    }

    def __init__(self, db_path: str = "planner.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            cursor.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA legacy_alter_table=off;")
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")

    def _columns(self, table: str) -> List[str]:
        if table not in self._TABLE_DEFINITIONS:
            raise ValueError(f"unknown table: {table}")
        return self._TABLE_DEFINITIONS[table][1]


class BaseRepository(Database):
    """Base repository providing helper methods and the generic row interface."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("write failed: %s", exc)
            raise UpstreamFailure(str(exc)) from exc

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                return cursor.fetchall()
        except sqlite3.Error as exc:
            logger.error("read failed: %s", exc)
            raise UpstreamFailure(str(exc)) from exc

    def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        try:
            with self._connection() as conn:
                cursor = conn.execute(query, params)
                names = [d[0] for d in cursor.description]
                return [dict(zip(names, row)) for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            logger.error("read failed: %s", exc)
            raise UpstreamFailure(str(exc)) from exc

    def query_rows(
        self,
        table: str,
        filters: dict | None = None,
        order: str | None = None,
        descending: bool = False,
    ) -> List[dict]:
        """Return rows of ``table`` matching equality ``filters``."""
        columns = self._columns(table)
        params: list = []
        query = f"SELECT {', '.join(columns)} FROM {table}"
        if filters:
            clauses = []
            for col, value in filters.items():
                if col not in columns:
                    raise ValueError(f"unknown column: {col}")
                clauses.append(f"{col} = ?")
                params.append(value)
            query += " WHERE " + " AND ".join(clauses)
        if order:
            if order not in columns:
                raise ValueError(f"unknown column: {order}")
            query += f" ORDER BY {order} {'DESC' if descending else 'ASC'}"
        return self.fetch_dicts(query + ";", tuple(params))

    def insert_row(self, table: str, row: dict) -> dict:
        columns = self._columns(table)
        data = {k: v for k, v in row.items() if k in columns}
        cols = ", ".join(data)
        marks = ", ".join("?" for _ in data)
        rowid = self.execute(
            f"INSERT INTO {table} ({cols}) VALUES ({marks});", tuple(data.values())
        )
        key = self._UNIQUE_KEYS[table]
        if key == "id":
            data["id"] = rowid
        return data

    def upsert_row(self, table: str, row: dict) -> None:
        """Insert ``row`` or replace the provided columns of the existing one."""
        columns = self._columns(table)
        key = self._UNIQUE_KEYS[table]
        data = {k: v for k, v in row.items() if k in columns}
        if key not in data:
            raise ValueError(f"{table} rows need {key}")
        cols = ", ".join(data)
        marks = ", ".join("?" for _ in data)
        updates = ", ".join(f"{c}=excluded.{c}" for c in data if c != key)
        query = f"INSERT INTO {table} ({cols}) VALUES ({marks}) ON CONFLICT({key}) "
        query += f"DO UPDATE SET {updates};" if updates else "DO NOTHING;"
        self.execute(query, tuple(data.values()))

    def delete_row(self, table: str, row_id: object) -> None:
        self._columns(table)
        key = self._UNIQUE_KEYS[table]
        self.execute(f"DELETE FROM {table} WHERE {key} = ?;", (row_id,))


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("async write failed: %s", exc)
            raise UpstreamFailure(str(exc)) from exc

    async def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        try:
            async with self._async_connection() as conn:
                cursor = await conn.execute(query, params)
                names = [d[0] for d in cursor.description]
                rows = await cursor.fetchall()
                return [dict(zip(names, row)) for row in rows]
        except sqlite3.Error as exc:
            logger.error("async read failed: %s", exc)
            raise UpstreamFailure(str(exc)) from exc


def _decode_workout(row: dict) -> dict:
    plan = row.get("plan")
    if isinstance(plan, str):
        try:
            row["plan"] = json.loads(plan)
        except ValueError:
            row["plan"] = [line for line in plan.split("\n") if line.strip()]
    elif plan is None:
        row["plan"] = []
    return row


class WorkoutRepository(BaseRepository):
    """Repository for workout plan operations."""

    def create(
        self,
        user_id: str,
        name: str,
        plan: List[str],
        created_at: str,
        category: Optional[str] = None,
        image_url: Optional[str] = None,
        video_url: Optional[str] = None,
    ) -> int:
        return self.execute(
            "INSERT INTO workouts (user_id, name, plan, category, image_url, video_url, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (user_id, name, json.dumps(plan), category, image_url, video_url, created_at),
        )

    def update(
        self,
        workout_id: int,
        user_id: str,
        name: str,
        plan: List[str],
        category: Optional[str] = None,
        image_url: Optional[str] = None,
        video_url: Optional[str] = None,
    ) -> None:
        if self.fetch_detail(workout_id, user_id) is None:
            raise WorkoutNotFound(workout_id)
        self.execute(
            "UPDATE workouts SET name = ?, plan = ?, category = ?, image_url = ?, video_url = ? "
            "WHERE id = ? AND user_id = ?;",
            (name, json.dumps(plan), category, image_url, video_url, workout_id, user_id),
        )

    def delete(self, workout_id: int, user_id: str) -> None:
        self.execute(
            "DELETE FROM workouts WHERE id = ? AND user_id = ?;", (workout_id, user_id)
        )

    def fetch_for_user(self, user_id: str) -> List[dict]:
        rows = self.fetch_dicts(
            "SELECT id, user_id, name, plan, category, image_url, video_url, created_at, completed_at "
            "FROM workouts WHERE user_id = ? ORDER BY created_at DESC, id DESC;",
            (user_id,),
        )
        return [_decode_workout(r) for r in rows]

    def fetch_detail(self, workout_id: int, user_id: str | None = None) -> dict | None:
        query = (
            "SELECT id, user_id, name, plan, category, image_url, video_url, created_at, completed_at "
            "FROM workouts WHERE id = ?"
        )
        params: tuple = (workout_id,)
        if user_id is not None:
            query += " AND user_id = ?"
            params += (user_id,)
        rows = self.fetch_dicts(query + ";", params)
        return _decode_workout(rows[0]) if rows else None

    def count_for_user(self, user_id: str) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM workouts WHERE user_id = ?;", (user_id,)
        )
        return int(rows[0][0]) if rows else 0

    def names_by_id(self, user_id: str) -> dict[int, str]:
        rows = self.fetch_all(
            "SELECT id, name FROM workouts WHERE user_id = ?;", (user_id,)
        )
        return {int(wid): name for wid, name in rows}

    def fetch_legacy_completed(self) -> List[Tuple[int, str, str]]:
        """Return ``(id, user_id, completed_at)`` for workouts with the old marker."""
        return self.fetch_all(
            "SELECT id, user_id, completed_at FROM workouts "
            "WHERE completed_at IS NOT NULL ORDER BY id;"
        )


class AsyncWorkoutRepository(AsyncBaseRepository):
    """Async repository for workout lookups."""

    async def names_by_id(self, user_id: str) -> dict[int, str]:
        rows = await self.fetch_dicts(
            "SELECT id, name FROM workouts WHERE user_id = ?;", (user_id,)
        )
        return {int(r["id"]): r["name"] for r in rows}


class CompletionRepository(BaseRepository):
    """Repository for workout completion records."""

    def add(self, user_id: str, workout_id: int | None, completed_at: str) -> dict:
        return self.insert_row(
            "workout_completions",
            {"user_id": user_id, "workout_id": workout_id, "completed_at": completed_at},
        )

    def fetch_for_user(self, user_id: str) -> List[dict]:
        return self.query_rows(
            "workout_completions", {"user_id": user_id}, "completed_at", descending=True
        )

    def count_for_user(self, user_id: str) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM workout_completions WHERE user_id = ?;", (user_id,)
        )
        return int(rows[0][0]) if rows else 0

    def delete_for_workout(self, workout_id: int, user_id: str) -> None:
        self.execute(
            "DELETE FROM workout_completions WHERE workout_id = ? AND user_id = ?;",
            (workout_id, user_id),
        )

    def exists(self, user_id: str, workout_id: int, completed_at: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM workout_completions WHERE user_id = ? AND workout_id = ? AND completed_at = ?;",
            (user_id, workout_id, completed_at),
        )
        return bool(rows)


class AsyncCompletionRepository(AsyncBaseRepository):
    """Async repository for reading completion records."""

    async def fetch_for_user(self, user_id: str) -> List[dict]:
        return await self.fetch_dicts(
            "SELECT id, user_id, workout_id, completed_at FROM workout_completions "
            "WHERE user_id = ? ORDER BY completed_at DESC;",
            (user_id,),
        )


class UserSettingsRepository(BaseRepository):
    """Repository for per-user settings including the points ledger."""

    def fetch(self, user_id: str) -> dict | None:
        rows = self.query_rows("user_settings", {"user_id": user_id})
        return rows[0] if rows else None

    def upsert(self, row: dict) -> None:
        self.upsert_row("user_settings", row)

    def fetch_points(self, user_id: str) -> int:
        rows = self.fetch_all(
            "SELECT points FROM user_settings WHERE user_id = ?;", (user_id,)
        )
        if not rows or rows[0][0] is None:
            return 0
        return int(rows[0][0])

    def increment_points(self, user_id: str, delta: int, updated_at: str) -> int:
        """Add ``delta`` to the stored points in a single statement."""
        rows = self.fetch_all(
            "INSERT INTO user_settings (user_id, points, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET points = points + excluded.points, "
            "updated_at = excluded.updated_at RETURNING points;",
            (user_id, delta, updated_at),
        )
        return int(rows[0][0])


class ProfileRepository(BaseRepository):
    """Repository for user profiles."""

    def fetch(self, user_id: str) -> dict | None:
        rows = self.query_rows("profiles", {"user_id": user_id})
        return rows[0] if rows else None

    def upsert(self, row: dict) -> None:
        self.upsert_row("profiles", row)


class NotificationRepository(BaseRepository):
    """Repository for user notifications."""

    def add(self, user_id: str, message: str, timestamp: str) -> int:
        return self.execute(
            "INSERT INTO notifications (user_id, timestamp, message, read) VALUES (?, ?, ?, 0);",
            (user_id, timestamp, message),
        )

    def list_for_user(self, user_id: str, unread_only: bool = False) -> list[dict[str, object]]:
        sql = "SELECT id, timestamp, message, read FROM notifications WHERE user_id = ?"
        if unread_only:
            sql += " AND read=0"
        sql += " ORDER BY id;"
        rows = self.fetch_all(sql, (user_id,))
        result: list[dict[str, object]] = []
        for r in rows:
            result.append(
                {
                    "id": r[0],
                    "timestamp": r[1],
                    "message": r[2],
                    "read": bool(r[3]),
                }
            )
        return result

    def mark_read(self, user_id: str, nid: int) -> None:
        self.execute(
            "UPDATE notifications SET read=1 WHERE id=? AND user_id=?;", (nid, user_id)
        )

    def unread_count(self, user_id: str) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM notifications WHERE read=0 AND user_id=?;", (user_id,)
        )
        return rows[0][0] if rows else 0


class ReminderScheduleRepository(BaseRepository):
    """Repository holding at most one daily reminder per user."""

    def replace(self, user_id: str, hour: int, minute: int, title: str, body: str) -> None:
        self.execute(
            "INSERT INTO reminder_schedules (user_id, hour, minute, title, body, last_fired) "
            "VALUES (?, ?, ?, ?, ?, NULL) ON CONFLICT(user_id) DO UPDATE SET "
            "hour=excluded.hour, minute=excluded.minute, title=excluded.title, body=excluded.body;",
            (user_id, hour, minute, title, body),
        )

    def clear(self, user_id: str) -> None:
        self.execute("DELETE FROM reminder_schedules WHERE user_id = ?;", (user_id,))

    def fetch(self, user_id: str) -> dict | None:
        rows = self.query_rows("reminder_schedules", {"user_id": user_id})
        return rows[0] if rows else None

    def fetch_all_schedules(self) -> List[dict]:
        return self.query_rows("reminder_schedules", order="user_id")

    def mark_fired(self, user_id: str, day: str) -> None:
        self.execute(
            "UPDATE reminder_schedules SET last_fired = ? WHERE user_id = ?;",
            (day, user_id),
        )
