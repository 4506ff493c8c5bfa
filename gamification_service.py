import datetime
import logging
import threading
from typing import Iterable

from pydantic import BaseModel

from db import UserSettingsRepository
from errors import NotAuthenticated
from tools import CalendarTools, Clock, MathTools, system_clock

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 100


class XPState(BaseModel):
    level: int
    in_level: int
    pct: float
    next_at: int


def xp_from_points(points: int) -> XPState:
    """Convert a points total into level and in-level progress."""
    points = max(0, int(points))
    level = points // POINTS_PER_LEVEL + 1
    in_level = points % POINTS_PER_LEVEL
    return XPState(
        level=level,
        in_level=in_level,
        pct=MathTools.clamp(in_level / POINTS_PER_LEVEL, 0.0, 1.0),
        next_at=level * POINTS_PER_LEVEL,
    )


def streak_days(
    timestamps: Iterable[datetime.datetime | str],
    now: datetime.datetime,
    tz: datetime.tzinfo | None = None,
) -> int:
    """Count consecutive days with a completion, walking back from today.

    The walk starts at today unconditionally, so a run that ended yesterday
    counts as zero until something is logged today.
    """
    days = {CalendarTools.day_key(ts, tz) for ts in timestamps}
    day = CalendarTools.day_key(now, tz)
    streak = 0
    while day in days:
        streak += 1
        day -= datetime.timedelta(days=1)
    return streak


def record_streak(
    timestamps: Iterable[datetime.datetime | str],
    tz: datetime.tzinfo | None = None,
) -> int:
    """Return the longest run of consecutive completion days."""
    dates = sorted({CalendarTools.day_key(ts, tz) for ts in timestamps})
    if not dates:
        return 0
    record = 1
    current = 1
    for i in range(1, len(dates)):
        if (dates[i] - dates[i - 1]).days == 1:
            current += 1
        else:
            record = max(record, current)
            current = 1
    return max(record, current)


class PointsLedger:
    """Additive points ledger stored on the user's settings row.

    With ``atomic`` the store adds the delta in one statement. Otherwise the
    award is read-modify-write, serialized per user inside this process only;
    concurrent writers elsewhere can still lose an update.
    """

    def __init__(
        self,
        settings_repo: UserSettingsRepository,
        *,
        atomic: bool = True,
        clock: Clock = system_clock,
    ) -> None:
        self.settings = settings_repo
        self.atomic = atomic
        self.clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(user_id, threading.Lock())

    def balance(self, user_id: str | None) -> int:
        if not user_id:
            raise NotAuthenticated()
        return self.settings.fetch_points(user_id)

    def award(self, user_id: str | None, delta: int) -> int:
        """Add ``delta`` points for ``user_id`` and return the new total."""
        if not user_id:
            raise NotAuthenticated()
        if delta < 0:
            raise ValueError("delta must be non-negative")
        updated_at = self.clock().isoformat()
        if self.atomic:
            total = self.settings.increment_points(user_id, delta, updated_at)
        else:
            with self._lock_for(user_id):
                total = self.settings.fetch_points(user_id) + delta
                self.settings.upsert(
                    {"user_id": user_id, "points": total, "updated_at": updated_at}
                )
        logger.info("awarded %s points to %s, total %s", delta, user_id, total)
        return total
