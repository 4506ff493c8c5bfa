import datetime
import re
from typing import Callable, NamedTuple

from errors import InvalidDateKey

Clock = Callable[[], datetime.datetime]

_YMD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def system_clock() -> datetime.datetime:
    """Return the current time as an aware datetime in the local zone."""
    return datetime.datetime.now().astimezone()


class MathTools:
    """Provides small numeric helpers shared by the metric calculations."""

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def positive_int(value: object) -> int | None:
        """Return ``value`` as a positive integer or ``None``."""
        if isinstance(value, bool):
            return None
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            return None
        return number if number > 0 else None


class DayBounds(NamedTuple):
    """Half-open ``[start, end)`` range covering one local calendar day."""

    start: datetime.datetime
    end: datetime.datetime

    def contains(self, instant: datetime.datetime) -> bool:
        moment = CalendarTools.to_local(instant, self.start.tzinfo)
        return self.start <= moment < self.end


class CalendarTools:
    """Calendar arithmetic on local days and ISO weeks.

    Every function accepts an optional ``tz``. Without it the system local
    zone is used. Naive datetimes are read as system local wall time and
    all returned datetimes are timezone-aware.
    """

    @staticmethod
    def parse_instant(value: datetime.datetime | str) -> datetime.datetime:
        """Return ``value`` as a datetime, parsing ISO-8601 strings."""
        if isinstance(value, datetime.datetime):
            return value
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.datetime.fromisoformat(text)

    @staticmethod
    def to_local(
        instant: datetime.datetime | str, tz: datetime.tzinfo | None = None
    ) -> datetime.datetime:
        return CalendarTools.parse_instant(instant).astimezone(tz)

    @staticmethod
    def local_midnight(
        day: datetime.date, tz: datetime.tzinfo | None = None
    ) -> datetime.datetime:
        """Return the start of ``day`` in the local zone."""
        if tz is None:
            return datetime.datetime.combine(day, datetime.time()).astimezone()
        return datetime.datetime.combine(day, datetime.time(), tzinfo=tz)

    @staticmethod
    def day_key(
        instant: datetime.datetime | str, tz: datetime.tzinfo | None = None
    ) -> datetime.date:
        """Return the local calendar date of ``instant``."""
        return CalendarTools.to_local(instant, tz).date()

    @staticmethod
    def start_of_week(
        instant: datetime.datetime | str, tz: datetime.tzinfo | None = None
    ) -> datetime.datetime:
        """Return local midnight of the Monday on or before ``instant``."""
        day = CalendarTools.day_key(instant, tz)
        monday = day - datetime.timedelta(days=day.weekday())
        return CalendarTools.local_midnight(monday, tz)

    @staticmethod
    def date_to_ymd(
        value: datetime.date | datetime.datetime | str,
        tz: datetime.tzinfo | None = None,
    ) -> str:
        """Encode a date or instant as ``YYYY-MM-DD``."""
        if isinstance(value, datetime.datetime) or isinstance(value, str):
            value = CalendarTools.day_key(value, tz)
        return value.isoformat()

    @staticmethod
    def ymd_to_date(ymd: str) -> datetime.date:
        if not isinstance(ymd, str) or not _YMD_RE.match(ymd):
            raise InvalidDateKey(ymd)
        try:
            return datetime.date.fromisoformat(ymd)
        except ValueError as exc:
            raise InvalidDateKey(ymd) from exc

    @staticmethod
    def ymd_to_bounds(ymd: str, tz: datetime.tzinfo | None = None) -> DayBounds:
        """Expand ``YYYY-MM-DD`` into the local day it names."""
        day = CalendarTools.ymd_to_date(ymd)
        return DayBounds(
            CalendarTools.local_midnight(day, tz),
            CalendarTools.local_midnight(day + datetime.timedelta(days=1), tz),
        )
