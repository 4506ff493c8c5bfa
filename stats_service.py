from __future__ import annotations
import datetime
import logging
from collections import Counter
from typing import Iterable, Iterator, Mapping

from pydantic import BaseModel

from achievements import (
    ACHIEVEMENTS,
    AchievementCounters,
    AchievementRule,
    AchievementState,
    earned_count,
    evaluate_achievements,
)
from db import (
    CompletionRepository,
    ProfileRepository,
    UserSettingsRepository,
    WorkoutRepository,
)
from errors import NotAuthenticated
from gamification_service import XPState, record_streak, streak_days, xp_from_points
from settings_schema import UserSettingsSchema, sanitize_user_settings
from tools import CalendarTools, Clock, system_clock

logger = logging.getLogger(__name__)

DEFAULT_TIMELINE_DAYS = 14
FALLBACK_WORKOUT_NAME = "Workout"


class WeeklyProgress(BaseModel):
    done: int
    target: int


class DayBucket(BaseModel):
    date_key: str
    completion_count: int
    is_today: bool


class CompletionDetail(BaseModel):
    id: int | None
    workout_id: int | None
    workout_name: str
    completed_at: datetime.datetime


class DashboardSnapshot(BaseModel):
    full_name: str
    avatar_url: str | None
    settings: UserSettingsSchema
    total_workouts: int
    total_completions: int
    weekly: WeeklyProgress
    streak: int
    record_streak: int
    points: int
    xp: XPState
    achievements: list[AchievementState]
    earned_count: int


def weekly_progress(
    timestamps: Iterable[datetime.datetime | str],
    weekly_target: int,
    now: datetime.datetime,
    tz: datetime.tzinfo | None = None,
) -> WeeklyProgress:
    """Count completions since Monday of the current week."""
    week_start = CalendarTools.start_of_week(now, tz)
    done = sum(1 for ts in timestamps if CalendarTools.to_local(ts, tz) >= week_start)
    return WeeklyProgress(done=done, target=weekly_target)


class Timeline:
    """Trailing window of day buckets ending today, oldest first.

    Iteration recounts from the stored timestamps every time, so the same
    object can be iterated repeatedly.
    """

    def __init__(
        self,
        timestamps: Iterable[datetime.datetime | str],
        now: datetime.datetime,
        window_days: int = DEFAULT_TIMELINE_DAYS,
        tz: datetime.tzinfo | None = None,
    ) -> None:
        if window_days < 1:
            raise ValueError("window_days must be positive")
        self._timestamps = tuple(timestamps)
        self.today = CalendarTools.day_key(now, tz)
        self.window_days = window_days
        self.tz = tz

    def __len__(self) -> int:
        return self.window_days

    def __iter__(self) -> Iterator[DayBucket]:
        counts = Counter(CalendarTools.day_key(ts, self.tz) for ts in self._timestamps)
        for offset in range(self.window_days - 1, -1, -1):
            day = self.today - datetime.timedelta(days=offset)
            yield DayBucket(
                date_key=CalendarTools.date_to_ymd(day),
                completion_count=counts.get(day, 0),
                is_today=day == self.today,
            )


def build_timeline(
    timestamps: Iterable[datetime.datetime | str],
    now: datetime.datetime,
    window_days: int = DEFAULT_TIMELINE_DAYS,
    tz: datetime.tzinfo | None = None,
) -> Timeline:
    return Timeline(timestamps, now, window_days, tz)


def day_details(
    ymd: str,
    completions: Iterable[Mapping],
    workouts_by_id: Mapping[int, object],
    tz: datetime.tzinfo | None = None,
) -> list[CompletionDetail]:
    """Return the completions logged on ``ymd``, newest first.

    ``workouts_by_id`` maps ids to a name or to a row with a ``name`` key.
    Completions whose workout is gone get a generic label.
    """
    bounds = CalendarTools.ymd_to_bounds(ymd, tz)
    details: list[CompletionDetail] = []
    for row in completions:
        moment = CalendarTools.parse_instant(row["completed_at"])
        if not bounds.contains(moment):
            continue
        workout_id = row.get("workout_id")
        workout = workouts_by_id.get(workout_id) if workout_id is not None else None
        if isinstance(workout, Mapping):
            workout = workout.get("name")
        details.append(
            CompletionDetail(
                id=row.get("id"),
                workout_id=workout_id,
                workout_name=workout or FALLBACK_WORKOUT_NAME,
                completed_at=moment,
            )
        )
    details.sort(key=lambda d: d.completed_at, reverse=True)
    return details


class StatisticsService:
    """Fetch a user's rows and compute the dashboard metrics from them."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        completion_repo: CompletionRepository,
        settings_repo: UserSettingsRepository,
        profile_repo: ProfileRepository | None = None,
        *,
        clock: Clock = system_clock,
        tz: datetime.tzinfo | None = None,
        default_weekly_target: int = 3,
        default_reminder_time: str = "19:00",
        timeline_days: int = DEFAULT_TIMELINE_DAYS,
        rules: tuple[AchievementRule, ...] = ACHIEVEMENTS,
    ) -> None:
        self.workouts = workout_repo
        self.completions = completion_repo
        self.settings = settings_repo
        self.profiles = profile_repo
        self.clock = clock
        self.tz = tz
        self.default_weekly_target = default_weekly_target
        self.default_reminder_time = default_reminder_time
        self.timeline_days = timeline_days
        self.rules = rules

    def user_settings(self, user_id: str | None) -> UserSettingsSchema:
        if not user_id:
            raise NotAuthenticated()
        row = self.settings.fetch(user_id) or {"user_id": user_id}
        return sanitize_user_settings(
            row,
            default_weekly_target=self.default_weekly_target,
            default_reminder_time=self.default_reminder_time,
        )

    def _timestamps(self, user_id: str) -> list[str]:
        return [r["completed_at"] for r in self.completions.fetch_for_user(user_id)]

    def counters(self, user_id: str | None) -> AchievementCounters:
        if not user_id:
            raise NotAuthenticated()
        now = self.clock()
        stamps = self._timestamps(user_id)
        settings = self.user_settings(user_id)
        return AchievementCounters(
            total_workouts=self.workouts.count_for_user(user_id),
            total_completions=len(stamps),
            streak_days=streak_days(stamps, now, self.tz),
            points=settings.points,
            completed_this_week=weekly_progress(
                stamps, settings.weekly_target, now, self.tz
            ).done,
        )

    def achievements(self, user_id: str | None) -> list[AchievementState]:
        return evaluate_achievements(self.counters(user_id), self.rules)

    def streak(self, user_id: str | None) -> dict[str, int]:
        if not user_id:
            raise NotAuthenticated()
        stamps = self._timestamps(user_id)
        return {
            "current": streak_days(stamps, self.clock(), self.tz),
            "record": record_streak(stamps, self.tz),
        }

    def weekly(self, user_id: str | None) -> WeeklyProgress:
        settings = self.user_settings(user_id)
        return weekly_progress(
            self._timestamps(user_id), settings.weekly_target, self.clock(), self.tz
        )

    def xp(self, user_id: str | None) -> XPState:
        return xp_from_points(self.user_settings(user_id).points)

    def timeline(self, user_id: str | None, window_days: int | None = None) -> list[DayBucket]:
        if not user_id:
            raise NotAuthenticated()
        return list(
            build_timeline(
                self._timestamps(user_id),
                self.clock(),
                window_days or self.timeline_days,
                self.tz,
            )
        )

    def day_details(self, user_id: str | None, ymd: str) -> list[CompletionDetail]:
        if not user_id:
            raise NotAuthenticated()
        CalendarTools.ymd_to_date(ymd)
        return day_details(
            ymd,
            self.completions.fetch_for_user(user_id),
            self.workouts.names_by_id(user_id),
            self.tz,
        )

    def dashboard(self, user_id: str | None) -> DashboardSnapshot:
        """Compute every dashboard metric from one snapshot of the user's rows."""
        if not user_id:
            raise NotAuthenticated()
        now = self.clock()
        profile = (self.profiles.fetch(user_id) if self.profiles else None) or {}
        settings = self.user_settings(user_id)
        stamps = self._timestamps(user_id)
        total_workouts = self.workouts.count_for_user(user_id)
        weekly = weekly_progress(stamps, settings.weekly_target, now, self.tz)
        current = streak_days(stamps, now, self.tz)
        logger.debug("dashboard for %s from %d completions", user_id, len(stamps))
        states = evaluate_achievements(
            AchievementCounters(
                total_workouts=total_workouts,
                total_completions=len(stamps),
                streak_days=current,
                points=settings.points,
                completed_this_week=weekly.done,
            ),
            self.rules,
        )
        return DashboardSnapshot(
            full_name=profile.get("full_name") or "",
            avatar_url=profile.get("avatar_url"),
            settings=settings,
            total_workouts=total_workouts,
            total_completions=len(stamps),
            weekly=weekly,
            streak=current,
            record_streak=record_streak(stamps, self.tz),
            points=settings.points,
            xp=xp_from_points(settings.points),
            achievements=states,
            earned_count=earned_count(states),
        )
