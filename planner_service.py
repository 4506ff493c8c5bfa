from __future__ import annotations
import logging

from db import (
    CompletionRepository,
    ProfileRepository,
    UserSettingsRepository,
    WorkoutRepository,
)
from errors import NotAuthenticated, WorkoutNotFound
from gamification_service import PointsLedger
from media_service import MediaService
from reminder_service import ReminderService
from settings_schema import (
    ProfileSchema,
    UserSettingsSchema,
    WorkoutSchema,
    sanitize_user_settings,
)
from tools import Clock, system_clock

logger = logging.getLogger(__name__)


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise NotAuthenticated()
    return user_id


class WorkoutPlanService:
    """Workout plan CRUD, completions, settings and profile updates."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        completion_repo: CompletionRepository,
        settings_repo: UserSettingsRepository,
        profile_repo: ProfileRepository,
        ledger: PointsLedger,
        reminders: ReminderService | None = None,
        media: MediaService | None = None,
        *,
        clock: Clock = system_clock,
        completion_points: int = 10,
        default_weekly_target: int = 3,
        default_reminder_time: str = "19:00",
    ) -> None:
        self.workouts = workout_repo
        self.completions = completion_repo
        self.settings = settings_repo
        self.profiles = profile_repo
        self.ledger = ledger
        self.reminders = reminders
        self.media = media
        self.clock = clock
        self.completion_points = completion_points
        self.default_weekly_target = default_weekly_target
        self.default_reminder_time = default_reminder_time

    def list_workouts(self, user_id: str | None) -> list[dict]:
        return self.workouts.fetch_for_user(_require_user(user_id))

    def create_workout(self, user_id: str | None, data: dict) -> int:
        uid = _require_user(user_id)
        workout = WorkoutSchema(**data)
        wid = self.workouts.create(
            uid,
            workout.name,
            workout.plan,
            self.clock().isoformat(),
            workout.category,
            workout.image_url,
            workout.video_url,
        )
        logger.info("created workout %s for %s", wid, uid)
        return wid

    def update_workout(self, user_id: str | None, workout_id: int, data: dict) -> None:
        uid = _require_user(user_id)
        workout = WorkoutSchema(**data)
        self.workouts.update(
            workout_id,
            uid,
            workout.name,
            workout.plan,
            workout.category,
            workout.image_url,
            workout.video_url,
        )

    def delete_workout(
        self, user_id: str | None, workout_id: int, cascade: bool = False
    ) -> None:
        """Delete a workout. Its completions stay, unlinked, unless ``cascade``."""
        uid = _require_user(user_id)
        if cascade:
            self.completions.delete_for_workout(workout_id, uid)
        self.workouts.delete(workout_id, uid)

    def complete_workout(self, user_id: str | None, workout_id: int | None) -> dict:
        """Record a completion now and award the completion points.

        The points are only awarded after the completion row is written.
        """
        uid = _require_user(user_id)
        if workout_id is not None and self.workouts.fetch_detail(workout_id, uid) is None:
            raise WorkoutNotFound(workout_id)
        row = self.completions.add(uid, workout_id, self.clock().isoformat())
        points = self.ledger.award(uid, self.completion_points)
        return {
            "completion": row,
            "awarded": self.completion_points,
            "points": points,
        }

    def get_settings(self, user_id: str | None) -> UserSettingsSchema:
        uid = _require_user(user_id)
        row = self.settings.fetch(uid) or {"user_id": uid}
        return sanitize_user_settings(
            row,
            default_weekly_target=self.default_weekly_target,
            default_reminder_time=self.default_reminder_time,
        )

    def save_settings(self, user_id: str | None, data: dict) -> UserSettingsSchema:
        """Upsert sanitized settings and reschedule the daily reminder.

        The points column is never written here; points only change through
        the ledger. The returned settings carry the balance read beforehand.
        """
        uid = _require_user(user_id)
        payload = dict(data)
        payload.update(
            user_id=uid,
            points=self.settings.fetch_points(uid),
            updated_at=self.clock().isoformat(),
        )
        settings = sanitize_user_settings(
            payload,
            default_weekly_target=self.default_weekly_target,
            default_reminder_time=self.default_reminder_time,
        )
        row = settings.model_dump(exclude={"points"})
        row["reminders_enabled"] = int(settings.reminders_enabled)
        self.settings.upsert(row)
        if self.reminders is not None:
            self.reminders.apply(settings)
        return settings

    def get_profile(self, user_id: str | None) -> ProfileSchema:
        uid = _require_user(user_id)
        row = self.profiles.fetch(uid) or {"user_id": uid}
        return ProfileSchema(**row)

    def save_profile(
        self, user_id: str | None, full_name: str | None, avatar_url: str | None = None
    ) -> ProfileSchema:
        uid = _require_user(user_id)
        profile = ProfileSchema(
            user_id=uid,
            full_name=full_name,
            avatar_url=avatar_url,
            updated_at=self.clock().isoformat(),
        )
        self.profiles.upsert(profile.model_dump())
        return profile

    def update_avatar(
        self, user_id: str | None, data: bytes, credential: str | None = None
    ) -> ProfileSchema:
        """Upload a new avatar image and point the profile at it."""
        uid = _require_user(user_id)
        if self.media is None:
            raise RuntimeError("media storage is not configured")
        url = self.media.upload_avatar(uid, data, credential)
        current = self.get_profile(uid)
        return self.save_profile(uid, current.full_name, url)
