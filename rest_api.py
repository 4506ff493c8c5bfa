import datetime
import logging
import os
import threading
import time
from typing import Any
from zoneinfo import ZoneInfo

from fastapi import Body, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError

from config import load_app_config, setup_logging
from db import (
    AsyncCompletionRepository,
    AsyncWorkoutRepository,
    CompletionRepository,
    NotificationRepository,
    ProfileRepository,
    ReminderScheduleRepository,
    UserSettingsRepository,
    WorkoutRepository,
)
from errors import InvalidDateKey, NotAuthenticated, UpstreamFailure, WorkoutNotFound
from gamification_service import PointsLedger
from media_service import LocalBlobStore, MediaService
from planner_service import WorkoutPlanService
from reminder_service import LocalNotificationScheduler, ReminderService
from stats_service import StatisticsService, build_timeline, day_details
from tools import CalendarTools, Clock, system_clock

logger = logging.getLogger(__name__)


class WorkoutIn(BaseModel):
    name: str
    plan: list[str] | str
    category: str | None = None
    image_url: str | None = None
    video_url: str | None = None


class SettingsIn(BaseModel):
    goal: str | None = None
    level: str | None = None
    weekly_target: Any = None
    reminders_enabled: bool = False
    reminder_time: Any = None


class ProfileIn(BaseModel):
    full_name: str | None = None
    avatar_url: str | None = None


class ReminderThread(threading.Thread):
    """Background thread delivering due daily reminders."""

    def __init__(self, api: "PlannerAPI", interval_seconds: int = 60) -> None:
        super().__init__(daemon=True)
        self.api = api
        self.interval = interval_seconds
        self.running = True

    def run(self) -> None:
        while self.running:
            try:
                self.api.send_daily_reminder()
            except UpstreamFailure:
                logger.exception("daily reminder delivery failed")
            time.sleep(self.interval)


def current_user(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id:
        raise NotAuthenticated()
    return x_user_id


def storage_credential(x_storage_key: str | None = Header(default=None)) -> str | None:
    return x_storage_key


class PlannerAPI:
    """Provides REST endpoints for workout plans, completions and progress."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "planner.yaml",
        *,
        media_root: str | None = None,
        clock: Clock = system_clock,
        start_reminder: bool = False,
        reminder_interval: int = 60,
        notifications_permitted: bool = True,
    ) -> None:
        self.config = load_app_config(yaml_path, db_path=db_path, media_root=media_root)
        setup_logging(self.config.log_level)
        self.db_path = self.config.db_path
        self.clock = clock
        self.tz = ZoneInfo(self.config.timezone) if self.config.timezone else None
        self.workouts = WorkoutRepository(self.db_path)
        self.completions = CompletionRepository(self.db_path)
        self.user_settings = UserSettingsRepository(self.db_path)
        self.profiles = ProfileRepository(self.db_path)
        self.notifications = NotificationRepository(self.db_path)
        self.reminder_schedules = ReminderScheduleRepository(self.db_path)
        self.async_completions = AsyncCompletionRepository(self.db_path)
        self.async_workouts = AsyncWorkoutRepository(self.db_path)
        self.ledger = PointsLedger(
            self.user_settings, atomic=self.config.atomic_points, clock=clock
        )
        self.reminders = ReminderService(
            LocalNotificationScheduler(self.reminder_schedules, notifications_permitted),
            self.notifications,
            clock=clock,
            tz=self.tz,
            title=self.config.reminder_title,
            body=self.config.reminder_body,
            default_time=self.config.default_reminder_time,
        )
        self.media = MediaService(
            LocalBlobStore(
                self.config.media_root,
                self.config.public_base_url,
                self.config.storage_api_key,
            ),
            clock=clock,
        )
        self.planner = WorkoutPlanService(
            self.workouts,
            self.completions,
            self.user_settings,
            self.profiles,
            self.ledger,
            self.reminders,
            self.media,
            clock=clock,
            completion_points=self.config.completion_points,
            default_weekly_target=self.config.default_weekly_target,
            default_reminder_time=self.config.default_reminder_time,
        )
        self.statistics = StatisticsService(
            self.workouts,
            self.completions,
            self.user_settings,
            self.profiles,
            clock=clock,
            tz=self.tz,
            default_weekly_target=self.config.default_weekly_target,
            default_reminder_time=self.config.default_reminder_time,
            timeline_days=self.config.timeline_days,
        )
        self.app = FastAPI(
            title="Workout Planner API",
            description="REST API for workout plans, completions and progress",
        )
        self._register_error_handlers()
        self._setup_routes()
        os.makedirs(self.config.media_root, exist_ok=True)
        self.app.mount(
            "/media", StaticFiles(directory=self.config.media_root), name="media"
        )
        self.reminder_thread: ReminderThread | None = None
        if start_reminder:
            self.reminder_thread = ReminderThread(self, reminder_interval)
            self.reminder_thread.start()

    def send_daily_reminder(self) -> list[str]:
        return self.reminders.send_due_reminders(self.clock())

    def _register_error_handlers(self) -> None:
        @self.app.exception_handler(NotAuthenticated)
        async def _not_authenticated(_request: Request, exc: NotAuthenticated):
            return JSONResponse(status_code=401, content={"detail": str(exc)})

        @self.app.exception_handler(WorkoutNotFound)
        async def _workout_not_found(_request: Request, exc: WorkoutNotFound):
            return JSONResponse(status_code=404, content={"detail": str(exc)})

        @self.app.exception_handler(InvalidDateKey)
        async def _invalid_date(_request: Request, exc: InvalidDateKey):
            return JSONResponse(status_code=400, content={"detail": str(exc)})

        @self.app.exception_handler(ValidationError)
        async def _invalid_model(_request: Request, exc: ValidationError):
            return JSONResponse(status_code=400, content={"detail": str(exc)})

        @self.app.exception_handler(ValueError)
        async def _invalid_value(_request: Request, exc: ValueError):
            return JSONResponse(status_code=400, content={"detail": str(exc)})

        @self.app.exception_handler(UpstreamFailure)
        async def _upstream(_request: Request, exc: UpstreamFailure):
            return JSONResponse(status_code=502, content={"detail": str(exc)})

    def _setup_routes(self) -> None:
        @self.app.get("/health")
        def health():
            return {"status": "ok"}

        @self.app.get("/dashboard")
        def dashboard(user_id: str = Depends(current_user)):
            return self.statistics.dashboard(user_id).model_dump(mode="json")

        @self.app.get("/workouts")
        def list_workouts(user_id: str = Depends(current_user)):
            return self.planner.list_workouts(user_id)

        @self.app.post("/workouts")
        def create_workout(
            workout: WorkoutIn, user_id: str = Depends(current_user)
        ):
            wid = self.planner.create_workout(user_id, workout.model_dump())
            return {"id": wid}

        @self.app.put("/workouts/{workout_id}")
        def update_workout(
            workout_id: int, workout: WorkoutIn, user_id: str = Depends(current_user)
        ):
            self.planner.update_workout(user_id, workout_id, workout.model_dump())
            return {"status": "updated"}

        @self.app.delete("/workouts/{workout_id}")
        def delete_workout(
            workout_id: int, cascade: bool = False, user_id: str = Depends(current_user)
        ):
            self.planner.delete_workout(user_id, workout_id, cascade)
            return {"status": "deleted"}

        @self.app.post("/workouts/{workout_id}/complete")
        def complete_workout(workout_id: int, user_id: str = Depends(current_user)):
            return self.planner.complete_workout(user_id, workout_id)

        @self.app.post("/workouts/media/photo")
        async def upload_workout_photo(
            request: Request,
            user_id: str = Depends(current_user),
            credential: str | None = Depends(storage_credential),
        ):
            data = await request.body()
            return {"url": self.media.upload_workout_photo(user_id, data, credential)}

        @self.app.post("/workouts/media/video")
        async def upload_workout_video(
            request: Request,
            user_id: str = Depends(current_user),
            credential: str | None = Depends(storage_credential),
        ):
            data = await request.body()
            content_type = request.headers.get("content-type") or "video/mp4"
            return {
                "url": self.media.upload_workout_video(
                    user_id, data, content_type, credential
                )
            }

        @self.app.get("/settings")
        def get_settings(user_id: str = Depends(current_user)):
            return self.planner.get_settings(user_id).model_dump()

        @self.app.put("/settings")
        def save_settings(
            settings: SettingsIn, user_id: str = Depends(current_user)
        ):
            saved = self.planner.save_settings(user_id, settings.model_dump())
            return saved.model_dump()

        @self.app.get("/profile")
        def get_profile(user_id: str = Depends(current_user)):
            return self.planner.get_profile(user_id).model_dump()

        @self.app.put("/profile")
        def save_profile(profile: ProfileIn, user_id: str = Depends(current_user)):
            avatar = profile.avatar_url
            if avatar is None:
                avatar = self.planner.get_profile(user_id).avatar_url
            return self.planner.save_profile(user_id, profile.full_name, avatar).model_dump()

        @self.app.post("/profile/avatar")
        async def upload_avatar(
            request: Request,
            user_id: str = Depends(current_user),
            credential: str | None = Depends(storage_credential),
        ):
            data = await request.body()
            return self.planner.update_avatar(user_id, data, credential).model_dump()

        @self.app.get("/xp")
        def xp(user_id: str = Depends(current_user)):
            return self.statistics.xp(user_id).model_dump()

        @self.app.get("/achievements")
        def achievements(user_id: str = Depends(current_user)):
            return [a.model_dump() for a in self.statistics.achievements(user_id)]

        @self.app.get("/streak")
        def streak(user_id: str = Depends(current_user)):
            return self.statistics.streak(user_id)

        @self.app.get("/weekly")
        def weekly(user_id: str = Depends(current_user)):
            return self.statistics.weekly(user_id).model_dump()

        @self.app.get("/timeline")
        async def timeline(days: int | None = None, user_id: str = Depends(current_user)):
            rows = await self.async_completions.fetch_for_user(user_id)
            buckets = build_timeline(
                [r["completed_at"] for r in rows],
                self.clock(),
                days or self.config.timeline_days,
                self.tz,
            )
            return [b.model_dump() for b in buckets]

        @self.app.get("/timeline/{ymd}")
        async def timeline_day(ymd: str, user_id: str = Depends(current_user)):
            CalendarTools.ymd_to_date(ymd)
            rows = await self.async_completions.fetch_for_user(user_id)
            names = await self.async_workouts.names_by_id(user_id)
            details = day_details(ymd, rows, names, self.tz)
            return [d.model_dump(mode="json") for d in details]

        @self.app.get("/reminder")
        def reminder(user_id: str = Depends(current_user)):
            return {"schedule": self.reminders.schedule(user_id)}

        @self.app.post("/notifications/send_due")
        def send_due(now: datetime.datetime | None = Body(default=None, embed=True)):
            return {"sent": self.reminders.send_due_reminders(now or self.clock())}

        @self.app.get("/notifications")
        def get_notifications(
            unread_only: bool = False, user_id: str = Depends(current_user)
        ):
            return self.notifications.list_for_user(user_id, unread_only)

        @self.app.put("/notifications/{nid}/read")
        def mark_notification_read(nid: int, user_id: str = Depends(current_user)):
            self.notifications.mark_read(user_id, nid)
            return {"status": "read"}

        @self.app.get("/notifications/unread_count")
        def unread_count(user_id: str = Depends(current_user)):
            return {"count": self.notifications.unread_count(user_id)}


api = None


def create_app() -> FastAPI:
    global api
    api = PlannerAPI()
    return api.app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
