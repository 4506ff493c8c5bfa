import logging
import re

from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import InvalidConfiguration
from tools import MathTools

logger = logging.getLogger(__name__)

REMINDER_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DEFAULT_WEEKLY_TARGET = 3
DEFAULT_REMINDER_TIME = "19:00"
DEFAULT_GOAL = "General Fitness"
DEFAULT_LEVEL = "Beginner"


class AppSettingsSchema(BaseModel):
    db_path: str = "planner.db"
    media_root: str = "media"
    public_base_url: str = "http://localhost:8000/media"
    storage_api_key: str | None = None
    timezone: str | None = None
    default_weekly_target: int = Field(default=DEFAULT_WEEKLY_TARGET, gt=0)
    default_reminder_time: str = Field(
        default=DEFAULT_REMINDER_TIME, pattern=REMINDER_TIME_RE.pattern
    )
    completion_points: int = Field(default=10, ge=0)
    timeline_days: int = Field(default=14, gt=0)
    atomic_points: bool = True
    reminder_title: str = "Workout Planner"
    reminder_body: str = "Time to train. Keep the streak alive."
    log_level: str = "INFO"


class UserSettingsSchema(BaseModel):
    user_id: str
    goal: str = DEFAULT_GOAL
    level: str = DEFAULT_LEVEL
    weekly_target: int = Field(default=DEFAULT_WEEKLY_TARGET, gt=0)
    reminders_enabled: bool = False
    reminder_time: str = Field(
        default=DEFAULT_REMINDER_TIME, pattern=REMINDER_TIME_RE.pattern
    )
    points: int = Field(default=0, ge=0)
    updated_at: str | None = None


class ProfileSchema(BaseModel):
    user_id: str
    full_name: str | None = None
    avatar_url: str | None = None
    updated_at: str | None = None

    @field_validator("full_name", "avatar_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class WorkoutSchema(BaseModel):
    name: str = Field(min_length=1)
    plan: list[str] = Field(min_length=1)
    category: str | None = None
    image_url: str | None = None
    video_url: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("plan", mode="before")
    @classmethod
    def _split_plan(cls, value):
        if isinstance(value, str):
            value = value.split("\n")
        if isinstance(value, (list, tuple)):
            return [str(line).strip() for line in value if str(line).strip()]
        return value

    @field_validator("category", "image_url", "video_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value


def validate_settings(data: dict) -> None:
    try:
        AppSettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def check_weekly_target(value: object, default: int = DEFAULT_WEEKLY_TARGET) -> int:
    """Return ``value`` as a positive int or raise ``InvalidConfiguration``."""
    number = MathTools.positive_int(value)
    if number is None:
        raise InvalidConfiguration("weekly_target", value, default)
    return number


def check_reminder_time(
    value: object, default: str = DEFAULT_REMINDER_TIME
) -> tuple[int, int]:
    """Return ``(hour, minute)`` for an ``HH:MM`` string."""
    text = value.strip() if isinstance(value, str) else ""
    match = REMINDER_TIME_RE.match(text)
    if match is None:
        raise InvalidConfiguration("reminder_time", value, default)
    return int(match.group(1)), int(match.group(2))


def sanitize_user_settings(
    data: dict,
    *,
    default_weekly_target: int = DEFAULT_WEEKLY_TARGET,
    default_reminder_time: str = DEFAULT_REMINDER_TIME,
) -> UserSettingsSchema:
    """Build a settings row, replacing invalid values with defaults."""
    try:
        weekly_target = check_weekly_target(
            data.get("weekly_target"), default_weekly_target
        )
    except InvalidConfiguration as exc:
        logger.warning("%s", exc)
        weekly_target = default_weekly_target
    try:
        hour, minute = check_reminder_time(
            data.get("reminder_time"), default_reminder_time
        )
        reminder_time = f"{hour:02d}:{minute:02d}"
    except InvalidConfiguration as exc:
        logger.warning("%s", exc)
        reminder_time = default_reminder_time
    points = data.get("points")
    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        points = 0
    return UserSettingsSchema(
        user_id=str(data["user_id"]),
        goal=(data.get("goal") or DEFAULT_GOAL),
        level=(data.get("level") or DEFAULT_LEVEL),
        weekly_target=weekly_target,
        reminders_enabled=bool(data.get("reminders_enabled")),
        reminder_time=reminder_time,
        points=points,
        updated_at=data.get("updated_at"),
    )
