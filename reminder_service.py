import datetime
import logging
from db import NotificationRepository, ReminderScheduleRepository
from errors import InvalidConfiguration, NotAuthenticated
from settings_schema import (
    DEFAULT_REMINDER_TIME,
    UserSettingsSchema,
    check_reminder_time,
)
from tools import CalendarTools, Clock, system_clock

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Workout Planner"
REMINDER_BODY = "Time to train. Keep the streak alive."


def parse_reminder_time(
    value: object, default: str = DEFAULT_REMINDER_TIME
) -> tuple[int, int]:
    """Return ``(hour, minute)``, falling back to ``default`` for bad input."""
    try:
        return check_reminder_time(value, default)
    except InvalidConfiguration as exc:
        logger.warning("%s", exc)
        return check_reminder_time(default)


class LocalNotificationScheduler:
    """Keep one repeating daily reminder per user in the database."""

    def __init__(
        self, repo: ReminderScheduleRepository, permission_granted: bool = True
    ) -> None:
        self.repo = repo
        self.permission_granted = permission_granted

    def schedule_daily(
        self, user_id: str, hour: int, minute: int, title: str, body: str
    ) -> bool:
        """Replace any existing schedule. Returns ``False`` without permission."""
        self.repo.clear(user_id)
        if not self.permission_granted:
            logger.info("notification permission missing, reminder not scheduled")
            return False
        self.repo.replace(user_id, hour, minute, title, body)
        logger.info("daily reminder for %s at %02d:%02d", user_id, hour, minute)
        return True

    def cancel_all(self, user_id: str) -> None:
        self.repo.clear(user_id)

    def fetch(self, user_id: str) -> dict | None:
        return self.repo.fetch(user_id)


class ReminderService:
    """Apply the daily reminder policy and deliver due reminders."""

    def __init__(
        self,
        scheduler: LocalNotificationScheduler,
        notifications: NotificationRepository,
        *,
        clock: Clock = system_clock,
        tz: datetime.tzinfo | None = None,
        title: str = REMINDER_TITLE,
        body: str = REMINDER_BODY,
        default_time: str = DEFAULT_REMINDER_TIME,
    ) -> None:
        self.scheduler = scheduler
        self.notifications = notifications
        self.clock = clock
        self.tz = tz
        self.title = title
        self.body = body
        self.default_time = default_time

    def apply(self, settings: UserSettingsSchema) -> bool:
        """Schedule or cancel the reminder to match ``settings``."""
        if not settings.reminders_enabled:
            self.scheduler.cancel_all(settings.user_id)
            return False
        hour, minute = parse_reminder_time(settings.reminder_time, self.default_time)
        return self.scheduler.schedule_daily(
            settings.user_id, hour, minute, self.title, self.body
        )

    def schedule(self, user_id: str | None) -> dict | None:
        if not user_id:
            raise NotAuthenticated()
        return self.scheduler.fetch(user_id)

    def send_due_reminders(self, now: datetime.datetime | None = None) -> list[str]:
        """Record a notification for every schedule due today and not yet sent."""
        now = CalendarTools.to_local(now or self.clock(), self.tz)
        today = CalendarTools.date_to_ymd(now.date())
        sent: list[str] = []
        for row in self.scheduler.repo.fetch_all_schedules():
            if row["last_fired"] == today:
                continue
            if (now.hour, now.minute) < (row["hour"], row["minute"]):
                continue
            self.notifications.add(
                row["user_id"], f"{row['title']}: {row['body']}", now.isoformat()
            )
            self.scheduler.repo.mark_fired(row["user_id"], today)
            sent.append(row["user_id"])
        if sent:
            logger.info("sent %d daily reminders", len(sent))
        return sent
