from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field


class Metric(str, Enum):
    TOTAL_WORKOUTS = "total_workouts"
    TOTAL_COMPLETIONS = "total_completions"
    STREAK_DAYS = "streak_days"
    POINTS = "points"
    COMPLETED_THIS_WEEK = "completed_this_week"


class AchievementRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    description: str
    metric: Metric
    threshold: int = Field(gt=0)


class AchievementCounters(BaseModel):
    """Aggregate counters the rules are evaluated against."""

    total_workouts: int = Field(default=0, ge=0)
    total_completions: int = Field(default=0, ge=0)
    streak_days: int = Field(default=0, ge=0)
    points: int = Field(default=0, ge=0)
    completed_this_week: int = Field(default=0, ge=0)

    def value(self, metric: Metric) -> int:
        return getattr(self, metric.value)


class AchievementState(BaseModel):
    key: str
    title: str
    description: str
    unlocked: bool


ACHIEVEMENTS: tuple[AchievementRule, ...] = (
    AchievementRule(key="first_workout", title="First Workout", description="Create your first plan.", metric=Metric.TOTAL_WORKOUTS, threshold=1),
    AchievementRule(key="five_workouts", title="5 Workouts", description="Create 5 workout plans.", metric=Metric.TOTAL_WORKOUTS, threshold=5),
    AchievementRule(key="first_completion", title="First Completion", description="Complete a workout once.", metric=Metric.TOTAL_COMPLETIONS, threshold=1),
    AchievementRule(key="ten_completions", title="10 Completions", description="Complete 10 workouts.", metric=Metric.TOTAL_COMPLETIONS, threshold=10),
    AchievementRule(key="twenty_five_completions", title="25 Completions", description="Complete 25 workouts.", metric=Metric.TOTAL_COMPLETIONS, threshold=25),
    AchievementRule(key="fifty_completions", title="50 Completions", description="Complete 50 workouts.", metric=Metric.TOTAL_COMPLETIONS, threshold=50),
    AchievementRule(key="week2", title="Warming Up", description="Complete 2 workouts in one week.", metric=Metric.COMPLETED_THIS_WEEK, threshold=2),
    AchievementRule(key="week4", title="On Track", description="Complete 4 workouts in one week.", metric=Metric.COMPLETED_THIS_WEEK, threshold=4),
    AchievementRule(key="week6", title="Beast Week", description="Complete 6 workouts in one week.", metric=Metric.COMPLETED_THIS_WEEK, threshold=6),
    AchievementRule(key="streak3", title="Streak Starter", description="3-day streak.", metric=Metric.STREAK_DAYS, threshold=3),
    AchievementRule(key="streak7", title="Streak Master", description="7-day streak.", metric=Metric.STREAK_DAYS, threshold=7),
    AchievementRule(key="streak14", title="Unstoppable", description="14-day streak.", metric=Metric.STREAK_DAYS, threshold=14),
    AchievementRule(key="points100", title="Point Collector", description="Earn 100 points.", metric=Metric.POINTS, threshold=100),
)


def evaluate_achievements(
    counters: AchievementCounters,
    rules: Iterable[AchievementRule] = ACHIEVEMENTS,
) -> list[AchievementState]:
    """Return the unlock state of every rule, in table order."""
    return [
        AchievementState(
            key=rule.key,
            title=rule.title,
            description=rule.description,
            unlocked=counters.value(rule.metric) >= rule.threshold,
        )
        for rule in rules
    ]


def earned_count(states: Iterable[AchievementState]) -> int:
    return sum(1 for s in states if s.unlocked)
