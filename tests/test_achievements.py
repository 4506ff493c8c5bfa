import itertools
import os
import sys
import unittest

from pydantic import ValidationError

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from achievements import (
    ACHIEVEMENTS,
    AchievementCounters,
    AchievementRule,
    Metric,
    earned_count,
    evaluate_achievements,
)


class AchievementTest(unittest.TestCase):
    def test_first_workout_only(self) -> None:
        states = evaluate_achievements(AchievementCounters(total_workouts=1))
        unlocked = [s.title for s in states if s.unlocked]
        self.assertEqual(unlocked, ["First Workout"])
        self.assertEqual(len(states), len(ACHIEVEMENTS))

    def test_states_follow_table_order(self) -> None:
        states = evaluate_achievements(AchievementCounters())
        self.assertEqual([s.key for s in states], [r.key for r in ACHIEVEMENTS])
        self.assertFalse(any(s.unlocked for s in states))

    def test_keys_are_unique(self) -> None:
        keys = [r.key for r in ACHIEVEMENTS]
        self.assertEqual(len(keys), len(set(keys)))

    def test_required_rules_present(self) -> None:
        present = {(r.metric, r.threshold) for r in ACHIEVEMENTS}
        required = {
            (Metric.TOTAL_WORKOUTS, 1),
            (Metric.TOTAL_WORKOUTS, 5),
            (Metric.TOTAL_COMPLETIONS, 1),
            (Metric.TOTAL_COMPLETIONS, 10),
            (Metric.TOTAL_COMPLETIONS, 25),
            (Metric.TOTAL_COMPLETIONS, 50),
            (Metric.COMPLETED_THIS_WEEK, 2),
            (Metric.COMPLETED_THIS_WEEK, 4),
            (Metric.COMPLETED_THIS_WEEK, 6),
            (Metric.STREAK_DAYS, 3),
            (Metric.STREAK_DAYS, 7),
            (Metric.STREAK_DAYS, 14),
            (Metric.POINTS, 100),
        }
        self.assertTrue(required <= present)

    def test_thresholds_are_inclusive(self) -> None:
        for rule in ACHIEVEMENTS:
            below = AchievementCounters(**{rule.metric.value: rule.threshold - 1})
            at = AchievementCounters(**{rule.metric.value: rule.threshold})
            state_below = {s.key: s.unlocked for s in evaluate_achievements(below)}
            state_at = {s.key: s.unlocked for s in evaluate_achievements(at)}
            self.assertFalse(state_below[rule.key])
            self.assertTrue(state_at[rule.key])

    def test_raising_a_counter_never_locks(self) -> None:
        values = [0, 1, 3, 7, 14, 60, 150]
        for metric in Metric:
            for base, bump in itertools.product(values, values):
                before = AchievementCounters(**{metric.value: base})
                after = AchievementCounters(**{metric.value: base + bump})
                old = {s.key for s in evaluate_achievements(before) if s.unlocked}
                new = {s.key for s in evaluate_achievements(after) if s.unlocked}
                self.assertTrue(old <= new)

    def test_custom_rules_are_additive(self) -> None:
        rules = ACHIEVEMENTS + (
            AchievementRule(
                key="points500",
                title="Point Hoarder",
                description="Earn 500 points.",
                metric=Metric.POINTS,
                threshold=500,
            ),
        )
        states = evaluate_achievements(AchievementCounters(points=520), rules)
        self.assertEqual(states[-1].key, "points500")
        self.assertTrue(states[-1].unlocked)
        self.assertEqual(earned_count(states), 2)

    def test_rule_validation(self) -> None:
        with self.assertRaises(ValidationError):
            AchievementRule(key="x", title="x", description="x", metric=Metric.POINTS, threshold=0)
        with self.assertRaises(ValidationError):
            AchievementCounters(points=-1)


if __name__ == "__main__":
    unittest.main()
