import datetime
import os
import sys

import pytest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import cli
from db import CompletionRepository, ProfileRepository, UserSettingsRepository, WorkoutRepository
from errors import NotAuthenticated, WorkoutNotFound
from gamification_service import PointsLedger
from planner_service import WorkoutPlanService

NOW = datetime.datetime(2024, 3, 6, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def service(tmp_path):
    path = str(tmp_path / "planner.db")
    settings = UserSettingsRepository(path)
    return WorkoutPlanService(
        WorkoutRepository(path),
        CompletionRepository(path),
        settings,
        ProfileRepository(path),
        PointsLedger(settings, clock=lambda: NOW),
        clock=lambda: NOW,
        completion_points=15,
        default_weekly_target=4,
    )


def test_complete_records_and_awards(service):
    wid = service.create_workout("u1", {"name": "Legs", "plan": "Squat"})
    result = service.complete_workout("u1", wid)
    assert result["points"] == 15
    assert result["completion"]["completed_at"] == NOW.isoformat()
    assert service.get_settings("u1").points == 15


def test_complete_unknown_workout(service):
    with pytest.raises(WorkoutNotFound):
        service.complete_workout("u1", 42)
    assert service.get_settings("u1").points == 0


def test_cannot_complete_someone_elses_workout(service):
    wid = service.create_workout("u1", {"name": "Legs", "plan": "Squat"})
    with pytest.raises(WorkoutNotFound):
        service.complete_workout("u2", wid)


def test_configured_default_target(service):
    assert service.get_settings("u1").weekly_target == 4
    saved = service.save_settings("u1", {"weekly_target": "-1"})
    assert saved.weekly_target == 4


def test_settings_save_does_not_touch_points(service):
    wid = service.create_workout("u1", {"name": "Legs", "plan": "Squat"})
    service.complete_workout("u1", wid)
    saved = service.save_settings("u1", {"weekly_target": 5, "points": 9999})
    assert saved.points == 15


def test_award_during_settings_save_is_kept(service, monkeypatch):
    wid = service.create_workout("u1", {"name": "Legs", "plan": "Squat"})
    service.complete_workout("u1", wid)
    read_points = service.settings.fetch_points

    def read_then_award(user_id):
        points = read_points(user_id)
        service.ledger.award(user_id, 10)
        return points

    monkeypatch.setattr(service.settings, "fetch_points", read_then_award)
    saved = service.save_settings("u1", {"weekly_target": 4})
    monkeypatch.undo()
    assert saved.points == 15
    assert service.get_settings("u1").points == 25
    assert service.get_settings("u1").weekly_target == 4


def test_non_atomic_award_keeps_saved_settings(tmp_path):
    path = str(tmp_path / "planner.db")
    settings = UserSettingsRepository(path)
    service = WorkoutPlanService(
        WorkoutRepository(path),
        CompletionRepository(path),
        settings,
        ProfileRepository(path),
        PointsLedger(settings, atomic=False, clock=lambda: NOW),
        clock=lambda: NOW,
    )
    service.save_settings("u1", {"weekly_target": 6, "reminder_time": "06:45"})
    wid = service.create_workout("u1", {"name": "Legs", "plan": "Squat"})
    service.complete_workout("u1", wid)
    stored = service.get_settings("u1")
    assert stored.points == 10
    assert (stored.weekly_target, stored.reminder_time) == (6, "06:45")


def test_update_unknown_workout(service):
    with pytest.raises(WorkoutNotFound):
        service.update_workout("u1", 99, {"name": "X", "plan": "Y"})


def test_requires_user(service):
    with pytest.raises(NotAuthenticated):
        service.list_workouts(None)
    with pytest.raises(NotAuthenticated):
        service.complete_workout("", 1)


def test_update_avatar_without_storage(service):
    with pytest.raises(RuntimeError):
        service.update_avatar("u1", b"img")


def test_cli_demo_and_timeline(tmp_path, capsys):
    db_path = str(tmp_path / "cli.db")
    yaml_path = str(tmp_path / "planner.yaml")
    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"media_root": str(tmp_path / "media")}, f)
    cli.demo_data(db_path, yaml_path, "demo")
    cli.demo_data(db_path, yaml_path, "demo")
    out = capsys.readouterr().out
    assert "Demo data inserted" in out
    assert "already contains workouts" in out
    cli.print_timeline(db_path, yaml_path, "demo", 3)
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 3
    assert lines[-1].endswith(" <")
    assert "#" in lines[-1]
