import logging
import sys

from db import CompletionRepository, WorkoutRepository

logger = logging.getLogger(__name__)


def migrate(db_path: str = "planner.db") -> int:
    """Turn legacy ``workouts.completed_at`` markers into completion rows.

    Running it again does not duplicate rows. Returns the number inserted.
    """
    workouts = WorkoutRepository(db_path)
    completions = CompletionRepository(db_path)
    inserted = 0
    for wid, user_id, completed_at in workouts.fetch_legacy_completed():
        if completions.exists(user_id, wid, completed_at):
            continue
        completions.add(user_id, wid, completed_at)
        inserted += 1
    logger.info("migrated %d legacy completion markers", inserted)
    return inserted


if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else 'planner.db'
    print(migrate(path))
