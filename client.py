import requests
from typing import Optional


class PlannerClient:
    """Simple REST client for the workout planner API."""

    def __init__(self, user_id: str, base_url: str = "http://localhost:8000", timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers["X-User-Id"] = user_id

    def _get(self, path: str, **params):
        resp = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def dashboard(self) -> dict:
        return self._get("/dashboard")

    def list_workouts(self) -> list:
        return self._get("/workouts")

    def create_workout(self, name: str, plan: list[str], video_url: Optional[str] = None, category: Optional[str] = None) -> int:
        resp = self.session.post(
            f"{self.base_url}/workouts",
            json={"name": name, "plan": plan, "video_url": video_url, "category": category},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def complete_workout(self, workout_id: int) -> dict:
        resp = self.session.post(
            f"{self.base_url}/workouts/{workout_id}/complete", timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()

    def save_settings(self, **settings) -> dict:
        resp = self.session.put(f"{self.base_url}/settings", json=settings, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def timeline(self, days: Optional[int] = None) -> list:
        if days is None:
            return self._get("/timeline")
        return self._get("/timeline", days=days)

    def day_details(self, ymd: str) -> list:
        return self._get(f"/timeline/{ymd}")
