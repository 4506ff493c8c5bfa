import os
import sys
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import PlannerClient


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = PlannerClient("u1", base_url="http://testserver/")

    def _response(self, payload) -> mock.Mock:
        resp = mock.Mock()
        resp.json.return_value = payload
        resp.raise_for_status.return_value = None
        return resp

    def test_sends_user_header(self) -> None:
        self.assertEqual(self.client.session.headers["X-User-Id"], "u1")

    def test_create_workout(self) -> None:
        with mock.patch.object(self.client.session, "post", return_value=self._response({"id": 3})) as post:
            wid = self.client.create_workout("Legs", ["Squat"])
        self.assertEqual(wid, 3)
        self.assertEqual(post.call_args.args[0], "http://testserver/workouts")
        self.assertEqual(post.call_args.kwargs["json"]["plan"], ["Squat"])

    def test_timeline_days_param(self) -> None:
        with mock.patch.object(self.client.session, "get", return_value=self._response([])) as get:
            self.client.timeline(7)
        self.assertEqual(get.call_args.kwargs["params"], {"days": 7})

    def test_day_details_path(self) -> None:
        with mock.patch.object(self.client.session, "get", return_value=self._response([])) as get:
            self.client.day_details("2024-03-01")
        self.assertEqual(get.call_args.args[0], "http://testserver/timeline/2024-03-01")


if __name__ == "__main__":
    unittest.main()
