"""
API tests for the gamification router.
"""
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from fitpulse.core.database import get_db
from fitpulse.main import app
from fitpulse.routers.gamification import get_activity_log


@pytest.fixture
def client(db_session, activity_log):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_activity_log] = lambda: activity_log
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_goal(client, user_id, **overrides):
    body = {"title": "Run 10 km", "target_value": 10, "unit": "km", "category": "cardio"}
    body.update(overrides)
    response = client.post(f"/v1/gamification/users/{user_id}/goals", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestGoals:
    def test_create_goal(self, client, test_user):
        goal = create_goal(client, test_user.id)
        assert goal["status"] == "active"
        assert goal["progress_percentage"] == 0.0
        assert goal["user_id"] == str(test_user.id)

    def test_create_goal_validation(self, client, test_user):
        response = client.post(
            f"/v1/gamification/users/{test_user.id}/goals",
            json={"title": "", "target_value": 10, "unit": "km"},
        )
        assert response.status_code == 422

    def test_complete_goal_once(self, client, test_user):
        goal = create_goal(client, test_user.id)
        url = f"/v1/gamification/users/{test_user.id}/goals/{goal['id']}/complete"

        first = client.post(url)
        assert first.status_code == 200
        assert first.json()["points_awarded"] == 22
        assert first.json()["goal"]["status"] == "completed"
        assert first.json()["goal"]["progress_percentage"] == 100.0

        second = client.post(url)
        assert second.status_code == 200
        assert second.json()["points_awarded"] == 0

    def test_progress_completes_goal(self, client, test_user):
        goal = create_goal(client, test_user.id, target_value=5)
        url = f"/v1/gamification/users/{test_user.id}/goals/{goal['id']}/progress"

        partial = client.post(url, json={"value": 2})
        assert partial.json()["goal"]["progress_percentage"] == 40.0

        done = client.post(url, json={"increment": 3})
        assert done.json()["goal"]["status"] == "completed"
        assert done.json()["points_awarded"] == 22

    def test_progress_requires_exactly_one_field(self, client, test_user):
        goal = create_goal(client, test_user.id)
        response = client.post(
            f"/v1/gamification/users/{test_user.id}/goals/{goal['id']}/progress",
            json={"value": 2, "increment": 1},
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR_VALUE"

    def test_invalid_transition_is_conflict(self, client, test_user):
        goal = create_goal(client, test_user.id)
        base = f"/v1/gamification/users/{test_user.id}/goals/{goal['id']}"

        assert client.post(f"{base}/pause").json()["status"] == "paused"

        response = client.post(f"{base}/complete")
        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_GOAL_TRANSITION"

        assert client.post(f"{base}/activate").json()["status"] == "active"
        assert client.post(f"{base}/reset").json()["status"] == "not-started"

    def test_unknown_goal(self, client, test_user):
        response = client.post(f"/v1/gamification/users/{test_user.id}/goals/999999/complete")
        assert response.status_code == 404
        assert response.json() == {"detail": "Goal not found: 999999", "error_code": "NOT_FOUND"}

    def test_unknown_user(self, client):
        response = client.get(f"/v1/gamification/users/{uuid4()}/score")
        assert response.status_code == 404


class TestScores:
    def test_score_and_leaderboard(self, client, test_user, other_user):
        goal = create_goal(client, test_user.id)
        client.post(f"/v1/gamification/users/{test_user.id}/goals/{goal['id']}/complete")
        create_goal(client, other_user.id)

        score = client.get(f"/v1/gamification/users/{test_user.id}/score").json()
        assert score["total_points"] == 27
        assert score["goals_completed"] == 1
        assert score["rank"] == 1
        assert score["points_to_next_level"] == 73

        board = client.get("/v1/gamification/leaderboard", params={"limit": 5}).json()
        assert [entry["user_id"] for entry in board] == [str(test_user.id), str(other_user.id)]
        assert [entry["rank"] for entry in board] == [1, 2]

    def test_summary(self, client, test_user):
        response = client.get(f"/v1/gamification/users/{test_user.id}/summary")
        assert response.status_code == 200
        assert response.json()["level"] == 1


class TestAchievements:
    def test_list_achievements(self, client, test_user, catalog):
        create_goal(client, test_user.id)

        response = client.get(f"/v1/gamification/users/{test_user.id}/achievements")

        assert response.status_code == 200
        items = {item["key"]: item for item in response.json()}
        assert len(items) == len(catalog)
        assert items["first_goal"]["unlocked"] is True
        assert items["legendary_achiever"]["display"]["border"] == "border-yellow-500"
        assert items["goal_achiever"]["progress"]["percentage"] == 0.0

    def test_check_syncs_workouts(self, client, test_user, catalog, activity_log):
        from datetime import date, timedelta
        activity_log.timestamps = [date.today() - timedelta(days=i) for i in range(25)]

        response = client.post(f"/v1/gamification/users/{test_user.id}/achievements/check")

        assert response.status_code == 200
        keys = [a["key"] for a in response.json()["new_achievements"]]
        assert keys == ["regular"]
        assert response.json()["total_points"] == 75


class TestCalories:
    def test_estimate(self, client):
        response = client.post(
            "/v1/gamification/calories/estimate",
            json={"duration_minutes": 60, "weight_kg": 70, "exercise_type": "running"},
        )
        assert response.json() == {
            "calories": 840,
            "calories_per_minute": 14.0,
            "intensity": "high",
            "weight_kg": 70.0,
        }

    def test_estimate_uses_default_weight(self, client):
        response = client.post("/v1/gamification/calories/estimate", json={"duration_minutes": 60})
        assert response.json()["calories"] == 420
        assert response.json()["weight_kg"] == 70.0

    def test_estimate_with_exercises(self, client):
        response = client.post(
            "/v1/gamification/calories/estimate",
            json={
                "duration_minutes": 30,
                "weight_kg": 70,
                "exercises": [{"body_part": "legs", "sets": 3, "reps": 10}],
            },
        )
        assert response.json()["calories"] == 217

    def test_explicit_zero_weight_is_not_defaulted(self, client):
        zero = client.post(
            "/v1/gamification/calories/estimate", json={"duration_minutes": 60, "weight_kg": 0}
        ).json()
        negative = client.post(
            "/v1/gamification/calories/estimate", json={"duration_minutes": 60, "weight_kg": -5}
        ).json()

        assert zero["weight_kg"] == 0.0
        assert zero["calories"] == negative["calories"]
        assert zero["calories"] != 420
