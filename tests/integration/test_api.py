"""
Integration tests for the REST API.

The app's session manager is swapped for one bound to the per-test
in-memory database and fake clock.
"""

import pytest
from fastapi.testclient import TestClient

from bandexam.api.dependencies import get_session_manager
from bandexam.api.main import app, status_code_for
from bandexam.core.exceptions import ConflictError, ExamEngineError, ScoringError

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client(manager):
    app.dependency_overrides[get_session_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def submission_id(client):
    response = client.post("/api/submissions", json={"testId": "academic-1"}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()["id"]


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "bandexam-engine"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["components"]["database"] == "ok"
        assert data["config"]["expiry_sweep_interval_seconds"] == 0


class TestSubmissionEndpoints:
    def test_start(self, client):
        response = client.post("/api/submissions", json={"testId": "academic-1"}, headers=HEADERS)

        data = response.json()
        assert response.status_code == 201
        assert data["status"] == "in_progress"
        assert data["remaining_seconds"] == 3600

    def test_missing_user_header(self, client):
        response = client.post("/api/submissions", json={"testId": "academic-1"})
        assert response.status_code == 401

    def test_duplicate_start(self, client, submission_id):
        response = client.post("/api/submissions", json={"testId": "academic-1"}, headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["error"] == "ConflictError"

    def test_unknown_test(self, client):
        response = client.post("/api/submissions", json={"testId": "nope"}, headers=HEADERS)
        assert response.status_code == 404

    def test_progress(self, client, submission_id, reading_answers):
        response = client.put(
            f"/api/submissions/{submission_id}/progress",
            json={"answers": reading_answers, "cursor": {"skill": "reading", "questionIndex": 9}},
            headers=HEADERS,
        )

        data = response.json()
        assert response.status_code == 200
        assert data["completion_percentage"] == 71
        assert data["submission"]["current_question_index"] == 9

    def test_progress_unknown_question(self, client, submission_id):
        response = client.put(
            f"/api/submissions/{submission_id}/progress",
            json={"answers": {"reading": [{"sectionId": "r1", "answers": {"zzz": 1}}]}},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["field"] == "reading.answers.zzz"

    def test_pause_resume(self, client, submission_id):
        paused = client.post(f"/api/submissions/{submission_id}/pause", headers=HEADERS)
        assert paused.json()["status"] == "paused"

        again = client.post(f"/api/submissions/{submission_id}/pause", headers=HEADERS)
        assert again.status_code == 409

        resumed = client.post(f"/api/submissions/{submission_id}/resume", headers=HEADERS)
        assert resumed.json()["status"] == "in_progress"

    def test_submit_and_results(self, client, submission_id, reading_answers):
        response = client.post(
            f"/api/submissions/{submission_id}/submit",
            json={"answers": reading_answers},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["scores"]["reading"] == 8.0

        second = client.post(f"/api/submissions/{submission_id}/submit", headers=HEADERS)
        assert second.status_code == 409

        results = client.get(f"/api/submissions/{submission_id}/results", headers=HEADERS).json()
        assert results["correct_answers"]["reading"]["r1"]["q10"] == 1
        assert len(results["results"]["question_analysis"]) == 12

    def test_results_before_submit(self, client, submission_id):
        response = client.get(f"/api/submissions/{submission_id}/results", headers=HEADERS)
        assert response.status_code == 404

    def test_submit_without_body(self, client, submission_id):
        response = client.post(f"/api/submissions/{submission_id}/submit", headers=HEADERS)
        assert response.json()["status"] == "completed"

    def test_abandon(self, client, submission_id):
        response = client.post(f"/api/submissions/{submission_id}/abandon", headers=HEADERS)
        assert response.json()["status"] == "abandoned"

    def test_delete(self, client, submission_id):
        response = client.delete(f"/api/submissions/{submission_id}", headers=HEADERS)
        assert response.status_code == 204

        missing = client.get(f"/api/submissions/{submission_id}", headers=HEADERS)
        assert missing.status_code == 404

    def test_other_user_gets_404(self, client, submission_id):
        response = client.get(f"/api/submissions/{submission_id}", headers={"X-User-Id": "user-2"})
        assert response.status_code == 404

    def test_list_with_status_filter(self, client, submission_id):
        listed = client.get("/api/submissions", headers=HEADERS).json()
        assert listed["count"] == 1

        completed = client.get(
            "/api/submissions", params={"status_filter": "completed"}, headers=HEADERS
        ).json()
        assert completed["count"] == 0

    def test_issue_and_tab_switch(self, client, submission_id):
        issue = client.post(
            f"/api/submissions/{submission_id}/issues",
            json={"type": "audio", "description": "No sound", "severity": "high"},
            headers=HEADERS,
        )
        assert issue.json()["warnings"] == ["[high] audio: No sound"]

        switch = client.post(f"/api/submissions/{submission_id}/tab-switch", headers=HEADERS)
        assert switch.json()["tab_switches"] == 1

    def test_review_request(self, client, submission_id):
        client.post(f"/api/submissions/{submission_id}/submit", headers=HEADERS)

        first = client.post(f"/api/submissions/{submission_id}/review-request", headers=HEADERS)
        assert first.json()["needs_manual_review"] is True

        second = client.post(f"/api/submissions/{submission_id}/review-request", headers=HEADERS)
        assert second.status_code == 409


class TestReviewEndpoints:
    def test_apply_score(self, client, submission_id):
        client.post(f"/api/submissions/{submission_id}/submit", headers=HEADERS)

        response = client.post(
            f"/api/review/submissions/{submission_id}/scores",
            json={"skill": "writing", "score": 6.5, "reviewer": "examiner-1"},
        )

        assert response.status_code == 200
        assert response.json()["scores"]["writing"] == 6.5

    def test_off_grid_score(self, client, submission_id):
        client.post(f"/api/submissions/{submission_id}/submit", headers=HEADERS)

        response = client.post(
            f"/api/review/submissions/{submission_id}/scores",
            json={"skill": "writing", "score": 6.2},
        )
        assert response.status_code == 422
        assert response.json()["field"] == "score"

    def test_expire_overdue(self, client, submission_id, fake_clock):
        fake_clock.advance(3601)

        response = client.post("/api/review/expire-overdue")

        assert response.json() == {"expired": [submission_id], "count": 1}
        detail = client.get(f"/api/submissions/{submission_id}", headers=HEADERS).json()
        assert detail["status"] == "expired"


class TestErrorMapping:
    def test_status_codes(self):
        assert status_code_for(ConflictError("x")) == 409
        assert status_code_for(ScoringError("x")) == 503
        assert status_code_for(ExamEngineError("x")) == 500
