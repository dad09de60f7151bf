import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from quiz_session_engine.api.app import app


def _quiz(**config):
    return {
        "id": "mock-quiz",
        "title": "Mock Quiz",
        "config": config,
        "questions": [
            {
                "id": 1,
                "type": "single_choice",
                "text": "Pick B",
                "options": [{"id": 0, "text": "A"}, {"id": 1, "text": "B"}],
                "correct_option_id": 1,
            },
            {
                "id": 2,
                "type": "matching",
                "text": "Match",
                "matching_pairs": {"1": "a", "2": "b"},
            },
        ],
    }


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


def _create(client, **config):
    resp = client.post("/api/sessions", json={"quiz": _quiz(**config)})
    assert resp.status_code == 200
    return resp.json()


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_create_session_hides_answer_keys(client):
    data = _create(client)
    assert data["mode"] == "linear"
    assert data["cursor"] == 0
    assert data["current_question"]["id"] == 1
    assert "correct_option_id" not in data["current_question"]
    assert data["timer_state"] == "idle"


def test_full_session_flow(client):
    session_id = _create(client)["session_id"]

    resp = client.post(f"/api/sessions/{session_id}/answer", json={"question_id": 1, "answer": 1})
    assert resp.json()["feedback"] == {"question_id": 1, "is_correct": True}

    client.post(f"/api/sessions/{session_id}/next")
    resp = client.post(
        f"/api/sessions/{session_id}/answer",
        json={"question_id": "2", "answer": {"1": "a", "2": "b"}},
    )
    assert resp.json()["feedback"]["is_correct"] is True

    resp = client.post(f"/api/sessions/{session_id}/next")
    data = resp.json()
    assert data["mode"] == "completed"
    assert data["score_record"] == {
        "score_percent": 100,
        "correct_count": 2,
        "total_questions": 2,
        "is_passing": True,
    }


def test_flagged_review_flow(client):
    session_id = _create(client)["session_id"]
    client.post(f"/api/sessions/{session_id}/next")
    client.post(f"/api/sessions/{session_id}/flag", json={"question_id": 2})

    data = client.post(f"/api/sessions/{session_id}/next").json()
    assert data["pending_decision"] is True
    assert data["mode"] == "linear"

    data = client.post(f"/api/sessions/{session_id}/review").json()
    assert data["mode"] == "flagged_review"
    assert data["flagged_order"] == [1]
    assert data["current_question"]["id"] == 2


def test_submit_and_operations_after_completion_are_noops(client):
    session_id = _create(client)["session_id"]
    client.post(f"/api/sessions/{session_id}/answer", json={"question_id": 1, "answer": 1})
    data = client.post(f"/api/sessions/{session_id}/submit").json()
    assert data["score_record"]["score_percent"] == 50

    again = client.post(f"/api/sessions/{session_id}/previous").json()
    assert again["score_record"] == data["score_record"]
    assert again["mode"] == "completed"


def test_zero_time_limit_completes_on_creation(client):
    data = _create(client, time_limit_minutes=0)
    assert data["mode"] == "completed"
    assert data["timer_state"] == "expired"
    assert data["score_record"]["score_percent"] == 0


def test_timed_session_reports_remaining_seconds(client):
    data = _create(client, time_limit_minutes=2)
    assert data["timer_state"] == "running"
    assert 0 < data["remaining_seconds"] <= 120


def test_navigate(client):
    session_id = _create(client)["session_id"]
    data = client.post(f"/api/sessions/{session_id}/navigate", json={"index": 1}).json()
    assert data["cursor"] == 1
    data = client.post(f"/api/sessions/{session_id}/navigate", json={"index": 9}).json()
    assert data["cursor"] == 1


def test_invalid_quiz_is_rejected(client):
    resp = client.post("/api/sessions", json={"quiz": {"id": "x"}})
    assert resp.status_code == 400


def test_unknown_session_is_404(client):
    assert client.get("/api/sessions/nope").status_code == 404
    assert client.post("/api/sessions/nope/next").status_code == 404


def test_abandon_session(client):
    session_id = _create(client, time_limit_minutes=5)["session_id"]
    resp = client.delete(f"/api/sessions/{session_id}")
    assert resp.status_code == 200
    assert resp.json()["abandoned"] is True
    assert client.get(f"/api/sessions/{session_id}").status_code == 404


def _ordering_quiz():
    return {
        "id": "ordering-quiz",
        "questions": [
            {
                "id": 1,
                "type": "ordering",
                "text": "Order the response steps",
                "options": [
                    {"id": "detect", "text": "Detect"},
                    {"id": "contain", "text": "Contain"},
                    {"id": "recover", "text": "Recover"},
                ],
                "ordering_sequence": ["detect", "contain", "recover"],
            }
        ],
    }


def test_ordering_items_are_not_shown_in_answer_order(client):
    resp = client.post("/api/sessions", json={"quiz": _ordering_quiz()})
    shown = [option["id"] for option in resp.json()["current_question"]["options"]]
    assert shown != ["detect", "contain", "recover"]
    assert sorted(shown) == ["contain", "detect", "recover"]

    again = client.get(f"/api/sessions/{resp.json()['session_id']}").json()
    assert [option["id"] for option in again["current_question"]["options"]] == shown


def test_matching_question_exposes_left_ids(client):
    session_id = _create(client)["session_id"]
    data = client.post(f"/api/sessions/{session_id}/next").json()
    assert data["current_question"]["question_type"] == "matching"
    assert data["current_question"]["matching_left_ids"] == ["1", "2"]


def test_non_finite_time_limit_is_rejected(client):
    body = '{"quiz": {"questions": [], "config": {"time_limit_minutes": 1e999}}}'
    resp = client.post("/api/sessions", content=body, headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


def test_completed_sessions_expire_after_ttl(client, monkeypatch):
    monkeypatch.setenv("QUIZ_ENGINE_SESSION_TTL_SECONDS", "0")
    finished = _create(client)["session_id"]
    active = _create(client)["session_id"]
    client.post(f"/api/sessions/{finished}/submit")

    _create(client)

    assert client.get(f"/api/sessions/{finished}").status_code == 404
    assert client.get(f"/api/sessions/{active}").status_code == 200
