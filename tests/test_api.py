"""Tests for the HTTP API: routing, error mapping and response headers."""

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backend.database import get_session
from backend.main import app


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth(user_id: int) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


async def start(client: AsyncClient, user_id: int, exam: str = "CSAT", level: str = "L1") -> dict:
    response = await client.post(
        "/api/session/start", json={"exam": exam, "level": level}, headers=auth(user_id)
    )
    assert response.status_code in (200, 201)
    return response.json()


@pytest.mark.asyncio
async def test_start_and_resume(client, user_id, words) -> None:
    response = await client.post(
        "/api/session/start", json={"exam": "CSAT", "level": "L1"}, headers=auth(user_id)
    )
    assert response.status_code == 201
    assert response.headers["cache-control"] == "private, no-store"
    body = response.json()
    assert body["is_new"] is True
    assert body["total_words"] == 45
    assert body["session"]["total_sets"] == 3
    assert len(body["words"]) == 20
    assert body["set_info"]["words_in_set"] == 20

    resumed = await client.post(
        "/api/session/start", json={"exam": "CSAT", "level": "L1"}, headers=auth(user_id)
    )
    assert resumed.status_code == 200
    assert resumed.json()["session"]["id"] == body["session"]["id"]
    assert resumed.json()["is_new"] is False


@pytest.mark.asyncio
async def test_missing_user_is_unauthorized(client, words) -> None:
    response = await client.post("/api/session/start", json={"exam": "CSAT", "level": "L1"})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


@pytest.mark.asyncio
async def test_malformed_user_id(client, words) -> None:
    response = await client.get("/api/stats", headers={"X-User-Id": "abc"})
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_unknown_exam(client, user_id, words) -> None:
    response = await client.post(
        "/api/session/start", json={"exam": "GRE", "level": "L1"}, headers=auth(user_id)
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["details"] == {"exam": "GRE"}


@pytest.mark.asyncio
async def test_no_words_is_not_found(client, user_id, words) -> None:
    response = await client.post(
        "/api/session/start", json={"exam": "EBS", "level": "L3"}, headers=auth(user_id)
    )
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_current_session(client, user_id, words) -> None:
    params = {"exam": "CSAT", "level": "L1"}
    response = await client.get("/api/session", params=params, headers=auth(user_id))
    assert response.status_code == 200
    assert response.json()["status"] == "NOT_STARTED"
    assert response.json()["session"] is None

    await start(client, user_id)
    response = await client.get("/api/session", params=params, headers=auth(user_id))
    assert response.json()["status"] == "IN_PROGRESS"
    assert len(response.json()["words"]) == 20


@pytest.mark.asyncio
async def test_review_in_session(client, user_id, words) -> None:
    body = await start(client, user_id)
    word_id = body["words"][0]["id"]

    response = await client.post(
        "/api/review",
        json={
            "word_id": word_id,
            "rating": 5,
            "session_id": body["session"]["id"],
            "request_id": "r-1",
        },
        headers=auth(user_id),
    )

    assert response.status_code == 200
    review = response.json()
    assert review["schedule_state"]["interval"] == 1
    assert review["schedule_state"]["repetitions"] == 1
    assert review["mastery_level"] == "LEARNING"
    assert review["session"]["current_index"] == 1
    assert review["set_complete"] is False
    assert review["replayed"] is False


@pytest.mark.asyncio
async def test_invalid_rating(client, user_id, words) -> None:
    response = await client.post(
        "/api/review",
        json={"word_id": words["CSAT/L1"][0], "rating": 7},
        headers=auth(user_id),
    )
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_complete_set_returns_next_set(client, user_id, words) -> None:
    body = await start(client, user_id)
    session_id = body["session"]["id"]

    response = await client.patch(
        "/api/session/progress",
        json={"session_id": session_id, "completed_set": True, "current_set": 0},
        headers=auth(user_id),
    )

    assert response.status_code == 200
    progress = response.json()
    assert progress["is_completed"] is False
    assert progress["session"]["current_set"] == 1
    assert progress["session"]["completed_sets"] == 1
    assert progress["set_info"]["set_number"] == 1
    assert len(progress["words"]) == 20


@pytest.mark.asyncio
async def test_answer_after_completion_conflicts(client, user_id, words) -> None:
    body = await start(client, user_id, "TOEIC", "L1")
    session_id = body["session"]["id"]
    done = await client.patch(
        "/api/session/progress",
        json={"session_id": session_id, "completed_set": True},
        headers=auth(user_id),
    )
    assert done.json()["is_completed"] is True
    assert done.json()["words"] is None

    response = await client.post(
        "/api/review",
        json={"word_id": body["words"][0]["id"], "rating": 4, "session_id": session_id},
        headers=auth(user_id),
    )
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


@pytest.mark.asyncio
async def test_progress_beacon(client, user_id, words) -> None:
    body = await start(client, user_id)
    session_id = body["session"]["id"]
    payload = json.dumps({"session_id": session_id, "current_index": 7, "current_set": 0})

    response = await client.post(
        "/api/session/progress-beacon",
        content=payload,
        headers={**auth(user_id), "Content-Type": "text/plain;charset=UTF-8"},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}

    resumed = await start(client, user_id)
    assert resumed["session"]["current_index"] == 7


@pytest.mark.asyncio
async def test_progress_beacon_rejects_garbage(client, user_id, words) -> None:
    response = await client.post(
        "/api/session/progress-beacon",
        content="not json",
        headers={**auth(user_id), "Content-Type": "text/plain"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_progress_beacon_needs_gateway_header(client, user_id, words) -> None:
    body = await start(client, user_id)
    payload = json.dumps(
        {"session_id": body["session"]["id"], "current_index": 5, "user_id": user_id}
    )

    response = await client.post(
        "/api/session/progress-beacon",
        content=payload,
        headers={"Content-Type": "text/plain;charset=UTF-8"},
    )
    assert response.status_code == 401

    resumed = await start(client, user_id)
    assert resumed["session"]["current_index"] == 0


@pytest.mark.asyncio
async def test_set_words(client, user_id, words) -> None:
    body = await start(client, user_id)
    session_id = body["session"]["id"]

    response = await client.get(f"/api/session/{session_id}/set/2", headers=auth(user_id))
    assert response.status_code == 200
    assert len(response.json()["words"]) == 5

    missing = await client.get("/api/session/nope/set/0", headers=auth(user_id))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_demo_mode_without_user(client, words) -> None:
    response = await client.post("/api/session/start", json={"exam": "CSAT", "mode": "demo"})
    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "demo"
    assert body["session"] is None
    assert len(body["words"]) == 20


@pytest.mark.asyncio
async def test_due_reviews_and_stats(client, user_id, words) -> None:
    body = await start(client, user_id)
    await client.post(
        "/api/review",
        json={"word_id": body["words"][0]["id"], "rating": 5},
        headers=auth(user_id),
    )

    due = await client.get("/api/review/due", headers=auth(user_id))
    assert due.status_code == 200
    assert due.json()["count"] == 0  # next review is tomorrow

    stats = await client.get("/api/stats", headers=auth(user_id))
    assert stats.status_code == 200
    assert stats.json() == {
        "words_studied": 1,
        "words_due": 0,
        "words_mastered": 0,
        "total_reviews": 1,
        "accuracy": 1.0,
        "streak_days": 1,
    }
