"""Tests for CLI commands, with prompts and storage failures mocked."""

import argparse
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import and_, func, select

from backend.database import async_session
from backend.errors import StorageUnavailable
from backend.models.review_log import ReviewLog
from backend.models.word import Word
from backend.srs.progress_store import ProgressStore
from backend.srs.session import LearningSessionController
from vocab_srs.__main__ import (
    cmd_add,
    cmd_due,
    cmd_study,
    ensure_db,
    ensure_user,
    submit_answer,
)
from vocab_srs.position_cache import ClientSessionCache


@pytest.mark.asyncio
async def test_ensure_db() -> None:
    """Database tables can be created."""
    await ensure_db()


@pytest.mark.asyncio
async def test_ensure_user() -> None:
    """Default user is created on first call."""
    await ensure_db()
    user_id = await ensure_user()
    assert user_id >= 1

    # Second call returns same ID
    user_id2 = await ensure_user()
    assert user_id2 == user_id


@pytest.mark.asyncio
async def test_add_word_once(capsys) -> None:
    args = argparse.Namespace(
        word="ubiquitous",
        definition="found everywhere",
        exam="toefl",
        level="l3",
        definition_ko="",
        part_of_speech="adjective",
    )
    await cmd_add(args)
    await cmd_add(args)

    out = capsys.readouterr().out
    assert "Added 'ubiquitous' to TOEFL L3" in out
    assert "already exists" in out


@pytest.mark.asyncio
async def test_due_count(capsys) -> None:
    await cmd_due(argparse.Namespace())
    assert "words due for review" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_submit_answer_retries_with_same_request_id() -> None:
    controller = MagicMock()
    result = MagicMock()
    controller.record_answer = AsyncMock(
        side_effect=[StorageUnavailable("Storage unavailable during record_answer"), result]
    )
    submit_answer.retry.sleep = AsyncMock()  # type: ignore[attr-defined]

    assert await submit_answer(controller, 1, 10, 4, "req-9", session_id="abc") is result

    assert controller.record_answer.await_count == 2
    for call in controller.record_answer.await_args_list:
        assert call.kwargs["request_id"] == "req-9"


@pytest.mark.asyncio
async def test_submit_answer_gives_up() -> None:
    controller = MagicMock()
    controller.record_answer = AsyncMock(side_effect=StorageUnavailable("down"))
    submit_answer.retry.sleep = AsyncMock()  # type: ignore[attr-defined]

    with pytest.raises(StorageUnavailable):
        await submit_answer(controller, 1, 10, 4, "req-10")
    assert controller.record_answer.await_count == 3


async def seed_level(exam: str, level: str, count: int = 3) -> None:
    await ensure_db()
    async with async_session() as db:
        db.add_all(
            [
                Word(
                    word=f"{exam}-{level}-{i}",
                    definition=f"meaning {i}",
                    exam_category=exam,
                    level=level,
                )
                for i in range(count)
            ]
        )
        await db.commit()


def study_args(level: str, restart: bool = False) -> argparse.Namespace:
    return argparse.Namespace(exam="sat", level=level, restart=restart)


async def server_position(exam: str, level: str) -> tuple[int, str] | None:
    user_id = await ensure_user()
    async with async_session() as db:
        view = await LearningSessionController(db).current(user_id, exam, level)
    if view is None:
        return None
    return view.session.current_index, view.session.status


@pytest.fixture
def cache(tmp_path, monkeypatch) -> ClientSessionCache:
    """Point the CLI at a per-test cache file."""
    cache = ClientSessionCache(tmp_path / "session.json", ttl_seconds=3600)
    monkeypatch.setattr("vocab_srs.__main__.ClientSessionCache", lambda: cache)
    return cache


@pytest.mark.asyncio
async def test_study_resumes_online(cache, capsys) -> None:
    await seed_level("SAT", "L1")

    with patch("vocab_srs.__main__.ask_rating", side_effect=[5, None]):
        await cmd_study(study_args("L1"))

    cached = cache.load("SAT", "L1")
    assert cached is not None
    assert cached.current_index == 1
    assert cached.pending == []
    assert await server_position("SAT", "L1") == (1, "IN_PROGRESS")
    order = [word["id"] for word in cached.words]

    with patch("vocab_srs.__main__.ask_rating", side_effect=[4, 5]) as ask:
        await cmd_study(study_args("L1"))

    assert [call.args[0].id for call in ask.call_args_list] == order[1:]
    assert await server_position("SAT", "L1") is None
    assert not cache.path.exists()
    assert "SAT L1 complete: 3 words studied" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_study_falls_back_to_cache_when_storage_is_down(cache) -> None:
    await seed_level("SAT", "L2")
    with patch("vocab_srs.__main__.ask_rating", side_effect=[None]):
        await cmd_study(study_args("L2"))

    down = AsyncMock(side_effect=StorageUnavailable("Storage unavailable during start"))
    answers = ["", "y", "", "n", "q"]
    with patch.object(LearningSessionController, "start", down), patch(
        "builtins.input", side_effect=answers
    ):
        await cmd_study(study_args("L2"))

    cached = cache.load("SAT", "L2")
    assert cached is not None
    assert cached.current_index == 2
    assert [entry["rating"] for entry in cached.pending] == [5, 1]
    assert len({entry["request_id"] for entry in cached.pending}) == 2
    # Nothing reached the server, so its position has not moved.
    assert await server_position("SAT", "L2") == (0, "IN_PROGRESS")


@pytest.mark.asyncio
async def test_study_without_cache_when_storage_is_down(cache, capsys) -> None:
    down = AsyncMock(side_effect=StorageUnavailable("Storage unavailable during start"))
    with patch.object(LearningSessionController, "start", down):
        await cmd_study(study_args("L2"))

    assert "no saved position" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_offline_answers_are_sent_on_reconnect(cache, capsys) -> None:
    await seed_level("SAT", "L3")
    with patch("vocab_srs.__main__.ask_rating", side_effect=[None]):
        await cmd_study(study_args("L3"))

    down = AsyncMock(side_effect=StorageUnavailable("Storage unavailable during start"))
    with patch.object(LearningSessionController, "start", down), patch(
        "builtins.input", side_effect=["", "y", "", "n", "q"]
    ):
        await cmd_study(study_args("L3"))

    cached = cache.load("SAT", "L3")
    assert cached is not None
    order = [word["id"] for word in cached.words]
    first, second = cached.pending

    # The first answer reached the server before the connection dropped.
    user_id = await ensure_user()
    async with async_session() as db:
        await LearningSessionController(db).record_answer(
            user_id,
            first["word_id"],
            first["rating"],
            session_id=cached.session_id,
            request_id=first["request_id"],
        )

    with patch("vocab_srs.__main__.ask_rating", side_effect=[5]) as ask:
        await cmd_study(study_args("L3"))

    # Study picks up after the words answered offline.
    assert [call.args[0].id for call in ask.call_args_list] == [order[2]]
    assert "Sent 2 answer(s) given offline" in capsys.readouterr().out
    assert await server_position("SAT", "L3") is None

    async with async_session() as db:
        store = ProgressStore(db)
        for word_id in order:
            assert await store.get(user_id, word_id) is not None
        for entry in (first, second):
            logged = (
                await db.execute(
                    select(func.count(ReviewLog.id)).where(
                        and_(
                            ReviewLog.user_id == user_id,
                            ReviewLog.request_id == entry["request_id"],
                        )
                    )
                )
            ).scalar()
            assert logged == 1
