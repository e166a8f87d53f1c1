"""Shared fixtures: a throwaway SQLite database per test, seeded with words."""

import os
import tempfile
from pathlib import Path

# Point the app at scratch locations before anything imports backend.config.
_SCRATCH = Path(tempfile.mkdtemp(prefix="vocab_srs_tests_"))
os.environ["VOCAB_SRS_DATABASE_URL"] = f"sqlite+aiosqlite:///{_SCRATCH / 'app.db'}"
os.environ["VOCAB_SRS_CLIENT_CACHE_PATH"] = str(_SCRATCH / "session.json")

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backend.database import enforce_foreign_keys  # noqa: E402
from backend.models import Base, User, Word  # noqa: E402

CSAT_WORDS = 45  # three sets of 20, 20 and 5
TOEIC_WORDS = 20  # exactly one set


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    enforce_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user_id(db: AsyncSession) -> int:
    user = User(name="Test Learner", email="learner@example.com")
    db.add(user)
    await db.commit()
    return user.id


def make_words(prefix: str, count: int, exam: str, level: str) -> list[Word]:
    return [
        Word(word=f"{prefix}-{i:02d}", definition=f"meaning {i}", exam_category=exam, level=level)
        for i in range(count)
    ]


@pytest_asyncio.fixture
async def words(db: AsyncSession) -> dict[str, list[int]]:
    """Seed the catalog and return word ids keyed by exam/level."""
    seeded = {
        "CSAT/L1": make_words("csat", CSAT_WORDS, "CSAT", "L1"),
        "TOEIC/L1": make_words("toeic", TOEIC_WORDS, "TOEIC", "L1"),
        "TOEFL/L2": make_words("toefl", 3, "TOEFL", "L2"),
    }
    # Retired words never enter a session.
    retired = make_words("retired", 1, "CSAT", "L1")[0]
    retired.is_active = False
    db.add(retired)
    for group in seeded.values():
        db.add_all(group)
    await db.commit()
    return {key: [word.id for word in group] for key, group in seeded.items()}
