"""Word sources for each study mode.

Every mode reduces to an ordered list of word ids that the set planner
paginates. Only the level mode is backed by a persisted, resumable
learning session; the others are single stateless passes.
"""

from abc import ABC, abstractmethod
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings
from backend.srs.catalog import WordCatalog
from backend.srs.progress_store import ProgressStore


class StudyMode(StrEnum):
    LEVEL = "level"  # whole exam/level, resumable
    REVIEW = "review"  # words due for review
    WEAK = "weak"  # words missed or not yet secured
    DEMO = "demo"  # first set of the catalog, no account needed


class WordSource(ABC):
    """Produces the ordered word ids a study pass runs over."""

    mode: StudyMode
    persistent: bool = False
    requires_user: bool = True

    @abstractmethod
    async def word_ids(
        self,
        db: AsyncSession,
        user_id: int | None,
        exam: str | None,
        level: str | None,
    ) -> list[int]:
        """Return word ids in presentation order."""


class CatalogSource(WordSource):
    mode = StudyMode.LEVEL
    persistent = True

    async def word_ids(self, db, user_id, exam, level):  # type: ignore[no-untyped-def]
        catalog = WordCatalog(db)
        total = await catalog.count(exam, level)
        if total == 0:
            return []
        words = await catalog.page(exam, level, 0, total)
        return [word.id for word in words]


class DueReviewSource(WordSource):
    mode = StudyMode.REVIEW

    async def word_ids(self, db, user_id, exam, level):  # type: ignore[no-untyped-def]
        return await ProgressStore(db).find_due(user_id, exam=exam, level=level)


class WeakWordSource(WordSource):
    mode = StudyMode.WEAK

    async def word_ids(self, db, user_id, exam, level):  # type: ignore[no-untyped-def]
        return await ProgressStore(db).find_weak(user_id, exam=exam, level=level)


class DemoSource(WordSource):
    mode = StudyMode.DEMO
    requires_user = False

    async def word_ids(self, db, user_id, exam, level):  # type: ignore[no-untyped-def]
        words = await WordCatalog(db).page(exam, level, 0, settings.set_size)
        return [word.id for word in words]


_SOURCES: dict[StudyMode, WordSource] = {
    source.mode: source
    for source in (CatalogSource(), DueReviewSource(), WeakWordSource(), DemoSource())
}


def source_for(mode: StudyMode) -> WordSource:
    return _SOURCES[mode]
