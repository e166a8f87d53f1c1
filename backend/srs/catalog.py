"""Word catalog queries used to snapshot and fill study sessions."""

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.word import Word


class WordCatalog:
    """Read-only access to active words for an exam category and level.

    ``page`` orders by ``(word, id)`` so repeated calls for the same
    exam/level return the same sequence.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _matching(self, exam: str, level: str | None):  # type: ignore[no-untyped-def]
        conditions = [Word.exam_category == exam, Word.is_active.is_(True)]
        if level:
            conditions.append(Word.level == level)
        return and_(*conditions)

    async def count(self, exam: str, level: str | None) -> int:
        stmt = select(func.count(Word.id)).where(self._matching(exam, level))
        return (await self.db.execute(stmt)).scalar() or 0

    async def page(self, exam: str, level: str | None, offset: int, limit: int) -> list[Word]:
        stmt = (
            select(Word)
            .where(self._matching(exam, level))
            .order_by(Word.word.asc(), Word.id.asc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get(self, word_id: int) -> Word | None:
        return await self.db.get(Word, word_id)

    async def get_many(self, word_ids: list[int]) -> list[Word]:
        """Load words by id, returned in the order of ``word_ids``.

        Ids that no longer resolve (deleted words) are skipped.
        """
        if not word_ids:
            return []
        result = await self.db.execute(select(Word).where(Word.id.in_(word_ids)))
        by_id = {word.id: word for word in result.scalars().all()}
        return [by_id[word_id] for word_id in word_ids if word_id in by_id]
