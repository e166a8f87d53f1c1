"""CLI interface for Vocab SRS.

Usage:
    python -m vocab_srs study CSAT L1          Study a level set by set (resumes)
    python -m vocab_srs study CSAT L1 --restart
    python -m vocab_srs review                  Review the words due today
    python -m vocab_srs stats                   Show your statistics
    python -m vocab_srs due                     Show how many words are due
    python -m vocab_srs add "word" "def" --exam CSAT --level L1
"""

import argparse
import asyncio
import logging
import uuid

from sqlalchemy import and_, select
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import today, utcnow
from backend.database import async_session, storage_errors
from backend.errors import NotFoundError, ServiceError, StorageUnavailable
from backend.main import init_db
from backend.models.learning_session import SessionStatus
from backend.models.user import User
from backend.models.word import Word
from backend.srs.progress_store import ProgressStore
from backend.srs.session import (
    AnswerResult,
    LearningSessionController,
    SessionView,
    validate_exam_level,
)
from backend.srs.stats import collect_stats
from backend.srs.word_source import StudyMode
from vocab_srs.position_cache import CachedPosition, ClientSessionCache, reconcile

logger = logging.getLogger(__name__)

KNEW_IT = 5
DID_NOT_KNOW = 1


@retry(
    retry=retry_if_exception_type(StorageUnavailable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)
async def submit_answer(
    controller: LearningSessionController,
    user_id: int,
    word_id: int,
    rating: int,
    request_id: str,
    session_id: str | None = None,
    learning_method: str = "FLASHCARD",
) -> AnswerResult:
    """Record an answer, retrying storage failures with the same request id.

    A retry of an answer that was already stored is replayed by the server
    instead of being scheduled twice.
    """
    return await controller.record_answer(
        user_id,
        word_id,
        rating,
        session_id=session_id,
        request_id=request_id,
        learning_method=learning_method,
    )


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


async def ensure_user() -> int:
    """Ensure there's a default user and return the ID."""
    async with async_session() as db:
        stmt = select(User).limit(1)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()
        if user:
            return user.id

        user = User(name="Learner")
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user.id


def ask_rating(word: Word) -> int | None:
    """Show a flashcard and return the rating, or None to stop."""
    print(f"\n  {word.word}" + (f"  ({word.part_of_speech})" if word.part_of_speech else ""))
    answer = input("  [Enter] to reveal, q to quit: ").strip().lower()
    if answer == "q":
        return None
    print(f"  {word.definition}")
    if word.definition_ko:
        print(f"  {word.definition_ko}")
    while True:
        answer = input("  Did you know it? [y/n/q]: ").strip().lower()
        if answer == "q":
            return None
        if answer in ("y", "n"):
            return KNEW_IT if answer == "y" else DID_NOT_KNOW


def mirror(
    cache: ClientSessionCache,
    view: SessionView,
    index: int,
    ratings: dict[str, int],
    pending: list[dict] | None = None,
) -> None:
    """Write the server's position to the local cache."""
    cache.save(
        CachedPosition(
            exam=view.session.exam_category,
            level=view.session.level,
            session_id=view.session.id,
            current_set=view.session.current_set,
            current_index=index,
            words=[{"id": w.id, "word": w.word, "definition": w.definition} for w in view.words],
            ratings=ratings,
            pending=pending or [],
        )
    )


def study_offline(cache: ClientSessionCache, cached: CachedPosition) -> None:
    """Walk through the cached set when the server can't be reached.

    Each rating is queued in the cache with its own request id and sent the
    next time ``study`` reaches the server.
    """
    print("\n  Server unavailable, continuing from your last saved position.")
    print("  Answers are kept on this computer and sent when you next study online.\n")
    for index in range(cached.current_index, len(cached.words)):
        entry = cached.words[index]
        print(f"\n  {entry['word']}")
        if input("  [Enter] to reveal, q to quit: ").strip().lower() == "q":
            break
        print(f"  {entry['definition']}")
        answer = input("  Did you know it? [y/n]: ").strip().lower()
        rating = KNEW_IT if answer == "y" else DID_NOT_KNOW
        cached.ratings[str(entry["id"])] = rating
        cached.pending.append(
            {"word_id": entry["id"], "rating": rating, "request_id": uuid.uuid4().hex}
        )
        cached.current_index = max(cached.current_index, index + 1)
        cache.save(cached)


async def send_pending(
    controller: LearningSessionController,
    user_id: int,
    cache: ClientSessionCache,
    cached: CachedPosition,
    session_id: str,
) -> int:
    """Submit queued offline answers, oldest first. Returns how many were sent.

    Answers keep the request id they were given offline, so one that already
    reached the server is replayed instead of scheduled twice. Answers queued
    for an earlier session only update the word's schedule.
    """
    target = session_id if cached.session_id == session_id else None
    sent = 0
    while cached.pending:
        entry = cached.pending[0]
        try:
            await submit_answer(
                controller,
                user_id,
                entry["word_id"],
                entry["rating"],
                entry["request_id"],
                session_id=target,
            )
        except NotFoundError:
            logger.warning("Dropping offline answer for missing word %d", entry["word_id"])
        else:
            sent += 1
        cached.pending.pop(0)
        cache.save(cached)
    return sent


async def cmd_study(args: argparse.Namespace) -> None:
    """Run an interactive, resumable study session for one exam/level."""
    await ensure_db()
    user_id = await ensure_user()
    exam, level = validate_exam_level(args.exam, args.level)
    cache = ClientSessionCache()

    async with async_session() as db:
        controller = LearningSessionController(db)
        try:
            view = await controller.start(user_id, exam, level, restart=args.restart)
        except StorageUnavailable:
            logger.warning("Could not start %s %s session, trying the local cache", exam, level)
            cached = cache.load(exam, level)
            if cached is None:
                print("\n  Server unavailable and no saved position. Try again later.")
                return
            study_offline(cache, cached)
            return

        cached = cache.load(exam, level)
        if cached is not None and cached.pending:
            try:
                sent = await send_pending(controller, user_id, cache, cached, view.session.id)
            except StorageUnavailable:
                logger.warning("Could not send %d offline answers", len(cached.pending))
                print("\n  Could not send your offline answers. Try again later.\n")
                return
            print(f"\n  Sent {sent} answer(s) given offline.")
            view = await controller.current(user_id, exam, level) or view
        if cached is not None and cached.session_id != view.session.id:
            cached = None

        ratings = cached.ratings_for_set() if cached else {}
        server = view.session
        index = reconcile(server.current_set, server.current_index, cached, server.id)
        if index > server.current_index:
            await controller.checkpoint(user_id, server.id, index, server.current_set)

        while True:
            session = view.session
            print(f"\n  {exam} {level}  set {session.current_set + 1}/{session.total_sets}")
            print(f"  {session.total_reviewed}/{session.total_words} words studied\n")
            mirror(cache, view, index, ratings)

            for position in range(index, len(view.words)):
                word = view.words[position]
                rating = ask_rating(word)
                if rating is None:
                    await controller.checkpoint(user_id, session.id, position, session.current_set)
                    mirror(cache, view, position, ratings)
                    print("\n  Progress saved. Run the same command to continue.\n")
                    return
                request_id = uuid.uuid4().hex
                try:
                    result = await submit_answer(
                        controller,
                        user_id,
                        word.id,
                        rating,
                        request_id=request_id,
                        session_id=session.id,
                    )
                except StorageUnavailable:
                    logger.warning("Giving up on answer for word %d after retries", word.id)
                    unsent = {"word_id": word.id, "rating": rating, "request_id": request_id}
                    ratings[str(word.id)] = rating
                    mirror(cache, view, position + 1, ratings, pending=[unsent])
                    print("\n  Could not save your answer. It will be sent next time.\n")
                    return
                ratings[str(word.id)] = rating
                mirror(cache, view, position + 1, ratings)
                print(f"  Next review in {result.schedule.interval} day(s)")

            view = await controller.update_progress(
                user_id, session.id, completed_set=True, current_set=session.current_set
            )
            index = 0
            ratings = {}
            if view.session.status == SessionStatus.COMPLETED:
                cache.clear()
                reviewed = view.session.total_reviewed
                print(f"\n  {exam} {level} complete: {reviewed} words studied.\n")
                return
            answer = input("\n  Set complete. Continue to the next set? [Y/n]: ")
            if answer.strip().lower() == "n":
                mirror(cache, view, 0, ratings)
                return


async def cmd_review(args: argparse.Namespace) -> None:
    """Review the words due today, weakest first."""
    await ensure_db()
    user_id = await ensure_user()

    async with async_session() as db:
        controller = LearningSessionController(db)
        study_pass = await controller.start_pass(user_id, StudyMode.REVIEW)
        if not study_pass.words:
            print("\n  No words due for review. You're all caught up!")
            return

        print(f"\n  Review: {study_pass.total_words} words due")
        reviewed = correct = 0
        for word in study_pass.words:
            rating = ask_rating(word)
            if rating is None:
                break
            await submit_answer(
                controller, user_id, word.id, rating, uuid.uuid4().hex, learning_method="REVIEW"
            )
            reviewed += 1
            correct += rating == KNEW_IT

    accuracy = (correct / reviewed * 100) if reviewed else 0
    print(f"\n  Reviewed: {reviewed}  Correct: {correct}  Accuracy: {accuracy:.0f}%\n")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show user statistics."""
    await ensure_db()
    user_id = await ensure_user()

    async with async_session() as db:
        with storage_errors("stats"):
            stats = await collect_stats(db, user_id, utcnow())

    accuracy = f"{stats.accuracy * 100:.0f}%" if stats.accuracy is not None else "-"
    print("\n  Vocab SRS Statistics")
    print(f"  {'Words studied:':<20} {stats.words_studied}")
    print(f"  {'Due now:':<20} {stats.words_due}")
    print(f"  {'Mastered:':<20} {stats.words_mastered}")
    print(f"  {'Total reviews:':<20} {stats.total_reviews}")
    print(f"  {'Accuracy (30d):':<20} {accuracy}")
    print(f"  {'Streak:':<20} {stats.streak_days} day(s)")
    print()


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a word to the catalog."""
    await ensure_db()
    exam, level = validate_exam_level(args.exam, args.level)

    async with async_session() as db:
        existing = (
            await db.execute(
                select(Word).where(
                    and_(Word.word == args.word, Word.exam_category == exam, Word.level == level)
                )
            )
        ).scalar_one_or_none()

        if existing:
            print(f"  '{args.word}' already exists in {exam} {level} (id={existing.id}).")
            return

        word = Word(
            word=args.word,
            definition=args.definition,
            definition_ko=args.definition_ko or None,
            part_of_speech=args.part_of_speech or None,
            exam_category=exam,
            level=level,
            is_active=True,
        )
        db.add(word)
        await db.commit()
        print(f"  Added '{word.word}' to {exam} {level} (id={word.id}).")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many words are due."""
    await ensure_db()
    user_id = await ensure_user()

    async with async_session() as db:
        due = await ProgressStore(db).count_due(user_id, today=today())

    print(f"  {due} words due for review")


def main() -> None:
    """Entry point for the Vocab SRS CLI application."""
    parser = argparse.ArgumentParser(
        prog="vocab_srs",
        description="Vocabulary spaced repetition trainer",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # study
    study_parser = subparsers.add_parser("study", help="Study an exam level set by set")
    study_parser.add_argument("exam", help="Exam category (CSAT, TOEFL, ...)")
    study_parser.add_argument("level", help="Level (L1-L3)")
    study_parser.add_argument(
        "--restart", action="store_true", help="Discard progress and start over"
    )

    # review
    subparsers.add_parser("review", help="Review the words due today")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # add
    add_parser = subparsers.add_parser("add", help="Add a word to the catalog")
    add_parser.add_argument("word", help="English word")
    add_parser.add_argument("definition", help="Definition")
    add_parser.add_argument("--exam", required=True, help="Exam category")
    add_parser.add_argument("--level", required=True, help="Level (L1-L3)")
    add_parser.add_argument("--definition-ko", default="", help="Korean definition")
    add_parser.add_argument("--part-of-speech", default="", help="Part of speech")

    # due
    subparsers.add_parser("due", help="Show words due for review")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "study": cmd_study,
        "review": cmd_review,
        "stats": cmd_stats,
        "add": cmd_add,
        "due": cmd_due,
    }

    try:
        asyncio.run(cmd_map[args.command](args))
    except ServiceError as exc:
        print(f"  Error: {exc.message}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
