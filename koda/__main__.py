"""CLI interface for Koda.

Usage:
    python -m koda due DECK_ID               Show cards due in a deck
    python -m koda study DECK_ID             Study a deck in the terminal
    python -m koda reset DECK_ID             Reset a deck's progress to new

Add --remote before the command to use the REST API at KODA_API_BASE_URL
instead of the local database.
"""

import argparse
import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from koda.config import settings, utcnow
from koda.database import init_db
from koda.srs.due import select_due
from koda.srs.errors import InvalidOutcome, NotFound
from koda.srs.memory import Stage
from koda.srs.outcome import outcome_from_paw
from koda.srs.session import start_session
from koda.stores.http import HttpStore
from koda.stores.sql import SqlAlchemyStore


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


@asynccontextmanager
async def open_store(args: argparse.Namespace) -> AsyncIterator[SqlAlchemyStore | HttpStore]:
    """Yield the store selected on the command line."""
    if getattr(args, "remote", False):
        store = HttpStore()
        try:
            yield store
        finally:
            await store.aclose()
    else:
        await ensure_db()
        yield SqlAlchemyStore()


async def cmd_due(args: argparse.Namespace) -> None:
    """Show the due cards of a deck, most overdue first."""
    async with open_store(args) as store:
        try:
            cards = await store.list_cards_for_deck(args.deck_id)
        except NotFound:
            print(f"  Deck {args.deck_id} not found.")
            return

    due = select_due(cards, limit=args.limit, now=utcnow())
    new = sum(1 for card in due if card.state.stage == Stage.NEW)
    print(f"  {len(due) - new} cards due, {new} new cards available")
    for card in due:
        print(f"    [{card.state.stage.value:<8}] {card.front}")


async def cmd_study(args: argparse.Namespace) -> None:
    """Run an interactive study session."""
    async with open_store(args) as store:
        await study(store, args)


async def study(store: SqlAlchemyStore | HttpStore, args: argparse.Namespace) -> None:
    try:
        session = await start_session(store.as_stores(), args.deck_id, max_cards=args.max_cards)
    except NotFound:
        print(f"  Deck {args.deck_id} not found.")
        return

    if session.is_complete:
        print("\nNo cards to study right now. Great job!")
        await session.complete()
        return

    print("\n  Study Session")
    print(f"  {session.queue.initial_size} cards\n")
    print("  Ratings: 1=Again  2=Hard  3=Good  4=Easy")
    print("  Type 'q' to quit\n")

    while (entry := session.current()) is not None:
        card = entry.card
        print(f"  [{card.state.stage.value}] {card.front}")
        start_time = time.time()
        if input("  (enter to flip) ").strip().lower() == "q":
            await session.sync_pending()
            session.abandon()
            print("\n  Session ended early. Progress so far is saved.")
            return
        print(f"  {card.back}")

        rating = input("  Rate [1-4]: ").strip()
        if rating.lower() == "q":
            await session.sync_pending()
            session.abandon()
            print("\n  Session ended early. Progress so far is saved.")
            return
        time_ms = int((time.time() - start_time) * 1000)
        try:
            outcome = outcome_from_paw(card.id, int(rating) if rating.isdigit() else 0, time_ms)
        except InvalidOutcome:
            print("  Please enter 1, 2, 3 or 4.\n")
            continue

        try:
            result = await session.review(outcome)
        except NotFound:
            print(f"  Card {card.id} not found in the store; its progress is not saved.\n")
            continue
        if result.removed:
            print("  Mastered! Card leaves this session.\n")
        else:
            print(f"  Next review in {result.entry.state.interval_days:.2f} days\n")
        if session.offline:
            print("  (offline: progress is kept locally and will sync later)\n")

    await session.sync_pending()
    record = await session.complete()
    print("\n  Session Complete!")
    print(
        f"  Reviews: {session.stats.total_reviews}  Correct: {record.cards_correct}  "
        f"Accuracy: {session.stats.accuracy}%  Mastered: {record.cards_studied}\n"
    )


async def cmd_reset(args: argparse.Namespace) -> None:
    """Reset every card in a deck back to new."""
    async with open_store(args) as store:
        try:
            count = await store.reset_deck_progress(args.deck_id)
        except NotFound:
            print(f"  Deck {args.deck_id} not found.")
            return
    print(f"  Progress reset for {count} cards.")


def main() -> None:
    """Entry point for the Koda CLI."""
    parser = argparse.ArgumentParser(
        prog="koda",
        description="Koda flashcard scheduler",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument(
        "--remote", action="store_true", help=f"Use the REST API at {settings.api_base_url}"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # due
    due_parser = subparsers.add_parser("due", help="Show cards due for study")
    due_parser.add_argument("deck_id", help="Deck ID")
    due_parser.add_argument("--limit", type=int, default=None, help="Max cards to list")

    # study
    study_parser = subparsers.add_parser("study", help="Start a study session")
    study_parser.add_argument("deck_id", help="Deck ID")
    study_parser.add_argument(
        "--max-cards", type=int, default=settings.max_cards_per_session, help="Max cards per session"
    )

    # reset
    reset_parser = subparsers.add_parser("reset", help="Reset a deck's progress")
    reset_parser.add_argument("deck_id", help="Deck ID")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    commands = {
        "due": cmd_due,
        "study": cmd_study,
        "reset": cmd_reset,
    }
    asyncio.run(commands[args.command](args))


if __name__ == "__main__":
    main()
