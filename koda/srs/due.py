"""Due-card selection.

Decides which cards are eligible for study at a given moment and the
order they are presented in.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from koda.config import settings, utcnow
from koda.srs.memory import Stage, StudyCard

logger = logging.getLogger(__name__)


def is_due(card: StudyCard, now: datetime) -> bool:
    """Return True if the card has never been learned or its review time has come."""
    return card.state.stage == Stage.NEW or card.state.next_review_at <= now


def _presentation_key(card: StudyCard) -> tuple[datetime, datetime]:
    # Oldest due first, creation order among equals
    return (card.state.next_review_at, card.created_at)


def select_due(
    cards: Iterable[StudyCard],
    limit: int | None = None,
    now: datetime | None = None,
) -> list[StudyCard]:
    """Return the due cards, most overdue first.

    Args:
        cards: Candidate cards. Not mutated.
        limit: Maximum number of cards to return (all if None).
        now: Current time (defaults to utcnow).

    Returns:
        Due cards sorted by next review time, then creation time.
    """
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")
    now = now or utcnow()

    due = sorted((card for card in cards if is_due(card, now)), key=_presentation_key)
    if limit is not None:
        due = due[:limit]

    logger.debug("Selected %d due cards at %s", len(due), now.isoformat())
    return due


def select_for_session(
    cards: Iterable[StudyCard],
    max_cards: int | None = None,
) -> list[StudyCard]:
    """Return the cards to seed a study session with.

    Every card that is not yet mastered is included, due or not, so that
    learning cards get in-session reinforcement. Ordering matches
    ``select_due``.
    """
    max_cards = settings.max_cards_per_session if max_cards is None else max_cards
    if max_cards < 0:
        raise ValueError(f"max_cards must be non-negative, got {max_cards}")

    eligible = sorted(
        (card for card in cards if card.state.stage != Stage.MASTERED),
        key=_presentation_key,
    )
    return eligible[:max_cards]
