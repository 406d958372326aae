"""Interfaces the scheduler uses to reach its collaborators.

Every adapter (in-memory, SQLAlchemy, remote HTTP) implements these.
Absent records raise ``NotFound``; backend trouble raises
``TransientStoreFailure``.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from koda.srs.memory import CardMemoryState, StudyCard
from koda.srs.outcome import ReviewRecord

Clock = Callable[[], datetime]


@dataclass
class StudySessionRecord:
    """A study attempt, as stored. Only touched at start and completion."""

    id: str
    deck_id: str
    session_type: str
    cards_studied: int = 0
    cards_correct: int = 0
    total_time: int = 0  # Seconds
    completed_at: datetime | None = None


class CardStore(Protocol):
    async def get_card(self, card_id: str) -> StudyCard: ...

    async def update_card(self, card_id: str, state: CardMemoryState) -> None: ...

    async def list_cards_for_deck(self, deck_id: str) -> list[StudyCard]: ...

    async def reset_deck_progress(self, deck_id: str) -> int: ...


class ReviewHistoryStore(Protocol):
    async def append_review_record(self, record: ReviewRecord) -> None: ...


class SessionStore(Protocol):
    async def create_session(self, deck_id: str, session_type: str) -> StudySessionRecord: ...

    async def complete_session(
        self,
        session_id: str,
        cards_studied: int,
        cards_correct: int,
        total_time: int,
    ) -> StudySessionRecord: ...


@dataclass
class Stores:
    """The collaborators a study session needs, passed around together."""

    cards: CardStore
    history: ReviewHistoryStore
    sessions: SessionStore
    # True when appending a review record also reschedules the card on the
    # server, so card state is never written directly
    applies_reviews: bool = False
