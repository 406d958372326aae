"""SQLAlchemy-backed stores.

Rows hold intervals as float days; the scheduler works in ``timedelta``.
Conversion happens here, at the boundary.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from koda.config import utcnow
from koda.database import async_session
from koda.models.card import Card
from koda.models.deck import Deck
from koda.models.review_history import ReviewHistory
from koda.models.study_session import StudySession
from koda.srs.errors import NotFound, TransientStoreFailure
from koda.srs.memory import (
    DEFAULT_EASE,
    CardMemoryState,
    Stage,
    StudyCard,
    days,
)
from koda.srs.outcome import ReviewRecord
from koda.stores.ports import Stores, StudySessionRecord

logger = logging.getLogger(__name__)


def card_to_domain(card: Card) -> StudyCard:
    """Convert a Card row to the scheduler's view of it."""
    return StudyCard(
        id=card.id,
        deck_id=card.deck_id,
        created_at=card.created_at,
        front=card.front,
        back=card.back,
        state=CardMemoryState(
            stage=Stage(card.stage),
            interval=days(card.interval),
            ease_factor=card.ease_factor,
            consecutive_correct=card.consecutive_correct,
            review_count=card.review_count,
            next_review_at=card.next_review_at,
        ),
    )


def session_to_domain(row: StudySession) -> StudySessionRecord:
    return StudySessionRecord(
        id=row.id,
        deck_id=row.deck_id,
        session_type=row.session_type,
        cards_studied=row.cards_studied,
        cards_correct=row.cards_correct,
        total_time=row.total_time,
        completed_at=row.completed_at,
    )


class SqlAlchemyStore:
    """Implements the card, review history and session stores over SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_factory = session_factory or async_session

    def as_stores(self) -> Stores:
        return Stores(cards=self, history=self, sessions=self)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Open a database session, mapping driver errors to TransientStoreFailure."""
        try:
            async with self.session_factory() as db:
                yield db
        except SQLAlchemyError as exc:
            logger.warning("Database error: %s", exc)
            raise TransientStoreFailure(str(exc)) from exc

    async def _require_deck(self, db: AsyncSession, deck_id: str) -> None:
        if await db.get(Deck, deck_id) is None:
            raise NotFound("Deck", deck_id)

    # --- Cards ---

    async def get_card(self, card_id: str) -> StudyCard:
        async with self._session() as db:
            card = await db.get(Card, card_id)
            if card is None:
                raise NotFound("Card", card_id)
            return card_to_domain(card)

    async def update_card(self, card_id: str, state: CardMemoryState) -> None:
        async with self._session() as db:
            card = await db.get(Card, card_id)
            if card is None:
                raise NotFound("Card", card_id)
            card.stage = state.stage.value
            card.interval = state.interval_days
            card.ease_factor = state.ease_factor
            card.consecutive_correct = state.consecutive_correct
            card.review_count = state.review_count
            card.next_review_at = state.next_review_at
            await db.commit()

    async def list_cards_for_deck(self, deck_id: str) -> list[StudyCard]:
        async with self._session() as db:
            await self._require_deck(db, deck_id)
            stmt = (
                select(Card)
                .where(Card.deck_id == deck_id)
                .order_by(Card.next_review_at.asc(), Card.created_at.asc())
            )
            result = await db.execute(stmt)
            return [card_to_domain(card) for card in result.scalars().all()]

    async def reset_deck_progress(self, deck_id: str) -> int:
        async with self._session() as db:
            await self._require_deck(db, deck_id)
            stmt = (
                update(Card)
                .where(Card.deck_id == deck_id)
                .values(
                    stage=Stage.NEW.value,
                    interval=1.0,
                    ease_factor=DEFAULT_EASE,
                    next_review_at=utcnow(),
                    review_count=0,
                    consecutive_correct=0,
                )
            )
            result = await db.execute(stmt)
            await db.commit()
            logger.info("Reset progress for %d cards in deck %s", result.rowcount, deck_id)
            return result.rowcount

    # --- Review history ---

    async def append_review_record(self, record: ReviewRecord) -> None:
        async with self._session() as db:
            db.add(
                ReviewHistory(
                    card_id=record.card_id,
                    session_id=record.session_id,
                    quality=record.quality,
                    response_time=record.response_time_ms,
                    was_correct=record.was_correct,
                    interval_before=record.interval_before,
                    interval_after=record.interval_after,
                    reviewed_at=record.reviewed_at,
                )
            )
            await db.commit()

    # --- Sessions ---

    async def create_session(self, deck_id: str, session_type: str) -> StudySessionRecord:
        async with self._session() as db:
            await self._require_deck(db, deck_id)
            row = StudySession(deck_id=deck_id, session_type=session_type)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return session_to_domain(row)

    async def complete_session(
        self,
        session_id: str,
        cards_studied: int,
        cards_correct: int,
        total_time: int,
    ) -> StudySessionRecord:
        async with self._session() as db:
            row = await db.get(StudySession, session_id)
            if row is None:
                raise NotFound("Study session", session_id)
            row.cards_studied = cards_studied
            row.cards_correct = cards_correct
            row.total_time = total_time
            row.completed_at = utcnow()
            await db.commit()
            return session_to_domain(row)
