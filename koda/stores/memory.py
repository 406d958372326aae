"""Dict-backed stores for tests and offline use.

``fail_writes`` puts the store into degraded mode: every write raises
``TransientStoreFailure`` as an unreachable backend would.
"""

import logging
import uuid
from dataclasses import replace

from koda.config import utcnow
from koda.srs.errors import NotFound, TransientStoreFailure
from koda.srs.memory import CardMemoryState, StudyCard, new_card_state
from koda.srs.outcome import ReviewRecord
from koda.stores.ports import Stores, StudySessionRecord

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Implements the card, review history and session stores in memory."""

    def __init__(self, cards: list[StudyCard] | None = None) -> None:
        self.cards: dict[str, StudyCard] = {}
        self.decks: set[str] = set()
        self.history: list[ReviewRecord] = []
        self.sessions: dict[str, StudySessionRecord] = {}
        self.fail_writes = False
        for card in cards or []:
            self.add_card(card)

    def add_card(self, card: StudyCard) -> None:
        self.cards[card.id] = card
        self.decks.add(card.deck_id)

    def add_deck(self, deck_id: str) -> None:
        self.decks.add(deck_id)

    def as_stores(self) -> Stores:
        return Stores(cards=self, history=self, sessions=self)

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise TransientStoreFailure("In-memory store is in degraded mode")

    def _require_deck(self, deck_id: str) -> None:
        if deck_id not in self.decks:
            raise NotFound("Deck", deck_id)

    # --- Cards ---

    async def get_card(self, card_id: str) -> StudyCard:
        card = self.cards.get(card_id)
        if card is None:
            raise NotFound("Card", card_id)
        # Callers get a copy so queue mutations don't leak into the store
        return replace(card, state=replace(card.state))

    async def update_card(self, card_id: str, state: CardMemoryState) -> None:
        self._check_writable()
        card = self.cards.get(card_id)
        if card is None:
            raise NotFound("Card", card_id)
        card.state = replace(state)

    async def list_cards_for_deck(self, deck_id: str) -> list[StudyCard]:
        self._require_deck(deck_id)
        return [
            replace(card, state=replace(card.state))
            for card in self.cards.values()
            if card.deck_id == deck_id
        ]

    async def reset_deck_progress(self, deck_id: str) -> int:
        self._check_writable()
        self._require_deck(deck_id)
        now = utcnow()
        count = 0
        for card in self.cards.values():
            if card.deck_id == deck_id:
                card.state = new_card_state(now)
                count += 1
        logger.info("Reset progress for %d cards in deck %s", count, deck_id)
        return count

    # --- Review history ---

    async def append_review_record(self, record: ReviewRecord) -> None:
        self._check_writable()
        self.history.append(record)

    # --- Sessions ---

    async def create_session(self, deck_id: str, session_type: str) -> StudySessionRecord:
        self._check_writable()
        self._require_deck(deck_id)
        record = StudySessionRecord(id=str(uuid.uuid4()), deck_id=deck_id, session_type=session_type)
        self.sessions[record.id] = record
        return replace(record)

    async def complete_session(
        self,
        session_id: str,
        cards_studied: int,
        cards_correct: int,
        total_time: int,
    ) -> StudySessionRecord:
        self._check_writable()
        record = self.sessions.get(session_id)
        if record is None:
            raise NotFound("Study session", session_id)
        record.cards_studied = cards_studied
        record.cards_correct = cards_correct
        record.total_time = total_time
        record.completed_at = utcnow()
        return replace(record)
