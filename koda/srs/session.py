"""Study session orchestrator.

Coordinates the session queue, the review processor and the stores into
one study attempt. Local progress always comes first: the queue moves on
as soon as a review is applied, and persistence problems put the session
into offline mode instead of stopping it. Unsynced state is pushed later
by ``sync_pending``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from koda.config import settings, utcnow
from koda.srs.due import select_due, select_for_session
from koda.srs.errors import KodaError, NotFound, TransientStoreFailure
from koda.srs.outcome import ReviewOutcome, ReviewRecord
from koda.srs.processor import ReviewProcessor
from koda.srs.queue import QueueEntry, SessionQueue, SubmitResult
from koda.stores.ports import Clock, Stores, StudySessionRecord

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    """Running statistics for a study session."""

    started_at: datetime
    total_reviews: int = 0
    correct: int = 0
    studied: int = 0  # Cards that graduated (reached mastered)
    total_response_ms: int = 0

    @property
    def accuracy(self) -> int:
        """Percentage of correct reviews, rounded."""
        if self.total_reviews == 0:
            return 0
        return round(self.correct / self.total_reviews * 100)

    @property
    def average_response_ms(self) -> float:
        if self.total_reviews == 0:
            return 0.0
        return self.total_response_ms / self.total_reviews

    def elapsed_seconds(self, now: datetime) -> int:
        return max(0, int((now - self.started_at).total_seconds()))


@dataclass
class ReviewSession:
    """An active study session for one deck."""

    record: StudySessionRecord
    queue: SessionQueue
    stores: Stores
    clock: Clock = utcnow
    stats: SessionStats = field(init=False)
    persisted: bool = True  # False if the session row could not be created
    offline: bool = False
    completed: bool = False
    _pending_records: list[ReviewRecord] = field(default_factory=list)
    _orphaned: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.stats = SessionStats(started_at=self.clock())

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def is_complete(self) -> bool:
        return self.queue.is_complete

    @property
    def pending_records(self) -> list[ReviewRecord]:
        return list(self._pending_records)

    def current(self) -> QueueEntry | None:
        return self.queue.current()

    async def review(self, outcome: ReviewOutcome) -> SubmitResult:
        """Apply one review locally, then try to persist it.

        The queue has already advanced by the time persistence runs, so a
        failing backend never blocks the session.

        Raises:
            InvalidOutcome: the outcome is malformed or for another card.
            SessionComplete: the queue is empty.
            NotFound: the card no longer exists in the card store.
        """
        now = self.clock()
        result = self.queue.submit_review(outcome, now)

        record = result.record
        if record.session_id is None and self.persisted:
            record = record.model_copy(update={"session_id": self.id})

        self.stats.total_reviews += 1
        self.stats.total_response_ms += outcome.response_time_ms
        if outcome.was_correct:
            self.stats.correct += 1
        if result.removed:
            self.stats.studied += 1

        await self._persist(result.entry, record)
        return result

    async def _persist(self, entry: QueueEntry, record: ReviewRecord) -> None:
        if self.stores.applies_reviews:
            reachable = await self._submit_review(entry, record)
        else:
            reachable = await self._save_state(entry, record)

        if reachable and self.offline:
            logger.info("Store reachable again, syncing session %s", self.id)
            await self.sync_pending()

    async def _save_state(self, entry: QueueEntry, record: ReviewRecord) -> bool:
        """Write the card's new state, then its history record."""
        try:
            await self.stores.cards.update_card(entry.card_id, entry.state)
        except TransientStoreFailure as exc:
            self._go_offline(exc)
            self._pending_records.append(record)
            return False
        except NotFound:
            self._orphaned.add(entry.card_id)
            logger.error("Card %s vanished from the store during session %s", entry.card_id, self.id)
            raise

        self.queue.mark_synced(entry.card_id)

        # History is best effort and never rolls back the card update
        try:
            await self.stores.history.append_review_record(record)
        except TransientStoreFailure as exc:
            logger.warning("Could not append review history for card %s: %s", entry.card_id, exc)
            self._pending_records.append(record)
        except KodaError as exc:
            logger.error("Dropping review history for card %s: %s", entry.card_id, exc)
        return True

    async def _submit_review(self, entry: QueueEntry, record: ReviewRecord) -> bool:
        """Queue the review behind any unsent ones and post them in order."""
        self._pending_records.append(record)
        reachable = await self._flush_reviews()
        if entry.card_id in self._orphaned:
            raise NotFound("Card", entry.card_id)
        return reachable

    def _go_offline(self, exc: Exception) -> None:
        if not self.offline:
            logger.warning("Switching session %s to offline mode: %s", self.id, exc)
        self.offline = True

    async def sync_pending(self) -> int:
        """Push unsynced work to the stores. Returns the number of cards synced.

        Stores that take card state get each unsynced card's latest state
        once, so a retry never replays an outcome. Stores that reschedule
        from reviews get the unsent reviews in the order they were made.
        """
        if self.stores.applies_reviews:
            before = len(self._unsynced_cards())
            reachable = await self._flush_reviews()
            synced = before - len(self._unsynced_cards())
        else:
            synced, reachable = await self._push_states()

        if not reachable:
            return synced
        if self.offline:
            logger.info("Session %s back online, %d cards synced", self.id, synced)
        self.offline = False
        return synced

    def _unsynced_cards(self) -> list[QueueEntry]:
        return [entry for entry in self.queue.unsynced() if entry.card_id not in self._orphaned]

    async def _push_states(self) -> tuple[int, bool]:
        synced = 0
        for entry in self._unsynced_cards():
            try:
                await self.stores.cards.update_card(entry.card_id, entry.state)
            except TransientStoreFailure as exc:
                self._go_offline(exc)
                return synced, False
            except NotFound:
                self._orphaned.add(entry.card_id)
                logger.error("Dropping unsynced state for missing card %s", entry.card_id)
                continue
            self.queue.mark_synced(entry.card_id)
            synced += 1

        while self._pending_records:
            try:
                await self.stores.history.append_review_record(self._pending_records[0])
            except TransientStoreFailure as exc:
                self._go_offline(exc)
                return synced, False
            except KodaError as exc:
                logger.error("Dropping pending review history: %s", exc)
            self._pending_records.pop(0)
        return synced, True

    async def _flush_reviews(self) -> bool:
        """Post pending reviews oldest first. Returns False if the store is down."""
        while self._pending_records:
            record = self._pending_records[0]
            try:
                await self.stores.history.append_review_record(record)
            except TransientStoreFailure as exc:
                self._go_offline(exc)
                return False
            except NotFound as exc:
                logger.error("Review of card %s rejected: %s", record.card_id, exc)
                self._orphaned.add(record.card_id)
            except KodaError as exc:
                logger.error("Review of card %s rejected: %s", record.card_id, exc)
            self._pending_records.pop(0)
            if not any(pending.card_id == record.card_id for pending in self._pending_records):
                self.queue.mark_synced(record.card_id)
        return True

    async def complete(self) -> StudySessionRecord:
        """Record the session's aggregate results. Runs once.

        A store failure is logged and the locally computed record returned.
        """
        if self.completed:
            return self.record

        now = self.clock()
        cards_studied = self.stats.studied
        cards_correct = self.stats.correct
        total_time = self.stats.elapsed_seconds(now)

        try:
            if not self.persisted:
                created = await self.stores.sessions.create_session(
                    self.record.deck_id, self.record.session_type
                )
                self.record = created
                self.persisted = True
            self.record = await self.stores.sessions.complete_session(
                self.record.id,
                cards_studied=cards_studied,
                cards_correct=cards_correct,
                total_time=total_time,
            )
        except (TransientStoreFailure, NotFound) as exc:
            logger.warning("Could not record completion of session %s: %s", self.id, exc)
            self.record.cards_studied = cards_studied
            self.record.cards_correct = cards_correct
            self.record.total_time = total_time
            self.record.completed_at = now

        self.completed = True
        logger.info(
            "Completed session %s: %d reviews, %d correct (%d%%), %d mastered in %ds",
            self.id,
            self.stats.total_reviews,
            cards_correct,
            self.stats.accuracy,
            cards_studied,
            total_time,
        )
        return self.record

    def abandon(self) -> None:
        """Drop the session without writing anything else."""
        logger.info(
            "Abandoned session %s with %d cards left, %d unsynced",
            self.id,
            len(self.queue),
            len(self.queue.unsynced()),
        )
        self.queue = SessionQueue([])


async def start_session(
    stores: Stores,
    deck_id: str,
    session_type: str | None = None,
    max_cards: int | None = None,
    due_only: bool = False,
    clock: Clock = utcnow,
    processor: ReviewProcessor | None = None,
) -> ReviewSession:
    """Start a new study session for a deck.

    Args:
        stores: Card, history and session stores.
        deck_id: The deck to study.
        session_type: Free-form label stored with the session.
        max_cards: Cap on cards in the session (defaults to settings).
        due_only: Seed with due cards only instead of every unmastered card.
        clock: Source of "now".
        processor: Review processor (defaults to the standard one).

    Returns:
        A ReviewSession ready for use.

    Raises:
        NotFound: the deck does not exist.
    """
    session_type = session_type or settings.default_session_type
    max_cards = settings.max_cards_per_session if max_cards is None else max_cards
    now = clock()

    cards = await stores.cards.list_cards_for_deck(deck_id)
    if due_only:
        selected = select_due(cards, limit=max_cards, now=now)
    else:
        selected = select_for_session(cards, max_cards=max_cards)

    persisted = True
    try:
        record = await stores.sessions.create_session(deck_id, session_type)
    except TransientStoreFailure as exc:
        logger.warning("Could not create session row for deck %s, starting offline: %s", deck_id, exc)
        record = StudySessionRecord(id=f"local-{uuid.uuid4()}", deck_id=deck_id, session_type=session_type)
        persisted = False

    session = ReviewSession(
        record=record,
        queue=SessionQueue(selected, processor=processor),
        stores=stores,
        clock=clock,
        persisted=persisted,
        offline=not persisted,
    )

    logger.info(
        "Started session %s for deck %s: %d of %d cards queued",
        session.id,
        deck_id,
        len(selected),
        len(cards),
    )
    return session
