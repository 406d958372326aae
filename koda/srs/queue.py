"""In-session card queue.

Holds the working set of one study session and decides which card comes
next. Cards rotate round-robin until they reach the mastered stage, at
which point they graduate out of the queue. The session is complete when
the queue is empty.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from koda.config import utcnow
from koda.srs.errors import InvalidOutcome, SessionComplete
from koda.srs.memory import CardMemoryState, Stage, StudyCard
from koda.srs.outcome import ReviewOutcome, ReviewRecord
from koda.srs.processor import ReviewProcessor, build_review_record

logger = logging.getLogger(__name__)

# Progress contributed by a card at each stage
STAGE_WEIGHTS: dict[Stage, float] = {
    Stage.NEW: 0.0,
    Stage.LEARNING: 0.25,
    Stage.REVIEW: 0.6,
    Stage.MASTERED: 1.0,
}


@dataclass
class QueueEntry:
    """A card in the session queue, with its in-session bookkeeping."""

    card: StudyCard
    review_count_in_session: int = 0
    synced: bool = True  # False while the latest local state is not persisted

    @property
    def card_id(self) -> str:
        return self.card.id

    @property
    def state(self) -> CardMemoryState:
        return self.card.state


@dataclass
class SubmitResult:
    """What happened to the current entry after a review."""

    entry: QueueEntry
    removed: bool
    state_before: CardMemoryState
    record: ReviewRecord


class SessionQueue:
    """Mutable, ordered set of cards for one study session."""

    def __init__(
        self,
        cards: Iterable[StudyCard],
        processor: ReviewProcessor | None = None,
    ) -> None:
        """Seed the queue from a snapshot of cards; it never re-queries."""
        self.processor = processor or ReviewProcessor()
        self._entries: list[QueueEntry] = [QueueEntry(card=card) for card in cards]
        self._graduated: list[QueueEntry] = []
        self._index = 0
        self.initial_size = len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_complete(self) -> bool:
        """Return True once every card has graduated."""
        return not self._entries

    @property
    def entries(self) -> list[QueueEntry]:
        return list(self._entries)

    @property
    def graduated(self) -> list[QueueEntry]:
        return list(self._graduated)

    def current(self) -> QueueEntry | None:
        """Return the entry to present next, or None if the session is complete."""
        if not self._entries:
            return None
        return self._entries[self._index]

    def submit_review(
        self,
        outcome: ReviewOutcome,
        now: datetime | None = None,
    ) -> SubmitResult:
        """Apply a review to the current entry and move the queue on.

        Mastered cards leave the queue; every other card stays and the
        pointer advances, wrapping to the start.

        Raises:
            SessionComplete: if the queue is already empty.
            InvalidOutcome: if the outcome is for a different card.
        """
        entry = self.current()
        if entry is None:
            raise SessionComplete("No cards left in this session")
        if outcome.card_id != entry.card_id:
            raise InvalidOutcome(
                f"Outcome is for card {outcome.card_id}, current card is {entry.card_id}"
            )
        now = now or utcnow()

        before = entry.card.state
        after = self.processor.apply(before, outcome, now)
        entry.card.state = after
        entry.review_count_in_session += 1
        entry.synced = False
        record = build_review_record(outcome, before, after, now)

        removed = after.stage == Stage.MASTERED
        if removed:
            self._entries.pop(self._index)
            self._graduated.append(entry)
            if self._index >= len(self._entries):
                self._index = 0
            logger.debug(
                "Card %s graduated after %d reviews, %d left",
                entry.card_id,
                entry.review_count_in_session,
                len(self._entries),
            )
        else:
            self._index = (self._index + 1) % len(self._entries)

        return SubmitResult(entry=entry, removed=removed, state_before=before, record=record)

    def find(self, card_id: str) -> QueueEntry | None:
        """Return the entry for a card, including graduated ones."""
        for entry in self._entries + self._graduated:
            if entry.card_id == card_id:
                return entry
        return None

    def mark_synced(self, card_id: str) -> None:
        entry = self.find(card_id)
        if entry is not None:
            entry.synced = True

    def mark_unsynced(self, card_id: str) -> None:
        entry = self.find(card_id)
        if entry is not None:
            entry.synced = False

    def unsynced(self) -> list[QueueEntry]:
        """Return entries whose latest local state has not been persisted."""
        return [entry for entry in self._entries + self._graduated if not entry.synced]

    def stage_progress(self) -> dict[Stage, int]:
        """Count cards per stage; mastered counts the graduated cards."""
        progress = {stage: 0 for stage in Stage}
        for entry in self._entries:
            if entry.state.stage != Stage.MASTERED:
                progress[entry.state.stage] += 1
        progress[Stage.MASTERED] = len(self._graduated)
        return progress

    def weighted_progress(self) -> float:
        """Return session progress as a percentage, weighting cards by stage."""
        if self.initial_size == 0:
            return 0.0
        total = len(self._graduated) * STAGE_WEIGHTS[Stage.MASTERED]
        total += sum(STAGE_WEIGHTS[entry.state.stage] for entry in self._entries)
        return min(100.0, total / self.initial_size * 100)
