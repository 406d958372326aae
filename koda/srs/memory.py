"""Per-card memory state for the review scheduler.

Key concepts:
- Stage: coarse progress bucket (new -> learning -> review -> mastered).
- Interval: time until the card is next due. Held as a ``timedelta`` and
  only converted to days at the edges (store rows, API payloads, logs).
- Ease factor: multiplier applied to the interval on success once a card
  has reached the review stage.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from koda.config import utcnow

# Ease bounds
MIN_EASE = 1.3
MAX_EASE = 2.8
DEFAULT_EASE = 2.5

# Interval bounds
MIN_INTERVAL = timedelta(hours=6)
MAX_INTERVAL = timedelta(days=365)
DEFAULT_INTERVAL = timedelta(days=1)

ONE_DAY = timedelta(days=1)


class Stage(str, Enum):
    """Coarse learning progress of a card."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    MASTERED = "mastered"


def days(value: float) -> timedelta:
    """Convert a day count (possibly fractional) to a duration."""
    return timedelta(days=value)


def to_days(interval: timedelta) -> float:
    """Convert a duration back to a (possibly fractional) day count."""
    return interval / ONE_DAY


def clamp_ease(value: float) -> float:
    """Clamp an ease factor to [MIN_EASE, MAX_EASE]."""
    return max(MIN_EASE, min(MAX_EASE, round(value, 4)))


def clamp_interval(interval: timedelta) -> timedelta:
    """Clamp an interval to [MIN_INTERVAL, MAX_INTERVAL]."""
    return max(MIN_INTERVAL, min(MAX_INTERVAL, interval))


@dataclass
class CardMemoryState:
    """The scheduling-relevant state of a card."""

    stage: Stage
    interval: timedelta
    ease_factor: float
    consecutive_correct: int  # Unbroken correct answers, 0 after any miss
    review_count: int  # Total reviews ever applied
    next_review_at: datetime

    @property
    def interval_days(self) -> float:
        return to_days(self.interval)


def new_card_state(now: datetime | None = None) -> CardMemoryState:
    """Return the state of a freshly created card, due immediately."""
    return CardMemoryState(
        stage=Stage.NEW,
        interval=DEFAULT_INTERVAL,
        ease_factor=DEFAULT_EASE,
        consecutive_correct=0,
        review_count=0,
        next_review_at=now or utcnow(),
    )


@dataclass
class StudyCard:
    """A card as the scheduler sees it: identity, ordering key and memory state."""

    id: str
    deck_id: str
    state: CardMemoryState
    created_at: datetime = field(default_factory=utcnow)
    front: str = ""
    back: str = ""
