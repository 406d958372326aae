"""Review processor: the authoritative card scheduling algorithm.

A stage-based variant of SM-2. Each review either advances the card along
new -> learning -> review -> mastered or demotes it one step, and the
next interval depends on the stage, the quality rating and the card's
ease factor.

Quality scale: 0-5 (0-2 weak, 3 good, 4-5 easy). Whether the answer counts
as a success is decided by ``was_correct``, not by the quality threshold.

Every new interval is clamped to [6 hours, 365 days], so long-lived mastered
cards stop growing once they reach a one-year interval.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta

from koda.srs.errors import InvalidQuality
from koda.srs.memory import (
    CardMemoryState,
    Stage,
    clamp_ease,
    clamp_interval,
    days,
    to_days,
)
from koda.srs.outcome import MAX_QUALITY, MIN_QUALITY, ReviewOutcome, ReviewRecord

logger = logging.getLogger(__name__)

# Learning-stage interval growth on success
LEARNING_GROWTH = 1.3

# Graduation thresholds: (consecutive correct, minimum quality)
TO_REVIEW = (2, 3)
TO_MASTERED = ((3, 4), (4, 3))

MASTERED_MIN_DAYS = 7

# Ease adjustments
EASE_BONUS_EASY = 0.1
EASE_BONUS_GOOD = 0.05
EASE_PENALTY_WEAK = 0.1
EASE_PENALTY_FAIL = 0.2

# Failure intervals
LAPSE_INTERVAL = timedelta(days=1)  # review/mastered -> learning
RELEARN_INTERVAL = timedelta(hours=12)  # learning -> new
NEW_RETRY_INTERVAL = timedelta(hours=6)  # new stays new


def _round_days(value: float) -> int:
    """Round a day count half-up (0.5 -> 1), not to even."""
    return math.floor(value + 0.5)


class ReviewProcessor:
    """Applies review outcomes to card memory states."""

    def apply(
        self,
        state: CardMemoryState,
        outcome: ReviewOutcome,
        now: datetime,
    ) -> CardMemoryState:
        """Return the state that results from one review.

        Pure: ``state`` is left untouched. Not idempotent, so callers must
        apply each outcome at most once.

        Raises:
            InvalidQuality: if the quality is outside 0..5.
        """
        quality = outcome.quality
        if isinstance(quality, bool) or not isinstance(quality, int) or not (
            MIN_QUALITY <= quality <= MAX_QUALITY
        ):
            raise InvalidQuality(quality)

        if outcome.was_correct:
            new_state = self._on_success(state, quality)
        else:
            new_state = self._on_failure(state)

        interval = clamp_interval(new_state.interval)
        new_state = replace(
            new_state,
            interval=interval,
            next_review_at=now + interval,
            review_count=state.review_count + 1,
        )

        logger.debug(
            "Card %s: %s -> %s, interval %.2f -> %.2f days, ease %.2f -> %.2f",
            outcome.card_id,
            state.stage.value,
            new_state.stage.value,
            state.interval_days,
            new_state.interval_days,
            state.ease_factor,
            new_state.ease_factor,
        )
        return new_state

    def _on_success(self, state: CardMemoryState, quality: int) -> CardMemoryState:
        streak = state.consecutive_correct + 1
        stage = state.stage
        current_days = to_days(state.interval)

        if stage == Stage.NEW:
            stage = Stage.LEARNING
            interval = days(2 if quality >= 4 else 1)
        elif stage == Stage.LEARNING:
            needed_streak, needed_quality = TO_REVIEW
            if streak >= needed_streak and quality >= needed_quality:
                stage = Stage.REVIEW
                interval = days(5 if quality >= 4 else 4)
            else:
                interval = days(max(1, _round_days(current_days * LEARNING_GROWTH)))
        elif stage == Stage.REVIEW:
            if any(streak >= s and quality >= q for s, q in TO_MASTERED):
                stage = Stage.MASTERED
            interval = days(max(1, _round_days(current_days * state.ease_factor)))
        else:
            interval = days(
                max(MASTERED_MIN_DAYS, _round_days(current_days * state.ease_factor))
            )

        if quality >= 4:
            ease = state.ease_factor + EASE_BONUS_EASY
        elif quality == 3:
            ease = state.ease_factor + EASE_BONUS_GOOD
        else:
            ease = state.ease_factor - EASE_PENALTY_WEAK

        return replace(
            state,
            stage=stage,
            interval=interval,
            ease_factor=clamp_ease(ease),
            consecutive_correct=streak,
        )

    def _on_failure(self, state: CardMemoryState) -> CardMemoryState:
        if state.stage in (Stage.MASTERED, Stage.REVIEW):
            stage, interval = Stage.LEARNING, LAPSE_INTERVAL
        elif state.stage == Stage.LEARNING:
            stage, interval = Stage.NEW, RELEARN_INTERVAL
        else:
            stage, interval = Stage.NEW, NEW_RETRY_INTERVAL

        return replace(
            state,
            stage=stage,
            interval=interval,
            ease_factor=clamp_ease(state.ease_factor - EASE_PENALTY_FAIL),
            consecutive_correct=0,
        )


def build_review_record(
    outcome: ReviewOutcome,
    before: CardMemoryState,
    after: CardMemoryState,
    now: datetime,
) -> ReviewRecord:
    """Build the history entry for an applied review."""
    return ReviewRecord(
        card_id=outcome.card_id,
        session_id=outcome.session_id,
        quality=outcome.quality,
        response_time_ms=outcome.response_time_ms,
        was_correct=outcome.was_correct,
        interval_before=before.interval_days,
        interval_after=after.interval_days,
        reviewed_at=now,
    )
