"""Tests for the scheduling core: memory model, review processor, outcomes and due selection."""

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from koda.srs.due import is_due, select_due, select_for_session
from koda.srs.errors import InvalidOutcome, InvalidQuality
from koda.srs.memory import (
    MAX_EASE,
    MAX_INTERVAL,
    MIN_EASE,
    MIN_INTERVAL,
    CardMemoryState,
    Stage,
    StudyCard,
    clamp_ease,
    clamp_interval,
    days,
    new_card_state,
    to_days,
)
from koda.srs.outcome import PAW_TO_QUALITY, PawRating, ReviewOutcome, outcome_from_paw
from koda.srs.processor import ReviewProcessor, build_review_record

NOW = datetime(2026, 1, 1, 12, 0)


def make_state(
    stage: Stage = Stage.NEW,
    interval: float = 1.0,
    ease: float = 2.5,
    streak: int = 0,
    reviews: int = 0,
) -> CardMemoryState:
    return CardMemoryState(
        stage=stage,
        interval=days(interval),
        ease_factor=ease,
        consecutive_correct=streak,
        review_count=reviews,
        next_review_at=NOW,
    )


def outcome(quality: int, correct: bool, card_id: str = "c1") -> ReviewOutcome:
    return ReviewOutcome(card_id=card_id, quality=quality, response_time_ms=1500, was_correct=correct)


# --- Memory model ---


class TestMemoryModel:
    def test_new_card_state(self) -> None:
        state = new_card_state(NOW)
        assert state.stage == Stage.NEW
        assert state.interval_days == 1.0
        assert state.ease_factor == 2.5
        assert state.consecutive_correct == 0
        assert state.review_count == 0
        assert state.next_review_at == NOW

    def test_day_conversions(self) -> None:
        assert days(0.25) == timedelta(hours=6)
        assert days(0.5) == timedelta(hours=12)
        assert to_days(timedelta(hours=6)) == 0.25
        assert to_days(days(13)) == 13.0

    def test_clamp_ease(self) -> None:
        assert clamp_ease(1.0) == MIN_EASE
        assert clamp_ease(3.5) == MAX_EASE
        assert clamp_ease(2.0) == 2.0

    def test_clamp_interval(self) -> None:
        assert clamp_interval(timedelta(hours=1)) == MIN_INTERVAL
        assert clamp_interval(days(1000)) == MAX_INTERVAL
        assert clamp_interval(days(3)) == days(3)


# --- Review processor ---


class TestReviewProcessor:
    def setup_method(self) -> None:
        self.processor = ReviewProcessor()

    def test_new_easy_goes_to_learning_two_days(self) -> None:
        result = self.processor.apply(make_state(), outcome(4, True), NOW)
        assert result.stage == Stage.LEARNING
        assert result.interval_days == 2
        assert result.consecutive_correct == 1
        assert result.ease_factor == pytest.approx(2.6)
        assert result.next_review_at == NOW + timedelta(days=2)
        assert result.review_count == 1

    def test_new_good_goes_to_learning_one_day(self) -> None:
        result = self.processor.apply(make_state(), outcome(3, True), NOW)
        assert result.stage == Stage.LEARNING
        assert result.interval_days == 1
        assert result.ease_factor == pytest.approx(2.55)

    def test_learning_graduates_to_review(self) -> None:
        state = make_state(Stage.LEARNING, interval=1, ease=2.5, streak=1)
        result = self.processor.apply(state, outcome(4, True), NOW)
        assert result.stage == Stage.REVIEW
        assert result.interval_days == 5
        assert result.ease_factor == pytest.approx(2.6)
        assert result.consecutive_correct == 2

    def test_learning_graduates_with_good(self) -> None:
        state = make_state(Stage.LEARNING, interval=1, streak=1)
        result = self.processor.apply(state, outcome(3, True), NOW)
        assert result.stage == Stage.REVIEW
        assert result.interval_days == 4

    def test_learning_stays_without_streak(self) -> None:
        state = make_state(Stage.LEARNING, interval=2, streak=0)
        result = self.processor.apply(state, outcome(4, True), NOW)
        assert result.stage == Stage.LEARNING
        assert result.interval_days == 3  # round(2 * 1.3)

    def test_learning_weak_success_stays(self) -> None:
        state = make_state(Stage.LEARNING, interval=1, streak=1)
        result = self.processor.apply(state, outcome(2, True), NOW)
        assert result.stage == Stage.LEARNING
        assert result.interval_days == 1
        assert result.consecutive_correct == 2
        assert result.ease_factor == pytest.approx(2.4)

    def test_learning_interval_never_below_one_day(self) -> None:
        state = make_state(Stage.LEARNING, interval=0.5)
        result = self.processor.apply(state, outcome(4, True), NOW)
        assert result.interval_days == 1

    def test_review_to_mastered_on_easy_streak(self) -> None:
        state = make_state(Stage.REVIEW, interval=5, ease=2.5, streak=2)
        result = self.processor.apply(state, outcome(4, True), NOW)
        assert result.stage == Stage.MASTERED
        # 5 * 2.5 = 12.5 rounds half-up to 13, using the ease before adjustment
        assert result.interval_days == 13
        assert result.ease_factor == pytest.approx(2.6)

    def test_review_good_needs_longer_streak(self) -> None:
        state = make_state(Stage.REVIEW, interval=5, streak=2)
        result = self.processor.apply(state, outcome(3, True), NOW)
        assert result.stage == Stage.REVIEW
        assert result.interval_days == 13

        state = make_state(Stage.REVIEW, interval=5, streak=3)
        result = self.processor.apply(state, outcome(3, True), NOW)
        assert result.stage == Stage.MASTERED

    def test_mastered_interval_floor(self) -> None:
        state = make_state(Stage.MASTERED, interval=2, ease=1.3, streak=5)
        result = self.processor.apply(state, outcome(3, True), NOW)
        assert result.stage == Stage.MASTERED
        assert result.interval_days == 7

    def test_mastered_interval_capped(self) -> None:
        state = make_state(Stage.MASTERED, interval=300, ease=2.8, streak=5)
        result = self.processor.apply(state, outcome(5, True), NOW)
        assert result.interval == MAX_INTERVAL

    def test_mastered_failure_demotes_to_learning(self) -> None:
        state = make_state(Stage.MASTERED, interval=30, ease=2.5, streak=6)
        result = self.processor.apply(state, outcome(1, False), NOW)
        assert result.stage == Stage.LEARNING
        assert result.interval_days == 1
        assert result.consecutive_correct == 0
        assert result.ease_factor == pytest.approx(2.3)

    def test_review_failure_demotes_to_learning(self) -> None:
        state = make_state(Stage.REVIEW, interval=10, streak=2)
        result = self.processor.apply(state, outcome(2, False), NOW)
        assert result.stage == Stage.LEARNING
        assert result.interval_days == 1

    def test_learning_failure_demotes_to_new(self) -> None:
        state = make_state(Stage.LEARNING, interval=3, streak=1)
        result = self.processor.apply(state, outcome(0, False), NOW)
        assert result.stage == Stage.NEW
        assert result.interval == timedelta(hours=12)
        assert result.next_review_at == NOW + timedelta(hours=12)

    def test_new_failure_stays_new(self) -> None:
        result = self.processor.apply(new_card_state(NOW), outcome(1, False), NOW)
        assert result.stage == Stage.NEW
        assert result.interval_days == 0.25
        assert result.next_review_at == NOW + timedelta(hours=6)
        assert result.review_count == 1

    def test_failure_trusts_was_correct_over_quality(self) -> None:
        result = self.processor.apply(make_state(Stage.REVIEW, streak=3), outcome(5, False), NOW)
        assert result.stage == Stage.LEARNING

    def test_ease_stays_at_bounds(self) -> None:
        high = self.processor.apply(make_state(Stage.REVIEW, ease=2.8), outcome(5, True), NOW)
        assert high.ease_factor == MAX_EASE
        low = self.processor.apply(make_state(Stage.REVIEW, ease=1.35), outcome(1, False), NOW)
        assert low.ease_factor == MIN_EASE

    def test_apply_is_pure(self) -> None:
        state = make_state(Stage.LEARNING, streak=1)
        snapshot = replace(state)
        self.processor.apply(state, outcome(4, True), NOW)
        assert state == snapshot

    def test_apply_is_not_idempotent(self) -> None:
        state = make_state(Stage.REVIEW, interval=4, streak=0)
        once = self.processor.apply(state, outcome(3, True), NOW)
        twice = self.processor.apply(once, outcome(3, True), NOW)
        assert twice.interval > once.interval
        assert twice.review_count == 2

    def test_invalid_quality_rejected(self) -> None:
        bad = ReviewOutcome.model_construct(
            card_id="c1", quality=6, response_time_ms=0, was_correct=True, session_id=None
        )
        with pytest.raises(InvalidQuality):
            self.processor.apply(make_state(), bad, NOW)

    def test_bounds_hold_for_every_input(self) -> None:
        """Ease and interval invariants over all stages, qualities and branches."""
        for stage in Stage:
            for quality in range(6):
                for correct in (True, False):
                    for ease in (1.3, 2.0, 2.5, 2.8):
                        for interval in (0.25, 1, 7, 90):
                            state = make_state(stage, interval=interval, ease=ease, streak=3)
                            result = self.processor.apply(state, outcome(quality, correct), NOW)
                            assert MIN_EASE <= result.ease_factor <= MAX_EASE
                            assert MIN_INTERVAL <= result.interval <= MAX_INTERVAL
                            if not correct:
                                assert result.consecutive_correct == 0
                            elif result.stage in (Stage.REVIEW, Stage.MASTERED):
                                assert result.interval_days >= 1
                            if correct and stage == Stage.MASTERED:
                                assert result.interval_days >= 7

    def test_build_review_record(self) -> None:
        before = make_state(Stage.LEARNING, interval=1, streak=1)
        review = ReviewOutcome(
            card_id="c9", quality=4, response_time_ms=800, was_correct=True, session_id="s1"
        )
        after = self.processor.apply(before, review, NOW)
        record = build_review_record(review, before, after, NOW)
        assert record.card_id == "c9"
        assert record.session_id == "s1"
        assert record.interval_before == 1
        assert record.interval_after == 5
        assert record.reviewed_at == NOW


# --- Outcomes ---


class TestReviewOutcome:
    def test_parse_valid(self) -> None:
        parsed = ReviewOutcome.parse(
            {"card_id": "c1", "quality": 3, "response_time_ms": 1200, "was_correct": True}
        )
        assert parsed.quality == 3
        assert parsed.session_id is None

    @pytest.mark.parametrize("quality", [-1, 6, 99])
    def test_parse_quality_out_of_range(self, quality: int) -> None:
        with pytest.raises(InvalidQuality):
            ReviewOutcome.parse(
                {"card_id": "c1", "quality": quality, "response_time_ms": 0, "was_correct": True}
            )

    def test_parse_rejects_non_integer_quality(self) -> None:
        with pytest.raises(InvalidQuality):
            ReviewOutcome.parse(
                {"card_id": "c1", "quality": 3.5, "response_time_ms": 0, "was_correct": True}
            )

    def test_parse_rejects_negative_response_time(self) -> None:
        with pytest.raises(InvalidOutcome):
            ReviewOutcome.parse(
                {"card_id": "c1", "quality": 3, "response_time_ms": -5, "was_correct": True}
            )

    def test_parse_rejects_missing_fields(self) -> None:
        with pytest.raises(InvalidOutcome):
            ReviewOutcome.parse({"card_id": "c1", "quality": 3})

    def test_invalid_quality_is_invalid_outcome(self) -> None:
        assert issubclass(InvalidQuality, InvalidOutcome)


class TestPawMapping:
    def test_mapping_table(self) -> None:
        assert PAW_TO_QUALITY == {
            PawRating.AGAIN: (1, False),
            PawRating.HARD: (2, False),
            PawRating.GOOD: (3, True),
            PawRating.EASY: (4, True),
        }

    @pytest.mark.parametrize(
        ("rating", "quality", "correct"),
        [(1, 1, False), (2, 2, False), (3, 3, True), (4, 4, True)],
    )
    def test_outcome_from_paw(self, rating: int, quality: int, correct: bool) -> None:
        mapped = outcome_from_paw("c1", rating, 900, session_id="s1")
        assert mapped.quality == quality
        assert mapped.was_correct is correct
        assert mapped.session_id == "s1"

    @pytest.mark.parametrize("rating", [0, 5, -1])
    def test_outcome_from_paw_out_of_range(self, rating: int) -> None:
        with pytest.raises(InvalidOutcome):
            outcome_from_paw("c1", rating, 900)

    def test_easy_paw_on_new_card(self) -> None:
        result = ReviewProcessor().apply(new_card_state(NOW), outcome_from_paw("c1", 4, 500), NOW)
        assert result.stage == Stage.LEARNING
        assert result.interval_days == 2

    def test_hard_paw_is_a_failure(self) -> None:
        state = make_state(Stage.REVIEW, interval=5, streak=2)
        result = ReviewProcessor().apply(state, outcome_from_paw("c1", 2, 500), NOW)
        assert result.stage == Stage.LEARNING
        assert result.consecutive_correct == 0


# --- Due selection ---


def make_card(
    card_id: str,
    next_review_at: datetime,
    stage: Stage = Stage.REVIEW,
    created_at: datetime = NOW - timedelta(days=30),
) -> StudyCard:
    state = replace(make_state(stage), next_review_at=next_review_at)
    return StudyCard(id=card_id, deck_id="d1", state=state, created_at=created_at)


class TestDueSetSelector:
    def test_only_due_cards_returned(self) -> None:
        cards = [
            make_card("future", NOW + timedelta(days=1)),
            make_card("past", NOW - timedelta(days=1)),
            make_card("now", NOW),
        ]
        result = select_due(cards, now=NOW)
        assert [card.id for card in result] == ["past", "now"]

    def test_new_cards_always_due(self) -> None:
        card = make_card("fresh", NOW + timedelta(days=5), stage=Stage.NEW)
        assert is_due(card, NOW)
        assert select_due([card], now=NOW) == [card]

    def test_ties_broken_by_creation_order(self) -> None:
        cards = [
            make_card("b", NOW, stage=Stage.NEW, created_at=NOW - timedelta(minutes=1)),
            make_card("a", NOW, stage=Stage.NEW, created_at=NOW - timedelta(minutes=2)),
            make_card("c", NOW - timedelta(hours=1)),
        ]
        assert [card.id for card in select_due(cards, now=NOW)] == ["c", "a", "b"]

    def test_limit_applied_after_sort(self) -> None:
        cards = [make_card(f"c{i}", NOW - timedelta(days=i)) for i in range(5)]
        result = select_due(cards, limit=2, now=NOW)
        assert [card.id for card in result] == ["c4", "c3"]

    def test_zero_limit(self) -> None:
        assert select_due([make_card("c", NOW)], limit=0, now=NOW) == []

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            select_due([], limit=-1, now=NOW)

    def test_does_not_mutate(self) -> None:
        cards = [make_card("b", NOW), make_card("a", NOW - timedelta(days=1))]
        before = [replace(card) for card in cards]
        select_due(cards, now=NOW)
        assert cards == before

    def test_session_selection_skips_mastered_only(self) -> None:
        cards = [
            make_card("mastered", NOW - timedelta(days=3), stage=Stage.MASTERED),
            make_card("learning", NOW + timedelta(days=2), stage=Stage.LEARNING),
            make_card("review", NOW - timedelta(days=1)),
        ]
        result = select_for_session(cards, max_cards=10)
        assert [card.id for card in result] == ["review", "learning"]

    def test_session_selection_cap(self) -> None:
        cards = [make_card(f"c{i}", NOW - timedelta(days=i)) for i in range(5)]
        assert len(select_for_session(cards, max_cards=3)) == 3
