"""Validated review outcome and history record schemas.

The canonical rating is the 0-5 quality scale. The 1-4 paw rating shown
on study cards is mapped onto it by ``outcome_from_paw`` and nowhere else.
"""

from datetime import datetime
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from koda.srs.errors import InvalidOutcome, InvalidQuality

MIN_QUALITY = 0
MAX_QUALITY = 5


class PawRating(IntEnum):
    """Rating buttons on the study card."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


# Paw rating -> (quality, was_correct)
PAW_TO_QUALITY: dict[PawRating, tuple[int, bool]] = {
    PawRating.AGAIN: (1, False),
    PawRating.HARD: (2, False),
    PawRating.GOOD: (3, True),
    PawRating.EASY: (4, True),
}


class ReviewOutcome(BaseModel):
    """One answer to one card, as submitted by the learner."""

    model_config = ConfigDict(frozen=True, strict=True)

    card_id: str = Field(min_length=1)
    quality: int = Field(ge=MIN_QUALITY, le=MAX_QUALITY)
    response_time_ms: int = Field(ge=0)
    was_correct: bool
    session_id: str | None = None

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "ReviewOutcome":
        """Validate a raw payload, raising InvalidQuality or InvalidOutcome."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            for error in exc.errors():
                if error["loc"] and error["loc"][0] == "quality":
                    raise InvalidQuality(data.get("quality")) from exc
            raise InvalidOutcome(str(exc)) from exc


def outcome_from_paw(
    card_id: str,
    rating: int,
    response_time_ms: int,
    session_id: str | None = None,
) -> ReviewOutcome:
    """Map a 1-4 paw rating onto the canonical outcome."""
    try:
        paw = PawRating(rating)
    except ValueError as exc:
        raise InvalidOutcome(f"Paw rating must be 1..4, got {rating!r}") from exc
    quality, was_correct = PAW_TO_QUALITY[paw]
    return ReviewOutcome.parse(
        {
            "card_id": card_id,
            "quality": quality,
            "response_time_ms": response_time_ms,
            "was_correct": was_correct,
            "session_id": session_id,
        }
    )


class ReviewRecord(BaseModel):
    """Append-only history entry for one applied review."""

    model_config = ConfigDict(frozen=True)

    card_id: str
    session_id: str | None = None
    quality: int
    response_time_ms: int
    was_correct: bool
    interval_before: float  # Days
    interval_after: float  # Days
    reviewed_at: datetime
