"""Flashcard model with its scheduling state."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from koda.config import utcnow
from koda.models.base import Base, TimestampMixin


class Card(Base, TimestampMixin):
    """A flashcard in a deck, with the memory state the scheduler maintains."""

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deck_id: Mapped[str] = mapped_column(ForeignKey("decks.id"), nullable=False, index=True)
    front: Mapped[str] = mapped_column(Text, nullable=False)
    back: Mapped[str] = mapped_column(Text, nullable=False)
    hint: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="basic")
    tags: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    stage: Mapped[str] = mapped_column(String(20), nullable=False, default="new")  # new, learning, review, mastered
    interval: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)  # Days
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    next_review_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    consecutive_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    deck: Mapped["Deck"] = relationship(back_populates="cards")  # type: ignore[name-defined] # noqa: F821
    reviews: Mapped[list["ReviewHistory"]] = relationship(back_populates="card", cascade="all, delete-orphan")  # type: ignore[name-defined] # noqa: F821
