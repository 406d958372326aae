import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from koda.models.base import Base, TimestampMixin


class StudySession(Base, TimestampMixin):
    __tablename__ = "study_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deck_id: Mapped[str] = mapped_column(ForeignKey("decks.id"), nullable=False)
    session_type: Mapped[str] = mapped_column(String(50), nullable=False, default="mixed")
    cards_studied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cards_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # Seconds
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    deck: Mapped["Deck"] = relationship(back_populates="sessions")  # type: ignore[name-defined] # noqa: F821
