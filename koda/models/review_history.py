from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from koda.config import utcnow
from koda.models.base import Base


class ReviewHistory(Base):
    __tablename__ = "review_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    card_id: Mapped[str] = mapped_column(ForeignKey("cards.id"), nullable=False, index=True)
    session_id: Mapped[str | None] = mapped_column(ForeignKey("study_sessions.id"), nullable=True)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)  # 0-5
    response_time: Mapped[int] = mapped_column(Integer, nullable=False)  # Milliseconds
    was_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    interval_before: Mapped[float] = mapped_column(Float, nullable=False)  # Days
    interval_after: Mapped[float] = mapped_column(Float, nullable=False)  # Days
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    card: Mapped["Card"] = relationship(back_populates="reviews")  # type: ignore[name-defined] # noqa: F821
