import uuid

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from koda.models.base import Base, TimestampMixin


class Deck(Base, TimestampMixin):
    __tablename__ = "decks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tags: Mapped[str] = mapped_column(String(500), nullable=False, default="")  # Comma separated

    cards: Mapped[list["Card"]] = relationship(back_populates="deck", cascade="all, delete-orphan")  # type: ignore[name-defined] # noqa: F821
    sessions: Mapped[list["StudySession"]] = relationship(back_populates="deck", cascade="all, delete-orphan")  # type: ignore[name-defined] # noqa: F821
