"""SQLAlchemy ORM models for the Koda database."""

from koda.models.base import Base
from koda.models.card import Card
from koda.models.deck import Deck
from koda.models.review_history import ReviewHistory
from koda.models.study_session import StudySession

__all__ = ["Base", "Card", "Deck", "ReviewHistory", "StudySession"]
