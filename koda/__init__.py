"""Koda: spaced-repetition scheduling for flashcard study sessions."""

__version__ = "0.1.0"
