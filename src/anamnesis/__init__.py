"""anamnesis: spaced-repetition scheduling engine for flashcard decks."""

from .consts import VERSION

__version__ = VERSION
