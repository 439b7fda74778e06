"""Domain error hierarchy.

Validation errors are raised before any state changes. Storage adapters
raise ``PersistenceFailure``; the engine lets it propagate untouched.
"""


class AnamnesisError(Exception):
    """Base class for every error raised by the engine."""


class InvalidRating(AnamnesisError, ValueError):
    """Rating outside {0, 1, 2, 3}."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid rating {value!r}: expected 0 (Again), 1 (Hard), 2 (Good) or 3 (Easy)")


class CardNotFound(AnamnesisError, KeyError):
    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(card_id)

    def __str__(self) -> str:
        return f"Card not found: {self.card_id}"


class DeckNotFound(AnamnesisError, KeyError):
    def __init__(self, deck_id: str):
        self.deck_id = deck_id
        super().__init__(deck_id)

    def __str__(self) -> str:
        return f"Deck not found: {self.deck_id}"


class SessionStateError(AnamnesisError):
    """Operation not allowed in the current review session state."""


class PersistenceFailure(AnamnesisError):
    """A storage adapter could not durably commit a write."""
