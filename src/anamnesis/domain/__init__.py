# Domain Package
from .errors import (
    AnamnesisError,
    CardNotFound,
    DeckNotFound,
    InvalidRating,
    PersistenceFailure,
    SessionStateError,
)
from .models import (
    Card,
    CardStatus,
    Deck,
    DeckSettings,
    DeckStats,
    LearningState,
    Rating,
    ReviewRecord,
    initialize_card,
)
from .ports import DeckRepository, UpdateAlgorithm, UpdateResult

__all__ = [
    "AnamnesisError",
    "CardNotFound",
    "DeckNotFound",
    "InvalidRating",
    "PersistenceFailure",
    "SessionStateError",
    "Card",
    "CardStatus",
    "Deck",
    "DeckSettings",
    "DeckStats",
    "LearningState",
    "Rating",
    "ReviewRecord",
    "initialize_card",
    "DeckRepository",
    "UpdateAlgorithm",
    "UpdateResult",
]
