"""
Ports (interfaces) for the scheduling engine.

These define the contracts that strategies and storage adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from .models import Card, CardStatus, Deck, LearningState, Rating


@dataclass(frozen=True)
class UpdateResult:
    """New learning state and the interval (days) it was scheduled with."""

    state: LearningState
    interval_days: int


class UpdateAlgorithm(ABC):
    """
    Port for the memory model that turns a rating into a new learning state.

    Implementations:
        - SimplifiedFsrs: exponential forgetting curve, default.
        - Sm2Algorithm: classic SuperMemo-2 with ease factor.
    """

    name: str

    @abstractmethod
    def update(self, state: LearningState, rating: Rating, elapsed_days: float) -> UpdateResult:
        """
        Apply a rating to a learning state.

        Must be pure and deterministic. The returned state keeps the input's
        timestamps; the caller stamps them via LearningState.scheduled().

        Args:
            state: Current learning state.
            rating: Recall rating (raw ints are accepted and validated).
            elapsed_days: Days since the last review (or creation). Must be >= 0.

        Returns:
            UpdateResult with the new state and interval_days >= 1.
        """
        pass

    @abstractmethod
    def determine_status(self, state: LearningState) -> CardStatus:
        """Derive the card status from the memory parameters of ``state``."""
        pass


class DeckRepository(ABC):
    """
    Port for deck and card storage.

    Implementations:
        - InMemoryDeckRepository: process-local dictionaries.
        - YamlDeckRepository: one YAML document per deck on disk.

    Write failures are raised as PersistenceFailure.
    """

    @abstractmethod
    async def load_deck(self, deck_id: str) -> tuple[Deck, list[Card]]:
        """
        Load a deck and its cards, in the deck's card order.

        Raises:
            DeckNotFound: No deck with this id exists.
        """
        pass

    @abstractmethod
    async def load_card(self, deck_id: str, card_id: str) -> Card:
        """
        Load the stored version of one card.

        Raises:
            DeckNotFound: No deck with this id exists.
            CardNotFound: The deck does not hold this card.
        """
        pass

    @abstractmethod
    async def save_deck(self, deck: Deck, cards: list[Card]) -> None:
        """Persist a deck together with its full card set."""
        pass

    @abstractmethod
    async def persist_card(self, deck_id: str, card: Card) -> None:
        """Persist a single card of an existing deck."""
        pass

    @abstractmethod
    async def delete_deck(self, deck_id: str) -> None:
        pass

    @abstractmethod
    async def merge_decks(self, deck_ids: list[str], new_name: str, new_deck_id: str) -> Deck:
        """
        Combine decks into a new deck ``new_deck_id`` and delete the sources.

        Card ids are reassigned to the new deck; card learning state and
        review history are kept as they are.
        """
        pass

    @abstractmethod
    async def list_decks(self) -> list[Deck]:
        pass
