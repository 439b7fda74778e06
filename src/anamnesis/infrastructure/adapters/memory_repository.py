"""
In-memory deck repository.

Keeps decks and cards in process-local dictionaries. Useful for tests and
for embedding the engine where another layer owns durability.
"""

import logging

from anamnesis.domain.errors import CardNotFound, DeckNotFound, PersistenceFailure
from anamnesis.domain.models import Card, Deck

from .base import BaseDeckRepository

logger = logging.getLogger(__name__)


class InMemoryDeckRepository(BaseDeckRepository):
    def __init__(self):
        self._decks: dict[str, Deck] = {}
        self._cards: dict[str, dict[str, Card]] = {}

    async def load_deck(self, deck_id: str) -> tuple[Deck, list[Card]]:
        deck = self._decks.get(deck_id)
        if deck is None:
            raise DeckNotFound(deck_id)
        stored = self._cards[deck_id]
        return deck, [stored[card_id] for card_id in deck.card_ids if card_id in stored]

    async def load_card(self, deck_id: str, card_id: str) -> Card:
        if deck_id not in self._decks:
            raise DeckNotFound(deck_id)
        try:
            return self._cards[deck_id][card_id]
        except KeyError:
            raise CardNotFound(card_id) from None

    async def save_deck(self, deck: Deck, cards: list[Card]) -> None:
        self._decks[deck.id] = deck
        self._cards[deck.id] = {card.id: card for card in cards}
        logger.debug(f"Saved deck {deck.id} ({len(cards)} cards)")

    async def persist_card(self, deck_id: str, card: Card) -> None:
        deck = self._decks.get(deck_id)
        if deck is None:
            raise DeckNotFound(deck_id)
        if card.id not in deck.card_ids:
            raise PersistenceFailure(f"Card {card.id} does not belong to deck {deck_id}")
        self._cards[deck_id][card.id] = card

    async def delete_deck(self, deck_id: str) -> None:
        if deck_id not in self._decks:
            raise DeckNotFound(deck_id)
        del self._decks[deck_id]
        del self._cards[deck_id]

    async def list_decks(self) -> list[Deck]:
        return sorted(self._decks.values(), key=lambda d: (d.created_at, d.id))
