"""Shared repository behaviour built on top of the primitive port methods."""

import logging
from datetime import datetime, timezone

from anamnesis.domain.errors import CardNotFound, DeckNotFound
from anamnesis.domain.models import Card, Deck, DeckStats
from anamnesis.domain.ports import DeckRepository

logger = logging.getLogger(__name__)


class BaseDeckRepository(DeckRepository):
    """
    Implements load_card and merge_decks in terms of load/save/delete.

    Subclasses only provide storage primitives.
    """

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def load_card(self, deck_id: str, card_id: str) -> Card:
        _, cards = await self.load_deck(deck_id)
        for card in cards:
            if card.id == card_id:
                return card
        raise CardNotFound(card_id)

    async def merge_decks(self, deck_ids: list[str], new_name: str, new_deck_id: str) -> Deck:
        source_ids = list(dict.fromkeys(deck_ids))
        if new_deck_id in source_ids:
            raise ValueError(f"Merged deck id {new_deck_id} is also a source deck")

        loaded: list[tuple[Deck, list[Card]]] = []
        for deck_id in source_ids:
            try:
                loaded.append(await self.load_deck(deck_id))
            except DeckNotFound:
                logger.warning(f"Skipping unknown deck {deck_id} in merge")

        if not loaded:
            raise DeckNotFound(", ".join(deck_ids))

        cards_by_id: dict[str, Card] = {}
        for _, cards in loaded:
            for card in cards:
                cards_by_id.setdefault(card.id, card)
        cards = list(cards_by_id.values())

        now = self._now()
        first_deck = loaded[0][0]
        merged = Deck(
            id=new_deck_id,
            name=new_name,
            created_at=now,
            updated_at=now,
            card_ids=tuple(cards_by_id),
            settings=first_deck.settings,
            stats=DeckStats.from_cards(cards),
        )

        # Save first so a failure never leaves the cards without a deck
        await self.save_deck(merged, cards)
        for deck, _ in loaded:
            await self.delete_deck(deck.id)

        logger.info(f"Merged {len(loaded)} decks into {merged.id} with {len(cards)} cards")
        return merged
