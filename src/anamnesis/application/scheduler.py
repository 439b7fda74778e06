"""
Deck scheduler for daily study queues.

Builds ordered study queues by:
1. Collecting due review cards, earliest first, fragile cards first on ties
2. Collecting new cards in creation order
3. Capping both groups at the deck's daily quotas

Ordering is fully deterministic for a given card set and ``now``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

from anamnesis.domain.models import Card, CardStatus, Deck, DeckStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueCounts:
    """Number of cards of each group that today's queue would contain."""

    new: int
    review: int

    @property
    def total(self) -> int:
        return self.new + self.review


class DeckScheduler:
    """
    Selects the day's study queue and aggregates deck statistics.

    Stateless and side-effect free.
    """

    def get_cards_to_study(self, deck: Deck, cards: Sequence[Card], now: datetime) -> list[Card]:
        """
        Return today's study queue: due reviews followed by new cards.

        Args:
            deck: Deck whose settings (quotas) and card order apply.
            cards: The deck's cards. Cards not listed in deck.card_ids are ignored
                when the deck lists any ids.
            now: Reference time for due checks.

        Returns:
            Ordered list of cards; empty when nothing is due.
        """
        position = self._creation_order(deck)
        listed = set(deck.card_ids)
        eligible = [c for c in cards if not listed or c.id in listed]

        due_reviews = sorted(
            (c for c in eligible if c.status is not CardStatus.NEW and c.learning.is_due(now)),
            key=lambda c: (c.learning.next_review, c.learning.stability, position(c)),
        )[: deck.settings.review_cards_per_day]

        new_cards = sorted(
            (c for c in eligible if c.status is CardStatus.NEW),
            key=position,
        )[: deck.settings.new_cards_per_day]

        logger.debug(
            f"[scheduler] deck={deck.id} due_reviews={len(due_reviews)} new={len(new_cards)}"
        )
        return due_reviews + new_cards

    def count_due(self, deck: Deck, cards: Sequence[Card], now: datetime) -> DueCounts:
        queue = self.get_cards_to_study(deck, cards, now)
        new = sum(1 for c in queue if c.status is CardStatus.NEW)
        return DueCounts(new=new, review=len(queue) - new)

    def recompute_stats(self, deck: Deck, cards: Sequence[Card]) -> DeckStats:
        """
        Aggregate deck statistics from the card set.

        Pure: calling it twice with the same cards yields identical stats.
        """
        stats = DeckStats.from_cards(cards)
        logger.debug(
            f"[scheduler] deck={deck.id} total={stats.total} mastered={stats.mastered} "
            f"reviews={stats.total_reviews}"
        )
        return stats

    @staticmethod
    def _creation_order(deck: Deck) -> Callable[[Card], tuple]:
        """
        Sort key for creation order.

        Position in deck.card_ids first; unlisted cards follow by creation time.
        """
        index = {card_id: i for i, card_id in enumerate(deck.card_ids)}
        unlisted = len(index)

        def key(card: Card) -> tuple:
            return (index.get(card.id, unlisted), card.created_at, card.id)

        return key
