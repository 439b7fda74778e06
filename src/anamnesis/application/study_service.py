"""
Study Service: application layer orchestrator.

Coordinates loading decks from the repository, building study queues,
opening review sessions and keeping deck stats in sync with the cards.
"""

import logging
from datetime import datetime
from typing import Iterable

from anamnesis.domain.errors import CardNotFound
from anamnesis.domain.models import Card, Deck, DeckSettings, DeckStats, initialize_card
from anamnesis.domain.ports import DeckRepository, UpdateAlgorithm

from .algorithms import SimplifiedFsrs
from .id_service import generate_card_id, generate_deck_id
from .scheduler import DeckScheduler, DueCounts
from .session import CardLocks, ReviewSession

logger = logging.getLogger(__name__)


def find_card(cards: Iterable[Card], card_id: str) -> Card:
    for card in cards:
        if card.id == card_id:
            return card
    raise CardNotFound(card_id)


class StudyService:
    """
    Application service for decks and study sessions.

    Follows Dependency Inversion: depends on the DeckRepository and
    UpdateAlgorithm abstractions, not concrete adapter implementations.
    """

    def __init__(
        self,
        repository: DeckRepository,
        algorithm: UpdateAlgorithm | None = None,
        scheduler: DeckScheduler | None = None,
        locks: CardLocks | None = None,
        default_settings: DeckSettings | None = None,
    ):
        """
        Args:
            repository: The repository (port) for decks and cards.
            algorithm: Optional update strategy; SimplifiedFsrs if not provided.
            scheduler: Optional custom scheduler; uses default if not provided.
            locks: Per-card lock registry; every session opened here shares it.
            default_settings: Quotas for decks created through this service.
        """
        self._repo = repository
        self._algorithm = algorithm or SimplifiedFsrs()
        self._scheduler = scheduler or DeckScheduler()
        self._locks = locks if locks is not None else CardLocks()
        self._default_settings = default_settings or DeckSettings()

    @property
    def algorithm(self) -> UpdateAlgorithm:
        return self._algorithm

    @property
    def scheduler(self) -> DeckScheduler:
        return self._scheduler

    async def load_deck(self, deck_id: str) -> tuple[Deck, list[Card]]:
        return await self._repo.load_deck(deck_id)

    # --- Sessions ---

    def new_session(self) -> ReviewSession:
        return ReviewSession(
            self._repo,
            algorithm=self._algorithm,
            scheduler=self._scheduler,
            locks=self._locks,
        )

    async def start_session(self, deck_id: str, now: datetime) -> ReviewSession:
        """
        Load a deck and start a review session over today's queue.

        The returned session may already be complete when nothing is due.
        """
        deck, cards = await self._repo.load_deck(deck_id)
        session = self.new_session()
        session.start(deck, cards, now)
        return session

    # --- Queries ---

    async def due_cards(self, deck_id: str, now: datetime) -> list[Card]:
        deck, cards = await self._repo.load_deck(deck_id)
        return self._scheduler.get_cards_to_study(deck, cards, now)

    async def due_counts(self, deck_id: str, now: datetime) -> DueCounts:
        deck, cards = await self._repo.load_deck(deck_id)
        return self._scheduler.count_due(deck, cards, now)

    async def deck_stats(self, deck_id: str) -> DeckStats:
        """Stats recomputed from the cards, without saving them."""
        deck, cards = await self._repo.load_deck(deck_id)
        return self._scheduler.recompute_stats(deck, cards)

    async def refresh_stats(self, deck_id: str) -> Deck:
        """Recompute deck stats from the cards and save the deck."""
        deck, cards = await self._repo.load_deck(deck_id)
        deck = deck.with_stats(self._scheduler.recompute_stats(deck, cards))
        await self._repo.save_deck(deck, cards)
        return deck

    # --- Deck lifecycle ---

    async def create_deck(
        self,
        name: str,
        now: datetime,
        settings: DeckSettings | None = None,
    ) -> Deck:
        deck = Deck.create(generate_deck_id(), name, now, settings or self._default_settings)
        await self._repo.save_deck(deck, [])
        logger.info(f"Created deck {deck.id} ({name})")
        return deck

    async def add_card(
        self,
        deck_id: str,
        question: str,
        answer: str,
        now: datetime,
        tags: Iterable[str] = (),
    ) -> Card:
        """Create a new card at the end of the deck."""
        deck, cards = await self._repo.load_deck(deck_id)
        card = initialize_card(generate_card_id(), now, question=question, answer=answer, tags=tags)
        cards = [*cards, card]
        deck = deck.with_cards([card.id], now)
        deck = deck.with_stats(self._scheduler.recompute_stats(deck, cards))
        await self._repo.save_deck(deck, cards)
        return card

    async def list_decks(self) -> list[Deck]:
        return await self._repo.list_decks()

    async def merge_decks(self, deck_ids: list[str], new_name: str) -> Deck:
        deck = await self._repo.merge_decks(deck_ids, new_name, generate_deck_id())
        logger.info(f"Merged {len(deck_ids)} decks into {deck.id} ({new_name})")
        return deck

    async def delete_deck(self, deck_id: str) -> None:
        await self._repo.delete_deck(deck_id)
        logger.info(f"Deleted deck {deck_id}")
