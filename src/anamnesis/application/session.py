"""
Review session controller.

Drives one study session over a deck: builds the queue through the
scheduler, applies each rating with the update algorithm and hands the
result to the storage adapter. A card is only considered reviewed once the
adapter has accepted it, so a failed write never skips or loses progress.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from anamnesis.domain.constants import SECONDS_PER_DAY
from anamnesis.domain.errors import CardNotFound, SessionStateError
from anamnesis.domain.models import Card, Deck, DeckStats, Rating, ReviewRecord
from anamnesis.domain.ports import DeckRepository, UpdateAlgorithm

from .algorithms import SimplifiedFsrs
from .scheduler import DeckScheduler

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    GRADING = "grading"
    COMPLETE = "complete"


class CardLocks:
    """
    One asyncio.Lock per card id.

    Share a single registry between sessions so two ratings of the same card
    are applied one after the other.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def for_card(self, card_id: str) -> asyncio.Lock:
        lock = self._locks.get(card_id)
        if lock is None:
            lock = self._locks[card_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of one accepted rating."""

    card: Card
    interval_days: int
    completed: bool


@dataclass(frozen=True)
class SessionSummary:
    deck_id: str | None
    started_at: datetime | None
    finished_at: datetime | None
    queued: int
    reviewed: int
    aborted: bool
    stats: DeckStats | None


class ReviewSession:
    """
    State machine: IDLE -> IN_PROGRESS -> (GRADING -> IN_PROGRESS)* -> COMPLETE.

    Follows Dependency Inversion: depends on the DeckRepository and
    UpdateAlgorithm abstractions, not concrete implementations.
    """

    def __init__(
        self,
        repository: DeckRepository,
        algorithm: UpdateAlgorithm | None = None,
        scheduler: DeckScheduler | None = None,
        locks: CardLocks | None = None,
    ):
        """
        Args:
            repository: Storage adapter (port) that receives every reviewed card.
            algorithm: Update strategy; SimplifiedFsrs if not provided.
            scheduler: Queue builder; default DeckScheduler if not provided.
            locks: Per-card lock registry, shared with other sessions.
        """
        self._repo = repository
        self._algorithm = algorithm or SimplifiedFsrs()
        self._scheduler = scheduler or DeckScheduler()
        self._locks = locks if locks is not None else CardLocks()

        self.state = SessionState.IDLE
        self.card_index = 0
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None

        self._deck: Deck | None = None
        self._cards: dict[str, Card] = {}
        self._queue: list[str] = []
        self._reviewed = 0
        self._aborted = False
        self._abort_requested = False
        self._grading_done = asyncio.Event()
        self._grading_done.set()
        self._finish_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def deck(self) -> Deck | None:
        return self._deck

    @property
    def cards(self) -> list[Card]:
        """Every card of the deck, with ratings from this session applied."""
        return list(self._cards.values())

    @property
    def queue(self) -> list[Card]:
        return [self._cards[card_id] for card_id in self._queue]

    @property
    def remaining(self) -> int:
        return len(self._queue) - self.card_index

    def summary(self) -> SessionSummary:
        return SessionSummary(
            deck_id=self._deck.id if self._deck else None,
            started_at=self.started_at,
            finished_at=self.finished_at,
            queued=len(self._queue),
            reviewed=self._reviewed,
            aborted=self._aborted,
            stats=self._deck.stats if self._deck else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, deck: Deck, cards: list[Card], now: datetime) -> list[Card]:
        """
        Build the study queue and begin the session.

        An empty queue completes the session immediately; nothing is persisted.

        Returns:
            The study queue (possibly empty).
        """
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"Cannot start a session that is {self.state.value}")

        queue = self._scheduler.get_cards_to_study(deck, cards, now)
        self._deck = deck
        self._cards = {card.id: card for card in cards}
        self._queue = [card.id for card in queue]
        self.started_at = now
        self.card_index = 0

        if not queue:
            self.state = SessionState.COMPLETE
            self.finished_at = now
            logger.info(f"[session] deck={deck.id} nothing to review")
        else:
            self.state = SessionState.IN_PROGRESS
            logger.info(f"[session] deck={deck.id} started with {len(queue)} cards")
        return queue

    def present_card(self) -> Card:
        """Return the card awaiting a rating. Does not change session state."""
        if self.state not in (SessionState.IN_PROGRESS, SessionState.GRADING):
            raise SessionStateError(f"No card to present: session is {self.state.value}")
        if self.card_index >= len(self._queue):
            raise SessionStateError("All cards have been rated; call complete()")
        return self._cards[self._queue[self.card_index]]

    async def record_rating(
        self,
        card_id: str,
        rating: Rating | int,
        time_taken_ms: int,
        now: datetime,
    ) -> ReviewOutcome:
        """
        Apply a rating to the current card and persist it.

        The session advances only after the repository accepts the card. If
        persisting fails, the repository's exception propagates and the session
        stays on the same card, so the identical call can be retried.

        After the last card the deck stats are recomputed and saved. If that
        save fails, the error propagates and complete() can be called again.

        Raises:
            InvalidRating: rating outside 0-3.
            SessionStateError: session not in progress, or card_id is not the current card.
            CardNotFound: card_id is not part of this session's deck.
        """
        rating = Rating.parse(rating)
        if time_taken_ms < 0:
            raise ValueError(f"time_taken_ms must be non-negative, got {time_taken_ms}")
        self._check_current(card_id)

        async with self._locks.for_card(card_id):
            # Another call may have rated this card while we waited for the lock.
            self._check_current(card_id)

            self.state = SessionState.GRADING
            self._grading_done.clear()
            try:
                # Other sessions may have rated the card since start(); build on the stored copy
                card = await self._repo.load_card(self._deck.id, card_id)
                elapsed_days = max(0.0, (now - card.reference_time).total_seconds() / SECONDS_PER_DAY)
                result = self._algorithm.update(card.learning, rating, elapsed_days)
                learning = result.state.scheduled(now, result.interval_days)
                updated = card.with_review(
                    learning,
                    ReviewRecord(timestamp=now, rating=rating, time_taken_ms=time_taken_ms),
                )
                await self._repo.persist_card(self._deck.id, updated)
            except Exception as e:
                logger.warning(f"[session] deck={self._deck.id} card={card_id} not persisted: {e}")
                raise
            else:
                self._cards[card_id] = updated
                self.card_index += 1
                self._reviewed += 1
            finally:
                self.state = SessionState.IN_PROGRESS
                self._grading_done.set()

        logger.info(
            f"[session] card={card_id} rated {rating.label} -> "
            f"{result.interval_days}d ({learning.status.value})"
        )

        if self.card_index >= len(self._queue):
            await self._finish(now, aborted=False)

        return ReviewOutcome(
            card=updated,
            interval_days=result.interval_days,
            completed=self.state is SessionState.COMPLETE,
        )

    async def complete(self, now: datetime) -> SessionSummary:
        """
        Recompute and save deck stats once every queued card is rated.

        Runs automatically after the last rating; call it directly to retry a
        failed stats save.
        """
        if self.state is SessionState.IDLE:
            raise SessionStateError("Session has not been started")
        if self.state is not SessionState.COMPLETE and self.card_index < len(self._queue):
            raise SessionStateError(f"{self.remaining} cards left; use abort() to stop early")
        return await self._finish(now, aborted=False)

    async def abort(self, now: datetime) -> SessionSummary:
        """
        Stop the session between cards.

        A rating that is currently being persisted finishes first. Ratings
        already persisted are kept; deck stats are recomputed and saved.
        """
        if self.state is SessionState.IDLE:
            raise SessionStateError("Session has not been started")
        if self.state is SessionState.COMPLETE:
            return self.summary()

        self._abort_requested = True
        await self._grading_done.wait()
        return await self._finish(now, aborted=self.card_index < len(self._queue))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_current(self, card_id: str) -> None:
        if self.state is not SessionState.IN_PROGRESS:
            raise SessionStateError(f"Cannot record a rating: session is {self.state.value}")
        if self._abort_requested:
            raise SessionStateError("Session is being aborted")
        if card_id not in self._cards:
            raise CardNotFound(card_id)
        if self.card_index >= len(self._queue):
            raise SessionStateError("All cards have been rated; call complete()")
        expected = self._queue[self.card_index]
        if card_id != expected:
            raise SessionStateError(f"Card {card_id} is not the current card (expected {expected})")

    async def _finish(self, now: datetime, aborted: bool) -> SessionSummary:
        async with self._finish_lock:
            if self.state is SessionState.COMPLETE:
                return self.summary()

            if self._reviewed:
                # Stored cards include ratings committed by other sessions
                deck, cards = await self._repo.load_deck(self._deck.id)
                deck = deck.with_stats(self._scheduler.recompute_stats(deck, cards))
                await self._repo.save_deck(deck, cards)
                self._deck = deck
                self._cards.update((card.id, card) for card in cards)

            self.state = SessionState.COMPLETE
            self.finished_at = now
            self._aborted = aborted
            logger.info(
                f"[session] deck={self._deck.id} {'aborted' if aborted else 'complete'}: "
                f"{self._reviewed}/{len(self._queue)} reviewed"
            )
            return self.summary()
