"""
Domain models for cards, decks and their learning state.

These are pure data structures with no I/O or external dependencies.
Every model is frozen: state changes produce new instances, so a failed
step never leaves a half-updated card behind.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Iterable

from .constants import (
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_REVIEW_CARDS_PER_DAY,
    INITIAL_DIFFICULTY,
    INITIAL_EASE_FACTOR,
    INITIAL_INTERVAL,
    INITIAL_STABILITY,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
)
from .errors import InvalidRating


class Rating(IntEnum):
    """Recall rating given by the learner."""

    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @classmethod
    def parse(cls, value: object) -> "Rating":
        """Convert a raw value to a Rating, raising InvalidRating otherwise."""
        if isinstance(value, Rating):
            return value
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRating(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidRating(value) from None

    @property
    def label(self) -> str:
        return self.name.capitalize()


class CardStatus(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    MASTERED = "mastered"


@dataclass(frozen=True)
class LearningState:
    """
    Memory state of a single card.

    Attributes:
        stability: Days until retrievability decays meaningfully. Always > 0.
        difficulty: Intrinsic hardness, clamped to [1, 10].
        interval: Days until the next review. Always >= 1.
        repetitions: Consecutive successful reviews.
        next_review: When the card becomes due.
        status: Produced by the update algorithm alongside stability/interval.
        last_review: Time of the most recent rating, None for a fresh card.
        ease_factor: SM-2 ease; untouched by the FSRS strategy.
    """

    stability: float
    difficulty: float
    interval: int
    repetitions: int
    next_review: datetime
    status: CardStatus
    last_review: datetime | None = None
    ease_factor: float = INITIAL_EASE_FACTOR

    def __post_init__(self):
        if not self.stability > 0:
            raise ValueError(f"stability must be positive, got {self.stability}")
        if not MIN_DIFFICULTY <= self.difficulty <= MAX_DIFFICULTY:
            raise ValueError(f"difficulty must be within [1, 10], got {self.difficulty}")
        if self.interval < 1:
            raise ValueError(f"interval must be at least 1 day, got {self.interval}")
        if self.repetitions < 0:
            raise ValueError(f"repetitions must be non-negative, got {self.repetitions}")

    @classmethod
    def initial(cls, now: datetime) -> "LearningState":
        """State of a card that has never been reviewed; due immediately."""
        return cls(
            stability=INITIAL_STABILITY,
            difficulty=INITIAL_DIFFICULTY,
            interval=INITIAL_INTERVAL,
            repetitions=0,
            next_review=now,
            status=CardStatus.NEW,
        )

    def scheduled(self, now: datetime, interval_days: int) -> "LearningState":
        """Stamp the review time and derive next_review from the interval."""
        return replace(
            self,
            last_review=now,
            next_review=now + timedelta(days=interval_days),
        )

    def is_due(self, now: datetime) -> bool:
        return self.next_review <= now


@dataclass(frozen=True)
class ReviewRecord:
    """A single entry of a card's review history."""

    timestamp: datetime
    rating: Rating
    time_taken_ms: int

    def __post_init__(self):
        if self.time_taken_ms < 0:
            raise ValueError(f"time_taken_ms must be non-negative, got {self.time_taken_ms}")


@dataclass(frozen=True)
class Card:
    """
    A flashcard as seen by the engine.

    Question/answer text is owned elsewhere and carried through opaquely.
    The card holds no reference to its deck.
    """

    id: str
    learning: LearningState
    created_at: datetime
    review_history: tuple[ReviewRecord, ...] = ()
    question: str = ""
    answer: str = ""
    tags: tuple[str, ...] = ()

    @property
    def status(self) -> CardStatus:
        return self.learning.status

    @property
    def reference_time(self) -> datetime:
        """Start of the current forgetting period."""
        return self.learning.last_review or self.created_at

    def with_review(self, learning: LearningState, record: ReviewRecord) -> "Card":
        """Return a copy with new learning state and the record appended to history."""
        return replace(self, learning=learning, review_history=self.review_history + (record,))


def initialize_card(
    card_id: str,
    now: datetime,
    question: str = "",
    answer: str = "",
    tags: Iterable[str] = (),
) -> Card:
    """Create a new card (status new) that is eligible for study right away."""
    return Card(
        id=card_id,
        learning=LearningState.initial(now),
        created_at=now,
        question=question,
        answer=answer,
        tags=tuple(tags),
    )


@dataclass(frozen=True)
class DeckSettings:
    new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY
    review_cards_per_day: int = DEFAULT_REVIEW_CARDS_PER_DAY

    def __post_init__(self):
        if self.new_cards_per_day <= 0:
            raise ValueError(f"new_cards_per_day must be positive, got {self.new_cards_per_day}")
        if self.review_cards_per_day <= 0:
            raise ValueError(
                f"review_cards_per_day must be positive, got {self.review_cards_per_day}"
            )


@dataclass(frozen=True)
class DeckStats:
    """
    Derived deck statistics.

    A cache only: always reproducible by re-scanning the deck's cards.
    """

    total: int = 0
    new: int = 0
    learning: int = 0
    review: int = 0
    mastered: int = 0
    mastery_rate: float = 0.0
    last_study_time: datetime | None = None
    total_study_time_ms: int = 0
    total_reviews: int = 0

    @classmethod
    def empty(cls) -> "DeckStats":
        return cls()

    @classmethod
    def from_cards(cls, cards: Iterable[Card]) -> "DeckStats":
        counts = {status: 0 for status in CardStatus}
        total = 0
        total_reviews = 0
        total_study_time_ms = 0
        last_study_time: datetime | None = None

        for card in cards:
            total += 1
            counts[card.status] += 1
            total_reviews += len(card.review_history)
            for record in card.review_history:
                total_study_time_ms += record.time_taken_ms
                if last_study_time is None or record.timestamp > last_study_time:
                    last_study_time = record.timestamp

        mastered = counts[CardStatus.MASTERED]
        return cls(
            total=total,
            new=counts[CardStatus.NEW],
            learning=counts[CardStatus.LEARNING],
            review=counts[CardStatus.REVIEW],
            mastered=mastered,
            mastery_rate=mastered / total if total else 0.0,
            last_study_time=last_study_time,
            total_study_time_ms=total_study_time_ms,
            total_reviews=total_reviews,
        )


@dataclass(frozen=True)
class Deck:
    """
    A named, ordered set of card ids.

    Cards are referenced by id only; card_ids keeps insertion order.
    """

    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    card_ids: tuple[str, ...] = ()
    settings: DeckSettings = field(default_factory=DeckSettings)
    stats: DeckStats = field(default_factory=DeckStats.empty)

    def __post_init__(self):
        if len(set(self.card_ids)) != len(self.card_ids):
            raise ValueError(f"Deck {self.id} lists a card id more than once")

    @classmethod
    def create(
        cls,
        deck_id: str,
        name: str,
        now: datetime,
        settings: DeckSettings | None = None,
    ) -> "Deck":
        return cls(
            id=deck_id,
            name=name,
            created_at=now,
            updated_at=now,
            settings=settings or DeckSettings(),
        )

    def with_stats(self, stats: DeckStats) -> "Deck":
        return replace(self, stats=stats)

    def with_cards(self, card_ids: Iterable[str], now: datetime) -> "Deck":
        """Append ids not already present, keeping insertion order."""
        merged = tuple(dict.fromkeys(self.card_ids + tuple(card_ids)))
        return replace(self, card_ids=merged, updated_at=now)
