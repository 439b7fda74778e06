"""
Persisted record shape for decks and cards.

Storage-format agnostic: records dump to plain dicts (camelCase keys,
timestamps as epoch milliseconds) that any JSON or YAML writer can store.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from anamnesis.domain.models import (
    Card,
    CardStatus,
    Deck,
    DeckSettings,
    DeckStats,
    LearningState,
    Rating,
    ReviewRecord,
)


def to_epoch_ms(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(round(value.timestamp() * 1000))


def from_epoch_ms(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class LearningRecord(_Record):
    stability: float
    difficulty: float
    interval: int
    repetitions: int
    ease_factor: float = 2.5
    next_review: int
    last_review: int | None = None
    status: CardStatus


class ReviewHistoryRecord(_Record):
    timestamp: int
    rating: int = Field(ge=0, le=3)
    # milliseconds
    time_taken: int = Field(ge=0)


class CardRecord(_Record):
    id: str
    question: str = ""
    answer: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: int
    learning: LearningRecord
    review_history: list[ReviewHistoryRecord] = Field(default_factory=list)


class SettingsRecord(_Record):
    new_cards_per_day: int = Field(gt=0)
    review_cards_per_day: int = Field(gt=0)


class StatsRecord(_Record):
    total: int = 0
    new: int = 0
    learning: int = 0
    review: int = 0
    mastered: int = 0
    mastery_rate: float = 0.0
    last_study_time: int | None = None
    total_study_time: int = 0
    total_reviews: int = 0


class DeckRecord(_Record):
    id: str
    name: str
    card_ids: list[str] = Field(default_factory=list)
    created_at: int
    updated_at: int
    settings: SettingsRecord
    stats: StatsRecord = Field(default_factory=StatsRecord)


def card_to_record(card: Card) -> CardRecord:
    learning = card.learning
    return CardRecord(
        id=card.id,
        question=card.question,
        answer=card.answer,
        tags=list(card.tags),
        created_at=to_epoch_ms(card.created_at),
        learning=LearningRecord(
            stability=learning.stability,
            difficulty=learning.difficulty,
            interval=learning.interval,
            repetitions=learning.repetitions,
            ease_factor=learning.ease_factor,
            next_review=to_epoch_ms(learning.next_review),
            last_review=to_epoch_ms(learning.last_review),
            status=learning.status,
        ),
        review_history=[
            ReviewHistoryRecord(
                timestamp=to_epoch_ms(r.timestamp),
                rating=int(r.rating),
                time_taken=r.time_taken_ms,
            )
            for r in card.review_history
        ],
    )


def card_from_record(record: CardRecord) -> Card:
    """Rehydrate a card; the stored status is restored as-is."""
    lr = record.learning
    return Card(
        id=record.id,
        question=record.question,
        answer=record.answer,
        tags=tuple(record.tags),
        created_at=from_epoch_ms(record.created_at),
        learning=LearningState(
            stability=lr.stability,
            difficulty=lr.difficulty,
            interval=lr.interval,
            repetitions=lr.repetitions,
            ease_factor=lr.ease_factor,
            next_review=from_epoch_ms(lr.next_review),
            last_review=from_epoch_ms(lr.last_review),
            status=lr.status,
        ),
        review_history=tuple(
            ReviewRecord(
                timestamp=from_epoch_ms(h.timestamp),
                rating=Rating(h.rating),
                time_taken_ms=h.time_taken,
            )
            for h in record.review_history
        ),
    )


def deck_to_record(deck: Deck) -> DeckRecord:
    stats = deck.stats
    return DeckRecord(
        id=deck.id,
        name=deck.name,
        card_ids=list(deck.card_ids),
        created_at=to_epoch_ms(deck.created_at),
        updated_at=to_epoch_ms(deck.updated_at),
        settings=SettingsRecord(
            new_cards_per_day=deck.settings.new_cards_per_day,
            review_cards_per_day=deck.settings.review_cards_per_day,
        ),
        stats=StatsRecord(
            total=stats.total,
            new=stats.new,
            learning=stats.learning,
            review=stats.review,
            mastered=stats.mastered,
            mastery_rate=stats.mastery_rate,
            last_study_time=to_epoch_ms(stats.last_study_time),
            total_study_time=stats.total_study_time_ms,
            total_reviews=stats.total_reviews,
        ),
    )


def deck_from_record(record: DeckRecord) -> Deck:
    st = record.stats
    return Deck(
        id=record.id,
        name=record.name,
        card_ids=tuple(record.card_ids),
        created_at=from_epoch_ms(record.created_at),
        updated_at=from_epoch_ms(record.updated_at),
        settings=DeckSettings(
            new_cards_per_day=record.settings.new_cards_per_day,
            review_cards_per_day=record.settings.review_cards_per_day,
        ),
        stats=DeckStats(
            total=st.total,
            new=st.new,
            learning=st.learning,
            review=st.review,
            mastered=st.mastered,
            mastery_rate=st.mastery_rate,
            last_study_time=from_epoch_ms(st.last_study_time),
            total_study_time_ms=st.total_study_time,
            total_reviews=st.total_reviews,
        ),
    )


def dump_deck_document(deck: Deck, cards: list[Card]) -> dict[str, Any]:
    return {
        "deck": deck_to_record(deck).dump(),
        "cards": [card_to_record(c).dump() for c in cards],
    }


def load_deck_document(data: dict[str, Any]) -> tuple[Deck, list[Card]]:
    deck = deck_from_record(DeckRecord.model_validate(data["deck"]))
    cards = [card_from_record(CardRecord.model_validate(c)) for c in data.get("cards") or []]
    return deck, cards
