from datetime import datetime, timedelta, timezone

import pytest

from anamnesis.domain.models import (
    Card,
    CardStatus,
    Deck,
    DeckSettings,
    LearningState,
    Rating,
    ReviewRecord,
)
from anamnesis.infrastructure.adapters.memory_repository import InMemoryDeckRepository

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_card():
    """Factory for cards with an explicit learning state."""

    def factory(
        card_id: str,
        *,
        status: CardStatus = CardStatus.NEW,
        stability: float = 0.6,
        difficulty: float = 5.0,
        interval: int = 1,
        repetitions: int = 0,
        next_review: datetime | None = None,
        last_review: datetime | None = None,
        created_at: datetime | None = None,
        history: tuple[ReviewRecord, ...] = (),
        question: str = "",
        answer: str = "",
    ) -> Card:
        created = created_at or NOW - timedelta(days=30)
        return Card(
            id=card_id,
            created_at=created,
            learning=LearningState(
                stability=stability,
                difficulty=difficulty,
                interval=interval,
                repetitions=repetitions,
                next_review=next_review or created,
                last_review=last_review,
                status=status,
            ),
            review_history=history,
            question=question or f"Question {card_id}",
            answer=answer or f"Answer {card_id}",
        )

    return factory


@pytest.fixture
def make_deck():
    def factory(cards: list[Card], new_per_day: int = 20, review_per_day: int = 200, deck_id: str = "deck_1") -> Deck:
        return Deck(
            id=deck_id,
            name="Biology",
            created_at=NOW - timedelta(days=30),
            updated_at=NOW - timedelta(days=30),
            card_ids=tuple(c.id for c in cards),
            settings=DeckSettings(new_cards_per_day=new_per_day, review_cards_per_day=review_per_day),
        )

    return factory


@pytest.fixture
def review():
    """A review record at ``days_ago`` before NOW."""

    def factory(days_ago: float, rating: Rating = Rating.GOOD, time_taken_ms: int = 4000) -> ReviewRecord:
        return ReviewRecord(
            timestamp=NOW - timedelta(days=days_ago),
            rating=rating,
            time_taken_ms=time_taken_ms,
        )

    return factory


@pytest.fixture
def memory_repo():
    return InMemoryDeckRepository()


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir and clears ANAMNESIS_* env vars."""
    home = tmp_path / "home"
    home.mkdir()

    monkeypatch.setenv("HOME", str(home))
    for key in ("DATA_DIR", "STORAGE", "ALGORITHM", "NEW_CARDS_PER_DAY", "REVIEW_CARDS_PER_DAY", "VERBOSE"):
        monkeypatch.delenv(f"ANAMNESIS_{key}", raising=False)
    return home
