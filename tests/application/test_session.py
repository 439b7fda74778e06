import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from anamnesis.application.session import CardLocks, ReviewSession, SessionState
from anamnesis.domain.errors import (
    CardNotFound,
    InvalidRating,
    PersistenceFailure,
    SessionStateError,
)
from anamnesis.domain.models import CardStatus, Rating
from anamnesis.infrastructure.adapters.memory_repository import InMemoryDeckRepository


@pytest.fixture
def setup(memory_repo, make_card, make_deck, now):
    """A saved deck with two new cards created at ``now``."""

    async def factory(count=2):
        cards = [make_card(f"c{i}", created_at=now) for i in range(count)]
        deck = make_deck(cards)
        await memory_repo.save_deck(deck, cards)
        return deck, cards

    return factory


class GatedRepository(InMemoryDeckRepository):
    """persist_card blocks until the gate opens and logs its progress."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.events: list[str] = []

    async def persist_card(self, deck_id, card):
        self.events.append(f"start:{card.id}")
        await self.gate.wait()
        await asyncio.sleep(0)
        await super().persist_card(deck_id, card)
        self.events.append(f"end:{card.id}")


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


# --- Lifecycle ---


@pytest.mark.asyncio
async def test_full_session_persists_cards_and_stats(setup, memory_repo, now):
    deck, cards = await setup()
    session = ReviewSession(memory_repo)

    queue = session.start(deck, cards, now)
    assert [c.id for c in queue] == ["c0", "c1"]
    assert session.state is SessionState.IN_PROGRESS

    later = now + timedelta(days=1)
    first = await session.record_rating("c0", Rating.GOOD, 3000, later)
    assert not first.completed
    assert session.present_card().id == "c1"

    second = await session.record_rating("c1", 0, 5000, later)
    assert second.completed
    assert session.state is SessionState.COMPLETE

    saved_deck, saved_cards = await memory_repo.load_deck(deck.id)
    rated = {c.id: c for c in saved_cards}

    assert rated["c0"].learning.status is CardStatus.LEARNING
    assert rated["c0"].learning.last_review == later
    assert rated["c0"].learning.next_review == later + timedelta(days=first.interval_days)
    assert rated["c0"].review_history[-1].time_taken_ms == 3000
    assert rated["c1"].learning.stability == 0.6
    assert rated["c1"].review_history[-1].rating is Rating.AGAIN

    assert saved_deck.stats.total_reviews == 2
    assert saved_deck.stats.total_study_time_ms == 8000
    assert saved_deck.stats.last_study_time == later

    summary = session.summary()
    assert (summary.queued, summary.reviewed, summary.aborted) == (2, 2, False)


@pytest.mark.asyncio
async def test_elapsed_time_counts_from_creation_for_unreviewed_card(setup, memory_repo, now):
    deck, cards = await setup(count=1)
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    outcome = await session.record_rating("c0", Rating.GOOD, 1000, now + timedelta(days=1))

    # Same as rating a fresh card Good after one day
    assert outcome.card.learning.stability == pytest.approx(0.6 * (1 + 0.6 * (1 - 0.18887560283756183)))


@pytest.mark.asyncio
async def test_clock_skew_is_treated_as_no_elapsed_time(setup, memory_repo, now):
    deck, cards = await setup(count=1)
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    outcome = await session.record_rating("c0", Rating.EASY, 1000, now - timedelta(hours=2))

    assert outcome.card.learning.stability == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_empty_queue_completes_immediately(memory_repo, make_card, make_deck, now):
    card = make_card("a", status=CardStatus.REVIEW, stability=10.0, interval=2, next_review=now + timedelta(days=2))
    deck = make_deck([card])
    memory_repo.save_deck = AsyncMock()
    session = ReviewSession(memory_repo)

    assert session.start(deck, [card], now) == []
    assert session.state is SessionState.COMPLETE
    assert session.summary().reviewed == 0
    memory_repo.save_deck.assert_not_called()
    with pytest.raises(SessionStateError):
        session.present_card()


def test_cannot_start_twice(memory_repo, make_card, make_deck, now):
    cards = [make_card("a")]
    session = ReviewSession(memory_repo)
    session.start(make_deck(cards), cards, now)

    with pytest.raises(SessionStateError):
        session.start(make_deck(cards), cards, now)


# --- Validation ---


@pytest.mark.asyncio
async def test_rating_before_start_is_rejected(memory_repo, now):
    session = ReviewSession(memory_repo)

    with pytest.raises(SessionStateError):
        await session.record_rating("c0", Rating.GOOD, 0, now)
    with pytest.raises(SessionStateError):
        session.present_card()


@pytest.mark.asyncio
async def test_invalid_rating_changes_nothing(setup, memory_repo, now):
    deck, cards = await setup()
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    with patch.object(memory_repo, "persist_card", AsyncMock()) as persist:
        with pytest.raises(InvalidRating):
            await session.record_rating("c0", 7, 1000, now)
        persist.assert_not_called()

    assert session.card_index == 0
    assert session.present_card() == cards[0]


@pytest.mark.asyncio
async def test_rating_for_wrong_card_is_rejected(setup, memory_repo, now):
    deck, cards = await setup()
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    with pytest.raises(SessionStateError):
        await session.record_rating("c1", Rating.GOOD, 1000, now)
    with pytest.raises(CardNotFound):
        await session.record_rating("missing", Rating.GOOD, 1000, now)

    assert session.card_index == 0
    assert session.present_card().review_history == ()


# --- Persistence failures ---


@pytest.mark.asyncio
async def test_persistence_failure_keeps_session_on_same_card(setup, memory_repo, now):
    deck, cards = await setup()
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)
    later = now + timedelta(days=1)

    persist = AsyncMock(side_effect=[PersistenceFailure("disk full"), None])
    with patch.object(memory_repo, "persist_card", persist):
        with pytest.raises(PersistenceFailure, match="disk full"):
            await session.record_rating("c0", Rating.GOOD, 2000, later)

        assert session.state is SessionState.IN_PROGRESS
        assert session.card_index == 0
        assert session.present_card() == cards[0]

        outcome = await session.record_rating("c0", Rating.GOOD, 2000, later)

    assert session.card_index == 1
    assert len(outcome.card.review_history) == 1
    # The retry computed exactly the same card
    assert persist.await_args_list[0] == persist.await_args_list[1]


@pytest.mark.asyncio
async def test_failed_stats_save_can_be_retried(setup, memory_repo, now):
    deck, cards = await setup(count=1)
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    real_save = memory_repo.save_deck
    with patch.object(memory_repo, "save_deck", AsyncMock(side_effect=PersistenceFailure("locked"))):
        with pytest.raises(PersistenceFailure):
            await session.record_rating("c0", Rating.EASY, 1000, now)

    assert session.state is SessionState.IN_PROGRESS
    assert session.remaining == 0

    with patch.object(memory_repo, "save_deck", AsyncMock(side_effect=real_save)) as save:
        summary = await session.complete(now)

    save.assert_awaited_once()
    assert session.state is SessionState.COMPLETE
    assert summary.stats.total_reviews == 1


@pytest.mark.asyncio
async def test_complete_refuses_while_cards_remain(setup, memory_repo, now):
    deck, cards = await setup()
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    with pytest.raises(SessionStateError):
        await session.complete(now)


# --- Abort ---


@pytest.mark.asyncio
async def test_abort_keeps_recorded_ratings(setup, memory_repo, now):
    deck, cards = await setup(count=3)
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    await session.record_rating("c0", Rating.GOOD, 1500, now)
    summary = await session.abort(now)

    assert summary.aborted
    assert (summary.queued, summary.reviewed) == (3, 1)
    assert session.state is SessionState.COMPLETE

    saved_deck, saved_cards = await memory_repo.load_deck(deck.id)
    assert len(saved_cards[0].review_history) == 1
    assert saved_deck.stats.total_reviews == 1

    with pytest.raises(SessionStateError):
        await session.record_rating("c1", Rating.GOOD, 1000, now)
    assert await session.abort(now) == summary


@pytest.mark.asyncio
async def test_abort_without_reviews_does_not_write(setup, memory_repo, now):
    deck, cards = await setup()
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    with patch.object(memory_repo, "save_deck", AsyncMock()) as save:
        summary = await session.abort(now)

    save.assert_not_called()
    assert summary.aborted and summary.reviewed == 0


@pytest.mark.asyncio
async def test_abort_before_start_is_rejected(memory_repo, now):
    with pytest.raises(SessionStateError):
        await ReviewSession(memory_repo).abort(now)


@pytest.mark.asyncio
async def test_abort_waits_for_in_flight_rating(make_card, make_deck, now):
    repo = GatedRepository()
    cards = [make_card("c0", created_at=now), make_card("c1", created_at=now)]
    deck = make_deck(cards)
    await repo.save_deck(deck, cards)
    session = ReviewSession(repo)
    session.start(deck, cards, now)

    repo.gate.clear()
    rating = asyncio.create_task(session.record_rating("c0", Rating.GOOD, 1000, now))
    await _settle()
    assert session.state is SessionState.GRADING

    abort = asyncio.create_task(session.abort(now))
    await _settle()
    assert not abort.done()

    repo.gate.set()
    outcome = await rating
    summary = await abort

    assert outcome.card.id == "c0"
    assert summary.aborted
    assert summary.reviewed == 1
    _, saved = await repo.load_deck(deck.id)
    assert len(saved[0].review_history) == 1


# --- Concurrency ---


@pytest.mark.asyncio
async def test_ratings_of_same_card_are_serialized(make_card, make_deck, now):
    repo = GatedRepository()
    cards = [make_card("c0", created_at=now)]
    deck = make_deck(cards)
    await repo.save_deck(deck, cards)

    locks = CardLocks()
    first = ReviewSession(repo, locks=locks)
    second = ReviewSession(repo, locks=locks)
    first.start(deck, cards, now)
    second.start(deck, cards, now)

    await asyncio.gather(
        first.record_rating("c0", Rating.GOOD, 1000, now),
        second.record_rating("c0", Rating.HARD, 1000, now),
    )

    assert repo.events == ["start:c0", "end:c0", "start:c0", "end:c0"]
    assert len(locks) == 1

    # The second rating builds on the first one
    stored = await repo.load_card(deck.id, "c0")
    assert [r.rating for r in stored.review_history] == [Rating.GOOD, Rating.HARD]
    assert stored.learning.repetitions == 2


@pytest.mark.asyncio
async def test_empty_lock_registry_is_used_as_given(setup, memory_repo, now):
    deck, cards = await setup()
    locks = CardLocks()
    session = ReviewSession(memory_repo, locks=locks)
    session.start(deck, cards, now)

    await session.record_rating("c0", Rating.GOOD, 1000, now)

    assert len(locks) == 1


@pytest.mark.asyncio
async def test_sequential_sessions_on_one_card_keep_both_ratings(setup, memory_repo, now):
    deck, cards = await setup()
    locks = CardLocks()
    first = ReviewSession(memory_repo, locks=locks)
    second = ReviewSession(memory_repo, locks=locks)
    first.start(deck, cards, now)
    second.start(deck, cards, now)

    await first.record_rating("c0", Rating.GOOD, 1000, now)
    await second.record_rating("c0", Rating.HARD, 1000, now)

    stored = await memory_repo.load_card(deck.id, "c0")
    assert [r.rating for r in stored.review_history] == [Rating.GOOD, Rating.HARD]


@pytest.mark.asyncio
async def test_finishing_a_session_keeps_ratings_from_other_sessions(setup, memory_repo, now):
    deck, cards = await setup()
    locks = CardLocks()
    long_running = ReviewSession(memory_repo, locks=locks)
    quick = ReviewSession(memory_repo, locks=locks)
    long_running.start(deck, cards, now)
    quick.start(deck, cards, now)

    await quick.record_rating("c0", Rating.AGAIN, 1000, now)
    await quick.abort(now)
    await long_running.record_rating("c0", Rating.GOOD, 1000, now)
    outcome = await long_running.record_rating("c1", Rating.GOOD, 1000, now)

    assert outcome.completed
    saved_deck, saved = await memory_repo.load_deck(deck.id)
    assert {c.id: len(c.review_history) for c in saved} == {"c0": 2, "c1": 1}
    assert saved_deck.stats.total_reviews == 3


@pytest.mark.asyncio
async def test_racing_ratings_in_one_session_apply_once(setup, memory_repo, now):
    deck, cards = await setup()
    session = ReviewSession(memory_repo)
    session.start(deck, cards, now)

    results = await asyncio.gather(
        session.record_rating("c0", Rating.GOOD, 1000, now),
        session.record_rating("c0", Rating.GOOD, 1000, now),
        return_exceptions=True,
    )

    assert sum(isinstance(r, SessionStateError) for r in results) == 1
    assert session.card_index == 1
    _, saved = await memory_repo.load_deck(deck.id)
    assert len(saved[0].review_history) == 1
