"""
Simplified FSRS memory model.

This is a pure computation module with no I/O. It keeps the shape of FSRS
(stability, difficulty, exponential forgetting curve, interval back-solved
from a target retention) but uses fixed difficulty deltas and a single growth
constant instead of fitted weights, so it does not reproduce published FSRS
parameter fits.
"""

import math
from dataclasses import replace

from anamnesis.domain.constants import (
    GROWTH_CONST,
    INITIAL_STABILITY,
    LEARNING_STABILITY_CEILING,
    MASTERED_INTERVAL_DAYS,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    MIN_RETRIEVABILITY,
    MIN_STABILITY,
    NEW_INTERVAL_TOLERANCE,
    NEW_STABILITY_CEILING,
    TARGET_RETENTION,
)
from anamnesis.domain.models import CardStatus, LearningState, Rating
from anamnesis.domain.ports import UpdateAlgorithm, UpdateResult

DIFFICULTY_DELTA: dict[Rating, float] = {
    Rating.AGAIN: 1.0,
    Rating.HARD: 0.4,
    Rating.GOOD: -0.2,
    Rating.EASY: -0.35,
}

# Again resets stability instead of growing it.
GROWTH_MULTIPLIER: dict[Rating, float] = {
    Rating.AGAIN: 0.0,
    Rating.HARD: 0.6,
    Rating.GOOD: 1.0,
    Rating.EASY: 1.4,
}

for _table in (DIFFICULTY_DELTA, GROWTH_MULTIPLIER):
    _missing = set(Rating) - set(_table)
    if _missing:
        raise RuntimeError(f"Rating table is missing entries for {sorted(_missing)}")


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def retrievability(elapsed_days: float, stability: float) -> float:
    """
    Estimated recall probability after ``elapsed_days``.

    R = exp(-t/S), floored so later math never sees zero.
    """
    return max(MIN_RETRIEVABILITY, math.exp(-elapsed_days / stability))


def interval_for_stability(stability: float) -> int:
    """
    Days until retrievability decays to the target retention.

    t = -S * ln(target), rounded and at least one day.
    """
    return max(1, round_half_up(-stability * math.log(TARGET_RETENTION)))


def status_for(stability: float, interval_days: float) -> CardStatus:
    if stability <= NEW_STABILITY_CEILING and interval_days <= 1 + NEW_INTERVAL_TOLERANCE:
        return CardStatus.NEW
    if stability < LEARNING_STABILITY_CEILING:
        return CardStatus.LEARNING
    if interval_days < MASTERED_INTERVAL_DAYS:
        return CardStatus.REVIEW
    return CardStatus.MASTERED


class SimplifiedFsrs(UpdateAlgorithm):
    """
    Default update strategy.

    Stateless and side-effect free.
    """

    name = "fsrs"

    def update(self, state: LearningState, rating: Rating, elapsed_days: float) -> UpdateResult:
        rating = Rating.parse(rating)
        if elapsed_days < 0:
            raise ValueError(f"elapsed_days must be non-negative, got {elapsed_days}")

        r = retrievability(elapsed_days, state.stability)
        difficulty = clamp(state.difficulty + DIFFICULTY_DELTA[rating], MIN_DIFFICULTY, MAX_DIFFICULTY)

        if rating is Rating.AGAIN:
            stability = INITIAL_STABILITY
            repetitions = 0
        else:
            # Surprising recalls (low R) grow stability the most.
            growth = GROWTH_CONST * (1 - r) * GROWTH_MULTIPLIER[rating]
            stability = max(MIN_STABILITY, state.stability * (1 + growth))
            repetitions = state.repetitions + 1

        interval_days = interval_for_stability(stability)
        new_state = replace(
            state,
            stability=stability,
            difficulty=difficulty,
            interval=interval_days,
            repetitions=repetitions,
            status=status_for(stability, interval_days),
        )
        return UpdateResult(state=new_state, interval_days=interval_days)

    def determine_status(self, state: LearningState) -> CardStatus:
        return status_for(state.stability, state.interval)
