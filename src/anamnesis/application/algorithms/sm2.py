"""
Classic SuperMemo-2 scheduling on the 0-3 rating scale.

Kept as an alternative strategy to SimplifiedFsrs. SM-2 has no notion of
stability or difficulty, so both are derived from its own parameters to keep
LearningState invariants: stability is the memory strength that would put
retention at the target exactly when the interval ends, and difficulty is the
ease factor mapped linearly onto [1, 10].
"""

import math
from dataclasses import replace

from anamnesis.domain.constants import (
    MASTERED_INTERVAL_DAYS,
    MAX_DIFFICULTY,
    MAX_EASE_FACTOR,
    MIN_DIFFICULTY,
    MIN_EASE_FACTOR,
    MIN_STABILITY,
    SM2_SECOND_INTERVAL,
    TARGET_RETENTION,
)
from anamnesis.domain.models import CardStatus, LearningState, Rating
from anamnesis.domain.ports import UpdateAlgorithm, UpdateResult

from .fsrs import clamp, round_half_up

EASE_PENALTY: dict[Rating, float] = {
    Rating.AGAIN: 0.2,
    Rating.HARD: 0.15,
}


def ease_to_difficulty(ease_factor: float) -> float:
    span = MAX_EASE_FACTOR - MIN_EASE_FACTOR
    difficulty = MIN_DIFFICULTY + (MAX_EASE_FACTOR - ease_factor) / span * (MAX_DIFFICULTY - MIN_DIFFICULTY)
    return clamp(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY)


def stability_for_interval(interval_days: int) -> float:
    return max(MIN_STABILITY, interval_days / -math.log(TARGET_RETENTION))


class Sm2Algorithm(UpdateAlgorithm):
    """
    SM-2 update strategy.

    Good/Easy extend the interval 1 -> 6 -> interval * ease.
    Hard/Again restart the card at a one day interval.
    """

    name = "sm2"

    def update(self, state: LearningState, rating: Rating, elapsed_days: float) -> UpdateResult:
        rating = Rating.parse(rating)
        if elapsed_days < 0:
            raise ValueError(f"elapsed_days must be non-negative, got {elapsed_days}")

        ease = state.ease_factor
        if rating >= Rating.GOOD:
            repetitions = state.repetitions + 1
            if repetitions == 1:
                interval_days = 1
            elif repetitions == 2:
                interval_days = SM2_SECOND_INTERVAL
            else:
                interval_days = max(1, round_half_up(state.interval * ease))
            miss = Rating.EASY - rating
            ease += 0.1 - miss * (0.08 + miss * 0.02)
        else:
            repetitions = 0
            interval_days = 1
            ease -= EASE_PENALTY[rating]

        ease = clamp(ease, MIN_EASE_FACTOR, MAX_EASE_FACTOR)
        new_state = replace(
            state,
            stability=stability_for_interval(interval_days),
            difficulty=ease_to_difficulty(ease),
            interval=interval_days,
            repetitions=repetitions,
            ease_factor=ease,
        )
        new_state = replace(new_state, status=self.determine_status(new_state))
        return UpdateResult(state=new_state, interval_days=interval_days)

    def determine_status(self, state: LearningState) -> CardStatus:
        if state.repetitions == 0 and state.interval <= 1:
            return CardStatus.NEW
        if state.repetitions < 3:
            return CardStatus.LEARNING
        if state.interval < MASTERED_INTERVAL_DAYS:
            return CardStatus.REVIEW
        return CardStatus.MASTERED
