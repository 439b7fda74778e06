"""Centralized constants for the scheduling engine.

All magic numbers and defaults live here so every layer imports from a
single source of truth.
"""

# ---------- Card creation ----------
INITIAL_STABILITY = 0.6
INITIAL_DIFFICULTY = 5.0
INITIAL_INTERVAL = 1
INITIAL_EASE_FACTOR = 2.5

# ---------- Memory model ----------
TARGET_RETENTION = 0.9
GROWTH_CONST = 0.6
MIN_STABILITY = 0.3
MIN_RETRIEVABILITY = 0.01
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0

# ---------- Status thresholds ----------
NEW_STABILITY_CEILING = 0.6
NEW_INTERVAL_TOLERANCE = 0.01
LEARNING_STABILITY_CEILING = 3.0
MASTERED_INTERVAL_DAYS = 21

# ---------- SM-2 ----------
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
SM2_SECOND_INTERVAL = 6

# ---------- Deck quotas ----------
DEFAULT_NEW_CARDS_PER_DAY = 20
DEFAULT_REVIEW_CARDS_PER_DAY = 200

# ---------- Time ----------
SECONDS_PER_DAY = 86400.0
