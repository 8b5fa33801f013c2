# ABOUTME: Exposes the adaptive learning engine entrypoints.
# ABOUTME: Groups the mastery tracker, difficulty bandit, coordinator, and stores.

from .bandit import DifficultyBandit, contextual_adjustments, difficulty_to_arm
from .coordinator import (
    AdaptiveCoordinator,
    InvalidOutcomeError,
    MissingMasteryError,
    ObservationResult,
    Recommendation,
)
from .mastery import MasteryBands, MasteryInsights, MasteryTracker
from .store import InMemoryAttemptHistory, InMemoryModelStore, JsonAttemptHistory, JsonModelStore

__all__ = [
    "AdaptiveCoordinator",
    "DifficultyBandit",
    "InMemoryAttemptHistory",
    "InMemoryModelStore",
    "InvalidOutcomeError",
    "JsonAttemptHistory",
    "JsonModelStore",
    "MasteryBands",
    "MasteryInsights",
    "MasteryTracker",
    "MissingMasteryError",
    "ObservationResult",
    "Recommendation",
    "contextual_adjustments",
    "difficulty_to_arm",
]
