# ABOUTME: Orchestrates the difficulty bandit and mastery tracker per learner turn.
# ABOUTME: Builds context, fuses recommendations, and applies both updates after each answer.

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from src.common.config import EngineConfig
from src.common.features import RECENT_ATTEMPT_WINDOW, build_context_snapshot
from src.common.sampling import RandomVariateSampler
from src.common.schemas import AnswerOutcome, ContextSnapshot, MasteryState

from .bandit import DifficultyBandit
from .engagement import (
    EngagementRecommendation,
    EngagementStatus,
    NextSessionRecommendation,
    assess_engagement,
    engagement_status,
    optimal_session_length,
    recommend_next_session,
)
from .mastery import MasteryBands, MasteryInsights, MasteryTracker
from .store import ContextProvider, ModelStore, load_or_create_bandit, load_or_create_mastery

logger = logging.getLogger(__name__)

FATIGUE_AVG_TIME_S = 45


class InvalidOutcomeError(ValueError):
    """Outcome rejected at the engine boundary."""


class MissingMasteryError(LookupError):
    """A mastery state required by the operation does not exist."""


@dataclass(frozen=True)
class ContextFactors:
    engagement_level: float
    fatigue_detected: bool
    optimal_session_length_minutes: int


@dataclass(frozen=True)
class Recommendation:
    recommended_difficulty: float
    mastery_insights: MasteryInsights
    context_factors: ContextFactors
    context: ContextSnapshot


@dataclass(frozen=True)
class ObservationResult:
    mastery_update: MasteryState
    engagement_recommendation: EngagementRecommendation
    next_session_recommendation: NextSessionRecommendation
    bandit_updated: bool


def validate_outcome(outcome: AnswerOutcome) -> None:
    if not outcome.time_taken_seconds > 0:
        raise InvalidOutcomeError(f"time_taken_seconds must be positive, got {outcome.time_taken_seconds}.")
    if not 0.0 <= outcome.difficulty <= 1.0:
        raise InvalidOutcomeError(f"difficulty must be within [0, 1], got {outcome.difficulty}.")


def _as_utc(now: datetime) -> datetime:
    """Naive datetimes are taken as UTC so they compare with stored aware timestamps."""
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class AdaptiveCoordinator:
    """
    Entry point for the adaptive learning engine.

    Each recommend/observe for a user runs read-compute-write under a per-user
    lock, so a single process never interleaves two updates of the same state.
    """

    def __init__(
        self,
        store: ModelStore,
        context_provider: ContextProvider,
        config: Optional[EngineConfig] = None,
        sampler: Optional[RandomVariateSampler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or EngineConfig()
        self.store = store
        self.context_provider = context_provider
        self.sampler = sampler or RandomVariateSampler(seed=self.config.seed)
        self.bandit = DifficultyBandit(self.sampler, self.config.bandit)
        self.tracker = MasteryTracker(self.config.mastery)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        # Entries vanish once no caller holds the lock.
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def build_context(self, user_id: str, topic_id: str, now: Optional[datetime] = None) -> ContextSnapshot:
        now = _as_utc(now or self.clock())
        attempts = self.context_provider.recent_attempts(user_id, limit=RECENT_ATTEMPT_WINDOW)
        return build_context_snapshot(
            recent_attempts=attempts,
            mastery=self.store.load_mastery(user_id, topic_id),
            streak_days=self.context_provider.streak_days(user_id),
            now=now,
        )

    def recommend(self, user_id: str, topic_id: str, now: Optional[datetime] = None) -> Recommendation:
        now = _as_utc(now or self.clock())
        with self._user_lock(user_id):
            context = self.build_context(user_id, topic_id, now)
            model = load_or_create_bandit(self.store, user_id, self.bandit.initialize)
            difficulty = self.bandit.recommend(model, context)
            mastery = load_or_create_mastery(self.store, user_id, topic_id, self.tracker.initialize)

        return Recommendation(
            recommended_difficulty=difficulty,
            mastery_insights=self.tracker.insights(mastery),
            context_factors=ContextFactors(
                engagement_level=context.engagement_level,
                fatigue_detected=context.avg_time_per_question > FATIGUE_AVG_TIME_S,
                optimal_session_length_minutes=optimal_session_length(context),
            ),
            context=context,
        )

    def observe(
        self, user_id: str, topic_id: str, outcome: AnswerOutcome, now: Optional[datetime] = None
    ) -> ObservationResult:
        validate_outcome(outcome)
        now = _as_utc(now or self.clock())

        with self._user_lock(user_id):
            context = self.build_context(user_id, topic_id, now)

            model = self.bandit.update(
                self.store.load_bandit(user_id), outcome.is_correct, outcome.difficulty, context, now=now
            )
            if model is None:
                logger.warning("No bandit model for user=%s; skipping bandit update", user_id)
            else:
                self.store.save_bandit(model)

            state = load_or_create_mastery(self.store, user_id, topic_id, self.tracker.initialize)
            updated = self.tracker.update(
                state, outcome.is_correct, outcome.difficulty, outcome.time_taken_seconds, now=now
            )
            self.store.save_mastery(updated)

        return ObservationResult(
            mastery_update=updated,
            engagement_recommendation=assess_engagement(context, outcome.frustration_indicators),
            next_session_recommendation=recommend_next_session(context, updated),
            bandit_updated=model is not None,
        )

    def insights(self, user_id: str, topic_id: str) -> Optional[MasteryInsights]:
        state = self.store.load_mastery(user_id, topic_id)
        if state is None:
            return None
        return self.tracker.insights(state)

    def mastery_bands(self, user_id: str, topic_id: str) -> Optional[MasteryBands]:
        state = self.store.load_mastery(user_id, topic_id)
        if state is None:
            return None
        return self.tracker.bands(state)

    def transfer_mastery(
        self, user_id: str, topic_id: str, source_topic_id: str, strength: float
    ) -> MasteryState:
        with self._user_lock(user_id):
            source = self.store.load_mastery(user_id, source_topic_id)
            if source is None:
                raise MissingMasteryError(
                    f"No mastery for user={user_id} on source topic={source_topic_id}."
                )
            target = load_or_create_mastery(self.store, user_id, topic_id, self.tracker.initialize)
            boosted = self.tracker.apply_transfer(target, source, strength)
            self.store.save_mastery(boosted)
        return boosted

    def engagement_status(self, user_id: str) -> EngagementStatus:
        return engagement_status(self.context_provider.recent_sessions(user_id, limit=5))

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock
