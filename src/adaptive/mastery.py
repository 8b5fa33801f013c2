# ABOUTME: Tracks per-topic learner mastery with a BKT-style estimator.
# ABOUTME: Applies adaptive learning/forgetting rates, time decay, and derives insights.

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from src.common.config import MasteryConfig
from src.common.schemas import MasteryState

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

MASTERY_LEVELS = (
    (0.8, "Expert"),
    (0.6, "Proficient"),
    (0.4, "Developing"),
    (0.2, "Beginning"),
)


@dataclass(frozen=True)
class MasteryInsights:
    level: str
    mastery_score: float
    confidence: float
    accuracy: float
    avg_time_per_question: float
    total_attempts: int
    predicted_success_rate: float
    recommended_difficulty: float
    strengths: List[str]
    improvement_areas: List[str]


@dataclass(frozen=True)
class MasteryBand:
    lower: float
    upper: float
    confidence_level: float


@dataclass(frozen=True)
class MasteryBands:
    conceptual_understanding: MasteryBand
    procedural_fluency: MasteryBand


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def mastery_level(score: float) -> str:
    for threshold, label in MASTERY_LEVELS:
        if score >= threshold:
            return label
    return "Novice"


class MasteryTracker:
    """
    Bayesian-Knowledge-Tracing-style mastery estimator.

    The tracker is pure: every operation takes a MasteryState and returns a new
    one. Persistence belongs to the model store.
    """

    def __init__(self, config: Optional[MasteryConfig] = None):
        self.config = config or MasteryConfig()

    def initialize(self, user_id: str, topic_id: str) -> MasteryState:
        """Default state for a first interaction. Callers must only use this when no state exists."""
        cfg = self.config
        return MasteryState(
            user_id=user_id,
            topic_id=topic_id,
            mastery_score=cfg.initial_mastery,
            learning_rate=cfg.initial_learning_rate,
            forgetting_rate=cfg.forgetting_rate,
            confidence_interval=cfg.initial_confidence,
        )

    def update(
        self,
        state: MasteryState,
        is_correct: bool,
        difficulty: float,
        time_taken_seconds: float,
        now: Optional[datetime] = None,
    ) -> MasteryState:
        cfg = self.config
        now = now or datetime.now(timezone.utc)
        difficulty = _clamp(float(difficulty), (0.0, 1.0))

        mastery = state.mastery_score
        learning_rate = state.learning_rate
        confidence = state.confidence_interval
        forgetting_rate = state.forgetting_rate

        # Harder questions swing mastery more; faster answers are stronger evidence.
        difficulty_adj = 1.0 + (difficulty - 0.5) * 0.3
        if time_taken_seconds > 0:
            time_adj = _clamp(cfg.reference_time_seconds / time_taken_seconds, (0.5, 1.5))
        else:
            time_adj = 1.5
        effective_rate = learning_rate * difficulty_adj * time_adj

        if is_correct:
            gain = effective_rate * (1.0 - mastery)
            mastery = min(cfg.mastery_bounds[1], mastery + gain)
            confidence = max(cfg.confidence_bounds[0], confidence * 0.95)
            learning_rate = max(cfg.learning_rate_bounds[0], learning_rate * 0.98)
        else:
            # Errors cost double the nominal forgetting rate, scaled by what was at stake.
            loss = forgetting_rate * mastery * 2.0
            mastery = max(cfg.mastery_bounds[0], mastery - loss)
            confidence = min(cfg.confidence_bounds[1], confidence * 1.1)
            learning_rate = min(cfg.learning_rate_bounds[1], learning_rate * 1.02)

        mastery = max(cfg.mastery_bounds[0], mastery - self.time_decay(state, now))

        mastery = round(_clamp(mastery, cfg.mastery_bounds), 4)
        learning_rate = round(_clamp(learning_rate, cfg.learning_rate_bounds), 4)
        confidence = round(_clamp(confidence, cfg.confidence_bounds), 4)

        achieved_at = state.mastery_achieved_at
        if achieved_at is None and mastery >= cfg.mastery_threshold:
            achieved_at = now
            logger.info("Mastery reached for user=%s topic=%s at %.4f", state.user_id, state.topic_id, mastery)

        updated = replace(
            state,
            mastery_score=mastery,
            learning_rate=learning_rate,
            forgetting_rate=round(forgetting_rate, 4),
            confidence_interval=confidence,
            attempts_count=state.attempts_count + 1,
            correct_count=state.correct_count + (1 if is_correct else 0),
            time_spent_seconds=state.time_spent_seconds + max(0.0, float(time_taken_seconds)),
            last_attempt_at=now,
            mastery_achieved_at=achieved_at,
        )
        logger.debug(
            "Mastery update user=%s topic=%s correct=%s %.4f -> %.4f",
            state.user_id,
            state.topic_id,
            is_correct,
            state.mastery_score,
            mastery,
        )
        return updated

    def time_decay(self, state: MasteryState, now: datetime) -> float:
        """Mastery lost to elapsed time since the last attempt (forgetting rate per day)."""
        if state.last_attempt_at is None:
            return 0.0
        elapsed = (now - state.last_attempt_at).total_seconds()
        if elapsed <= 0:
            return 0.0
        return state.forgetting_rate * (elapsed / SECONDS_PER_DAY)

    def insights(self, state: MasteryState) -> MasteryInsights:
        attempts = state.attempts_count
        accuracy = state.correct_count / attempts if attempts > 0 else 0.0
        avg_time = state.time_spent_seconds / attempts if attempts > 0 else 0.0

        return MasteryInsights(
            level=mastery_level(state.mastery_score),
            mastery_score=state.mastery_score,
            confidence=1.0 - state.confidence_interval,
            accuracy=accuracy,
            avg_time_per_question=avg_time,
            total_attempts=attempts,
            predicted_success_rate=self.predicted_success_rate(state),
            recommended_difficulty=self.recommended_difficulty(state),
            strengths=self._strengths(state),
            improvement_areas=self._improvement_areas(state),
        )

    @staticmethod
    def predicted_success_rate(state: MasteryState) -> float:
        return min(0.95, state.mastery_score + (1.0 - state.confidence_interval) * 0.1)

    @staticmethod
    def recommended_difficulty(state: MasteryState) -> float:
        # Zone of Proximal Development, pulled back when uncertain.
        target = state.mastery_score + 0.1 - state.confidence_interval * 0.2
        return _clamp(target, (0.1, 0.9))

    def bands(self, state: MasteryState) -> MasteryBands:
        accuracy = state.correct_count / state.attempts_count if state.attempts_count > 0 else 0.0
        confidence = 1.0 - state.confidence_interval
        return MasteryBands(
            conceptual_understanding=MasteryBand(
                lower=max(0.0, state.mastery_score - 0.1),
                upper=min(1.0, state.mastery_score + 0.1),
                confidence_level=confidence,
            ),
            procedural_fluency=MasteryBand(
                lower=max(0.0, accuracy - 0.1),
                upper=min(1.0, accuracy + 0.1),
                confidence_level=confidence,
            ),
        )

    def apply_transfer(self, target: MasteryState, source: MasteryState, strength: float) -> MasteryState:
        """Boost target mastery from a related topic; at most 30% of source mastery transfers."""
        strength = _clamp(float(strength), (0.0, 1.0))
        boost = source.mastery_score * strength * self.config.transfer_ceiling
        boosted = round(min(self.config.mastery_bounds[1], target.mastery_score + boost), 4)
        return replace(target, mastery_score=boosted)

    @staticmethod
    def _strengths(state: MasteryState) -> List[str]:
        strengths = []
        if state.mastery_score >= 0.7:
            strengths.append("Strong understanding of core concepts")
        accuracy = state.correct_count / max(1, state.attempts_count)
        if accuracy >= 0.8:
            strengths.append("High accuracy in responses")
        if state.learning_rate <= 0.1:
            strengths.append("Consistent performance")
        return strengths

    @staticmethod
    def _improvement_areas(state: MasteryState) -> List[str]:
        areas = []
        if state.mastery_score < 0.5:
            areas.append("Needs more practice with fundamental concepts")
        accuracy = state.correct_count / max(1, state.attempts_count)
        if accuracy < 0.6:
            areas.append("Focus on accuracy improvement")
        if state.confidence_interval > 0.3:
            areas.append("More practice needed to build confidence")
        return areas
