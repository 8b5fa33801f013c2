# ABOUTME: Defines canonical state records shared by the adaptive engine components.
# ABOUTME: Centralizes mastery, bandit, context, attempt, and outcome definitions.

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

ARM_EASY = "easy"
ARM_MEDIUM = "medium"
ARM_HARD = "hard"
ARMS = (ARM_EASY, ARM_MEDIUM, ARM_HARD)


@dataclass(frozen=True)
class MasteryState:
    """Per (user, topic) mastery estimate updated after every answer."""

    user_id: str
    topic_id: str
    mastery_score: float = 0.1
    learning_rate: float = 0.15
    forgetting_rate: float = 0.05
    confidence_interval: float = 0.3  # Lower = more certain
    attempts_count: int = 0
    correct_count: int = 0
    time_spent_seconds: float = 0.0
    last_attempt_at: Optional[datetime] = None
    mastery_achieved_at: Optional[datetime] = None


@dataclass(frozen=True)
class ArmParameters:
    """Beta posterior pseudo-counts for one difficulty arm."""

    alpha: float  # Success count + 1
    beta: float  # Failure count + 1

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)


@dataclass(frozen=True)
class BanditModel:
    """Per-user Thompson Sampling state over the difficulty arms."""

    user_id: str
    arm_parameters: Mapping[str, ArmParameters]
    model_type: str = "thompson_sampling"
    context_features: Mapping[str, Any] = field(default_factory=dict)
    total_interactions: int = 0
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class ContextSnapshot:
    """Learner context computed fresh for every recommendation call."""

    topic_mastery: float = 0.0
    recent_accuracy: float = 0.5
    avg_time_per_question: float = 30.0
    total_attempts: int = 0
    time_of_day_hour: int = 12
    engagement_level: float = 0.5
    streak_days: int = 0
    confidence_interval: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AttemptRecord:
    """One answered question as supplied by the context provider."""

    is_correct: bool
    time_taken_seconds: float
    timestamp: datetime
    topic_id: Optional[str] = None


@dataclass(frozen=True)
class SessionSummary:
    """Aggregate of a finished learning session used for engagement status."""

    started_at: datetime
    session_quality_score: Optional[float] = None
    user_satisfaction_rating: Optional[int] = None  # 1-5
    questions_attempted: int = 0
    questions_correct: int = 0


@dataclass(frozen=True)
class AnswerOutcome:
    """Observed result of serving a question at a given difficulty."""

    is_correct: bool
    difficulty: float
    time_taken_seconds: float = 30.0
    frustration_indicators: int = 0
