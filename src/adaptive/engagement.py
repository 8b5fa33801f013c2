# ABOUTME: Detects fatigue, boredom, and frustration from learner context signals.
# ABOUTME: Provides heuristics for session length, next-session advice, and engagement status.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from src.common.schemas import ContextSnapshot, MasteryState, SessionSummary


@dataclass(frozen=True)
class EngagementRecommendation:
    intervention_needed: bool
    type: str
    recommendation: str
    estimated_recovery_minutes: Optional[int] = None


@dataclass(frozen=True)
class NextSessionRecommendation:
    recommended_actions: List[str]
    estimated_minutes_to_mastery: int
    next_difficulty_target: float


@dataclass(frozen=True)
class EngagementStatus:
    status: str
    recommendation: str
    optimal_session_length_minutes: Optional[int] = None
    metrics: Dict[str, float] = field(default_factory=dict)


class EngagementThresholds:
    FATIGUE_AVG_TIME_S = 60
    FATIGUE_ACCURACY = 0.3
    BOREDOM_ACCURACY = 0.9
    BOREDOM_AVG_TIME_S = 15
    FRUSTRATION_SIGNALS = 3
    LOW_ENGAGEMENT = 0.4
    HIGH_ENGAGEMENT = 0.8
    FATIGUE_RECOVERY_MINUTES = 10


class SessionLength:
    BASE_MINUTES = 15
    MIN_MINUTES = 5
    MAX_MINUTES = 30


MASTERY_TARGET = 0.8
MASTERY_GAIN_PER_MINUTE = 0.05
RECENT_SESSION_WINDOW = 5


def assess_engagement(context: ContextSnapshot, frustration_indicators: int = 0) -> EngagementRecommendation:
    """Intervention advice; fatigue wins over boredom, boredom over frustration."""

    if (
        context.avg_time_per_question > EngagementThresholds.FATIGUE_AVG_TIME_S
        or context.recent_accuracy < EngagementThresholds.FATIGUE_ACCURACY
    ):
        return EngagementRecommendation(
            intervention_needed=True,
            type="fatigue_detected",
            recommendation="suggest_break_or_easier_content",
            estimated_recovery_minutes=EngagementThresholds.FATIGUE_RECOVERY_MINUTES,
        )

    if (
        context.recent_accuracy > EngagementThresholds.BOREDOM_ACCURACY
        and context.avg_time_per_question < EngagementThresholds.BOREDOM_AVG_TIME_S
    ):
        return EngagementRecommendation(
            intervention_needed=True,
            type="boredom_detected",
            recommendation="increase_difficulty_or_add_challenge",
        )

    if frustration_indicators > EngagementThresholds.FRUSTRATION_SIGNALS:
        return EngagementRecommendation(
            intervention_needed=True,
            type="frustration_detected",
            recommendation="provide_hint_or_explanation",
        )

    return EngagementRecommendation(
        intervention_needed=False,
        type="optimal_engagement",
        recommendation="continue_current_approach",
    )


def optimal_session_length(context: ContextSnapshot) -> int:
    minutes = SessionLength.BASE_MINUTES

    if context.engagement_level > EngagementThresholds.HIGH_ENGAGEMENT:
        minutes += 10
    elif context.engagement_level < EngagementThresholds.LOW_ENGAGEMENT:
        minutes -= 5

    if context.recent_accuracy > 0.8:
        minutes += 5

    hour = context.time_of_day_hour
    if 15 <= hour <= 18:  # after school
        minutes += 5
    elif hour >= 20 or hour <= 7:
        minutes -= 5

    return max(SessionLength.MIN_MINUTES, min(SessionLength.MAX_MINUTES, minutes))


def estimate_minutes_to_mastery(mastery_score: float) -> int:
    gap = MASTERY_TARGET - mastery_score
    if gap <= 0:
        return 0
    return int(math.ceil(round(gap / MASTERY_GAIN_PER_MINUTE, 9)))


def next_difficulty_target(context: ContextSnapshot, mastery: MasteryState) -> float:
    target = (
        mastery.mastery_score
        + 0.1
        + (1.0 - mastery.confidence_interval) * 0.1
        + (context.recent_accuracy - 0.5) * 0.2
    )
    return max(0.1, min(0.9, target))


def recommend_next_session(context: ContextSnapshot, mastery: MasteryState) -> NextSessionRecommendation:
    actions: List[str] = []

    if mastery.mastery_score >= MASTERY_TARGET:
        actions.append("topic_mastered_move_to_next")
    elif mastery.mastery_score < 0.3:
        actions.append("review_fundamentals")

    if context.engagement_level < EngagementThresholds.LOW_ENGAGEMENT:
        actions.append("try_story_mode_next_session")
    elif context.engagement_level > EngagementThresholds.HIGH_ENGAGEMENT:
        actions.append("ready_for_challenge_mode")

    return NextSessionRecommendation(
        recommended_actions=actions,
        estimated_minutes_to_mastery=estimate_minutes_to_mastery(mastery.mastery_score),
        next_difficulty_target=next_difficulty_target(context, mastery),
    )


def engagement_status(sessions: Sequence[SessionSummary]) -> EngagementStatus:
    recent = sorted(sessions, key=lambda s: s.started_at, reverse=True)[:RECENT_SESSION_WINDOW]
    if not recent:
        return EngagementStatus(
            status="new_user",
            recommendation="start_with_easy_topics",
            optimal_session_length_minutes=SessionLength.BASE_MINUTES,
        )

    quality = [0.5 if s.session_quality_score is None else s.session_quality_score for s in recent]
    satisfaction = [3 if s.user_satisfaction_rating is None else s.user_satisfaction_rating for s in recent]
    avg_quality = sum(quality) / len(recent)
    avg_satisfaction = sum(satisfaction) / len(recent)

    status, recommendation = "engaged", "continue_current_pace"
    if avg_quality < 0.3 or avg_satisfaction < 2.5:
        status, recommendation = "disengaged", "switch_to_story_mode"
    elif avg_quality > 0.8 and avg_satisfaction > 4:
        status, recommendation = "highly_engaged", "increase_challenge"

    return EngagementStatus(
        status=status,
        recommendation=recommendation,
        metrics={
            "avg_session_quality": avg_quality,
            "avg_satisfaction": avg_satisfaction,
            "recent_session_count": float(len(recent)),
        },
    )
