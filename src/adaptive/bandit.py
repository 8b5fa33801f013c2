# ABOUTME: Implements the per-user contextual Thompson Sampling bandit over difficulty tiers.
# ABOUTME: Shifts Beta priors by a heuristic context table and decays posteriors after updates.

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from src.common.config import BanditConfig
from src.common.sampling import RandomVariateSampler
from src.common.schemas import (
    ARM_EASY,
    ARM_HARD,
    ARM_MEDIUM,
    ARMS,
    ArmParameters,
    BanditModel,
    ContextSnapshot,
)

logger = logging.getLogger(__name__)


def contextual_adjustments(context: ContextSnapshot) -> Dict[str, float]:
    """
    Heuristic linear prior over the arms.

    Each rule nudges success pseudo-counts toward easy or hard content; medium
    only gets small secondary nudges. Rules are additive and unbounded.
    """

    adj = {ARM_EASY: 0.0, ARM_MEDIUM: 0.0, ARM_HARD: 0.0}

    # Topic mastery
    if context.topic_mastery < 0.3:
        adj[ARM_EASY] += 1.0
        adj[ARM_MEDIUM] -= 0.5
        adj[ARM_HARD] -= 1.0
    elif context.topic_mastery > 0.7:
        adj[ARM_EASY] -= 1.0
        adj[ARM_MEDIUM] += 0.5
        adj[ARM_HARD] += 1.0

    # Recent performance
    if context.recent_accuracy < 0.5:
        adj[ARM_EASY] += 0.8
        adj[ARM_MEDIUM] -= 0.3
        adj[ARM_HARD] -= 0.8
    elif context.recent_accuracy > 0.8:
        adj[ARM_EASY] -= 0.5
        adj[ARM_MEDIUM] += 0.3
        adj[ARM_HARD] += 0.7

    # Slow answers
    if context.avg_time_per_question > 45:
        adj[ARM_EASY] += 0.5
        adj[ARM_HARD] -= 0.5

    # Low engagement
    if context.engagement_level < 0.4:
        adj[ARM_EASY] += 0.7
        adj[ARM_MEDIUM] -= 0.2
        adj[ARM_HARD] -= 0.7

    # Afternoon/evening
    if context.time_of_day_hour >= 15:
        adj[ARM_EASY] += 0.3
        adj[ARM_HARD] -= 0.3

    return adj


def difficulty_to_arm(difficulty: float) -> str:
    if difficulty <= 0.4:
        return ARM_EASY
    if difficulty <= 0.7:
        return ARM_MEDIUM
    return ARM_HARD


class DifficultyBandit:
    """
    Contextual Thompson Sampling over three difficulty arms.

    Algorithm:
    1. Shift each arm's success count by the context table
    2. Draw theta ~ Beta(alpha + shift, beta) per arm
    3. Serve the arm with the highest draw, jittered by exploration noise
    4. On feedback, bump alpha or beta of the served arm and decay all arms
    """

    def __init__(self, sampler: Optional[RandomVariateSampler] = None, config: Optional[BanditConfig] = None):
        self.sampler = sampler or RandomVariateSampler()
        self.config = config or BanditConfig()

    def initialize(self, user_id: str) -> BanditModel:
        """Fresh model with priors biased toward easier content."""
        arms = {arm: ArmParameters(alpha=a, beta=b) for arm, (a, b) in self.config.priors.items()}
        return BanditModel(user_id=user_id, arm_parameters=arms)

    def sample_arms(self, model: BanditModel, context: ContextSnapshot) -> Dict[str, float]:
        shifts = contextual_adjustments(context)
        floor = self.config.min_sampling_shape
        samples = {}
        for arm in ARMS:
            params = model.arm_parameters[arm]
            samples[arm] = self.sampler.beta(max(floor, params.alpha + shifts[arm]), params.beta)
        return samples

    def select_arm(self, model: BanditModel, context: ContextSnapshot) -> str:
        samples = self.sample_arms(model, context)
        # max() keeps the first arm on ties.
        return max(ARMS, key=lambda arm: samples[arm])

    def recommend(self, model: BanditModel, context: ContextSnapshot) -> float:
        """Continuous difficulty for the next question. Does not mutate the model."""
        cfg = self.config
        arm = self.select_arm(model, context)
        noise = (self.sampler.uniform() - 0.5) * 2.0 * cfg.exploration_noise
        low, high = cfg.difficulty_range
        difficulty = max(low, min(high, cfg.arm_difficulty[arm] + noise))
        logger.debug("Bandit user=%s selected arm=%s difficulty=%.3f", model.user_id, arm, difficulty)
        return difficulty

    def update(
        self,
        model: Optional[BanditModel],
        is_correct: bool,
        actual_difficulty: float,
        context: ContextSnapshot,
        now: Optional[datetime] = None,
    ) -> Optional[BanditModel]:
        """
        Posterior update for the arm that produced ``actual_difficulty``.

        Returns None when no model exists; callers create models through recommend.
        """

        if model is None:
            return None

        cfg = self.config
        served = difficulty_to_arm(actual_difficulty)
        arms: Dict[str, ArmParameters] = {}
        for arm, params in model.arm_parameters.items():
            alpha, beta = params.alpha, params.beta
            if arm == served:
                if is_correct:
                    alpha += 1.0
                else:
                    beta += 1.0
            # Decay keeps the posterior responsive to drift in ability.
            arms[arm] = ArmParameters(
                alpha=max(cfg.parameter_floor, alpha * cfg.decay),
                beta=max(cfg.parameter_floor, beta * cfg.decay),
            )

        return replace(
            model,
            arm_parameters=arms,
            context_features=context.to_dict(),
            total_interactions=model.total_interactions + 1,
            last_updated=now or datetime.now(timezone.utc),
        )
