# ABOUTME: Unit tests for the contextual Thompson Sampling difficulty bandit.
# ABOUTME: Verifies priors, context shifts, arm selection, and posterior decay.

import unittest
from collections import Counter
from datetime import datetime, timezone

from src.adaptive.bandit import DifficultyBandit, contextual_adjustments, difficulty_to_arm
from src.common.config import BanditConfig
from src.common.sampling import RandomVariateSampler
from src.common.schemas import ArmParameters, BanditModel, ContextSnapshot

NEUTRAL = ContextSnapshot(
    topic_mastery=0.5,
    recent_accuracy=0.5,
    avg_time_per_question=30,
    engagement_level=0.5,
    time_of_day_hour=10,
)


def _arm_frequencies(bandit, model, context, n):
    counts = Counter(bandit.select_arm(model, context) for _ in range(n))
    return {arm: counts[arm] / n for arm in ("easy", "medium", "hard")}


class TestContextualAdjustments(unittest.TestCase):
    def test_neutral_context_has_no_shift(self):
        self.assertEqual(contextual_adjustments(NEUTRAL), {"easy": 0.0, "medium": 0.0, "hard": 0.0})

    def test_struggling_context_stacks_every_easy_rule(self):
        ctx = ContextSnapshot(
            topic_mastery=0.1,
            recent_accuracy=0.2,
            avg_time_per_question=50,
            engagement_level=0.2,
            time_of_day_hour=16,
        )
        adj = contextual_adjustments(ctx)
        self.assertAlmostEqual(adj["easy"], 1.0 + 0.8 + 0.5 + 0.7 + 0.3)
        self.assertAlmostEqual(adj["medium"], -0.5 - 0.3 - 0.2)
        self.assertAlmostEqual(adj["hard"], -1.0 - 0.8 - 0.5 - 0.7 - 0.3)

    def test_strong_context_favours_hard(self):
        ctx = ContextSnapshot(topic_mastery=0.9, recent_accuracy=0.95, engagement_level=0.9, time_of_day_hour=9)
        adj = contextual_adjustments(ctx)
        self.assertAlmostEqual(adj["easy"], -1.5)
        self.assertAlmostEqual(adj["medium"], 0.8)
        self.assertAlmostEqual(adj["hard"], 1.7)

    def test_thresholds_are_strict(self):
        ctx = ContextSnapshot(
            topic_mastery=0.3,
            recent_accuracy=0.8,
            avg_time_per_question=45,
            engagement_level=0.4,
            time_of_day_hour=14,
        )
        self.assertEqual(contextual_adjustments(ctx), {"easy": 0.0, "medium": 0.0, "hard": 0.0})


class TestDifficultyToArm(unittest.TestCase):
    def test_boundaries(self):
        self.assertEqual(difficulty_to_arm(0.1), "easy")
        self.assertEqual(difficulty_to_arm(0.4), "easy")
        self.assertEqual(difficulty_to_arm(0.41), "medium")
        self.assertEqual(difficulty_to_arm(0.7), "medium")
        self.assertEqual(difficulty_to_arm(0.71), "hard")
        self.assertEqual(difficulty_to_arm(1.0), "hard")


class TestDifficultyBandit(unittest.TestCase):
    def setUp(self):
        self.bandit = DifficultyBandit(RandomVariateSampler(seed=42))
        self.model = self.bandit.initialize("u1")

    def test_initial_priors_favour_easy(self):
        arms = self.model.arm_parameters
        self.assertEqual(arms["easy"], ArmParameters(2.0, 1.0))
        self.assertEqual(arms["medium"], ArmParameters(1.5, 1.5))
        self.assertEqual(arms["hard"], ArmParameters(1.0, 2.0))
        self.assertEqual(self.model.total_interactions, 0)
        self.assertEqual(self.model.model_type, "thompson_sampling")

    def test_recommend_stays_in_range_and_near_arm_values(self):
        for _ in range(500):
            difficulty = self.bandit.recommend(self.model, NEUTRAL)
            self.assertGreaterEqual(difficulty, 0.1)
            self.assertLessEqual(difficulty, 1.0)
            nearest = min((0.3, 0.6, 0.9), key=lambda v: abs(v - difficulty))
            self.assertLessEqual(abs(nearest - difficulty), 0.1 + 1e-9)

    def test_recommend_does_not_mutate_model(self):
        before = self.model
        self.bandit.recommend(self.model, NEUTRAL)
        self.assertIs(self.model, before)
        self.assertEqual(self.model.arm_parameters, self.bandit.initialize("u1").arm_parameters)

    def test_neutral_context_tracks_prior_ordering(self):
        freqs = _arm_frequencies(self.bandit, self.model, NEUTRAL, 1000)
        self.assertGreater(freqs["easy"], freqs["medium"])
        self.assertGreater(freqs["medium"], freqs["hard"])

    def test_struggling_context_pushes_toward_easy(self):
        ctx = ContextSnapshot(topic_mastery=0.1, recent_accuracy=0.2, engagement_level=0.2, time_of_day_hour=10)
        freqs = _arm_frequencies(self.bandit, self.model, ctx, 1000)
        self.assertGreater(freqs["easy"], 0.8)

    def test_extreme_negative_shift_still_samples(self):
        ctx = ContextSnapshot(
            topic_mastery=0.0,
            recent_accuracy=0.0,
            avg_time_per_question=90,
            engagement_level=0.0,
            time_of_day_hour=22,
        )
        samples = self.bandit.sample_arms(self.model, ctx)
        for value in samples.values():
            self.assertGreaterEqual(value, 0.0)
            self.assertLessEqual(value, 1.0)

    def test_update_correct_increments_alpha_then_decays(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        updated = self.bandit.update(self.model, True, 0.9, NEUTRAL, now=now)

        self.assertAlmostEqual(updated.arm_parameters["hard"].alpha, 2.0 * 0.995)
        self.assertAlmostEqual(updated.arm_parameters["hard"].beta, 2.0 * 0.995)
        self.assertAlmostEqual(updated.arm_parameters["easy"].alpha, 2.0 * 0.995)
        # Floors hold for parameters already at 1.
        self.assertEqual(updated.arm_parameters["easy"].beta, 1.0)
        self.assertEqual(updated.total_interactions, 1)
        self.assertEqual(updated.last_updated, now)
        self.assertEqual(updated.context_features["topic_mastery"], 0.5)

    def test_update_incorrect_increments_beta_of_served_arm(self):
        updated = self.bandit.update(self.model, False, 0.55, NEUTRAL)
        self.assertAlmostEqual(updated.arm_parameters["medium"].beta, 2.5 * 0.995)
        self.assertAlmostEqual(updated.arm_parameters["medium"].alpha, 1.5 * 0.995)

    def test_update_without_model_is_noop(self):
        self.assertIsNone(self.bandit.update(None, True, 0.5, NEUTRAL))

    def test_decay_floor_holds_over_long_runs(self):
        model = self.model
        for i in range(2000):
            model = self.bandit.update(model, i % 3 == 0, (i % 10) / 10.0, NEUTRAL)
        for params in model.arm_parameters.values():
            self.assertGreaterEqual(params.alpha, 1.0)
            self.assertGreaterEqual(params.beta, 1.0)
        self.assertEqual(model.total_interactions, 2000)

    def test_repeated_hard_failures_reduce_hard_selection(self):
        control = _arm_frequencies(self.bandit, self.model, NEUTRAL, 2000)["hard"]

        model = self.model
        after = {}
        for step in range(1, 21):
            model = self.bandit.update(model, False, 0.9, NEUTRAL)
            if step in (5, 20):
                after[step] = _arm_frequencies(self.bandit, model, NEUTRAL, 2000)["hard"]

        self.assertGreater(model.arm_parameters["hard"].beta, 15.0)
        self.assertLess(after[5], control)
        self.assertLessEqual(after[20], after[5])

    def test_custom_priors_from_config(self):
        bandit = DifficultyBandit(
            RandomVariateSampler(seed=1),
            BanditConfig(priors={"easy": (1.0, 1.0), "medium": (1.0, 1.0), "hard": (5.0, 1.0)}),
        )
        model = bandit.initialize("u2")
        self.assertIsInstance(model, BanditModel)
        freqs = _arm_frequencies(bandit, model, NEUTRAL, 1000)
        self.assertGreater(freqs["hard"], freqs["easy"])


if __name__ == "__main__":
    unittest.main()
