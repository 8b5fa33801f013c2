# ABOUTME: Tests the BKT-style mastery tracker updates and insights.
# ABOUTME: Covers clamping, success streaks, time decay, and mastery-achieved stamping.

import random
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from src.adaptive.mastery import MasteryTracker, mastery_level
from src.common.config import MasteryConfig
from src.common.schemas import MasteryState

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def tracker():
    return MasteryTracker()


@pytest.fixture
def fresh(tracker):
    return tracker.initialize("u1", "fractions")


def test_initialize_uses_documented_defaults(fresh):
    assert fresh.mastery_score == 0.1
    assert fresh.learning_rate == 0.15
    assert fresh.forgetting_rate == 0.05
    assert fresh.confidence_interval == 0.3
    assert fresh.attempts_count == 0
    assert fresh.last_attempt_at is None
    assert fresh.mastery_achieved_at is None


def test_first_correct_answer_at_neutral_difficulty(tracker, fresh):
    updated = tracker.update(fresh, is_correct=True, difficulty=0.5, time_taken_seconds=30, now=NOW)

    assert updated.mastery_score == pytest.approx(0.235)
    assert updated.confidence_interval == pytest.approx(0.285)
    assert updated.learning_rate == pytest.approx(0.147)
    assert updated.attempts_count == 1
    assert updated.correct_count == 1
    assert updated.time_spent_seconds == 30
    assert updated.last_attempt_at == NOW


def test_incorrect_answer_costs_double_forgetting(tracker, fresh):
    state = replace(fresh, mastery_score=0.5)
    updated = tracker.update(state, is_correct=False, difficulty=0.5, time_taken_seconds=30, now=NOW)

    assert updated.mastery_score == pytest.approx(0.45)
    assert updated.confidence_interval == pytest.approx(0.33)
    assert updated.learning_rate == pytest.approx(0.153)
    assert updated.correct_count == 0


def test_harder_and_faster_answers_gain_more(tracker, fresh):
    easy_slow = tracker.update(fresh, True, difficulty=0.1, time_taken_seconds=90, now=NOW)
    hard_fast = tracker.update(fresh, True, difficulty=0.9, time_taken_seconds=10, now=NOW)
    assert hard_fast.mastery_score > easy_slow.mastery_score
    # 0.1 + 0.15 * 1.12 * 1.5 * 0.9
    assert hard_fast.mastery_score == pytest.approx(0.3268)


def test_time_decay_applies_per_elapsed_day(tracker, fresh):
    state = replace(fresh, mastery_score=0.5, last_attempt_at=NOW - timedelta(days=2))
    updated = tracker.update(state, False, 0.5, 30, now=NOW)
    # 0.5 - 0.05 * 0.5 * 2 - 0.05 * 2
    assert updated.mastery_score == pytest.approx(0.35)


def test_time_decay_ignores_clock_skew(tracker, fresh):
    state = replace(fresh, last_attempt_at=NOW + timedelta(hours=3))
    assert tracker.time_decay(state, NOW) == 0.0


def test_long_absence_floors_mastery(tracker, fresh):
    state = replace(fresh, mastery_score=0.9, last_attempt_at=NOW - timedelta(days=365))
    updated = tracker.update(state, True, 0.5, 30, now=NOW)
    assert updated.mastery_score == 0.01


def test_random_sequences_respect_bounds(tracker, fresh):
    rng = random.Random(99)
    state = fresh
    now = NOW
    for _ in range(500):
        now += timedelta(hours=rng.choice([0, 1, 30]))
        state = tracker.update(
            state,
            is_correct=rng.random() < 0.6,
            difficulty=rng.uniform(-0.2, 1.2),
            time_taken_seconds=rng.uniform(0.5, 200),
            now=now,
        )
        assert 0.01 <= state.mastery_score <= 0.99
        assert 0.05 <= state.learning_rate <= 0.3
        assert 0.05 <= state.confidence_interval <= 0.5
    assert state.attempts_count == 500


def test_success_streak_is_monotone_until_bounds(tracker, fresh):
    state = fresh
    for _ in range(120):
        updated = tracker.update(state, True, 0.5, 30, now=NOW)
        if state.confidence_interval > 0.05:
            assert updated.confidence_interval < state.confidence_interval
        else:
            assert updated.confidence_interval == 0.05
        if state.mastery_score < 0.99:
            assert updated.mastery_score > state.mastery_score
        else:
            assert updated.mastery_score == 0.99
        state = updated
    assert state.confidence_interval == 0.05
    assert state.mastery_score == 0.99


def test_mastery_achieved_is_stamped_once_and_kept(tracker, fresh):
    state = fresh
    stamps = []
    now = NOW
    while state.mastery_score < 0.8:
        now += timedelta(minutes=1)
        state = tracker.update(state, True, 0.9, 10, now=now)
        stamps.append(state.mastery_achieved_at)

    achieved = state.mastery_achieved_at
    assert achieved == now
    assert all(s is None for s in stamps[:-1])

    for _ in range(20):
        now += timedelta(minutes=1)
        state = tracker.update(state, False, 0.5, 30, now=now)
    assert state.mastery_score < 0.8
    assert state.mastery_achieved_at == achieved

    for _ in range(30):
        now += timedelta(minutes=1)
        state = tracker.update(state, True, 0.9, 10, now=now)
    assert state.mastery_score >= 0.8
    assert state.mastery_achieved_at == achieved


def test_non_positive_time_is_treated_as_fastest_answer(tracker, fresh):
    zero = tracker.update(fresh, True, 0.5, 0, now=NOW)
    fast = tracker.update(fresh, True, 0.5, 1, now=NOW)
    assert zero.mastery_score == fast.mastery_score
    assert zero.time_spent_seconds == 0


def test_insights_for_fresh_state(tracker, fresh):
    insights = tracker.insights(fresh)

    assert insights.level == "Novice"
    assert insights.confidence == pytest.approx(0.7)
    assert insights.accuracy == 0.0
    assert insights.avg_time_per_question == 0.0
    assert insights.predicted_success_rate == pytest.approx(0.17)
    assert insights.recommended_difficulty == pytest.approx(0.14)
    assert insights.strengths == []
    assert "Needs more practice with fundamental concepts" in insights.improvement_areas
    assert "Focus on accuracy improvement" in insights.improvement_areas


def test_insights_for_expert_state(tracker):
    state = MasteryState(
        user_id="u1",
        topic_id="t",
        mastery_score=0.92,
        learning_rate=0.08,
        confidence_interval=0.05,
        attempts_count=20,
        correct_count=18,
        time_spent_seconds=400,
    )
    insights = tracker.insights(state)

    assert insights.level == "Expert"
    assert insights.predicted_success_rate == 0.95
    assert insights.recommended_difficulty == 0.9
    assert insights.accuracy == pytest.approx(0.9)
    assert insights.avg_time_per_question == pytest.approx(20.0)
    assert insights.strengths == [
        "Strong understanding of core concepts",
        "High accuracy in responses",
        "Consistent performance",
    ]
    assert insights.improvement_areas == []


def test_insights_are_stable_for_fixed_state(tracker, fresh):
    state = tracker.update(fresh, True, 0.7, 20, now=NOW)
    assert tracker.insights(state) == tracker.insights(state)


@pytest.mark.parametrize(
    "score,label",
    [(0.0, "Novice"), (0.19, "Novice"), (0.2, "Beginning"), (0.45, "Developing"), (0.6, "Proficient"), (0.8, "Expert")],
)
def test_mastery_level_thresholds(score, label):
    assert mastery_level(score) == label


def test_bands_clip_to_unit_interval(tracker):
    state = MasteryState("u1", "t", mastery_score=0.95, confidence_interval=0.2, attempts_count=4, correct_count=1)
    bands = tracker.bands(state)
    assert bands.conceptual_understanding.upper == 1.0
    assert bands.conceptual_understanding.lower == pytest.approx(0.85)
    assert bands.procedural_fluency.lower == pytest.approx(0.15)
    assert bands.procedural_fluency.confidence_level == pytest.approx(0.8)


def test_transfer_boost_caps_at_thirty_percent(tracker, fresh):
    source = replace(fresh, topic_id="decimals", mastery_score=0.8)
    boosted = tracker.apply_transfer(fresh, source, strength=1.0)
    assert boosted.mastery_score == pytest.approx(0.34)
    assert boosted.learning_rate == fresh.learning_rate

    capped = tracker.apply_transfer(replace(fresh, mastery_score=0.9), source, strength=5.0)
    assert capped.mastery_score == 0.99


def test_custom_config_changes_initial_state():
    tracker = MasteryTracker(MasteryConfig(initial_mastery=0.3, initial_confidence=0.2))
    state = tracker.initialize("u", "t")
    assert state.mastery_score == 0.3
    assert state.confidence_interval == 0.2
