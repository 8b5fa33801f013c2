# ABOUTME: Integration test replaying an attempt log through the engine.
# ABOUTME: Validates prediction rows, ordering, skipped rows, and metric scoring.

import logging

import pandas as pd
import pytest

from src.adaptive.replay import PREDICTION_COLUMNS, replay_attempts
from src.common.evaluation import evaluate_predictions


def _events():
    return pd.DataFrame(
        {
            "user_id": ["u1", "u1", "u2", "u1", "u2"],
            "topic_id": ["fractions"] * 5,
            "correct": [1, 0, 1, 1, 0],
            "time_taken_seconds": [20, 35, 0, 15, 40],
            "difficulty": [0.3, 0.6, 0.5, 0.9, 0.4],
            "timestamp": [
                "2024-01-01T10:02:00Z",
                "2024-01-01T10:00:00Z",
                "2024-01-01T10:01:00Z",
                "2024-01-02T09:00:00Z",
                "2024-01-01T10:03:00Z",
            ],
        }
    )


def test_replay_emits_prediction_per_valid_attempt():
    predictions = replay_attempts(_events(), seed=3)

    assert list(predictions.columns) == PREDICTION_COLUMNS
    # The zero-duration attempt is skipped.
    assert len(predictions) == 4
    assert predictions["timestamp"].is_monotonic_increasing

    first = predictions.iloc[0]
    assert first["user_id"] == "u1"
    assert first["y_true"] == 0
    assert first["mastery_before"] == 0.1
    assert first["y_pred"] == pytest.approx(0.17)

    u1 = predictions[predictions["user_id"] == "u1"]
    assert list(u1["mastery_before"].iloc[1:]) == list(u1["mastery_after"].iloc[:-1])


def test_replay_predictions_score_cleanly():
    metrics = evaluate_predictions(replay_attempts(_events(), seed=3), ["auc", "brier", "calibration_ece"])
    assert 0.0 <= metrics["auc"] <= 1.0
    assert 0.0 <= metrics["brier"] <= 1.0


def test_replay_requires_columns():
    with pytest.raises(ValueError, match="missing columns: difficulty"):
        replay_attempts(_events().drop(columns=["difficulty"]))


def test_replay_empty_log():
    empty = replay_attempts(_events().iloc[0:0])
    assert empty.empty
    assert list(empty.columns) == PREDICTION_COLUMNS


def test_replay_logs_dropped_and_clamped_rows(caplog):
    events = _events()
    events.loc[0, "difficulty"] = 1.4
    events.loc[3, "timestamp"] = "not a time"

    with caplog.at_level(logging.WARNING, logger="src.adaptive.replay"):
        predictions = replay_attempts(events, seed=3)

    assert len(predictions) == 3
    assert "dropped 2 rows (1 unparseable timestamps, 1 non-positive answer times)" in caplog.text
    assert "clamped difficulty into [0, 1] for 1 rows" in caplog.text
