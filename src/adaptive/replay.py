# ABOUTME: Replays a historical attempt log through the adaptive engine.
# ABOUTME: Records pre-answer success predictions so calibration can be measured offline.

from __future__ import annotations

import logging
from typing import Optional

import pandas as pd

from src.common.config import EngineConfig
from src.common.features import attempts_from_frame
from src.common.sampling import RandomVariateSampler
from src.common.schemas import AnswerOutcome

from .coordinator import AdaptiveCoordinator
from .store import InMemoryAttemptHistory, InMemoryModelStore

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("user_id", "topic_id", "correct", "time_taken_seconds", "difficulty", "timestamp")
PREDICTION_COLUMNS = [
    "user_id",
    "topic_id",
    "timestamp",
    "y_true",
    "y_pred",
    "recommended_difficulty",
    "mastery_before",
    "mastery_after",
]


def replay_attempts(
    events: pd.DataFrame,
    config: Optional[EngineConfig] = None,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """
    Feed a time-ordered attempt log through a fresh in-memory engine.

    For every row the engine first recommends (recording predicted success from
    current mastery), then observes the logged outcome at the logged difficulty.
    Rows without a parseable timestamp or with non-positive answer time are
    dropped; difficulties outside [0, 1] are clamped. Both are logged.
    """

    missing = [c for c in REQUIRED_COLUMNS if c not in events.columns]
    if missing:
        raise ValueError(f"Attempt log missing columns: {', '.join(missing)}")
    if events.empty:
        return pd.DataFrame(columns=PREDICTION_COLUMNS)

    df = events.copy()
    if not pd.api.types.is_datetime64_any_dtype(df["timestamp"]):
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    df = df.dropna(subset=["timestamp"]).sort_values("timestamp", kind="mergesort")
    unparseable = len(events) - len(df)

    config = config or EngineConfig()
    history = InMemoryAttemptHistory()
    coordinator = AdaptiveCoordinator(
        store=InMemoryModelStore(),
        context_provider=history,
        config=config,
        sampler=RandomVariateSampler(seed=seed if seed is not None else config.seed),
    )

    rows = []
    non_positive_time = 0
    clamped = 0
    for (_, row), attempt in zip(df.iterrows(), attempts_from_frame(df)):
        if attempt.time_taken_seconds <= 0:
            non_positive_time += 1
            continue

        user_id = str(row["user_id"])
        topic_id = str(row["topic_id"])
        difficulty = float(row["difficulty"])
        if not 0.0 <= difficulty <= 1.0:
            clamped += 1
            difficulty = min(1.0, max(0.0, difficulty))

        rec = coordinator.recommend(user_id, topic_id, now=attempt.timestamp)
        outcome = AnswerOutcome(
            is_correct=attempt.is_correct,
            difficulty=difficulty,
            time_taken_seconds=attempt.time_taken_seconds,
        )
        result = coordinator.observe(user_id, topic_id, outcome, now=attempt.timestamp)
        history.record_attempt(user_id, attempt)

        rows.append(
            {
                "user_id": user_id,
                "topic_id": topic_id,
                "timestamp": row["timestamp"],
                "y_true": int(attempt.is_correct),
                "y_pred": rec.mastery_insights.predicted_success_rate,
                "recommended_difficulty": rec.recommended_difficulty,
                "mastery_before": rec.mastery_insights.mastery_score,
                "mastery_after": result.mastery_update.mastery_score,
            }
        )

    if unparseable or non_positive_time:
        logger.warning(
            "Replay dropped %d rows (%d unparseable timestamps, %d non-positive answer times)",
            unparseable + non_positive_time,
            unparseable,
            non_positive_time,
        )
    if clamped:
        logger.warning("Replay clamped difficulty into [0, 1] for %d rows", clamped)

    return pd.DataFrame(rows, columns=PREDICTION_COLUMNS)
