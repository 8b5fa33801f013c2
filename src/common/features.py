# ABOUTME: Derives the learner ContextSnapshot from recent attempts and stored mastery.
# ABOUTME: Also converts tabular attempt logs into canonical AttemptRecord rows.

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from .schemas import AttemptRecord, ContextSnapshot, MasteryState

RECENT_ATTEMPT_WINDOW = 10
FULL_ENGAGEMENT_STREAK_DAYS = 7
DEFAULT_ACCURACY = 0.5
DEFAULT_AVG_TIME_SECONDS = 30.0
DEFAULT_CONFIDENCE_INTERVAL = 0.5


def engagement_level(streak_days: int, avg_time_per_question: float, recent_accuracy: float) -> float:
    """
    Average of streak, pace, and accuracy factors.

    A 7-day streak maxes the streak factor; ~20s per question maxes the pace
    factor, which reaches zero at 60s.
    """

    streak_factor = min(1.0, max(0, streak_days) / FULL_ENGAGEMENT_STREAK_DAYS)
    time_factor = min(1.0, max(0.0, 1.0 - (avg_time_per_question - 20.0) / 40.0))
    return (streak_factor + time_factor + recent_accuracy) / 3.0


def build_context_snapshot(
    recent_attempts: Sequence[AttemptRecord],
    mastery: Optional[MasteryState],
    streak_days: int,
    now: datetime,
) -> ContextSnapshot:
    """Build a ContextSnapshot from the most recent attempts (newest first or any order)."""

    window = sorted(recent_attempts, key=lambda a: a.timestamp, reverse=True)[:RECENT_ATTEMPT_WINDOW]

    if window:
        recent_accuracy = sum(1 for a in window if a.is_correct) / len(window)
        avg_time = sum(float(a.time_taken_seconds) for a in window) / len(window)
    else:
        recent_accuracy = DEFAULT_ACCURACY
        avg_time = DEFAULT_AVG_TIME_SECONDS

    return ContextSnapshot(
        topic_mastery=mastery.mastery_score if mastery is not None else 0.0,
        recent_accuracy=recent_accuracy,
        avg_time_per_question=avg_time,
        total_attempts=mastery.attempts_count if mastery is not None else 0,
        time_of_day_hour=now.hour,
        engagement_level=engagement_level(streak_days, avg_time, recent_accuracy),
        streak_days=streak_days,
        confidence_interval=(
            mastery.confidence_interval if mastery is not None else DEFAULT_CONFIDENCE_INTERVAL
        ),
    )


def attempts_from_frame(frame: pd.DataFrame) -> List[AttemptRecord]:
    """
    Convert an attempt log into AttemptRecords.

    Expected columns: ['correct', 'time_taken_seconds', 'timestamp'] and
    optionally 'topic_id'.
    """

    if frame is None or frame.empty:
        return []

    df = frame.copy()
    if not pd.api.types.is_datetime64_any_dtype(df["timestamp"]):
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    df = df.dropna(subset=["timestamp"])

    records = []
    for _, row in df.iterrows():
        topic = row.get("topic_id")
        records.append(
            AttemptRecord(
                is_correct=bool(row["correct"]),
                time_taken_seconds=float(row["time_taken_seconds"]),
                timestamp=row["timestamp"].to_pydatetime(),
                topic_id=None if pd.isna(topic) else str(topic),
            )
        )
    return records
