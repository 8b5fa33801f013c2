# ABOUTME: Declares the model store and context provider boundaries of the engine.
# ABOUTME: Ships in-memory and JSON-file implementations for scripts, replay, and tests.

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from src.common.schemas import (
    ArmParameters,
    AttemptRecord,
    BanditModel,
    MasteryState,
    SessionSummary,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class ModelStore(Protocol):
    """Persistence for per-(user, topic) mastery and per-user bandit state."""

    def load_mastery(self, user_id: str, topic_id: str) -> Optional[MasteryState]:
        ...

    def save_mastery(self, state: MasteryState) -> None:
        ...

    def load_bandit(self, user_id: str) -> Optional[BanditModel]:
        ...

    def save_bandit(self, model: BanditModel) -> None:
        ...


@runtime_checkable
class ContextProvider(Protocol):
    """Supplies recent attempt history and profile signals for context building."""

    def recent_attempts(self, user_id: str, limit: int = 10) -> Sequence[AttemptRecord]:
        ...

    def streak_days(self, user_id: str) -> int:
        ...

    def recent_sessions(self, user_id: str, limit: int = 5) -> Sequence[SessionSummary]:
        ...


def load_or_create_mastery(
    store: ModelStore, user_id: str, topic_id: str, create: Callable[[str, str], MasteryState]
) -> MasteryState:
    """Create-if-absent; an existing state is never overwritten."""
    state = store.load_mastery(user_id, topic_id)
    if state is None:
        state = create(user_id, topic_id)
        store.save_mastery(state)
        logger.info("Initialized mastery state for user=%s topic=%s", user_id, topic_id)
    return state


def load_or_create_bandit(store: ModelStore, user_id: str, create: Callable[[str], BanditModel]) -> BanditModel:
    model = store.load_bandit(user_id)
    if model is None:
        model = create(user_id)
        store.save_bandit(model)
        logger.info("Initialized bandit model for user=%s", user_id)
    return model


class InMemoryModelStore:
    def __init__(self):
        self._mastery: Dict[Tuple[str, str], MasteryState] = {}
        self._bandits: Dict[str, BanditModel] = {}

    def load_mastery(self, user_id: str, topic_id: str) -> Optional[MasteryState]:
        return self._mastery.get((user_id, topic_id))

    def save_mastery(self, state: MasteryState) -> None:
        self._mastery[(state.user_id, state.topic_id)] = state

    def load_bandit(self, user_id: str) -> Optional[BanditModel]:
        return self._bandits.get(user_id)

    def save_bandit(self, model: BanditModel) -> None:
        self._bandits[model.user_id] = model


class JsonModelStore(InMemoryModelStore):
    """
    File-backed store under ``root_dir``.

    Layout:
    - mastery.json: {"<user>::<topic>": MasteryState}
    - bandits.json: {"<user>": BanditModel}
    """

    def __init__(self, root_dir: Path):
        super().__init__()
        self.root_dir = Path(root_dir)
        self._lock = threading.Lock()
        for payload in _read_json(self.root_dir / "mastery.json").values():
            state = mastery_from_dict(payload)
            self._mastery[(state.user_id, state.topic_id)] = state
        for payload in _read_json(self.root_dir / "bandits.json").values():
            model = bandit_from_dict(payload)
            self._bandits[model.user_id] = model

    def save_mastery(self, state: MasteryState) -> None:
        with self._lock:
            super().save_mastery(state)
            payload = {f"{s.user_id}::{s.topic_id}": mastery_to_dict(s) for s in self._mastery.values()}
            _write_json(self.root_dir / "mastery.json", payload)

    def save_bandit(self, model: BanditModel) -> None:
        with self._lock:
            super().save_bandit(model)
            payload = {m.user_id: bandit_to_dict(m) for m in self._bandits.values()}
            _write_json(self.root_dir / "bandits.json", payload)


class InMemoryAttemptHistory:
    def __init__(self):
        self._attempts: Dict[str, List[AttemptRecord]] = defaultdict(list)
        self._sessions: Dict[str, List[SessionSummary]] = defaultdict(list)
        self._streaks: Dict[str, int] = {}

    def recent_attempts(self, user_id: str, limit: int = 10) -> Sequence[AttemptRecord]:
        attempts = sorted(self._attempts.get(user_id, []), key=lambda a: a.timestamp, reverse=True)
        return attempts[:limit]

    def streak_days(self, user_id: str) -> int:
        return self._streaks.get(user_id, 0)

    def recent_sessions(self, user_id: str, limit: int = 5) -> Sequence[SessionSummary]:
        sessions = sorted(self._sessions.get(user_id, []), key=lambda s: s.started_at, reverse=True)
        return sessions[:limit]

    def record_attempt(self, user_id: str, attempt: AttemptRecord) -> None:
        self._attempts[user_id].append(attempt)

    def record_session(self, user_id: str, session: SessionSummary) -> None:
        self._sessions[user_id].append(session)

    def set_streak(self, user_id: str, days: int) -> None:
        self._streaks[user_id] = int(days)


class JsonAttemptHistory(InMemoryAttemptHistory):
    """Attempt history persisted to a single JSON file, rewritten on every change."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        raw = _read_json(self.path)
        for user_id, rows in raw.get("attempts", {}).items():
            self._attempts[user_id] = [
                AttemptRecord(
                    is_correct=bool(r["is_correct"]),
                    time_taken_seconds=float(r["time_taken_seconds"]),
                    timestamp=datetime.fromisoformat(r["timestamp"]),
                    topic_id=r.get("topic_id"),
                )
                for r in rows
            ]
        for user_id, rows in raw.get("sessions", {}).items():
            self._sessions[user_id] = [
                SessionSummary(**{**r, "started_at": datetime.fromisoformat(r["started_at"])}) for r in rows
            ]
        self._streaks.update({k: int(v) for k, v in raw.get("streaks", {}).items()})

    def record_attempt(self, user_id: str, attempt: AttemptRecord) -> None:
        super().record_attempt(user_id, attempt)
        self._flush()

    def record_session(self, user_id: str, session: SessionSummary) -> None:
        super().record_session(user_id, session)
        self._flush()

    def set_streak(self, user_id: str, days: int) -> None:
        super().set_streak(user_id, days)
        self._flush()

    def _flush(self) -> None:
        payload = {
            "attempts": {u: [_jsonable(asdict(a)) for a in rows] for u, rows in self._attempts.items()},
            "sessions": {u: [_jsonable(asdict(s)) for s in rows] for u, rows in self._sessions.items()},
            "streaks": dict(self._streaks),
        }
        _write_json(self.path, payload)


def mastery_to_dict(state: MasteryState) -> Dict[str, Any]:
    return _jsonable(asdict(state))


def mastery_from_dict(payload: Dict[str, Any]) -> MasteryState:
    data = dict(payload)
    for key in ("last_attempt_at", "mastery_achieved_at"):
        if data.get(key):
            data[key] = datetime.fromisoformat(data[key])
    return MasteryState(**data)


def bandit_to_dict(model: BanditModel) -> Dict[str, Any]:
    return {
        "user_id": model.user_id,
        "model_type": model.model_type,
        "arm_parameters": {arm: {"alpha": p.alpha, "beta": p.beta} for arm, p in model.arm_parameters.items()},
        "context_features": dict(model.context_features),
        "total_interactions": model.total_interactions,
        "last_updated": model.last_updated.isoformat() if model.last_updated else None,
    }


def bandit_from_dict(payload: Dict[str, Any]) -> BanditModel:
    last_updated = payload.get("last_updated")
    return BanditModel(
        user_id=payload["user_id"],
        model_type=payload.get("model_type", "thompson_sampling"),
        arm_parameters={
            arm: ArmParameters(alpha=float(p["alpha"]), beta=float(p["beta"]))
            for arm, p in payload["arm_parameters"].items()
        },
        context_features=payload.get("context_features") or {},
        total_interactions=int(payload.get("total_interactions", 0)),
        last_updated=datetime.fromisoformat(last_updated) if last_updated else None,
    )


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in data.items()}


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    tmp.replace(path)
