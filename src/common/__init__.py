# ABOUTME: Makes the shared common package importable across engine components.
# ABOUTME: Re-exports state schemas, the variate sampler, and config loaders.

from .config import BanditConfig, EngineConfig, MasteryConfig, load_engine_config
from .sampling import RandomVariateSampler
from .schemas import (
    AnswerOutcome,
    ArmParameters,
    AttemptRecord,
    BanditModel,
    ContextSnapshot,
    MasteryState,
    SessionSummary,
)

__all__ = [
    "AnswerOutcome",
    "ArmParameters",
    "AttemptRecord",
    "BanditConfig",
    "BanditModel",
    "ContextSnapshot",
    "EngineConfig",
    "MasteryConfig",
    "MasteryState",
    "RandomVariateSampler",
    "SessionSummary",
    "load_engine_config",
]
