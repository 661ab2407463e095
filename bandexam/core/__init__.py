"""
Core Module - Shared primitives used across the engine.

Components:
- exceptions: Error taxonomy surfaced to callers
- clock: Pure elapsed/remaining time arithmetic
- log_setup: Loguru sink configuration
"""

from bandexam.core.clock import Clock, TimeSnapshot
from bandexam.core.exceptions import (
    ConflictError,
    ExamEngineError,
    InvalidStateTransition,
    NotFoundError,
    ScoringError,
    ValidationError,
)

__all__ = [
    "Clock",
    "TimeSnapshot",
    "ExamEngineError",
    "NotFoundError",
    "ConflictError",
    "InvalidStateTransition",
    "ValidationError",
    "ScoringError",
]
