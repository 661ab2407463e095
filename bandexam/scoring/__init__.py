"""
Scoring: per-question evaluation and band aggregation.

Components:
- evaluators: Question type evaluators (registry + evaluate())
- bands: Percentage -> band conversion and overall band
"""

from bandexam.scoring.bands import (
    BAND_THRESHOLDS,
    ScoreAggregator,
    ScoreSheet,
    SkillTally,
    overall_band,
    percentage_to_band,
    round_to_half,
)
from bandexam.scoring.evaluators import EVALUATORS, EvaluationResult, evaluate, get_evaluator

__all__ = [
    "BAND_THRESHOLDS",
    "EVALUATORS",
    "EvaluationResult",
    "ScoreAggregator",
    "ScoreSheet",
    "SkillTally",
    "evaluate",
    "get_evaluator",
    "overall_band",
    "percentage_to_band",
    "round_to_half",
]
