"""
Band score aggregation.

Reading and listening are scored here from correctness counts:
    percentage = correct / total * 100  ->  band via BAND_THRESHOLDS
Writing and speaking bands come from the review collaborator and are only
passed through. The overall band is the mean of every present, positive skill
band rounded to the nearest 0.5 (half-up).

Band Table (percentage >= threshold):
    98 -> 9.0   94 -> 8.5   90 -> 8.0   85 -> 7.5   80 -> 7.0
    75 -> 6.5   70 -> 6.0   60 -> 5.5   50 -> 5.0   40 -> 4.5
    30 -> 4.0   20 -> 3.5   15 -> 3.0   10 -> 2.5    5 -> 2.0
     2 -> 1.5   below 2 -> 1.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from bandexam.content.models import OBJECTIVE_SKILLS, Skill
from bandexam.scoring.evaluators import EvaluationResult

MIN_BAND = 1.0
MAX_BAND = 9.0

# Descending thresholds; each strictly greater than the next
BAND_THRESHOLDS: tuple[tuple[float, float], ...] = (
    (98.0, 9.0),
    (94.0, 8.5),
    (90.0, 8.0),
    (85.0, 7.5),
    (80.0, 7.0),
    (75.0, 6.5),
    (70.0, 6.0),
    (60.0, 5.5),
    (50.0, 5.0),
    (40.0, 4.5),
    (30.0, 4.0),
    (20.0, 3.5),
    (15.0, 3.0),
    (10.0, 2.5),
    (5.0, 2.0),
    (2.0, 1.5),
)


def percentage_to_band(percentage: float) -> float:
    """Map a 0-100 percentage to a band; monotone non-decreasing."""
    for threshold, band in BAND_THRESHOLDS:
        if percentage >= threshold:
            return band
    return MIN_BAND


def round_to_half(value: float) -> float:
    """Round to the nearest 0.5, ties away from zero (6.25 -> 6.5, 6.75 -> 7.0)."""
    doubled = (Decimal(str(value)) * 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(doubled / 2)


def is_valid_band(score: float) -> bool:
    """True for values on the 1.0-9.0 grid in 0.5 steps."""
    return MIN_BAND <= score <= MAX_BAND and float(score * 2).is_integer()


def overall_band(bands: Iterable[float | None]) -> float | None:
    """
    Mean of positive bands rounded to 0.5; None when no band is positive.

    An all-missing skill set yields None rather than a materialized 0.
    """
    positive = [b for b in bands if b is not None and b > 0]
    if not positive:
        return None
    return round_to_half(sum(positive) / len(positive))


@dataclass
class SkillTally:
    """Correct/total counts for one objective skill."""

    correct: int = 0
    total: int = 0

    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return self.correct / self.total * 100

    def to_dict(self) -> dict[str, float | int]:
        return {
            "correct": self.correct,
            "total": self.total,
            "percentage": round(self.percentage, 1),
        }


@dataclass
class ScoreSheet:
    """Per-skill bands, overall band and objective breakdown."""

    bands: dict[Skill, float] = field(default_factory=dict)
    overall: float | None = None
    breakdown: dict[Skill, SkillTally] = field(default_factory=dict)

    @property
    def correct_answers(self) -> int:
        return sum(t.correct for t in self.breakdown.values())

    @property
    def total_questions(self) -> int:
        return sum(t.total for t in self.breakdown.values())

    def to_scores_dict(self) -> dict[str, float | None]:
        """Every skill key plus overall; unscored skills are None."""
        scores: dict[str, float | None] = {skill.value: self.bands.get(skill) for skill in Skill}
        scores["overall"] = self.overall
        return scores


class ScoreAggregator:
    """Turns evaluation results into a ScoreSheet."""

    def tally(self, evaluations: Iterable[EvaluationResult]) -> SkillTally:
        tally = SkillTally()
        for result in evaluations:
            tally.total += 1
            if result.correct:
                tally.correct += 1
        return tally

    def aggregate(
        self,
        evaluations: Mapping[Skill, list[EvaluationResult]],
        existing_scores: Mapping[str, float | None] | None = None,
    ) -> ScoreSheet:
        """
        Build the score sheet for a submission.

        Args:
            evaluations: Results per objective skill (one per question in the test)
            existing_scores: Stored scores; writing/speaking bands are carried over

        Returns:
            ScoreSheet with bands for every objective skill that has questions
        """
        sheet = ScoreSheet()

        for skill in OBJECTIVE_SKILLS:
            results = evaluations.get(skill) or []
            if not results:
                continue
            tally = self.tally(results)
            sheet.breakdown[skill] = tally
            sheet.bands[skill] = percentage_to_band(tally.percentage)

        for skill in (Skill.WRITING, Skill.SPEAKING):
            score = (existing_scores or {}).get(skill.value)
            if score:
                sheet.bands[skill] = float(score)

        sheet.overall = overall_band(sheet.bands.values())
        return sheet

    def recompute_overall(self, scores: Mapping[str, float | None]) -> float | None:
        """Overall band from a stored scores dict (after a manual score arrives)."""
        return overall_band(scores.get(skill.value) for skill in Skill)
