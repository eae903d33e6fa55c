"""Aggregation of meal evaluation ratings.

Ratings are whole numbers from 1 to 5; a blank cell, a ``0`` or anything that
does not parse means the evaluator gave no opinion on that criterion and the
record is left out of that criterion's mean entirely (it is not counted as a
zero).  A criterion nobody rated has a mean of ``0.0`` and is then ignored by
the overall score.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from fieldreports.records import (
    FieldRecord,
    ReferenceData,
    coerce_number,
    record_mosque_label,
)
from fieldreports.services.filtering import FilterState, filter_records

NOTES_FIELD = 'ملاحظات_عامة'
EVALUATOR_FIELD = 'الاسم_الكريم'

# Sentinel used by the results screen for "every mosque".
ALL_MOSQUES = 'all'

FAST_EVAL_CRITERIA: 'OrderedDict[str, str]' = OrderedDict([
    ('حرارة_الوجبة', 'حرارة الوجبة'),
    ('الرز', 'جودة الأرز'),
    ('الدجاج', 'جودة الدجاج'),
    ('السمبوسة', 'جودة السمبوسة'),
    ('الشوربة', 'جودة الشوربة'),
    ('تنوع_أصناف_الوجبة', 'تنوع الأصناف'),
    ('التغليف', 'جودة التغليف'),
    ('النقل_والتعبئة', 'النقل والتعبئة'),
    ('الالتزام_في_الوقت', 'الالتزام بالوقت'),
    ('التوصية_بتكرار_التعامل_في_الأعوام_القادمة', 'التوصية بالتعامل مستقبلاً'),
])


def coerce_rating(value: Any) -> Optional[float]:
    """Return the rating as a float, or ``None`` when it is not a usable rating."""

    number = coerce_number(value)
    if number is None or number <= 0:
        return None
    return number


def average_scores(
    records: Iterable[FieldRecord],
    criteria: Mapping[str, str] = FAST_EVAL_CRITERIA,
) -> 'OrderedDict[str, float]':
    """Mean rating per criterion over the records that rated it."""

    sums: Dict[str, float] = {key: 0.0 for key in criteria}
    counts: Dict[str, int] = {key: 0 for key in criteria}
    for record in records:
        for key in criteria:
            rating = coerce_rating(record.get(key))
            if rating is None:
                continue
            sums[key] += rating
            counts[key] += 1
    averages: 'OrderedDict[str, float]' = OrderedDict()
    for key in criteria:
        averages[key] = sums[key] / counts[key] if counts[key] else 0.0
    return averages


def overall_score(averages: Mapping[str, float]) -> float:
    """Mean of the criterion means that have data."""

    rated = [score for score in averages.values() if score > 0]
    if not rated:
        return 0.0
    return sum(rated) / len(rated)


def score_band(score: float) -> str:
    if score >= 4:
        return 'high'
    if score >= 3:
        return 'medium'
    if score > 0:
        return 'low'
    return 'none'


@dataclass(frozen=True)
class EvaluationNote:
    note: str
    mosque: str
    evaluator: str


def collect_notes(
    records: Iterable[FieldRecord],
    reference: Optional[ReferenceData] = None,
) -> List[EvaluationNote]:
    """General notes in record order; blank notes are skipped."""

    notes: List[EvaluationNote] = []
    for record in records:
        raw = record.get(NOTES_FIELD)
        if raw is None:
            continue
        text = str(raw)
        if not text.strip():
            continue
        notes.append(
            EvaluationNote(
                note=text,
                mosque=record_mosque_label(record, reference),
                evaluator=str(record.get(EVALUATOR_FIELD) or ''),
            )
        )
    return notes


@dataclass(frozen=True)
class CriterionScore:
    key: str
    label: str
    score: float

    @property
    def band(self) -> str:
        return score_band(self.score)

    @property
    def percentage(self) -> float:
        return round(self.score / 5 * 100, 1)


@dataclass
class EvaluationSummary:
    """Everything the results dashboard renders for one mosque selection."""

    mosque: str
    records: List[FieldRecord] = field(default_factory=list)
    criteria: List[CriterionScore] = field(default_factory=list)
    overall: float = 0.0
    notes: List[EvaluationNote] = field(default_factory=list)

    @property
    def averages(self) -> Dict[str, float]:
        return {item.key: item.score for item in self.criteria}

    @property
    def overall_band(self) -> str:
        return score_band(self.overall)


def summarise_evaluations(
    records: Sequence[FieldRecord],
    mosque: str = '',
    *,
    criteria: Mapping[str, str] = FAST_EVAL_CRITERIA,
    reference: Optional[ReferenceData] = None,
) -> EvaluationSummary:
    """Filter by mosque and compute the dashboard figures in one pass."""

    selected = '' if mosque in (None, ALL_MOSQUES) else mosque.strip()
    filtered = filter_records(records, FilterState(mosque=selected))
    averages = average_scores(filtered, criteria)
    return EvaluationSummary(
        mosque=selected,
        records=filtered,
        criteria=[CriterionScore(key, label, averages[key]) for key, label in criteria.items()],
        overall=overall_score(averages),
        notes=collect_notes(filtered, reference),
    )


__all__ = [
    'ALL_MOSQUES',
    'CriterionScore',
    'EvaluationNote',
    'EvaluationSummary',
    'FAST_EVAL_CRITERIA',
    'average_scores',
    'coerce_rating',
    'collect_notes',
    'overall_score',
    'score_band',
    'summarise_evaluations',
]
