from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from studenthub.core.grades import InvalidAggregationInputError, _ratio
from studenthub.models.entities import AcademicStats, CGPAMethod, Semester, utc_now


logger = logging.getLogger(__name__)


def chronological(semesters: Iterable[Semester]) -> List[Semester]:
    """Oldest first by (year, term rank); ties keep a stable, content-based order."""
    return sorted(
        semesters,
        key=lambda sem: (sem.sort_key, sem.total_credits, sem.semester_gpa, sem.id or ""),
    )


def _validate(semesters: Sequence[Semester]) -> None:
    for sem in semesters:
        credits = sem.total_credits
        if credits is None or not math.isfinite(credits) or credits < 0:
            raise InvalidAggregationInputError(f"Semester {sem.label} has invalid total credits: {credits}")
        if not math.isfinite(sem.semester_gpa):
            raise InvalidAggregationInputError(f"Semester {sem.label} has invalid GPA: {sem.semester_gpa}")


def _weighted_cgpa(ordered: Sequence[Semester]) -> tuple[float, float]:
    weighted_sum = 0.0
    total_credits = 0
    for sem in ordered:
        weighted_sum += sem.semester_gpa * sem.total_credits
        total_credits += sem.total_credits
    return _ratio(weighted_sum, total_credits), total_credits


def _accumulated(ordered: Sequence[Semester]) -> tuple[float, float]:
    return _weighted_cgpa(ordered)


def _sequential(ordered: Sequence[Semester]) -> tuple[float, float]:
    # same statistic as accumulated
    return _weighted_cgpa(ordered)


CGPA_METHODS: Dict[CGPAMethod, Callable[[Sequence[Semester]], tuple[float, float]]] = {
    CGPAMethod.ACCUMULATED: _accumulated,
    CGPAMethod.SEQUENTIAL: _sequential,
}


def calculate_cgpa(
    semesters: Iterable[Semester],
    method: CGPAMethod = CGPAMethod.ACCUMULATED,
    *,
    now: Optional[datetime] = None,
    round_to: int = 2,
) -> AcademicStats:
    """
    semesters: every semester recorded for one student, in any order
    CGPA = Σ(semester_gpa * semester_credits) / Σ(semester_credits)
    The current semester is the latest by (year, Spring < Summer < Fall).
    """
    calculated_at = now or utc_now()
    semesters = list(semesters)
    if not semesters:
        return AcademicStats(last_calculated=calculated_at)

    _validate(semesters)
    ordered = chronological(semesters)
    cgpa, total_credits = CGPA_METHODS[CGPAMethod(method)](ordered)

    stats = AcademicStats(
        cumulative_cgpa=round(cgpa, round_to),
        total_credits=total_credits,
        total_semesters=len(ordered),
        current_semester_gpa=round(ordered[-1].semester_gpa, round_to),
        last_calculated=calculated_at,
    )
    logger.debug(
        "CGPA %.2f over %d semesters (%s credits, method=%s)",
        stats.cumulative_cgpa,
        stats.total_semesters,
        stats.total_credits,
        CGPAMethod(method).value,
    )
    return stats
