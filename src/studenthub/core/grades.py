import math
from typing import Dict, Iterable, Tuple

from studenthub.models.entities import CourseRecord


GRADE_POINTS: Dict[str, float] = {
    "A+": 4.0,
    "A": 4.0,
    "A-": 3.7,
    "B+": 3.3,
    "B": 3.0,
    "B-": 2.7,
    "C+": 2.3,
    "C": 2.0,
    "C-": 1.7,
    "D+": 1.3,
    "D": 1.0,
    "D-": 0.7,
    "F": 0.0,
}


class GPAError(ValueError):
    pass


class InvalidGradeError(GPAError):
    def __init__(self, course_code: str, grade: str) -> None:
        super().__init__(f"Unsupported letter grade '{grade}' for course {course_code or '<unnamed>'}")
        self.course_code = course_code
        self.grade = grade


class InvalidAggregationInputError(GPAError):
    pass


def _ratio(numerator: float, denominator: float) -> float:
    # zero-credit tables and students count as 0, never NaN
    if denominator == 0:
        return 0.0
    return numerator / denominator


def to_grade_point(grade: str, *, course_code: str = "") -> float:
    try:
        return GRADE_POINTS[grade.strip().upper()]
    except (KeyError, AttributeError) as exc:
        raise InvalidGradeError(course_code, str(grade)) from exc


def calculate_semester(courses: Iterable[CourseRecord], *, round_to: int = 2) -> Tuple[float, float]:
    """
    Reduce one semester's grade table to (semester_gpa, total_credits).

    semester_gpa = Σ(points * credit_hours) / Σ(credit_hours), 0 when no credits.
    Every grade is resolved before anything is summed, so a single
    unrecognized grade rejects the whole table.
    """
    resolved = []
    for course in courses:
        if not math.isfinite(course.credit_hours) or course.credit_hours < 0:
            raise InvalidAggregationInputError(
                f"Credit hours for {course.course_code} must be a finite, non-negative number"
            )
        resolved.append((course.credit_hours, to_grade_point(course.grade, course_code=course.course_code)))

    weighted_sum = 0.0
    total_credits = 0
    for credits, grade_point in resolved:
        weighted_sum += credits * grade_point
        total_credits += credits

    return round(_ratio(weighted_sum, total_credits), round_to), total_credits
