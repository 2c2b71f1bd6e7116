from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List

from studenthub.core.gpa import chronological
from studenthub.models.entities import CourseRecord, Semester, Term


def normalize_course_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class RetakeInfo:
    course_code: str
    new_grade: str
    previous_grade: str
    previous_term: Term
    previous_year: int
    will_replace: bool

    def to_dict(self) -> Dict:
        return {
            "courseCode": self.course_code,
            "newGrade": self.new_grade,
            "previousGrade": self.previous_grade,
            "previousSemester": self.previous_term.value,
            "previousYear": self.previous_year,
            "willReplace": self.will_replace,
        }


def check_retakes(
    existing: Iterable[Semester],
    courses: Iterable[CourseRecord],
    term: Term,
    year: int,
) -> List[RetakeInfo]:
    """Courses in `courses` that the student already took in another semester.

    The most recent earlier attempt is reported. `will_replace` is set when the
    incoming semester is later than that attempt.
    """
    incoming_key = (year, Term(term).rank)
    previous: Dict[str, tuple[CourseRecord, Semester]] = {}
    for sem in chronological(existing):
        if sem.sort_key == incoming_key:
            continue
        for course in sem.courses:
            previous[normalize_course_code(course.course_code)] = (course, sem)

    retakes: List[RetakeInfo] = []
    for course in courses:
        hit = previous.get(normalize_course_code(course.course_code))
        if hit is None:
            continue
        old_course, old_sem = hit
        retakes.append(
            RetakeInfo(
                course_code=course.course_code,
                new_grade=course.grade,
                previous_grade=old_course.grade,
                previous_term=old_sem.term,
                previous_year=old_sem.year,
                will_replace=incoming_key > old_sem.sort_key,
            )
        )
    return retakes


def course_history(semesters: Iterable[Semester], course_code: str) -> List[Dict]:
    key = normalize_course_code(course_code)
    attempts: List[Dict] = []
    for sem in chronological(semesters):
        for course in sem.courses:
            if normalize_course_code(course.course_code) != key:
                continue
            attempt = course.to_dict()
            attempt.update(
                {
                    "semester": sem.term.value,
                    "year": sem.year,
                    "semesterId": sem.id,
                    "semesterGPA": sem.semester_gpa,
                }
            )
            attempts.append(attempt)
    return attempts
