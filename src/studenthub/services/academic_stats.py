from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from studenthub.config.settings import settings
from studenthub.core.gpa import calculate_cgpa
from studenthub.core.grades import InvalidAggregationInputError, calculate_semester
from studenthub.core.retakes import RetakeInfo, check_retakes, course_history
from studenthub.models.entities import (
    AcademicStats,
    CGPAMethod,
    CourseRecord,
    Semester,
    StatsState,
    Term,
    utc_now,
)
from studenthub.services.errors import DuplicateRecordError

logger = logging.getLogger(__name__)


class AcademicStatsServiceError(Exception):
    pass


class SemesterExistsError(AcademicStatsServiceError):
    def __init__(self, term: Term, year: int) -> None:
        super().__init__(
            f"You already have a {Term(term).value} {year} semester. Please edit or delete the existing one first."
        )
        self.term = Term(term)
        self.year = year


class SemesterNotFoundError(AcademicStatsServiceError):
    pass


@dataclass
class SubmissionResult:
    semester: Semester
    stats: AcademicStats
    retakes: List[RetakeInfo] = field(default_factory=list)

    def to_dict(self) -> Dict:
        payload = {
            "semester": self.semester.to_dict(),
            "academicStats": self.stats.to_dict(),
            "studentId": self.semester.student_id,
        }
        if self.retakes:
            payload["warning"] = {
                "message": f"{len(self.retakes)} course(s) are being retaken.",
                "retakes": [retake.to_dict() for retake in self.retakes],
                "retakeCount": len(self.retakes),
            }
        return payload


def default_method() -> CGPAMethod:
    try:
        return CGPAMethod(settings.stats_default_method)
    except ValueError:
        logger.warning("Unknown STATS_DEFAULT_METHOD %r, using accumulated", settings.stats_default_method)
        return CGPAMethod.ACCUMULATED


class AcademicStatsService:
    """Semester writes and the per-student stats record derived from them.

    Every semester mutation is followed by a full recomputation of the
    student's stats. Grade tables are validated before anything is written,
    and a failed recomputation leaves the previously stored stats in place.
    """

    def __init__(self, store, method: Optional[CGPAMethod] = None) -> None:
        self.store = store
        self.method = method or default_method()

    def preview(self, courses: Sequence[CourseRecord]) -> Tuple[float, float]:
        return calculate_semester(courses)

    def list_semesters(self, uid: str) -> List[Semester]:
        semesters = self.store.list_semesters(uid)
        return sorted(semesters, key=lambda sem: sem.sort_key)

    def get_semester(self, uid: str, semester_id: str) -> Semester:
        semester = self.store.get_semester(uid, semester_id)
        if semester is None:
            raise SemesterNotFoundError("Semester not found.")
        return semester

    def submit_semester(self, uid: str, term: Term, year: int, courses: Sequence[CourseRecord]) -> SubmissionResult:
        term = Term(term)
        gpa, credits = calculate_semester(courses)

        if self.store.find_semester(uid, term, year) is not None:
            raise SemesterExistsError(term, year)

        retakes = check_retakes(self.store.list_semesters(uid), courses, term, year)
        semester = Semester(
            student_id=uid,
            term=term,
            year=year,
            courses=list(courses),
            semester_gpa=gpa,
            total_credits=credits,
        )
        try:
            self.store.create_semester(semester)
        except DuplicateRecordError as exc:
            raise SemesterExistsError(term, year) from exc
        logger.info("Saved %s for %s (GPA %.2f, %s credits)", semester.label, uid, gpa, credits)

        stats = self.recalculate(uid)
        return SubmissionResult(semester=semester, stats=stats, retakes=retakes)

    def update_semester(
        self,
        uid: str,
        semester_id: str,
        term: Term,
        year: int,
        courses: Sequence[CourseRecord],
    ) -> SubmissionResult:
        term = Term(term)
        gpa, credits = calculate_semester(courses)

        current = self.get_semester(uid, semester_id)
        clash = self.store.find_semester(uid, term, year)
        if clash is not None and clash.id != current.id:
            raise SemesterExistsError(term, year)

        others = [sem for sem in self.store.list_semesters(uid) if sem.id != current.id]
        retakes = check_retakes(others, courses, term, year)

        current.term = term
        current.year = year
        current.courses = list(courses)
        current.semester_gpa = gpa
        current.total_credits = credits
        current.updated_at = utc_now()
        try:
            self.store.replace_semester(current)
        except DuplicateRecordError as exc:
            raise SemesterExistsError(term, year) from exc
        logger.info("Updated %s for %s (GPA %.2f)", current.label, uid, gpa)

        stats = self.recalculate(uid)
        return SubmissionResult(semester=current, stats=stats, retakes=retakes)

    def delete_semester(self, uid: str, semester_id: str) -> AcademicStats:
        if not self.store.delete_semester(uid, semester_id):
            raise SemesterNotFoundError("Semester not found.")
        logger.info("Deleted semester %s for %s", semester_id, uid)
        return self.recalculate(uid)

    def recalculate(self, uid: str, method: Optional[CGPAMethod] = None) -> AcademicStats:
        semesters = self.store.list_semesters(uid)
        try:
            stats = calculate_cgpa(semesters, method or self.method)
        except InvalidAggregationInputError:
            logger.warning("Recalculation aborted for %s; keeping stored stats", uid)
            raise
        self.store.save_stats(uid, stats)
        logger.info(
            "Academic stats for %s: CGPA %.2f over %d semesters",
            uid,
            stats.cumulative_cgpa,
            stats.total_semesters,
        )
        return stats

    def stats_state(self, uid: str) -> Tuple[Optional[AcademicStats], StatsState]:
        stored = self.store.get_stats(uid)
        semesters = self.store.list_semesters(uid)
        if stored is None:
            return None, StatsState.STALE
        if stored.total_semesters != len(semesters):
            return stored, StatsState.STALE
        newest_change = max((sem.updated_at for sem in semesters), default=None)
        if newest_change is not None and newest_change > stored.last_calculated:
            return stored, StatsState.STALE
        return stored, StatsState.FRESH

    def get_stats(self, uid: str) -> Tuple[AcademicStats, bool]:
        """Stored stats, recomputed first when stale. Second item is True on recompute."""
        stored, state = self.stats_state(uid)
        if state is StatsState.FRESH:
            return stored, False
        return self.recalculate(uid), True

    def calculate(self, uid: str, method: Optional[CGPAMethod] = None, force: bool = False) -> Dict:
        method = CGPAMethod(method or self.method)
        stored = self.store.get_stats(uid)

        if force or stored is None or not stored.cumulative_cgpa:
            fresh = self.recalculate(uid, method)
            return {
                "cgpa": fresh.cumulative_cgpa,
                "method": method.value,
                "source": "Calculated fresh from semester data",
                "lastCalculated": fresh.last_calculated.isoformat(),
                "totalCredits": fresh.total_credits,
                "totalSemesters": fresh.total_semesters,
            }

        return {
            "cgpa": stored.cumulative_cgpa,
            "method": method.value,
            "source": "Using stored CGPA from user profile",
            "lastCalculated": stored.last_calculated.isoformat(),
            "totalCredits": stored.total_credits,
            "totalSemesters": stored.total_semesters,
        }

    def check_retakes(self, uid: str, courses: Sequence[CourseRecord], term: Term, year: int) -> List[RetakeInfo]:
        return check_retakes(self.store.list_semesters(uid), courses, term, year)

    def course_history(self, uid: str, course_code: str) -> List[Dict]:
        return course_history(self.store.list_semesters(uid), course_code)

    def recalculate_all(self) -> Dict:
        updated = 0
        failed: List[str] = []
        for uid in self.store.list_student_ids():
            try:
                self.recalculate(uid)
                updated += 1
            except InvalidAggregationInputError:
                failed.append(uid)
        logger.info("Recalculated stats for %d students (%d failed)", updated, len(failed))
        return {"updated": updated, "failed": failed}
