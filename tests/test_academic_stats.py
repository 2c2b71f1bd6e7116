import unittest
from datetime import timedelta
from unittest.mock import patch

from studenthub.core.grades import InvalidAggregationInputError, InvalidGradeError
from studenthub.models.entities import CGPAMethod, CourseRecord, Semester, StatsState, Term
from studenthub.services.academic_stats import (
    AcademicStatsService,
    SemesterExistsError,
    SemesterNotFoundError,
)
from studenthub.services.sqlite_service import SqliteService


def course(code: str, grade: str, credits: int = 3) -> CourseRecord:
    return CourseRecord(course_code=code, course_name=f"{code} name", credit_hours=credits, grade=grade)


class AcademicStatsServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteService(":memory:")
        self.service = AcademicStatsService(self.store, CGPAMethod.ACCUMULATED)

    def tearDown(self):
        self.store.conn.close()

    def _fall_2024(self):
        # 5 x 3 credits, GPA 3.0
        return self.service.submit_semester("s1", Term.FALL, 2024, [course(f"C{i}", "B") for i in range(5)])

    def test_submission_recomputes_stats(self):
        self._fall_2024()
        result = self.service.submit_semester(
            "s1", Term.SPRING, 2025, [course("CSE420", "A", 4), course("CSE421", "A+", 4), course("CSE422", "A", 4)]
        )
        self.assertEqual(result.semester.semester_gpa, 4.0)
        self.assertEqual(result.stats.cumulative_cgpa, 3.44)
        self.assertEqual(result.stats.total_credits, 27)
        self.assertEqual(result.stats.current_semester_gpa, 4.0)

        stored = self.store.get_stats("s1")
        self.assertEqual(stored.cumulative_cgpa, 3.44)
        self.assertEqual(stored.total_semesters, 2)
        self.assertEqual(self.service.stats_state("s1")[1], StatsState.FRESH)

    def test_invalid_grade_persists_nothing(self):
        self._fall_2024()
        before = self.store.get_stats("s1")
        with self.assertRaises(InvalidGradeError) as ctx:
            self.service.submit_semester("s1", Term.SPRING, 2025, [course("CSE420", "A"), course("CSE421", "X")])
        self.assertEqual(ctx.exception.course_code, "CSE421")
        self.assertEqual(len(self.store.list_semesters("s1")), 1)
        self.assertEqual(self.store.get_stats("s1"), before)

    def test_duplicate_semester_rejected(self):
        self._fall_2024()
        with self.assertRaises(SemesterExistsError):
            self.service.submit_semester("s1", Term.FALL, 2024, [course("CSE110", "A")])

    def test_concurrent_duplicate_maps_to_conflict(self):
        self._fall_2024()
        # a second writer that passed the existence check before the first insert landed
        with patch.object(self.store, "find_semester", return_value=None):
            with self.assertRaises(SemesterExistsError):
                self.service.submit_semester("s1", Term.FALL, 2024, [course("CSE110", "A")])
        self.assertEqual(len(self.store.list_semesters("s1")), 1)

    def test_concurrent_update_collision_maps_to_conflict(self):
        first = self._fall_2024()
        self.service.submit_semester("s1", Term.SPRING, 2025, [course("CSE420", "A")])
        with patch.object(self.store, "find_semester", return_value=None):
            with self.assertRaises(SemesterExistsError):
                self.service.update_semester("s1", first.semester.id, Term.SPRING, 2025, [course("C0", "A")])

    def test_retake_warning_on_submission(self):
        self.service.submit_semester("s1", Term.SPRING, 2024, [course("CSE110", "D")])
        result = self.service.submit_semester("s1", Term.FALL, 2024, [course("CSE110", "A")])
        self.assertEqual(len(result.retakes), 1)
        self.assertEqual(result.to_dict()["warning"]["retakeCount"], 1)

    def test_update_recomputes(self):
        first = self._fall_2024()
        result = self.service.update_semester(
            "s1", first.semester.id, Term.FALL, 2024, [course("C0", "A", 3), course("C1", "C", 3)]
        )
        self.assertEqual(result.semester.semester_gpa, 3.0)
        self.assertEqual(result.stats.total_credits, 6)
        self.assertEqual(self.store.get_stats("s1").total_credits, 6)

    def test_update_cannot_collide_with_another_semester(self):
        first = self._fall_2024()
        self.service.submit_semester("s1", Term.SPRING, 2025, [course("CSE420", "A")])
        with self.assertRaises(SemesterExistsError):
            self.service.update_semester("s1", first.semester.id, Term.SPRING, 2025, [course("C0", "A")])

    def test_update_missing_semester(self):
        with self.assertRaises(SemesterNotFoundError):
            self.service.update_semester("s1", "nope", Term.FALL, 2024, [course("C0", "A")])

    def test_delete_recomputes_to_zero(self):
        first = self._fall_2024()
        stats = self.service.delete_semester("s1", first.semester.id)
        self.assertEqual(stats.cumulative_cgpa, 0.0)
        self.assertEqual(stats.total_semesters, 0)
        self.assertEqual(self.store.get_stats("s1").total_credits, 0)
        with self.assertRaises(SemesterNotFoundError):
            self.service.delete_semester("s1", first.semester.id)

    def test_failed_recalculation_keeps_previous_stats(self):
        self._fall_2024()
        before = self.store.get_stats("s1")
        self.store.create_semester(
            Semester(student_id="s1", term=Term.SPRING, year=2025, courses=[], semester_gpa=3.0, total_credits=-4)
        )
        with self.assertRaises(InvalidAggregationInputError):
            self.service.recalculate("s1")
        self.assertEqual(self.store.get_stats("s1"), before)

    def test_stale_stats_are_recomputed_on_read(self):
        first = self._fall_2024()
        semester = first.semester
        semester.semester_gpa = 2.0
        semester.updated_at = semester.updated_at + timedelta(hours=1)
        self.store.replace_semester(semester)

        stored, state = self.service.stats_state("s1")
        self.assertEqual(state, StatsState.STALE)
        self.assertEqual(stored.cumulative_cgpa, 3.0)

        stats, recalculated = self.service.get_stats("s1")
        self.assertTrue(recalculated)
        self.assertEqual(stats.cumulative_cgpa, 2.0)

    def test_stats_without_record_are_stale(self):
        self.assertEqual(self.service.stats_state("nobody"), (None, StatsState.STALE))
        stats, recalculated = self.service.get_stats("nobody")
        self.assertTrue(recalculated)
        self.assertEqual(stats.total_semesters, 0)

    def test_calculate_reports_method_and_source(self):
        self._fall_2024()
        stored = self.service.calculate("s1", CGPAMethod.SEQUENTIAL)
        self.assertEqual(stored["cgpa"], 3.0)
        self.assertEqual(stored["method"], "sequential")
        self.assertEqual(stored["source"], "Using stored CGPA from user profile")
        forced = self.service.calculate("s1", force=True)
        self.assertEqual(forced["source"], "Calculated fresh from semester data")
        self.assertEqual(forced["totalSemesters"], 1)

    def test_forced_calculation_persists_fresh_totals(self):
        self.service.submit_semester("s1", Term.FALL, 2024, [course("CSE110", "A")])
        drifted = self.store.get_stats("s1")
        drifted.total_credits = 99
        drifted.total_semesters = 7
        self.store.save_stats("s1", drifted)

        result = self.service.calculate("s1", force=True)

        stored = self.store.get_stats("s1")
        self.assertEqual((result["totalCredits"], result["totalSemesters"]), (3, 1))
        self.assertEqual((stored.total_credits, stored.total_semesters), (3, 1))
        self.assertEqual(stored.cumulative_cgpa, result["cgpa"])

    def test_course_history(self):
        self.service.submit_semester("s1", Term.SPRING, 2024, [course("CSE110", "D")])
        self.service.submit_semester("s1", Term.FALL, 2024, [course("CSE110", "A")])
        attempts = self.service.course_history("s1", "CSE110")
        self.assertEqual([a["grade"] for a in attempts], ["D", "A"])

    def test_recalculate_all_students(self):
        self.store.ensure_user_profile("s2", "s2@example.edu")
        self._fall_2024()
        summary = self.service.recalculate_all()
        self.assertEqual(summary, {"updated": 2, "failed": []})
        self.assertEqual(self.store.get_stats("s2").total_semesters, 0)


if __name__ == "__main__":
    unittest.main()
