import unittest

from studenthub.core.retakes import check_retakes, course_history
from studenthub.models.entities import CourseRecord, Semester, Term


def course(code: str, grade: str, credits: int = 3) -> CourseRecord:
    return CourseRecord(course_code=code, course_name="", credit_hours=credits, grade=grade)


def semester(term: Term, year: int, courses, gpa: float = 3.0, sid: str = None) -> Semester:
    return Semester(
        student_id="s1",
        term=term,
        year=year,
        courses=courses,
        semester_gpa=gpa,
        total_credits=sum(c.credit_hours for c in courses),
        id=sid,
    )


class RetakeTests(unittest.TestCase):
    def setUp(self):
        self.history = [
            semester(Term.FALL, 2023, [course("CSE110", "C"), course("MAT110", "B")], gpa=2.5, sid="f23"),
            semester(Term.SPRING, 2024, [course("CSE111", "A")], gpa=4.0, sid="s24"),
        ]

    def test_later_attempt_replaces(self):
        retakes = check_retakes(self.history, [course(" cse110 ", "A")], Term.FALL, 2024)
        self.assertEqual(len(retakes), 1)
        retake = retakes[0]
        self.assertEqual(retake.previous_grade, "C")
        self.assertEqual(retake.previous_term, Term.FALL)
        self.assertEqual(retake.previous_year, 2023)
        self.assertTrue(retake.will_replace)
        self.assertEqual(retake.to_dict()["previousSemester"], "Fall")

    def test_earlier_attempt_does_not_replace(self):
        retakes = check_retakes(self.history, [course("CSE111", "B")], Term.SUMMER, 2023)
        self.assertEqual(len(retakes), 1)
        self.assertFalse(retakes[0].will_replace)

    def test_same_semester_is_not_a_retake(self):
        self.assertEqual(check_retakes(self.history, [course("CSE111", "B")], Term.SPRING, 2024), [])

    def test_new_courses_are_not_retakes(self):
        self.assertEqual(check_retakes(self.history, [course("PHY111", "A")], Term.FALL, 2024), [])

    def test_course_history_is_chronological(self):
        history = self.history + [semester(Term.SUMMER, 2023, [course("CSE110", "F")], gpa=0.0, sid="su23")]
        attempts = course_history(history, "cse110")
        self.assertEqual([a["semesterId"] for a in attempts], ["su23", "f23"])
        self.assertEqual(attempts[-1]["grade"], "C")
        self.assertEqual(attempts[-1]["semesterGPA"], 2.5)


if __name__ == "__main__":
    unittest.main()
