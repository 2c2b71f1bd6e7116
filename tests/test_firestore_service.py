import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from studenthub.models.entities import AcademicStats, CourseRecord, Semester, Term
from studenthub.services.firestore_service import FirestoreService, FirestoreServiceError


def snapshot(doc_id, data, exists=True):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


class FirestoreServiceTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.user_ref = self.client.collection.return_value.document.return_value
        self.service = FirestoreService("", client=self.client)

    def test_requires_project_without_client(self):
        with self.assertRaises(FirestoreServiceError):
            FirestoreService("")

    def test_list_semesters_reads_subcollection(self):
        doc = {
            "semester": "Fall",
            "year": 2024,
            "courses": [{"courseCode": "CSE110", "courseName": "Programming", "creditHours": 3, "grade": "A"}],
            "semesterGPA": 4.0,
            "totalCredits": 3,
        }
        self.user_ref.collection.return_value.stream.return_value = [snapshot("sem-1", doc)]

        semesters = self.service.list_semesters("s1")

        self.client.collection.assert_called_with("users")
        self.client.collection.return_value.document.assert_called_with("s1")
        self.user_ref.collection.assert_called_with("semesters")
        self.assertEqual(len(semesters), 1)
        self.assertEqual(semesters[0].id, "sem-1")
        self.assertEqual(semesters[0].term, Term.FALL)
        self.assertEqual(semesters[0].courses[0].course_code, "CSE110")

    def test_create_semester_assigns_generated_id(self):
        ref = self.user_ref.collection.return_value.document.return_value
        ref.id = "generated"
        semester = Semester(
            student_id="s1",
            term=Term.SPRING,
            year=2025,
            courses=[CourseRecord("CSE420", "Compilers", 3, "B")],
            semester_gpa=3.0,
            total_credits=3,
        )

        self.assertEqual(self.service.create_semester(semester), "generated")
        self.assertEqual(semester.id, "generated")
        stored = ref.set.call_args[0][0]
        self.assertNotIn("id", stored)
        self.assertEqual(stored["semester"], "Spring")
        self.assertEqual(stored["semesterGPA"], 3.0)

    def test_delete_missing_semester_returns_false(self):
        ref = self.user_ref.collection.return_value.document.return_value
        ref.get.return_value = snapshot("gone", None, exists=False)
        self.assertFalse(self.service.delete_semester("s1", "gone"))
        ref.delete.assert_not_called()

    def test_save_stats_merges_into_profile(self):
        stats = AcademicStats(
            cumulative_cgpa=3.44,
            total_credits=27,
            total_semesters=2,
            current_semester_gpa=4.0,
            last_calculated=datetime(2025, 3, 10, tzinfo=timezone.utc),
        )
        self.service.save_stats("s1", stats)

        args, kwargs = self.user_ref.set.call_args
        self.assertEqual(kwargs, {"merge": True})
        self.assertEqual(args[0]["academic_stats"]["cumulativeCGPA"], 3.44)

    def test_get_stats_missing_profile(self):
        self.user_ref.get.return_value = snapshot("s1", None, exists=False)
        self.assertIsNone(self.service.get_stats("s1"))

    def test_get_stats_reads_profile_field(self):
        self.user_ref.get.return_value = snapshot(
            "s1",
            {
                "academic_stats": {
                    "cumulativeCGPA": 3.2,
                    "totalCredits": 30,
                    "totalSemesters": 3,
                    "currentSemesterGPA": 3.5,
                    "lastCalculated": datetime(2025, 3, 10, tzinfo=timezone.utc),
                }
            },
        )
        stats = self.service.get_stats("s1")
        self.assertEqual(stats.cumulative_cgpa, 3.2)
        self.assertEqual(stats.total_semesters, 3)


if __name__ == "__main__":
    unittest.main()
