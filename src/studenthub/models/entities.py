from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Term(str, Enum):
    SPRING = "Spring"
    SUMMER = "Summer"
    FALL = "Fall"

    @property
    def rank(self) -> int:
        return TERM_RANK[self]


TERM_RANK = {Term.SPRING: 1, Term.SUMMER: 2, Term.FALL: 3}


class CGPAMethod(str, Enum):
    ACCUMULATED = "accumulated"
    SEQUENTIAL = "sequential"


class StatsState(str, Enum):
    STALE = "stale"
    FRESH = "fresh"


class DeadlineCategory(str, Enum):
    EXAM = "exam"
    ASSIGNMENT = "assignment"


class SubmissionMode(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    BOTH = "both"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class CourseRecord:
    course_code: str
    course_name: str
    credit_hours: float
    grade: str

    def to_dict(self) -> dict:
        return {
            "courseCode": self.course_code,
            "courseName": self.course_name,
            "creditHours": self.credit_hours,
            "grade": self.grade,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CourseRecord":
        return cls(
            course_code=str(data.get("courseCode", "")).strip(),
            course_name=str(data.get("courseName") or "").strip(),
            credit_hours=data.get("creditHours", 0),
            grade=str(data.get("grade", "")).strip(),
        )


@dataclass
class Semester:
    student_id: str
    term: Term
    year: int
    courses: list[CourseRecord]
    semester_gpa: float = 0.0
    total_credits: float = 0.0
    id: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.year, self.term.rank)

    @property
    def label(self) -> str:
        return f"{self.term.value} {self.year}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "semester": self.term.value,
            "year": self.year,
            "courses": [course.to_dict() for course in self.courses],
            "semesterGPA": self.semester_gpa,
            "totalCredits": self.total_credits,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict, *, student_id: str, id: str | None = None) -> "Semester":
        return cls(
            student_id=student_id,
            term=Term(data["semester"]),
            year=int(data["year"]),
            courses=[CourseRecord.from_dict(course) for course in data.get("courses", [])],
            semester_gpa=float(data.get("semesterGPA", 0.0)),
            total_credits=data.get("totalCredits", 0),
            id=id or data.get("id"),
            created_at=parse_datetime(data.get("createdAt")) or utc_now(),
            updated_at=parse_datetime(data.get("updatedAt")) or utc_now(),
        )


@dataclass
class AcademicStats:
    cumulative_cgpa: float = 0.0
    total_credits: float = 0
    total_semesters: int = 0
    current_semester_gpa: float = 0.0
    last_calculated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "cumulativeCGPA": self.cumulative_cgpa,
            "totalCredits": self.total_credits,
            "totalSemesters": self.total_semesters,
            "currentSemesterGPA": self.current_semester_gpa,
            "lastCalculated": self.last_calculated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AcademicStats":
        last = parse_datetime(data.get("lastCalculated"))
        return cls(
            cumulative_cgpa=float(data.get("cumulativeCGPA", 0.0)),
            total_credits=data.get("totalCredits", 0),
            total_semesters=int(data.get("totalSemesters", 0)),
            current_semester_gpa=float(data.get("currentSemesterGPA", 0.0)),
            last_calculated=last or utc_now(),
        )


@dataclass
class Deadline:
    owner_id: str
    course_code: str
    category: DeadlineCategory
    name: str
    due_date: datetime
    syllabus: str = ""
    room: str | None = None
    mode: SubmissionMode | None = None
    submission_link: str | None = None
    id: str | None = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "courseCode": self.course_code,
            "category": self.category.value,
            "name": self.name,
            "syllabus": self.syllabus,
            "room": self.room,
            "mode": self.mode.value if self.mode else None,
            "submissionLink": self.submission_link,
            "dueDate": self.due_date.isoformat(),
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict, *, owner_id: str, id: str | None = None) -> "Deadline":
        mode = data.get("mode")
        return cls(
            owner_id=owner_id,
            course_code=str(data["courseCode"]),
            category=DeadlineCategory(data["category"]),
            name=str(data["name"]),
            due_date=parse_datetime(data["dueDate"]),
            syllabus=str(data.get("syllabus") or ""),
            room=data.get("room"),
            mode=SubmissionMode(mode) if mode else None,
            submission_link=data.get("submissionLink"),
            id=id or data.get("id"),
            created_at=parse_datetime(data.get("createdAt")) or utc_now(),
        )
