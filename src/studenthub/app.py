import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from studenthub.config.settings import settings
from studenthub.core.deadlines import QuickFilter
from studenthub.core.grades import GPAError, InvalidGradeError
from studenthub.models.entities import CGPAMethod, CourseRecord, DeadlineCategory, SubmissionMode, Term
from studenthub.services.academic_stats import (
    AcademicStatsService,
    SemesterExistsError,
    SemesterNotFoundError,
)
from studenthub.services.auth_service import AuthServiceError, FirebaseAuthService
from studenthub.services.deadline_service import DeadlineNotFoundError, DeadlineService, DeadlineServiceError
from studenthub.services.errors import StoreError
from studenthub.services.sqlite_service import SqliteService
from studenthub.state.session_state import SessionContext


logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Hub API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_origin_regex=settings.cors_allow_origin_regex or None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AuthPayload(BaseModel):
    email: str
    password: str


class CoursePayload(BaseModel):
    courseCode: str = Field(min_length=1)
    courseName: str = ""
    creditHours: float = Field(ge=0, allow_inf_nan=False)
    grade: str

    def to_record(self) -> CourseRecord:
        credits = self.creditHours
        return CourseRecord(
            course_code=self.courseCode.strip(),
            course_name=self.courseName.strip(),
            credit_hours=int(credits) if float(credits).is_integer() else credits,
            grade=self.grade.strip(),
        )


class SemesterPayload(BaseModel):
    semester: Term
    year: int
    courses: List[CoursePayload] = Field(min_length=1)


class PreviewPayload(BaseModel):
    semester: Optional[Term] = None
    year: Optional[int] = None
    courses: List[CoursePayload] = Field(min_length=1)


class DeadlinePayload(BaseModel):
    courseCode: str
    category: DeadlineCategory
    name: str
    dueDate: datetime
    syllabus: str = ""
    room: Optional[str] = None
    mode: Optional[SubmissionMode] = None
    submissionLink: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _blank_mode(cls, value):
        return value or None

    def to_fields(self) -> Dict:
        return {
            "course_code": self.courseCode,
            "category": self.category,
            "name": self.name,
            "due_date": self.dueDate,
            "syllabus": self.syllabus,
            "room": self.room,
            "mode": self.mode,
            "submission_link": self.submissionLink,
        }


def get_store():
    if settings.storage_backend == "firestore":
        from studenthub.services.firestore_service import FirestoreService

        return FirestoreService.from_settings()
    return SqliteService.from_settings()


def get_session(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> SessionContext:
    session = SessionContext.from_headers(x_user_id, x_user_email)
    if not session.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing x-user-id header")
    return session


def get_stats_service(store=Depends(get_store)) -> AcademicStatsService:
    return AcademicStatsService(store)


def get_deadline_service(store=Depends(get_store)) -> DeadlineService:
    return DeadlineService(store)


def _grade_error(exc: GPAError) -> HTTPException:
    if isinstance(exc, InvalidGradeError):
        detail = {"message": str(exc), "courseCode": exc.course_code, "grade": exc.grade}
    else:
        detail = {"message": str(exc)}
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _store_error(exc: StoreError) -> HTTPException:
    logger.error("Document store failure: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/signup")
def sign_up(payload: AuthPayload, store=Depends(get_store)) -> Dict:
    try:
        auth = FirebaseAuthService.from_settings()
        result = auth.sign_up(payload.email, payload.password)
        store.ensure_user_profile(result.uid, result.email)
        return {
            "uid": result.uid,
            "email": result.email,
            "id_token": result.id_token,
            "refresh_token": result.refresh_token,
        }
    except AuthServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.post("/auth/login")
def login(payload: AuthPayload) -> Dict:
    try:
        auth = FirebaseAuthService.from_settings()
        result = auth.sign_in(payload.email, payload.password)
        return {
            "uid": result.uid,
            "email": result.email,
            "id_token": result.id_token,
            "refresh_token": result.refresh_token,
        }
    except AuthServiceError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


@app.post("/gpa/semesters", status_code=status.HTTP_201_CREATED)
def add_semester(
    payload: SemesterPayload,
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    courses = [course.to_record() for course in payload.courses]
    try:
        result = service.submit_semester(session.uid, payload.semester, payload.year, courses)
        return result.to_dict()
    except GPAError as exc:
        logger.warning("Rejected %s %s for %s: %s", payload.semester.value, payload.year, session.uid, exc)
        raise _grade_error(exc) from exc
    except SemesterExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.get("/gpa/semesters")
def list_semesters(
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    try:
        semesters = service.list_semesters(session.uid)
        return {"data": [sem.to_dict() for sem in semesters], "count": len(semesters)}
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.get("/gpa/semesters/{semester_id}")
def get_semester(
    semester_id: str,
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    try:
        return service.get_semester(session.uid, semester_id).to_dict()
    except SemesterNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.put("/gpa/semesters/{semester_id}")
def update_semester(
    semester_id: str,
    payload: SemesterPayload,
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    courses = [course.to_record() for course in payload.courses]
    try:
        result = service.update_semester(session.uid, semester_id, payload.semester, payload.year, courses)
        return result.to_dict()
    except GPAError as exc:
        raise _grade_error(exc) from exc
    except SemesterNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SemesterExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.delete("/gpa/semesters/{semester_id}")
def delete_semester(
    semester_id: str,
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    try:
        stats = service.delete_semester(session.uid, semester_id)
        return {"status": "deleted", "academicStats": stats.to_dict()}
    except SemesterNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except GPAError as exc:
        raise _grade_error(exc) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.get("/gpa/calculate")
def calculate_cgpa(
    method: Optional[CGPAMethod] = Query(default=None),
    force: bool = False,
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    try:
        return service.calculate(session.uid, method=method, force=force)
    except GPAError as exc:
        raise _grade_error(exc) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.get("/gpa/stats")
def get_academic_stats(
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    try:
        stats, recalculated = service.get_stats(session.uid)
        return {
            "academicStats": stats.to_dict(),
            "source": "recalculated" if recalculated else "stored",
        }
    except GPAError as exc:
        raise _grade_error(exc) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.post("/gpa/stats/update")
def force_update_academic_stats(
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    try:
        return service.recalculate(session.uid).to_dict()
    except GPAError as exc:
        raise _grade_error(exc) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.post("/gpa/preview")
def preview_gpa(payload: PreviewPayload, service: AcademicStatsService = Depends(get_stats_service)) -> Dict:
    try:
        gpa, credits = service.preview([course.to_record() for course in payload.courses])
    except GPAError as exc:
        raise _grade_error(exc) from exc
    return {
        "semesterGPA": gpa,
        "totalCredits": credits,
        "semester": payload.semester.value if payload.semester else None,
        "year": payload.year,
        "coursesCount": len(payload.courses),
    }


@app.post("/gpa/check-retakes")
def check_retakes(
    payload: SemesterPayload,
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    courses = [course.to_record() for course in payload.courses]
    try:
        retakes = service.check_retakes(session.uid, courses, payload.semester, payload.year)
    except StoreError as exc:
        raise _store_error(exc) from exc
    return {
        "retakes": [retake.to_dict() for retake in retakes],
        "retakeCount": len(retakes),
        "hasRetakes": bool(retakes),
    }


@app.get("/gpa/course-history")
def get_course_history(
    course_code: str = Query(min_length=1),
    session: SessionContext = Depends(get_session),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    try:
        attempts = service.course_history(session.uid, course_code)
    except StoreError as exc:
        raise _store_error(exc) from exc
    return {
        "courseCode": course_code,
        "attempts": attempts,
        "attemptCount": len(attempts),
        "latestAttempt": attempts[-1] if attempts else None,
    }


@app.post("/admin/gpa/recalculate")
def recalculate_all(
    x_admin_key: Optional[str] = Header(default=None),
    service: AcademicStatsService = Depends(get_stats_service),
) -> Dict:
    if not settings.admin_api_key or x_admin_key != settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin key required")
    try:
        return service.recalculate_all()
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.get("/deadlines")
def list_deadlines(
    course_code: Optional[str] = None,
    category: Optional[DeadlineCategory] = None,
    quick_filter: QuickFilter = QuickFilter.ALL,
    session: SessionContext = Depends(get_session),
    service: DeadlineService = Depends(get_deadline_service),
) -> List[Dict]:
    try:
        return service.list_deadlines(
            session.uid,
            course_code=course_code,
            category=category,
            quick_filter=quick_filter,
        )
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.get("/deadlines/overview")
def deadlines_overview(
    session: SessionContext = Depends(get_session),
    service: DeadlineService = Depends(get_deadline_service),
) -> Dict:
    try:
        return service.overview(session.uid)
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.post("/deadlines", status_code=status.HTTP_201_CREATED)
def create_deadline(
    payload: DeadlinePayload,
    session: SessionContext = Depends(get_session),
    service: DeadlineService = Depends(get_deadline_service),
) -> Dict:
    try:
        return service.create(session.uid, **payload.to_fields()).to_dict()
    except DeadlineServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.put("/deadlines/{deadline_id}")
def update_deadline(
    deadline_id: str,
    payload: DeadlinePayload,
    session: SessionContext = Depends(get_session),
    service: DeadlineService = Depends(get_deadline_service),
) -> Dict:
    try:
        return service.update(session.uid, deadline_id, **payload.to_fields()).to_dict()
    except DeadlineNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DeadlineServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc


@app.delete("/deadlines/{deadline_id}")
def delete_deadline(
    deadline_id: str,
    session: SessionContext = Depends(get_session),
    service: DeadlineService = Depends(get_deadline_service),
) -> Dict[str, str]:
    try:
        service.delete(session.uid, deadline_id)
        return {"status": "deleted"}
    except DeadlineNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        raise _store_error(exc) from exc
