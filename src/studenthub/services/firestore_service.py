from datetime import datetime, timezone
from typing import List, Optional

try:
    from google.cloud import firestore
    from google.api_core.exceptions import GoogleAPICallError
except ModuleNotFoundError as exc:
    raise ModuleNotFoundError(
        "Missing dependency 'google-cloud-firestore'. Install the project with pip install -e ."
    ) from exc

from studenthub.config.settings import settings
from studenthub.models.entities import AcademicStats, Deadline, Semester, Term
from studenthub.services.errors import StoreError


class FirestoreServiceError(StoreError):
    pass


class FirestoreService:
    """
    users/{uid}                 profile + academic_stats
    users/{uid}/semesters/{id}  one grade table per (semester, year)
    users/{uid}/deadlines/{id}  coursework deadlines
    """

    def __init__(self, project_id: str, client=None) -> None:
        if client is None and not project_id:
            raise FirestoreServiceError("Missing FIREBASE_PROJECT_ID in environment")
        self.db = client or firestore.Client(project=project_id)

    @classmethod
    def from_settings(cls) -> "FirestoreService":
        return cls(settings.firebase_project_id)

    def _user_ref(self, uid: str):
        return self.db.collection("users").document(uid)

    def ensure_user_profile(self, uid: str, email: str) -> None:
        ref = self._user_ref(uid)
        try:
            if not ref.get().exists:
                ref.set(
                    {
                        "email": email,
                        "created_at": datetime.now(timezone.utc),
                        "academic_stats": None,
                    }
                )
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc

    def list_student_ids(self) -> List[str]:
        try:
            return sorted(doc.id for doc in self.db.collection("users").stream())
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc

    def list_semesters(self, uid: str) -> List[Semester]:
        try:
            docs = self._user_ref(uid).collection("semesters").stream()
            return [Semester.from_dict(doc.to_dict() or {}, student_id=uid, id=doc.id) for doc in docs]
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc

    def get_semester(self, uid: str, semester_id: str) -> Optional[Semester]:
        try:
            snap = self._user_ref(uid).collection("semesters").document(semester_id).get()
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        if not snap.exists:
            return None
        return Semester.from_dict(snap.to_dict() or {}, student_id=uid, id=snap.id)

    def find_semester(self, uid: str, term: Term, year: int) -> Optional[Semester]:
        for semester in self.list_semesters(uid):
            if semester.term == Term(term) and semester.year == year:
                return semester
        return None

    @staticmethod
    def _semester_doc(semester: Semester) -> dict:
        data = semester.to_dict()
        data.pop("id", None)
        data["createdAt"] = semester.created_at
        data["updatedAt"] = semester.updated_at
        return data

    def create_semester(self, semester: Semester) -> str:
        try:
            ref = self._user_ref(semester.student_id).collection("semesters").document()
            ref.set(self._semester_doc(semester))
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        semester.id = ref.id
        return ref.id

    def replace_semester(self, semester: Semester) -> None:
        try:
            ref = self._user_ref(semester.student_id).collection("semesters").document(semester.id)
            ref.set(self._semester_doc(semester))
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc

    def delete_semester(self, uid: str, semester_id: str) -> bool:
        ref = self._user_ref(uid).collection("semesters").document(semester_id)
        try:
            if not ref.get().exists:
                return False
            ref.delete()
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        return True

    def get_stats(self, uid: str) -> Optional[AcademicStats]:
        try:
            snap = self._user_ref(uid).get()
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        if not snap.exists:
            return None
        data = (snap.to_dict() or {}).get("academic_stats")
        if not data:
            return None
        return AcademicStats.from_dict(data)

    def save_stats(self, uid: str, stats: AcademicStats) -> None:
        data = stats.to_dict()
        data["lastCalculated"] = stats.last_calculated
        try:
            self._user_ref(uid).set({"academic_stats": data}, merge=True)
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc

    def list_deadlines(self, uid: str) -> List[Deadline]:
        try:
            docs = self._user_ref(uid).collection("deadlines").stream()
            results = [Deadline.from_dict(doc.to_dict() or {}, owner_id=uid, id=doc.id) for doc in docs]
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        results.sort(key=lambda row: row.due_date)
        return results

    def get_deadline(self, uid: str, deadline_id: str) -> Optional[Deadline]:
        try:
            snap = self._user_ref(uid).collection("deadlines").document(deadline_id).get()
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        if not snap.exists:
            return None
        return Deadline.from_dict(snap.to_dict() or {}, owner_id=uid, id=snap.id)

    @staticmethod
    def _deadline_doc(deadline: Deadline) -> dict:
        data = deadline.to_dict()
        data.pop("id", None)
        data["dueDate"] = deadline.due_date
        data["createdAt"] = deadline.created_at
        return data

    def create_deadline(self, deadline: Deadline) -> str:
        try:
            ref = self._user_ref(deadline.owner_id).collection("deadlines").document()
            ref.set(self._deadline_doc(deadline))
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        deadline.id = ref.id
        return ref.id

    def replace_deadline(self, deadline: Deadline) -> None:
        try:
            ref = self._user_ref(deadline.owner_id).collection("deadlines").document(deadline.id)
            ref.set(self._deadline_doc(deadline))
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc

    def delete_deadline(self, uid: str, deadline_id: str) -> bool:
        ref = self._user_ref(uid).collection("deadlines").document(deadline_id)
        try:
            if not ref.get().exists:
                return False
            ref.delete()
        except GoogleAPICallError as exc:
            raise FirestoreServiceError(str(exc)) from exc
        return True
