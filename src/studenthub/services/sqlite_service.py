from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import List, Optional

from studenthub.config.settings import settings
from studenthub.models.entities import AcademicStats, Deadline, Semester, Term, utc_now
from studenthub.services.errors import DuplicateRecordError, StoreError

logger = logging.getLogger(__name__)


class SqliteServiceError(StoreError):
    pass


class SqliteDuplicateError(SqliteServiceError, DuplicateRecordError):
    pass


class SqliteService:
    """Local document store: each row keeps its document as JSON next to its keys."""

    def __init__(self, db_path: str = "studenthub.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    @classmethod
    def from_settings(cls) -> "SqliteService":
        return cls(settings.sqlite_path)

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
              uid TEXT PRIMARY KEY,
              email TEXT,
              created_at TEXT NOT NULL,
              academic_stats TEXT
            );

            CREATE TABLE IF NOT EXISTS semesters (
              id TEXT PRIMARY KEY,
              student_id TEXT NOT NULL,
              semester TEXT NOT NULL,
              year INTEGER NOT NULL,
              doc TEXT NOT NULL,
              UNIQUE(student_id, semester, year)
            );

            CREATE TABLE IF NOT EXISTS deadlines (
              id TEXT PRIMARY KEY,
              owner_id TEXT NOT NULL,
              course_code TEXT NOT NULL,
              due_date TEXT NOT NULL,
              doc TEXT NOT NULL
            );
            """
        )
        self.conn.commit()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cur = self.conn.execute(sql, params)
            self.conn.commit()
            return cur
        except sqlite3.IntegrityError as exc:
            raise SqliteDuplicateError(f"Constraint violated: {exc}") from exc
        except sqlite3.Error as exc:
            logger.exception("SQLite statement failed")
            raise SqliteServiceError(str(exc)) from exc

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    def ensure_user_profile(self, uid: str, email: str) -> None:
        self._execute(
            "INSERT OR IGNORE INTO users(uid, email, created_at) VALUES(?, ?, ?)",
            (uid, email.lower().strip(), utc_now().isoformat()),
        )

    def list_student_ids(self) -> List[str]:
        rows = self._execute(
            """SELECT uid FROM users
               UNION SELECT DISTINCT student_id FROM semesters
               ORDER BY 1"""
        ).fetchall()
        return [row[0] for row in rows]

    def list_semesters(self, uid: str) -> List[Semester]:
        rows = self._execute(
            "SELECT id, doc FROM semesters WHERE student_id=? ORDER BY year, semester",
            (uid,),
        ).fetchall()
        return [Semester.from_dict(json.loads(row["doc"]), student_id=uid, id=row["id"]) for row in rows]

    def get_semester(self, uid: str, semester_id: str) -> Optional[Semester]:
        row = self._execute(
            "SELECT id, doc FROM semesters WHERE id=? AND student_id=?",
            (semester_id, uid),
        ).fetchone()
        if not row:
            return None
        return Semester.from_dict(json.loads(row["doc"]), student_id=uid, id=row["id"])

    def find_semester(self, uid: str, term: Term, year: int) -> Optional[Semester]:
        row = self._execute(
            "SELECT id, doc FROM semesters WHERE student_id=? AND semester=? AND year=?",
            (uid, Term(term).value, year),
        ).fetchone()
        if not row:
            return None
        return Semester.from_dict(json.loads(row["doc"]), student_id=uid, id=row["id"])

    def create_semester(self, semester: Semester) -> str:
        semester.id = semester.id or self._new_id()
        self._execute(
            "INSERT INTO semesters(id, student_id, semester, year, doc) VALUES(?,?,?,?,?)",
            (
                semester.id,
                semester.student_id,
                semester.term.value,
                semester.year,
                json.dumps(semester.to_dict()),
            ),
        )
        return semester.id

    def replace_semester(self, semester: Semester) -> None:
        cur = self._execute(
            """UPDATE semesters SET semester=?, year=?, doc=?
               WHERE id=? AND student_id=?""",
            (
                semester.term.value,
                semester.year,
                json.dumps(semester.to_dict()),
                semester.id,
                semester.student_id,
            ),
        )
        if cur.rowcount == 0:
            raise SqliteServiceError(f"Semester {semester.id} does not exist")

    def delete_semester(self, uid: str, semester_id: str) -> bool:
        cur = self._execute("DELETE FROM semesters WHERE id=? AND student_id=?", (semester_id, uid))
        return cur.rowcount > 0

    def get_stats(self, uid: str) -> Optional[AcademicStats]:
        row = self._execute("SELECT academic_stats FROM users WHERE uid=?", (uid,)).fetchone()
        if not row or not row["academic_stats"]:
            return None
        return AcademicStats.from_dict(json.loads(row["academic_stats"]))

    def save_stats(self, uid: str, stats: AcademicStats) -> None:
        self._execute(
            """INSERT INTO users(uid, created_at, academic_stats) VALUES(?, ?, ?)
               ON CONFLICT(uid) DO UPDATE SET academic_stats=excluded.academic_stats""",
            (uid, utc_now().isoformat(), json.dumps(stats.to_dict())),
        )

    def list_deadlines(self, uid: str) -> List[Deadline]:
        rows = self._execute(
            "SELECT id, doc FROM deadlines WHERE owner_id=? ORDER BY due_date",
            (uid,),
        ).fetchall()
        return [Deadline.from_dict(json.loads(row["doc"]), owner_id=uid, id=row["id"]) for row in rows]

    def get_deadline(self, uid: str, deadline_id: str) -> Optional[Deadline]:
        row = self._execute(
            "SELECT id, doc FROM deadlines WHERE id=? AND owner_id=?",
            (deadline_id, uid),
        ).fetchone()
        if not row:
            return None
        return Deadline.from_dict(json.loads(row["doc"]), owner_id=uid, id=row["id"])

    def create_deadline(self, deadline: Deadline) -> str:
        deadline.id = deadline.id or self._new_id()
        self._execute(
            "INSERT INTO deadlines(id, owner_id, course_code, due_date, doc) VALUES(?,?,?,?,?)",
            (
                deadline.id,
                deadline.owner_id,
                deadline.course_code,
                deadline.due_date.isoformat(),
                json.dumps(deadline.to_dict()),
            ),
        )
        return deadline.id

    def replace_deadline(self, deadline: Deadline) -> None:
        cur = self._execute(
            """UPDATE deadlines SET course_code=?, due_date=?, doc=?
               WHERE id=? AND owner_id=?""",
            (
                deadline.course_code,
                deadline.due_date.isoformat(),
                json.dumps(deadline.to_dict()),
                deadline.id,
                deadline.owner_id,
            ),
        )
        if cur.rowcount == 0:
            raise SqliteServiceError(f"Deadline {deadline.id} does not exist")

    def delete_deadline(self, uid: str, deadline_id: str) -> bool:
        cur = self._execute("DELETE FROM deadlines WHERE id=? AND owner_id=?", (deadline_id, uid))
        return cur.rowcount > 0
