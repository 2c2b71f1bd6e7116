from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from studenthub.core.deadlines import QuickFilter, filter_deadlines, overview, with_countdown
from studenthub.models.entities import Deadline, DeadlineCategory, SubmissionMode

logger = logging.getLogger(__name__)


class DeadlineServiceError(Exception):
    pass


class DeadlineNotFoundError(DeadlineServiceError):
    pass


def build_deadline(
    owner_id: str,
    *,
    course_code: str,
    category: DeadlineCategory,
    name: str,
    due_date: datetime,
    syllabus: str = "",
    room: Optional[str] = None,
    mode: Optional[SubmissionMode] = None,
    submission_link: Optional[str] = None,
) -> Deadline:
    course_code = course_code.strip()
    name = name.strip()
    if not course_code:
        raise DeadlineServiceError("Course code is required.")
    if not name:
        raise DeadlineServiceError("Name is required.")

    category = DeadlineCategory(category)
    # rooms belong to exams, submission details to assignments
    if category is DeadlineCategory.EXAM:
        mode = None
        submission_link = None
        room = (room or "").strip() or None
    else:
        room = None
        submission_link = (submission_link or "").strip() or None

    return Deadline(
        owner_id=owner_id,
        course_code=course_code,
        category=category,
        name=name,
        due_date=due_date,
        syllabus=(syllabus or "").strip(),
        room=room,
        mode=SubmissionMode(mode) if mode else None,
        submission_link=submission_link,
    )


class DeadlineService:
    def __init__(self, store) -> None:
        self.store = store

    def list_deadlines(
        self,
        uid: str,
        *,
        course_code: Optional[str] = None,
        category: Optional[DeadlineCategory] = None,
        quick_filter: QuickFilter = QuickFilter.ALL,
        now: Optional[datetime] = None,
    ) -> List[Dict]:
        items = filter_deadlines(
            self.store.list_deadlines(uid),
            course_code=course_code,
            category=category,
            quick_filter=quick_filter,
            now=now,
        )
        return [with_countdown(item, now) for item in items]

    def overview(self, uid: str, now: Optional[datetime] = None) -> Dict:
        return overview(self.store.list_deadlines(uid), now)

    def create(self, uid: str, **fields) -> Deadline:
        deadline = build_deadline(uid, **fields)
        self.store.create_deadline(deadline)
        logger.info("Created deadline %s (%s) for %s", deadline.id, deadline.course_code, uid)
        return deadline

    def update(self, uid: str, deadline_id: str, **fields) -> Deadline:
        current = self.store.get_deadline(uid, deadline_id)
        if current is None:
            raise DeadlineNotFoundError("Deadline not found")
        deadline = build_deadline(uid, **fields)
        deadline.id = current.id
        deadline.created_at = current.created_at
        self.store.replace_deadline(deadline)
        return deadline

    def delete(self, uid: str, deadline_id: str) -> None:
        if not self.store.delete_deadline(uid, deadline_id):
            raise DeadlineNotFoundError("Deadline not found")
