from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from studenthub.models.entities import Deadline, DeadlineCategory

CRITICAL_WINDOW = timedelta(hours=24)
SOON_WINDOW = timedelta(days=3)
EXPIRED_LABEL = "Time is up!"


class Urgency(str, Enum):
    EXPIRED = "expired"
    CRITICAL = "critical"
    SOON = "soon"
    NORMAL = "normal"


class QuickFilter(str, Enum):
    ALL = "all"
    TODAY = "today"
    TOMORROW = "tomorrow"


@dataclass(frozen=True)
class Countdown:
    days: int
    hours: int
    minutes: int
    urgency: Urgency

    @property
    def label(self) -> str:
        if self.urgency is Urgency.EXPIRED:
            return EXPIRED_LABEL
        return f"{self.days}d {self.hours}h {self.minutes}m"

    def to_dict(self) -> Dict:
        return {
            "days": self.days,
            "hours": self.hours,
            "minutes": self.minutes,
            "label": self.label,
            "urgency": self.urgency.value,
        }


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def classify_urgency(remaining: timedelta) -> Urgency:
    if remaining <= timedelta(0):
        return Urgency.EXPIRED
    if remaining < CRITICAL_WINDOW:
        return Urgency.CRITICAL
    if remaining < SOON_WINDOW:
        return Urgency.SOON
    return Urgency.NORMAL


def countdown(due_date: datetime, now: Optional[datetime] = None) -> Countdown:
    current = _aware(now or datetime.now(timezone.utc))
    remaining = _aware(due_date) - current
    urgency = classify_urgency(remaining)
    if urgency is Urgency.EXPIRED:
        return Countdown(0, 0, 0, urgency)

    total_minutes = int(remaining.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    return Countdown(days, hours, minutes, urgency)


def _due_on(deadline: Deadline, day_offset: int, now: datetime) -> bool:
    current = _aware(now)
    target = (current + timedelta(days=day_offset)).date()
    return _aware(deadline.due_date).astimezone(current.tzinfo).date() == target


def filter_deadlines(
    deadlines: Iterable[Deadline],
    *,
    course_code: Optional[str] = None,
    category: Optional[DeadlineCategory] = None,
    quick_filter: QuickFilter = QuickFilter.ALL,
    now: Optional[datetime] = None,
) -> List[Deadline]:
    current = now or datetime.now(timezone.utc)
    results = []
    for item in deadlines:
        if course_code and item.course_code != course_code:
            continue
        if category and item.category != category:
            continue
        if quick_filter is QuickFilter.TODAY and not _due_on(item, 0, current):
            continue
        if quick_filter is QuickFilter.TOMORROW and not _due_on(item, 1, current):
            continue
        results.append(item)
    results.sort(key=lambda d: _aware(d.due_date))
    return results


def with_countdown(deadline: Deadline, now: Optional[datetime] = None) -> Dict:
    data = deadline.to_dict()
    data["countdown"] = countdown(deadline.due_date, now).to_dict()
    return data


def overview(deadlines: Iterable[Deadline], now: Optional[datetime] = None) -> Dict:
    current = now or datetime.now(timezone.utc)
    items = sorted(deadlines, key=lambda d: _aware(d.due_date))

    grouped: Dict[str, Dict[str, List[Dict]]] = {}
    for item in items:
        bucket = grouped.setdefault(item.course_code, {"exams": [], "assignments": []})
        key = "exams" if item.category is DeadlineCategory.EXAM else "assignments"
        bucket[key].append(with_countdown(item, current))

    return {
        "total": len(items),
        "dueToday": sum(1 for item in items if _due_on(item, 0, current)),
        "dueTomorrow": sum(1 for item in items if _due_on(item, 1, current)),
        "courseCodes": sorted(grouped),
        "byCourse": {code: grouped[code] for code in sorted(grouped)},
    }
