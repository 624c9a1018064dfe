"""
Attendance bookkeeping and statistics.

Why: Teachers mark attendance per class, date and subject; students see their
overall and subject-wise percentages. Percentages are derived on read from the
stored records so they can never drift from the data.

Semantics:
    - Re-marking the same (student, class, date, subject) replaces the records
      written by the same marker; records of other markers are kept.
    - A class counts as held once per (class, subject, date).
    - Subject percentage = present / classes held when the class has a held
      count for that subject, else present / records. Overall percentage =
      present / records. Percentages are whole numbers, rounded half up.
    - Subjects with classes held but no records yet are reported with zeros.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as _date
from typing import Dict, Iterable, List, Optional, Sequence
import logging
import math
import uuid

logger = logging.getLogger("campus.academics")

UNKNOWN_SUBJECT = "Unknown"


class AttendanceError(Exception):
    """Raised when an attendance batch is rejected."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class AttendanceRecord:
    id: str
    student_id: str
    student_name: str
    class_id: str
    subject: str
    date: str  # YYYY-MM-DD
    present: bool
    marked_by: str


@dataclass(frozen=True)
class ClassHeld:
    id: str
    class_id: str
    subject: str
    date: str
    marked_by: str


@dataclass(frozen=True)
class AttendanceEntry:
    student_id: str
    student_name: str
    present: bool


@dataclass
class SubjectStats:
    total: int = 0
    present: int = 0
    absent: int = 0
    percentage: int = 0
    classes_held: int = 0


@dataclass
class AttendanceStats:
    student_id: str
    total_classes: int = 0
    present_classes: int = 0
    absent_classes: int = 0
    overall_percentage: int = 0
    subject_wise: Dict[str, SubjectStats] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "studentId": self.student_id,
            "totalClasses": self.total_classes,
            "presentClasses": self.present_classes,
            "absentClasses": self.absent_classes,
            "overallPercentage": self.overall_percentage,
            "subjectWise": {
                subject: {
                    "total": s.total,
                    "present": s.present,
                    "absent": s.absent,
                    "percentage": s.percentage,
                    "classesHeld": s.classes_held,
                }
                for subject, s in sorted(self.subject_wise.items())
            },
        }


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def compute_attendance_stats(
    student_id: str,
    records: Iterable[AttendanceRecord],
    classes_held: Iterable[ClassHeld] = (),
) -> AttendanceStats:
    held_by_subject: Dict[str, int] = {}
    for held in classes_held:
        subject = held.subject or UNKNOWN_SUBJECT
        held_by_subject[subject] = held_by_subject.get(subject, 0) + 1

    stats = AttendanceStats(student_id=student_id)
    for rec in records:
        if rec.student_id != student_id:
            continue
        subject = rec.subject or UNKNOWN_SUBJECT
        per = stats.subject_wise.setdefault(subject, SubjectStats())
        stats.total_classes += 1
        per.total += 1
        if rec.present:
            stats.present_classes += 1
            per.present += 1
        else:
            stats.absent_classes += 1
            per.absent += 1

    for subject, count in held_by_subject.items():
        stats.subject_wise.setdefault(subject, SubjectStats()).classes_held = count

    stats.overall_percentage = percent(stats.present_classes, stats.total_classes)
    for per in stats.subject_wise.values():
        denominator = per.classes_held if per.classes_held > 0 else per.total
        per.percentage = percent(per.present, denominator)
    return stats


def attendance_percentage(records: Iterable[AttendanceRecord], student_id: str, subject: str) -> int:
    """Plain present/records percentage for one student and subject."""
    relevant = [r for r in records if r.student_id == student_id and r.subject == subject]
    return percent(sum(1 for r in relevant if r.present), len(relevant))


def _validate_date(value: str) -> str:
    try:
        return _date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise AttendanceError("invalid_date") from None


class AttendanceBook:
    """In-memory attendance store (records plus classes held)."""

    def __init__(self) -> None:
        self._records: List[AttendanceRecord] = []
        self._held: List[ClassHeld] = []

    async def mark_attendance(
        self,
        *,
        class_id: str,
        date: str,
        subject: str,
        entries: Sequence[AttendanceEntry],
        marked_by: str,
    ) -> List[AttendanceRecord]:
        if not entries:
            raise AttendanceError("no_records")
        subject = (subject or "").strip()
        if not subject:
            raise AttendanceError("subject_required")
        if not class_id:
            raise AttendanceError("class_required")
        day = _validate_date(date)

        students = {e.student_id for e in entries}
        self._records = [
            r
            for r in self._records
            if not (
                r.student_id in students
                and r.class_id == class_id
                and r.date == day
                and r.subject == subject
                and r.marked_by == marked_by
            )
        ]
        if not any(h.class_id == class_id and h.subject == subject and h.date == day for h in self._held):
            self._held.append(ClassHeld(id=uuid.uuid4().hex, class_id=class_id, subject=subject, date=day, marked_by=marked_by))

        created = [
            AttendanceRecord(
                id=uuid.uuid4().hex,
                student_id=e.student_id,
                student_name=e.student_name,
                class_id=class_id,
                subject=subject,
                date=day,
                present=bool(e.present),
                marked_by=marked_by,
            )
            for e in entries
        ]
        self._records.extend(created)
        logger.info("Attendance marked for %s students (class=%s subject=%s date=%s)", len(created), class_id, subject, day)
        return created

    async def records_for(self, student_id: str, subject: Optional[str] = None) -> List[AttendanceRecord]:
        rows = [r for r in self._records if r.student_id == student_id and (subject is None or r.subject == subject)]
        return sorted(rows, key=lambda r: r.date, reverse=True)

    async def classes_held(self, class_id: str, subject: Optional[str] = None) -> List[ClassHeld]:
        return [h for h in self._held if h.class_id == class_id and (subject is None or h.subject == subject)]

    async def stats_for(self, student_id: str, class_id: Optional[str] = None) -> AttendanceStats:
        records = await self.records_for(student_id)
        held = await self.classes_held(class_id) if class_id else []
        return compute_attendance_stats(student_id, records, held)
