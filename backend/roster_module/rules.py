"""Reconciliation rules for attendance and fee writes.

Everything here is pure: the functions take an explicit, request-scoped
:class:`WriteContext` and return a payload ready to hand to the store, or
raise :class:`~roster_module.errors.ValidationError`. Nothing here talks to
the database, and nothing here applies or rolls back optimistic state; that
is the caller's decision.
"""
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .models import FeeStatus
from .schemas import AttendanceWrite, FeeWrite, RecordId


# Composite conflict target, passed to the store as one delimited string.
ATTENDANCE_CONFLICT_TARGET = "student_id,course_id,date"


@dataclass(frozen=True)
class WriteContext:
    course_id: RecordId | None
    course_name: str | None
    teacher_id: RecordId | None
    date: date | str | None


def require_actor(teacher_id: RecordId | None) -> str:
    if teacher_id is None or not str(teacher_id).strip():
        raise ValidationError("Please select a teacher before saving")
    return str(teacher_id).strip()


def _require_course(ctx: WriteContext) -> tuple[RecordId, str]:
    if ctx.course_id is None or not str(ctx.course_id).strip():
        raise ValidationError("Please select a course")
    if not ctx.course_name or not ctx.course_name.strip():
        raise ValidationError("Course name is required for attendance records")
    return ctx.course_id, ctx.course_name


def _require_date(value: date | str | None) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc
    raise ValidationError("Please select a date")


def _require_student(student_id: RecordId | None) -> RecordId:
    if student_id is None or not str(student_id).strip():
        raise ValidationError("Student id is required")
    return student_id


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def compute_default_presence(record: Any | None) -> bool:
    """Presence to display for a student; absent when no record exists.

    The fallback is never written back to the store.
    """
    if record is None:
        return False
    if isinstance(record, Mapping):
        return bool(record.get("present", False))
    return bool(record.present)


def build_attendance_write(
    ctx: WriteContext,
    student_id: RecordId,
    displayed_present: bool,
    now: datetime | None = None,
) -> AttendanceWrite:
    teacher = require_actor(ctx.teacher_id)
    course_id, course_name = _require_course(ctx)
    return AttendanceWrite(
        student_id=_require_student(student_id),
        course_id=course_id,
        course=course_name,
        date=_require_date(ctx.date),
        present=not displayed_present,
        marked_by=teacher,
        timestamp=_now(now),
    )


def build_batch_attendance_write(
    ctx: WriteContext,
    roster: Iterable[RecordId],
    present: bool,
    now: datetime | None = None,
) -> list[AttendanceWrite]:
    """One write per distinct student, all sharing date, teacher, time and presence.

    Duplicate ids are collapsed; a single upsert statement may not touch the
    same conflict key twice.
    """
    teacher = require_actor(ctx.teacher_id)
    course_id, course_name = _require_course(ctx)
    day = _require_date(ctx.date)
    stamp = _now(now)
    student_ids = list(dict.fromkeys(_require_student(sid) for sid in roster))
    return [
        AttendanceWrite(
            student_id=sid,
            course_id=course_id,
            course=course_name,
            date=day,
            present=present,
            marked_by=teacher,
            timestamp=stamp,
        )
        for sid in student_ids
    ]


def _require_amount(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"{label} must be a number")
    if isinstance(value, Decimal) and not value.is_finite():
        raise ValidationError(f"{label} must be a non-negative number")
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"{label} must be a non-negative number")
    return float(value)


def derive_fee_status(total_amount: Any, paid_amount: Any) -> FeeStatus:
    total = _require_amount(total_amount, "Total amount")
    paid = _require_amount(paid_amount, "Paid amount")
    # Inclusive: a zero fee with nothing paid counts as settled.
    return FeeStatus.PAID if paid >= total else FeeStatus.PENDING


def build_fee_write(
    ctx: WriteContext,
    student_id: RecordId,
    fee_id: RecordId | None,
    total_amount: Any,
    paid_amount: Any,
    now: datetime | None = None,
) -> FeeWrite:
    teacher = require_actor(ctx.teacher_id)
    student_id = _require_student(student_id)
    status = derive_fee_status(total_amount, paid_amount)

    if fee_id is None:
        if ctx.course_id is None or not str(ctx.course_id).strip():
            raise ValidationError("Please select a course")
        return FeeWrite(
            operation="insert",
            student_id=student_id,
            course_id=ctx.course_id,
            total_amount=float(total_amount),
            paid_amount=float(paid_amount),
            status=status,
            updated_by=teacher,
            updated_at=_now(now),
        )

    return FeeWrite(
        operation="update",
        record_id=fee_id,
        student_id=student_id,
        course_id=ctx.course_id,
        total_amount=float(total_amount),
        paid_amount=float(paid_amount),
        status=status,
        updated_by=teacher,
        updated_at=_now(now),
    )
