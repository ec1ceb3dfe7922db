from datetime import date, datetime, timezone
import logging
import re

from sqlalchemy.orm import Session

from .errors import NotFoundError, StaleReferenceError, ValidationError
from .models import AttendanceRecord, Course, FeeRecord, FeeStatus, RecordStatus, Student, Teacher
from .rules import (
    ATTENDANCE_CONFLICT_TARGET,
    WriteContext,
    build_attendance_write,
    build_batch_attendance_write,
    build_fee_write,
    compute_default_presence,
    require_actor,
)
from .schemas import AttendanceRow, AttendanceSheet, FeeRow, FeeSheet
from .store import RosterStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def _normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format")
    return normalized


def _require_fields(**fields) -> None:
    missing = [name for name, value in fields.items() if value is None or not str(value).strip()]
    if missing:
        raise ValidationError(f"Please fill all fields! Missing: {', '.join(missing)}")


def _get_or_404(store: RosterStore, model, record_id, label: str):
    record = store.get(model, record_id)
    if record is None:
        raise NotFoundError(f"{label} not found")
    return record


# --- courses ---


def list_courses(db: Session, *, active_only: bool = False) -> list[Course]:
    store = RosterStore(db)
    if active_only:
        return store.select(Course, status=RecordStatus.ACTIVE)
    return store.select(Course)


def create_course(db: Session, *, name: str) -> Course:
    _require_fields(name=name)
    [course] = RosterStore(db).insert(Course, [{"name": name.strip(), "status": RecordStatus.ACTIVE}])
    logger.info(f"Course {course.id} created: {course.name}")
    return course


def set_course_status(db: Session, *, course_id: int, status: RecordStatus | None = None) -> Course:
    """Set a course's status, or flip it when no status is given."""
    store = RosterStore(db)
    course = _get_or_404(store, Course, course_id, "Course")
    if status is None:
        status = RecordStatus.INACTIVE if course.status == RecordStatus.ACTIVE else RecordStatus.ACTIVE
    store.update(Course, course_id, {"status": status})
    return _get_or_404(store, Course, course_id, "Course")


def delete_course(db: Session, *, course_id: int) -> None:
    if not RosterStore(db).delete(Course, course_id):
        raise NotFoundError("Course not found")
    logger.info(f"Course {course_id} deleted")


# --- teachers ---


def list_teachers(db: Session, *, active_only: bool = False) -> list[Teacher]:
    store = RosterStore(db)
    if active_only:
        return store.select(Teacher, status=RecordStatus.ACTIVE)
    return store.select(Teacher)


def _teacher_values(name: str, email: str, subject: str, status: RecordStatus) -> dict:
    _require_fields(name=name, email=email, subject=subject)
    return {
        "name": name.strip(),
        "email": _normalize_email(email),
        "subject": subject.strip(),
        "status": status,
    }


def create_teacher(db: Session, *, name: str, email: str, subject: str, status: RecordStatus) -> Teacher:
    [teacher] = RosterStore(db).insert(Teacher, [_teacher_values(name, email, subject, status)])
    logger.info(f"Teacher {teacher.id} created")
    return teacher


def update_teacher(
    db: Session, *, teacher_id: int, name: str, email: str, subject: str, status: RecordStatus
) -> Teacher:
    store = RosterStore(db)
    if not store.update(Teacher, teacher_id, _teacher_values(name, email, subject, status)):
        raise NotFoundError("Teacher not found")
    return _get_or_404(store, Teacher, teacher_id, "Teacher")


def delete_teacher(db: Session, *, teacher_id: int) -> None:
    if not RosterStore(db).delete(Teacher, teacher_id):
        raise NotFoundError("Teacher not found")
    logger.info(f"Teacher {teacher_id} deleted")


# --- students ---


def list_students(db: Session, *, course_id: int | None = None) -> list[Student]:
    store = RosterStore(db)
    if course_id is not None:
        return store.select(Student, course_id=course_id)
    return store.select(Student)


def _student_values(store: RosterStore, name: str, email: str, course_id: int | None, status: RecordStatus) -> dict:
    _require_fields(name=name, email=email, course_id=course_id)
    course = store.get(Course, course_id)
    if course is None or course.status != RecordStatus.ACTIVE:
        raise ValidationError("Please select an active course")
    return {
        "name": name.strip(),
        "email": _normalize_email(email),
        "course_id": course_id,
        "status": status,
    }


def create_student(db: Session, *, name: str, email: str, course_id: int | None, status: RecordStatus) -> Student:
    store = RosterStore(db)
    [student] = store.insert(Student, [_student_values(store, name, email, course_id, status)])
    logger.info(f"Student {student.id} created in course {student.course_id}")
    return student


def update_student(
    db: Session, *, student_id: int, name: str, email: str, course_id: int | None, status: RecordStatus
) -> Student:
    store = RosterStore(db)
    if not store.update(Student, student_id, _student_values(store, name, email, course_id, status)):
        raise NotFoundError("Student not found")
    return _get_or_404(store, Student, student_id, "Student")


def delete_student(db: Session, *, student_id: int) -> None:
    if not RosterStore(db).delete(Student, student_id):
        raise NotFoundError("Student not found")
    logger.info(f"Student {student_id} deleted")


# --- write context ---


def _resolve_selection(store: RosterStore, *, course_id: int | None, teacher_id: int | None) -> tuple[Teacher, Course]:
    # The actor check comes first so an unattributed write never reaches the store.
    require_actor(teacher_id)
    if course_id is None:
        raise ValidationError("Please select a course")

    teacher = store.get(Teacher, teacher_id)
    if teacher is None or teacher.status != RecordStatus.ACTIVE:
        raise ValidationError("Selected teacher is not active")
    course = store.get(Course, course_id)
    if course is None or course.status != RecordStatus.ACTIVE:
        raise ValidationError("Selected course is not active")
    return teacher, course


def _resolve_context(store: RosterStore, *, course_id: int | None, teacher_id: int | None, day: date) -> WriteContext:
    teacher, course = _resolve_selection(store, course_id=course_id, teacher_id=teacher_id)
    # Course name is read at write time so a rename is reflected in new records.
    return WriteContext(course_id=course.id, course_name=course.name, teacher_id=teacher.id, date=day)


def _require_roster_student(store: RosterStore, *, student_id: int, course_id: int) -> Student:
    student = store.get(Student, student_id)
    if student is None or student.course_id != course_id or student.status != RecordStatus.ACTIVE:
        raise ValidationError("Student is not on the active roster of this course")
    return student


def _require_sheet_course(store: RosterStore, course_id: int) -> Course:
    course = store.get(Course, course_id)
    if course is None:
        raise NotFoundError("Course not found")
    if course.status != RecordStatus.ACTIVE:
        raise ValidationError("Selected course is not active")
    return course


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops the offset on the way back; stored values are always UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _teacher_names(store: RosterStore) -> dict[str, str]:
    return {str(teacher.id): teacher.name for teacher in store.select(Teacher)}


# --- attendance ---


def get_attendance_sheet(db: Session, *, course_id: int, day: date) -> AttendanceSheet:
    store = RosterStore(db)
    _require_sheet_course(store, course_id)
    students = store.select(Student, course_id=course_id, status=RecordStatus.ACTIVE)
    records = {record.student_id: record for record in store.select(AttendanceRecord, course_id=course_id, date=day)}
    names = _teacher_names(store)

    rows = []
    for student in students:
        record = records.get(student.id)
        rows.append(
            AttendanceRow(
                student_id=student.id,
                name=student.name,
                present=compute_default_presence(record),
                marked_by=record.marked_by if record else None,
                marked_by_name=names.get(record.marked_by, record.marked_by) if record else None,
                timestamp=_as_utc(record.timestamp) if record else None,
            )
        )
    return AttendanceSheet(
        course_id=course_id,
        date=day,
        all_present=bool(rows) and all(row.present for row in rows),
        rows=rows,
    )


def toggle_attendance(
    db: Session,
    *,
    course_id: int | None,
    teacher_id: int | None,
    day: date,
    student_id: int,
    displayed_present: bool,
) -> AttendanceSheet:
    store = RosterStore(db)
    ctx = _resolve_context(store, course_id=course_id, teacher_id=teacher_id, day=day)
    _require_roster_student(store, student_id=student_id, course_id=ctx.course_id)

    payload = build_attendance_write(ctx, student_id, displayed_present)
    store.upsert(AttendanceRecord, [payload.to_row()], on_conflict=ATTENDANCE_CONFLICT_TARGET)
    logger.info(
        f"Attendance {payload.conflict_key()} set present={payload.present} by teacher {payload.marked_by}"
    )
    return get_attendance_sheet(db, course_id=ctx.course_id, day=day)


def mark_all_attendance(
    db: Session,
    *,
    course_id: int | None,
    teacher_id: int | None,
    day: date,
    present: bool,
) -> AttendanceSheet:
    """Mark the whole active roster present or absent in one upsert.

    The returned sheet is always re-read from the store. When the batch
    fails the StoreError propagates and no sheet is produced.
    """
    store = RosterStore(db)
    ctx = _resolve_context(store, course_id=course_id, teacher_id=teacher_id, day=day)
    roster = [student.id for student in store.select(Student, course_id=ctx.course_id, status=RecordStatus.ACTIVE)]

    payloads = build_batch_attendance_write(ctx, roster, present)
    if payloads:
        store.upsert(AttendanceRecord, [p.to_row() for p in payloads], on_conflict=ATTENDANCE_CONFLICT_TARGET)
        logger.info(
            f"Marked {len(payloads)} student(s) present={present} in course {ctx.course_id} on {day} "
            f"by teacher {ctx.teacher_id}"
        )
    return get_attendance_sheet(db, course_id=ctx.course_id, day=day)


# --- fees ---


def get_fee_sheet(db: Session, *, course_id: int) -> FeeSheet:
    store = RosterStore(db)
    _require_sheet_course(store, course_id)
    students = store.select(Student, course_id=course_id, status=RecordStatus.ACTIVE)
    fees: dict[int, FeeRecord] = {}
    for fee in store.select(FeeRecord, course_id=course_id):
        # Several rows may exist for one student; the oldest one is shown and edited.
        fees.setdefault(fee.student_id, fee)
    names = _teacher_names(store)

    rows = []
    for student in students:
        fee = fees.get(student.id)
        if fee is None:
            rows.append(FeeRow(student_id=student.id, name=student.name))
            continue
        rows.append(
            FeeRow(
                student_id=student.id,
                name=student.name,
                fee_id=fee.id,
                total_amount=fee.total_amount,
                paid_amount=fee.paid_amount,
                status=FeeStatus(fee.status),
                updated_by=fee.updated_by,
                updated_by_name=names.get(fee.updated_by, fee.updated_by) if fee.updated_by else None,
                updated_at=_as_utc(fee.updated_at),
            )
        )
    return FeeSheet(course_id=course_id, rows=rows)


def save_fee(
    db: Session,
    *,
    course_id: int | None,
    teacher_id: int | None,
    student_id: int,
    fee_id: int | None,
    total_amount: float,
    paid_amount: float,
) -> FeeSheet:
    store = RosterStore(db)
    teacher, course = _resolve_selection(store, course_id=course_id, teacher_id=teacher_id)
    _require_roster_student(store, student_id=student_id, course_id=course.id)

    ctx = WriteContext(course_id=course.id, course_name=course.name, teacher_id=teacher.id, date=None)
    payload = build_fee_write(ctx, student_id, fee_id, total_amount, paid_amount)

    if payload.operation == "insert":
        [fee] = store.insert(FeeRecord, [payload.to_row()])
        logger.info(f"Fee {fee.id} created for student {student_id} ({payload.status.value})")
    else:
        existing = store.get(FeeRecord, payload.record_id)
        if existing is None:
            logger.warning(f"Fee {payload.record_id} no longer exists; refusing to re-create it")
            raise StaleReferenceError(f"Fee record {payload.record_id} no longer exists; reload and try again")
        if existing.student_id != student_id or existing.course_id != course.id:
            raise ValidationError(f"Fee record {payload.record_id} does not belong to this student and course")
        if not store.update(FeeRecord, payload.record_id, payload.to_row()):
            logger.warning(f"Fee {payload.record_id} no longer exists; refusing to re-create it")
            raise StaleReferenceError(f"Fee record {payload.record_id} no longer exists; reload and try again")
        logger.info(f"Fee {payload.record_id} updated for student {student_id} ({payload.status.value})")

    return get_fee_sheet(db, course_id=course_id)
