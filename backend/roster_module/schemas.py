from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .models import FeeStatus, RecordStatus


RecordId = int | str


# --- write payloads built by the rules ---


class AttendanceWrite(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_id: RecordId
    course_id: RecordId
    course: str
    date: date
    present: bool
    marked_by: str
    timestamp: datetime

    def conflict_key(self) -> tuple[RecordId, RecordId, date]:
        return (self.student_id, self.course_id, self.date)

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


class FeeWrite(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: Literal["insert", "update"]
    record_id: RecordId | None = None
    student_id: RecordId
    course_id: RecordId | None = None
    total_amount: float
    paid_amount: float
    status: FeeStatus
    updated_by: str
    updated_at: datetime

    def to_row(self) -> dict[str, Any]:
        # An update is keyed by the row id and leaves ownership columns alone.
        exclude = {"operation", "record_id"}
        if self.operation == "update":
            exclude |= {"student_id", "course_id"}
        return self.model_dump(exclude=exclude)


# --- requests ---


class CourseCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class CourseStatusRequest(BaseModel):
    status: RecordStatus | None = None


class TeacherRequest(BaseModel):
    name: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=255)
    subject: str = Field(default="", max_length=255)
    status: RecordStatus = RecordStatus.ACTIVE


class StudentRequest(BaseModel):
    name: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=255)
    course_id: int | None = None
    status: RecordStatus = RecordStatus.ACTIVE


class AttendanceToggleRequest(BaseModel):
    course_id: int | None = None
    teacher_id: int | None = None
    date: date
    student_id: int
    displayed_present: bool = False


class AttendanceMarkAllRequest(BaseModel):
    course_id: int | None = None
    teacher_id: int | None = None
    date: date
    present: bool


class FeeSaveRequest(BaseModel):
    course_id: int | None = None
    teacher_id: int | None = None
    student_id: int
    fee_id: int | None = None
    total_amount: float
    paid_amount: float


# --- responses ---


class CourseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    status: RecordStatus


class TeacherOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    subject: str
    status: RecordStatus


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    course_id: int
    status: RecordStatus


class AttendanceRow(BaseModel):
    student_id: int
    name: str
    present: bool
    marked_by: str | None = None
    marked_by_name: str | None = None
    timestamp: datetime | None = None


class AttendanceSheet(BaseModel):
    course_id: int
    date: date
    all_present: bool
    rows: list[AttendanceRow]


class FeeRow(BaseModel):
    student_id: int
    name: str
    fee_id: int | None = None
    total_amount: float = 0
    paid_amount: float = 0
    status: FeeStatus = FeeStatus.PENDING
    updated_by: str | None = None
    updated_by_name: str | None = None
    updated_at: datetime | None = None


class FeeSheet(BaseModel):
    course_id: int
    rows: list[FeeRow]


class ErrorOut(BaseModel):
    error: str
    detail: str
