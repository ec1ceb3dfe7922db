from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .middleware import get_current_session
from .schemas import (
    AttendanceMarkAllRequest,
    AttendanceSheet,
    AttendanceToggleRequest,
    CourseCreateRequest,
    CourseOut,
    CourseStatusRequest,
    ErrorOut,
    FeeSaveRequest,
    FeeSheet,
    StudentOut,
    StudentRequest,
    TeacherOut,
    TeacherRequest,
)
from .services import (
    create_course,
    create_student,
    create_teacher,
    delete_course,
    delete_student,
    delete_teacher,
    get_attendance_sheet,
    get_fee_sheet,
    list_courses,
    list_students,
    list_teachers,
    mark_all_attendance,
    save_fee,
    set_course_status,
    toggle_attendance,
    update_student,
    update_teacher,
)

router = APIRouter(
    prefix="/api/v1/roster",
    tags=["Roster"],
    dependencies=[Depends(get_current_session)],
    responses={
        404: {"model": ErrorOut},
        409: {"model": ErrorOut},
        422: {"model": ErrorOut},
        502: {"model": ErrorOut},
    },
)


# --- courses ---


@router.get("/courses", response_model=list[CourseOut])
def get_courses(active_only: bool = False, db: Session = Depends(get_db_session)):
    return list_courses(db, active_only=active_only)


@router.post("/courses", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def add_course(payload: CourseCreateRequest, db: Session = Depends(get_db_session)):
    return create_course(db, name=payload.name)


@router.patch("/courses/{course_id}/status", response_model=CourseOut)
def change_course_status(course_id: int, payload: CourseStatusRequest, db: Session = Depends(get_db_session)):
    return set_course_status(db, course_id=course_id, status=payload.status)


@router.delete("/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_course(course_id: int, db: Session = Depends(get_db_session)):
    delete_course(db, course_id=course_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- teachers ---


@router.get("/teachers", response_model=list[TeacherOut])
def get_teachers(active_only: bool = False, db: Session = Depends(get_db_session)):
    return list_teachers(db, active_only=active_only)


@router.post("/teachers", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
def add_teacher(payload: TeacherRequest, db: Session = Depends(get_db_session)):
    return create_teacher(
        db, name=payload.name, email=payload.email, subject=payload.subject, status=payload.status
    )


@router.put("/teachers/{teacher_id}", response_model=TeacherOut)
def edit_teacher(teacher_id: int, payload: TeacherRequest, db: Session = Depends(get_db_session)):
    return update_teacher(
        db,
        teacher_id=teacher_id,
        name=payload.name,
        email=payload.email,
        subject=payload.subject,
        status=payload.status,
    )


@router.delete("/teachers/{teacher_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_teacher(teacher_id: int, db: Session = Depends(get_db_session)):
    delete_teacher(db, teacher_id=teacher_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- students ---


@router.get("/students", response_model=list[StudentOut])
def get_students(course_id: int | None = None, db: Session = Depends(get_db_session)):
    return list_students(db, course_id=course_id)


@router.post("/students", response_model=StudentOut, status_code=status.HTTP_201_CREATED)
def add_student(payload: StudentRequest, db: Session = Depends(get_db_session)):
    return create_student(
        db, name=payload.name, email=payload.email, course_id=payload.course_id, status=payload.status
    )


@router.put("/students/{student_id}", response_model=StudentOut)
def edit_student(student_id: int, payload: StudentRequest, db: Session = Depends(get_db_session)):
    return update_student(
        db,
        student_id=student_id,
        name=payload.name,
        email=payload.email,
        course_id=payload.course_id,
        status=payload.status,
    )


@router.delete("/students/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_student(student_id: int, db: Session = Depends(get_db_session)):
    delete_student(db, student_id=student_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- attendance ---


@router.get("/attendance", response_model=AttendanceSheet)
def attendance_sheet(
    course_id: int,
    day: date = Query(alias="date"),
    db: Session = Depends(get_db_session),
):
    return get_attendance_sheet(db, course_id=course_id, day=day)


@router.post("/attendance/toggle", response_model=AttendanceSheet)
def attendance_toggle(payload: AttendanceToggleRequest, db: Session = Depends(get_db_session)):
    return toggle_attendance(
        db,
        course_id=payload.course_id,
        teacher_id=payload.teacher_id,
        day=payload.date,
        student_id=payload.student_id,
        displayed_present=payload.displayed_present,
    )


@router.post("/attendance/mark-all", response_model=AttendanceSheet)
def attendance_mark_all(payload: AttendanceMarkAllRequest, db: Session = Depends(get_db_session)):
    return mark_all_attendance(
        db,
        course_id=payload.course_id,
        teacher_id=payload.teacher_id,
        day=payload.date,
        present=payload.present,
    )


# --- fees ---


@router.get("/fees", response_model=FeeSheet)
def fee_sheet(course_id: int, db: Session = Depends(get_db_session)):
    return get_fee_sheet(db, course_id=course_id)


@router.post("/fees/save", response_model=FeeSheet)
def fee_save(payload: FeeSaveRequest, db: Session = Depends(get_db_session)):
    return save_fee(
        db,
        course_id=payload.course_id,
        teacher_id=payload.teacher_id,
        student_id=payload.student_id,
        fee_id=payload.fee_id,
        total_amount=payload.total_amount,
        paid_amount=payload.paid_amount,
    )
