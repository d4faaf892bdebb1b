from io import BytesIO

from flask import current_app
from openpyxl import Workbook
from sqlalchemy import select

from ..models import (
    Assessment, AssessmentClo, Clo, Course, Mark, Student, StudentCourseEnrollment,
    ENROLLED, utc_now,
)
from ..authz import principal_for, resolve_faculty, require, get_or_404
from ..errors import ValidationFailed, MarksFinalized, NoValidMarks, NotFound
from ..inputs import to_int, to_number
from ..serializers import course_brief, iso
from .services import require_course_access


def _percentage(obtained, allocated):
    return round(obtained / allocated * 100, 2) if allocated else 0


def _allocations(session, assessment_id):
    return session.execute(
        select(AssessmentClo)
        .join(Clo, Clo.clo_id == AssessmentClo.clo_id_fk)
        .filter(AssessmentClo.assessment_id_fk == assessment_id)
        .order_by(Clo.order, Clo.code)
    ).scalars().all()


def enrolled_students(session, course_id, semester=None, year=None):
    stmt = (
        select(Student)
        .join(StudentCourseEnrollment, StudentCourseEnrollment.student_id_fk == Student.student_id)
        .filter(
            StudentCourseEnrollment.course_id_fk == course_id,
            StudentCourseEnrollment.status == ENROLLED,
        )
    )
    if semester is not None:
        stmt = stmt.filter(StudentCourseEnrollment.semester == semester)
    if year is not None:
        stmt = stmt.filter(StudentCourseEnrollment.year == year)
    return session.execute(stmt.order_by(Student.roll_number, Student.student_id)).scalars().unique().all()


def is_enrolled(session, student_id, assessment):
    row = session.execute(
        select(StudentCourseEnrollment.enrollment_id).filter_by(
            student_id_fk=student_id,
            course_id_fk=assessment.course_id_fk,
            semester=assessment.semester,
            year=assessment.year,
            status=ENROLLED,
        )
    ).first()
    return row is not None


def check_mark_entry(allocated, marks_obtained, enrolled):
    """
    Single-entry verdict. Returns an error string or None.
    Shared by bulk entry and the dry-run validator.
    """
    if not enrolled:
        return "Student is not enrolled in this course for the assessment term"
    if allocated is None:
        return "CLO is not allocated to this assessment"
    if marks_obtained < 0:
        return "Marks cannot be negative"
    if marks_obtained > allocated:
        return f"Marks ({marks_obtained:g}) exceed allocated marks ({allocated:g}) for this CLO"
    return None


def entry_guard(session, user, assessment_id):
    principal = principal_for(session, user)
    if principal.role == "FACULTY":
        resolve_faculty(session, user)
    assessment = get_or_404(session, Assessment, assessment_id, message="Assessment not found")
    require(principal.can_enter_marks(assessment), "You are not allowed to enter marks for this assessment")
    return assessment


def enter_bulk_marks(session, user, assessment_id, payload):
    """
    Validates each entry independently and upserts the valid ones.
    Fails as a whole only when no entry is valid.
    """
    assessment = entry_guard(session, user, assessment_id)
    if assessment.is_marks_finalized:
        raise MarksFinalized("Marks are finalized; unfinalize before editing")

    entries = (payload or {}).get("marks_entries")
    if not isinstance(entries, list):
        raise ValidationFailed("marks_entries must be a list")

    allocations = {ac.clo_id_fk: ac.marks_allocated for ac in _allocations(session, assessment.assessment_id)}
    enrolled_ids = {s.student_id for s in enrolled_students(session, assessment.course_id_fk, assessment.semester, assessment.year)}

    errors = []
    valid = {}
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append({"index": index, "error": "Entry must be an object"})
            continue
        try:
            student_id = to_int(entry.get("student_id"), "student_id")
            clo_id = to_int(entry.get("clo_id"), "clo_id")
            marks_obtained = to_number(entry.get("marks_obtained"), "marks_obtained")
        except ValidationFailed as e:
            errors.append({
                "index": index,
                "student_id": entry.get("student_id"),
                "clo_id": entry.get("clo_id"),
                "error": e.message,
            })
            continue

        error = check_mark_entry(allocations.get(clo_id), marks_obtained, student_id in enrolled_ids)
        if error:
            errors.append({"index": index, "student_id": student_id, "clo_id": clo_id, "error": error})
            continue
        # Last entry for a (student, clo) pair wins
        valid[(student_id, clo_id)] = marks_obtained

    if not valid:
        raise NoValidMarks(errors=errors)

    existing = {
        (m.student_id_fk, m.clo_id_fk): m
        for m in session.execute(
            select(Mark).filter_by(assessment_id_fk=assessment.assessment_id)
        ).scalars().all()
    }
    now = utc_now()
    try:
        for (student_id, clo_id), marks_obtained in valid.items():
            mark = existing.get((student_id, clo_id))
            if mark:
                mark.marks_obtained = marks_obtained
                mark.entered_by_id_fk = user.user_id
                mark.updated_at = now
            else:
                session.add(Mark(
                    student_id_fk=student_id,
                    assessment_id_fk=assessment.assessment_id,
                    clo_id_fk=clo_id,
                    marks_obtained=marks_obtained,
                    entered_by_id_fk=user.user_id,
                    entered_at=now,
                    updated_at=now,
                ))
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(
        "Marks entry on assessment %s by user %s: %d saved, %d rejected",
        assessment.assessment_id, user.user_id, len(valid), len(errors),
    )
    return {
        "successful": len(valid),
        "failed": len(errors),
        "errors": errors,
        "summary": {"total_entries": len(entries), "processed": len(valid)},
    }


def _student_row(student, allocations, marks, with_timestamps=False):
    clo_marks = []
    total_obtained = 0.0
    total_allocated = 0.0
    any_nonzero = False
    for ac in allocations:
        mark = marks.get((student.student_id, ac.clo_id_fk))
        obtained = mark.marks_obtained if mark else 0
        total_obtained += obtained
        total_allocated += ac.marks_allocated
        if obtained:
            any_nonzero = True
        item = {
            "clo_id": ac.clo_id_fk,
            "clo_code": ac.clo.code if ac.clo else None,
            "marks_obtained": obtained,
            "marks_allocated": ac.marks_allocated,
            "percentage": _percentage(obtained, ac.marks_allocated),
            "entered": mark is not None,
        }
        if with_timestamps:
            item["entered_at"] = iso(mark.entered_at) if mark else None
            item["updated_at"] = iso(mark.updated_at) if mark else None
        clo_marks.append(item)
    return {
        "student_id": student.student_id,
        "roll_number": student.roll_number,
        "name": student.name,
        "clo_marks": clo_marks,
        "total_obtained": total_obtained,
        "total_allocated": total_allocated,
        "percentage": _percentage(total_obtained, total_allocated),
        "has_marks": any_nonzero,
    }


def get_assessment_marks(session, user, assessment_id):
    assessment = get_or_404(session, Assessment, assessment_id, message="Assessment not found")
    principal = principal_for(session, user)
    require(principal.can_view_assessment(assessment), "You do not have access to this assessment")

    allocations = _allocations(session, assessment.assessment_id)
    students = enrolled_students(session, assessment.course_id_fk, assessment.semester, assessment.year)
    marks = {
        (m.student_id_fk, m.clo_id_fk): m
        for m in session.execute(
            select(Mark).filter_by(assessment_id_fk=assessment.assessment_id)
        ).scalars().all()
    }

    rows = [_student_row(s, allocations, marks) for s in students]
    totals = [r["total_obtained"] for r in rows]
    entered = sum(1 for r in rows for c in r["clo_marks"] if c["entered"])
    total_allocated = sum(ac.marks_allocated for ac in allocations)
    slots = len(rows) * len(allocations)

    return {
        "assessment": {
            "assessment_id": assessment.assessment_id,
            "title": assessment.title,
            "max_marks": assessment.max_marks,
            "is_marks_finalized": bool(assessment.is_marks_finalized),
            "course": course_brief(assessment.course),
        },
        "clos": [
            {"clo_id": ac.clo_id_fk, "code": ac.clo.code if ac.clo else None, "marks_allocated": ac.marks_allocated}
            for ac in allocations
        ],
        "students": rows,
        "statistics": {
            "total_students": len(rows),
            "students_with_marks": sum(1 for r in rows if r["has_marks"]),
            "average_marks": round(sum(totals) / len(totals), 2) if totals else 0,
            "highest_marks": max(totals) if totals else 0,
            "lowest_marks": min(totals) if totals else 0,
        },
        "marks_summary": {
            "total_possible": total_allocated * len(rows),
            "total_obtained": sum(totals),
            "completion_percentage": _percentage(entered, slots),
        },
    }


def get_student_marks(session, user, assessment_id, student_id):
    assessment = get_or_404(session, Assessment, assessment_id, message="Assessment not found")
    student = session.get(Student, student_id)
    if student is None:
        raise NotFound("Student not found")
    principal = principal_for(session, user)
    require(principal.can_view_student_marks(assessment, student.student_id), "You do not have access to these marks")

    allocations = _allocations(session, assessment.assessment_id)
    marks = {
        (m.student_id_fk, m.clo_id_fk): m
        for m in session.execute(
            select(Mark).filter_by(assessment_id_fk=assessment.assessment_id, student_id_fk=student.student_id)
        ).scalars().all()
    }
    data = _student_row(student, allocations, marks, with_timestamps=True)
    data["enrolled"] = is_enrolled(session, student.student_id, assessment)
    data["assessment"] = {
        "assessment_id": assessment.assessment_id,
        "title": assessment.title,
        "max_marks": assessment.max_marks,
    }
    return data


def get_course_students(session, user, course_id, semester=None, year=None):
    course = get_or_404(session, Course, course_id, message="Course not found")
    require_course_access(session, user, course, semester, year)

    stmt = (
        select(StudentCourseEnrollment, Student)
        .join(Student, Student.student_id == StudentCourseEnrollment.student_id_fk)
        .filter(
            StudentCourseEnrollment.course_id_fk == course.course_id,
            StudentCourseEnrollment.status == ENROLLED,
        )
    )
    if semester is not None:
        stmt = stmt.filter(StudentCourseEnrollment.semester == semester)
    if year is not None:
        stmt = stmt.filter(StudentCourseEnrollment.year == year)
    rows = session.execute(stmt.order_by(Student.roll_number, Student.student_id)).all()

    students = [
        {
            "student_id": s.student_id,
            "roll_number": s.roll_number,
            "name": s.name,
            "email": s.user.email if s.user else None,
            "semester": e.semester,
            "year": e.year,
            "status": e.status,
        }
        for e, s in rows
    ]
    return {"course": course_brief(course), "students": students, "total": len(students)}


def export_marks_workbook(session, user, assessment_id):
    """
    Marks sheet for an assessment: one row per enrolled student,
    one column per allocated CLO.
    Returns: (filename, BytesIO)
    """
    report = get_assessment_marks(session, user, assessment_id)
    clos = report["clos"]

    wb = Workbook()
    ws = wb.active
    ws.title = "Marks"
    header = ["Sr No", "Roll No", "Student"]
    header += [f"{c['code']} (/{c['marks_allocated']:g})" for c in clos]
    header += ["Total", "Percentage"]
    ws.append(header)

    for idx, row in enumerate(report["students"], start=1):
        values = [idx, row["roll_number"], row["name"]]
        values += [c["marks_obtained"] if c["entered"] else None for c in row["clo_marks"]]
        values += [row["total_obtained"], row["percentage"]]
        ws.append(values)

    info = report["assessment"]
    ws.insert_rows(1)
    ws["A1"] = f"{info['course']['code']} | {info['title']} | Max Marks: {info['max_marks']:g}"

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    filename = f"marks_{info['course']['code']}_{info['assessment_id']}.xlsx".replace(" ", "_")
    return filename, bio
