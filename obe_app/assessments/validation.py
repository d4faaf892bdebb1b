"""
Dry-run checks for client forms. Same rules as create / marks entry, nothing is written.
"""
from sqlalchemy import select

from ..models import Course, AssessmentClo
from ..authz import resolve_faculty, get_or_404, is_assigned
from ..errors import NotAssigned
from ..inputs import require_fields, to_int, to_number, optional_str
from .services import check_marks_cap, find_practical, is_practical, practical_brief, require_course_access
from .marks import check_mark_entry, is_enrolled, entry_guard

# Recommended practical share for 3 and 4 credit courses
PRACTICAL_MARKS_BY_CREDITS = {3: 25, 4: 25}


def check_practical(session, user, course_id, semester=None, year=None):
    course = get_or_404(session, Course, course_id, message="Course not found")
    require_course_access(session, user, course, semester, year)

    existing = None
    if semester is not None and year is not None:
        existing = find_practical(session, course.course_id, semester, year)
    return {
        "course_id": course.course_id,
        "course_type": course.type,
        "has_practical": existing is not None,
        "existing_assessment": practical_brief(existing) if existing else None,
    }


def practical_verdict(session, course, semester, year, assessment_type, exclude_id=None):
    if not is_practical(assessment_type):
        return {"allowed": True, "message": "Not a practical assessment", "existing_assessment": None}
    existing = find_practical(session, course.course_id, semester, year, exclude_id)
    if existing:
        return {
            "allowed": False,
            "message": "A practical assessment already exists for this course",
            "existing_assessment": practical_brief(existing),
        }
    return {"allowed": True, "message": "Practical assessment can be created", "existing_assessment": None}


def validate_assessment(session, user, payload):
    faculty = resolve_faculty(session, user)
    require_fields(payload, "course_id", "max_marks", "semester", "year")
    course_id = to_int(payload.get("course_id"), "course_id")
    max_marks = to_number(payload.get("max_marks"), "max_marks", positive=True)
    semester = to_int(payload.get("semester"), "semester", minimum=1)
    year = to_int(payload.get("year"), "year", minimum=1900)
    exclude_id = to_int(payload.get("assessment_id"), "assessment_id", required=False)

    course = get_or_404(session, Course, course_id, message="Course not found")
    if not is_assigned(session, faculty.faculty_id, course.course_id, semester, year):
        raise NotAssigned()

    marks_validation = check_marks_cap(session, course, semester, year, max_marks, exclude_id)
    practical_validation = practical_verdict(
        session, course, semester, year, optional_str(payload.get("type")), exclude_id
    )
    return {
        "allowed": marks_validation["allowed"] and practical_validation["allowed"],
        "marks_validation": marks_validation,
        "practical_validation": practical_validation,
        "course_credits": course.credits,
        "recommended_practical_marks": PRACTICAL_MARKS_BY_CREDITS.get(course.credits, 0),
    }


def validate_marks_entry(session, user, payload):
    require_fields(payload, "assessment_id", "student_id", "clo_id", "marks_obtained")
    assessment_id = to_int(payload.get("assessment_id"), "assessment_id")
    student_id = to_int(payload.get("student_id"), "student_id")
    clo_id = to_int(payload.get("clo_id"), "clo_id")
    marks_obtained = to_number(payload.get("marks_obtained"), "marks_obtained")

    assessment = entry_guard(session, user, assessment_id)
    allocated = session.execute(
        select(AssessmentClo.marks_allocated).filter_by(assessment_id_fk=assessment.assessment_id, clo_id_fk=clo_id)
    ).scalar()
    enrolled = is_enrolled(session, student_id, assessment)

    if assessment.is_marks_finalized:
        error = "Marks are finalized for this assessment"
    else:
        error = check_mark_entry(allocated, marks_obtained, enrolled)
    return {
        "allowed": error is None,
        "max_marks": allocated,
        "entered_marks": marks_obtained,
        "enrolled": enrolled,
        "message": error or "Marks are valid",
    }
