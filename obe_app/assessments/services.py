from flask import current_app
from sqlalchemy import select, func

from ..models import (
    Assessment, AssessmentClo, Course, CourseFaculty, Mark, utc_now,
    STATE_OPEN, STATE_MARKS_ENTERED, STATE_FINALIZED,
)
from ..authz import principal_for, resolve_faculty, require, get_or_404, is_assigned
from ..errors import (
    NotAssigned, MarksCapExceeded, DuplicatePractical, LockedByMarks,
    AlreadyFinalized, NotFinalized, MarksFinalized, InvalidMarksPresent,
    ValidationFailed, Forbidden,
)
from ..inputs import require_fields, to_int, to_number, to_datetime, optional_str
from ..serializers import assessment_dict, faculty_brief, iso, course_brief

# Fields that stay editable after marks are entered
UNLOCKED_FIELDS = {"description", "scheduled_date", "submission_deadline"}
UPDATABLE_FIELDS = UNLOCKED_FIELDS | {"title", "max_marks", "weightage", "type", "mode", "sub_type"}


def max_course_marks(course):
    return course.max_assessment_marks(current_app.config.get("MARKS_PER_CREDIT", 25))


def is_practical(assessment_type):
    return (assessment_type or "").strip().lower() == "practical"


def current_total(session, course_id, semester, year, exclude_id=None):
    """Sum of max_marks over active assessments of a course term."""
    stmt = select(func.coalesce(func.sum(Assessment.max_marks), 0)).filter_by(
        course_id_fk=course_id, semester=semester, year=year, is_active=True
    )
    if exclude_id is not None:
        stmt = stmt.filter(Assessment.assessment_id != exclude_id)
    return float(session.execute(stmt).scalar() or 0)


def check_marks_cap(session, course, semester, year, requested, exclude_id=None):
    """
    Verdict for adding `requested` marks to a course term.
    Shared by create, update and the dry-run validator.
    """
    cap = max_course_marks(course)
    total = current_total(session, course.course_id, semester, year, exclude_id)
    proposed = total + requested
    remaining = cap - total
    allowed = proposed <= cap
    if allowed:
        message = f"Assessment marks are within limit. Remaining after this: {cap - proposed:g}"
    else:
        message = (
            f"Total marks would exceed course limit of {cap:g}. "
            f"Current total: {total:g}, remaining: {remaining:g}"
        )
    return {
        "allowed": allowed,
        "max_course_marks": cap,
        "current_total": total,
        "proposed_total": proposed,
        "remaining": remaining,
        "message": message,
    }


def find_practical(session, course_id, semester, year, exclude_id=None):
    stmt = select(Assessment).filter_by(
        course_id_fk=course_id, semester=semester, year=year, is_active=True
    ).filter(func.lower(Assessment.type) == "practical")
    if exclude_id is not None:
        stmt = stmt.filter(Assessment.assessment_id != exclude_id)
    return session.execute(stmt).scalars().first()


def practical_brief(assessment):
    return {
        "assessment_id": assessment.assessment_id,
        "title": assessment.title,
        "max_marks": assessment.max_marks,
        "semester": assessment.semester,
        "year": assessment.year,
    }


def marks_count(session, assessment_id):
    return session.execute(
        select(func.count(Mark.mark_id)).filter_by(assessment_id_fk=assessment_id)
    ).scalar() or 0


def has_marks(session, assessment_id):
    return marks_count(session, assessment_id) > 0


def assessment_state(session, assessment):
    if assessment.is_marks_finalized:
        return STATE_FINALIZED
    if has_marks(session, assessment.assessment_id):
        return STATE_MARKS_ENTERED
    return STATE_OPEN


def lock_course(session, course_id):
    """Row lock on the course so concurrent creates serialize on the cap check."""
    return session.execute(
        select(Course).filter_by(course_id=course_id).with_for_update()
    ).scalars().one()


def _raise_cap_exceeded(verdict, requested):
    raise MarksCapExceeded(
        verdict["message"],
        max_course_marks=verdict["max_course_marks"],
        current_total=verdict["current_total"],
        requested=requested,
        remaining=verdict["remaining"],
    )


def create_assessment(session, user, payload):
    """
    Creates an assessment for a course term owned by the calling faculty.
    Returns: (assessment, marks_summary)
    """
    # 1. Faculty profile is a hard precondition
    faculty = resolve_faculty(session, user)

    # 2. Input
    require_fields(payload, "course_id", "title", "max_marks", "semester", "year")
    course_id = to_int(payload.get("course_id"), "course_id")
    max_marks = to_number(payload.get("max_marks"), "max_marks", positive=True)
    semester = to_int(payload.get("semester"), "semester", minimum=1)
    year = to_int(payload.get("year"), "year", minimum=1900)
    weightage = to_number(payload.get("weightage"), "weightage", required=False, minimum=0, maximum=100)
    assessment_type = optional_str(payload.get("type"))

    course = get_or_404(session, Course, course_id, message="Course not found")

    # 3. Assignment for the term
    if not is_assigned(session, faculty.faculty_id, course.course_id, semester, year):
        raise NotAssigned()

    try:
        # 4. Cap check under a course row lock
        course = lock_course(session, course.course_id)
        verdict = check_marks_cap(session, course, semester, year, max_marks)
        if not verdict["allowed"]:
            _raise_cap_exceeded(verdict, max_marks)

        # 5. Single practical per term
        if is_practical(assessment_type):
            existing = find_practical(session, course.course_id, semester, year)
            if existing:
                raise DuplicatePractical(existing_assessment=practical_brief(existing))

        assessment = Assessment(
            course_id_fk=course.course_id,
            faculty_id_fk=faculty.faculty_id,
            title=str(payload.get("title")).strip(),
            description=optional_str(payload.get("description")),
            max_marks=max_marks,
            weightage=weightage,
            type=assessment_type,
            mode=optional_str(payload.get("mode")),
            sub_type=optional_str(payload.get("sub_type")),
            semester=semester,
            year=year,
            scheduled_date=to_datetime(payload.get("scheduled_date"), "scheduled_date"),
            submission_deadline=to_datetime(payload.get("submission_deadline"), "submission_deadline"),
        )
        session.add(assessment)
        session.commit()
    except Exception:
        session.rollback()
        raise

    cap = verdict["max_course_marks"]
    summary = {
        "max_course_marks": cap,
        "current_total": verdict["proposed_total"],
        "remaining": cap - verdict["proposed_total"],
    }
    current_app.logger.info(
        "Assessment %s created for course %s (%s/%s) by faculty %s",
        assessment.assessment_id, course.course_id, semester, year, faculty.faculty_id,
    )
    return assessment, summary


def require_course_access(session, user, course, semester=None, year=None):
    principal = principal_for(session, user)
    if principal.can_manage_course(course):
        return principal
    faculty = resolve_faculty(session, user)
    stmt = select(func.count(CourseFaculty.assignment_id)).filter_by(
        course_id_fk=course.course_id, faculty_id_fk=faculty.faculty_id
    )
    if semester is not None:
        stmt = stmt.filter(CourseFaculty.semester == semester)
    if year is not None:
        stmt = stmt.filter(CourseFaculty.year == year)
    if not session.execute(stmt).scalar():
        raise NotAssigned("You are not assigned to this course")
    return principal


def list_course_assessments(session, user, course_id, semester=None, year=None):
    course = get_or_404(session, Course, course_id, message="Course not found")
    require_course_access(session, user, course, semester, year)

    stmt = select(Assessment).filter_by(course_id_fk=course.course_id, is_active=True)
    if semester is not None:
        stmt = stmt.filter(Assessment.semester == semester)
    if year is not None:
        stmt = stmt.filter(Assessment.year == year)
    stmt = stmt.order_by(Assessment.scheduled_date.asc(), Assessment.assessment_id.asc())
    assessments = session.execute(stmt).scalars().all()

    items = []
    total_used = 0.0
    for a in assessments:
        data = assessment_dict(a)
        data["marks_count"] = marks_count(session, a.assessment_id)
        items.append(data)
        total_used += a.max_marks or 0

    cap = max_course_marks(course)
    return {
        "course": course_brief(course),
        "assessments": items,
        "marks_summary": {
            "max_course_marks": cap,
            "total_used": total_used,
            "remaining": cap - total_used,
        },
    }


def get_assessment(session, user, assessment_id):
    assessment = get_or_404(session, Assessment, assessment_id, message="Assessment not found")
    principal = principal_for(session, user)
    require(principal.can_view_assessment(assessment), "You do not have access to this assessment")

    data = assessment_dict(assessment)
    data["course"] = course_brief(assessment.course)
    data["faculty"] = faculty_brief(assessment.faculty)
    data["marks_count"] = marks_count(session, assessment.assessment_id)
    data["state"] = assessment_state(session, assessment)
    return data


def available_marks(session, user, course_id, semester, year):
    faculty = resolve_faculty(session, user)
    if semester is None or year is None:
        raise ValidationFailed("semester and year are required")
    course = get_or_404(session, Course, course_id, message="Course not found")
    if not is_assigned(session, faculty.faculty_id, course.course_id, semester, year):
        raise NotAssigned()

    cap = max_course_marks(course)
    total = current_total(session, course.course_id, semester, year)
    count = session.execute(
        select(func.count(Assessment.assessment_id)).filter_by(
            course_id_fk=course.course_id, semester=semester, year=year, is_active=True
        )
    ).scalar() or 0
    return {
        "course_id": course.course_id,
        "course_name": course.name,
        "credits": course.credits,
        "semester": semester,
        "year": year,
        "max_course_marks": cap,
        "total_used": total,
        "remaining": cap - total,
        "percentage_used": round(total / cap * 100, 2) if cap > 0 else 0,
        "assessments_count": count,
    }


def owned_assessment(session, user, assessment_id, action):
    faculty = resolve_faculty(session, user)
    assessment = get_or_404(session, Assessment, assessment_id, message="Assessment not found")
    if assessment.faculty_id_fk != faculty.faculty_id:
        raise Forbidden(f"Only the faculty who created this assessment can {action} it")
    return faculty, assessment


def update_assessment(session, user, assessment_id, payload):
    faculty, assessment = owned_assessment(session, user, assessment_id, "update")

    if not isinstance(payload, dict) or not payload:
        raise ValidationFailed("No fields to update")
    unknown = sorted(set(payload) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailed("Unknown or read-only fields: " + ", ".join(unknown), unknown_fields=unknown)
    if assessment.is_marks_finalized:
        disallowed = sorted(set(payload) - UNLOCKED_FIELDS)
        if disallowed:
            raise MarksFinalized(
                "Marks are finalized; only " + ", ".join(sorted(UNLOCKED_FIELDS)) + " can still be changed",
                disallowed_fields=disallowed,
                allowed_fields=sorted(UNLOCKED_FIELDS),
            )

    if has_marks(session, assessment.assessment_id):
        disallowed = sorted(set(payload) - UNLOCKED_FIELDS)
        if disallowed:
            raise LockedByMarks(
                "Cannot modify " + ", ".join(disallowed) + " after marks have been entered",
                disallowed_fields=disallowed,
                allowed_fields=sorted(UNLOCKED_FIELDS),
            )

    try:
        allocations_cleared = False
        if "max_marks" in payload:
            new_max = to_number(payload.get("max_marks"), "max_marks", positive=True)
            if new_max != assessment.max_marks:
                course = lock_course(session, assessment.course_id_fk)
                verdict = check_marks_cap(
                    session, course, assessment.semester, assessment.year, new_max,
                    exclude_id=assessment.assessment_id,
                )
                if not verdict["allowed"]:
                    _raise_cap_exceeded(verdict, new_max)
                # Existing CLO split no longer sums to the new max
                for ac in session.execute(
                    select(AssessmentClo).filter_by(assessment_id_fk=assessment.assessment_id)
                ).scalars().all():
                    session.delete(ac)
                    allocations_cleared = True
                assessment.max_marks = new_max

        if "type" in payload:
            new_type = optional_str(payload.get("type"))
            if is_practical(new_type) and not is_practical(assessment.type):
                existing = find_practical(
                    session, assessment.course_id_fk, assessment.semester, assessment.year,
                    exclude_id=assessment.assessment_id,
                )
                if existing:
                    raise DuplicatePractical(existing_assessment=practical_brief(existing))
            assessment.type = new_type

        if "title" in payload:
            title = optional_str(payload.get("title"))
            if not title:
                raise ValidationFailed("title cannot be empty", field="title")
            assessment.title = title
        if "weightage" in payload:
            assessment.weightage = to_number(payload.get("weightage"), "weightage", required=False, minimum=0, maximum=100)
        for field in ("description", "mode", "sub_type"):
            if field in payload:
                setattr(assessment, field, optional_str(payload.get(field)))
        for field in ("scheduled_date", "submission_deadline"):
            if field in payload:
                setattr(assessment, field, to_datetime(payload.get(field), field))

        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Assessment %s updated by faculty %s", assessment.assessment_id, faculty.faculty_id)
    data = assessment_dict(assessment)
    data["clo_allocations_cleared"] = allocations_cleared
    return data


def delete_assessment(session, user, assessment_id):
    faculty, assessment = owned_assessment(session, user, assessment_id, "delete")
    count = marks_count(session, assessment.assessment_id)
    if count:
        raise LockedByMarks(
            "Cannot delete an assessment with entered marks. Contact admin if necessary.",
            marks_count=count,
        )
    assessment.is_active = False
    session.commit()
    current_app.logger.info("Assessment %s deactivated by faculty %s", assessment.assessment_id, faculty.faculty_id)
    return {"assessment_id": assessment.assessment_id}


def find_invalid_marks(session, assessment):
    """
    Marks above their CLO allocation or above the assessment maximum,
    or entered against a CLO that is no longer allocated.
    """
    rows = session.execute(
        select(Mark, AssessmentClo.marks_allocated)
        .outerjoin(
            AssessmentClo,
            (AssessmentClo.assessment_id_fk == Mark.assessment_id_fk)
            & (AssessmentClo.clo_id_fk == Mark.clo_id_fk),
        )
        .filter(Mark.assessment_id_fk == assessment.assessment_id)
    ).all()

    invalid = []
    for mark, allocated in rows:
        limit = assessment.max_marks if allocated is None else min(allocated, assessment.max_marks)
        if allocated is None or mark.marks_obtained > limit:
            invalid.append({
                "student_id": mark.student_id_fk,
                "clo_id": mark.clo_id_fk,
                "marks_obtained": mark.marks_obtained,
                "marks_allocated": allocated,
            })
    return invalid


def finalize_marks(session, user, assessment_id):
    faculty, assessment = owned_assessment(session, user, assessment_id, "finalize marks for")

    if assessment.is_marks_finalized:
        raise AlreadyFinalized(
            finalized_at=iso(assessment.marks_finalized_at),
            finalized_by=faculty_brief(assessment.marks_finalized_by),
        )

    invalid = find_invalid_marks(session, assessment)
    if invalid:
        raise InvalidMarksPresent(
            f"{len(invalid)} mark(s) exceed the allocated marks",
            invalid_marks=invalid,
        )

    assessment.is_marks_finalized = True
    assessment.marks_finalized_at = utc_now()
    assessment.marks_finalized_by_id_fk = faculty.faculty_id
    session.commit()

    current_app.logger.info("Marks finalized for assessment %s by faculty %s", assessment.assessment_id, faculty.faculty_id)
    return {
        "assessment_id": assessment.assessment_id,
        "is_marks_finalized": True,
        "marks_finalized_at": iso(assessment.marks_finalized_at),
        "finalized_by": faculty_brief(faculty),
    }


def unfinalize_marks(session, user, assessment_id):
    faculty, assessment = owned_assessment(session, user, assessment_id, "unfinalize marks for")

    if not assessment.is_marks_finalized:
        raise NotFinalized()
    if assessment.marks_finalized_by_id_fk != faculty.faculty_id:
        raise Forbidden("Only the faculty who finalized the marks can unfinalize them")

    assessment.is_marks_finalized = False
    assessment.marks_finalized_at = None
    assessment.marks_finalized_by_id_fk = None
    session.commit()

    current_app.logger.info("Marks unfinalized for assessment %s by faculty %s", assessment.assessment_id, faculty.faculty_id)
    return {"assessment_id": assessment.assessment_id, "is_marks_finalized": False}


def finalization_status(session, user, assessment_id):
    assessment = get_or_404(session, Assessment, assessment_id, message="Assessment not found")
    principal = principal_for(session, user)
    require(principal.can_view_assessment(assessment), "You do not have access to this assessment")

    faculty = principal.faculty
    is_owner = faculty is not None and faculty.faculty_id == assessment.faculty_id_fk
    finalized = bool(assessment.is_marks_finalized)
    return {
        "assessment_id": assessment.assessment_id,
        "title": assessment.title,
        "state": assessment_state(session, assessment),
        "is_marks_finalized": finalized,
        "marks_finalized_at": iso(assessment.marks_finalized_at),
        "finalized_by": faculty_brief(assessment.marks_finalized_by),
        "marks_count": marks_count(session, assessment.assessment_id),
        "can_finalize": is_owner and not finalized,
        "can_unfinalize": is_owner and finalized and assessment.marks_finalized_by_id_fk == faculty.faculty_id,
    }
