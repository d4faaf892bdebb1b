from flask import current_app
from sqlalchemy import select

from ..models import Assessment, AssessmentClo, Clo, Course
from ..authz import principal_for, require, get_or_404
from ..errors import ValidationFailed, AllocationMismatch, InvalidClos, LockedByMarks, MarksFinalized
from ..inputs import to_int, to_number, optional_str
from ..serializers import clo_dict, course_brief
from .services import owned_assessment, has_marks, require_course_access

# Float tolerance for the allocation-sum check
ALLOCATION_EPSILON = 1e-6


def _parse_allocations(entries):
    if not isinstance(entries, list) or not entries:
        raise ValidationFailed("clos must be a non-empty list")

    parsed = []
    seen = set()
    duplicates = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationFailed(f"clos[{index}] must be an object")
        clo_id = to_int(entry.get("clo_id"), f"clos[{index}].clo_id")
        marks = to_number(entry.get("marks_allocated"), f"clos[{index}].marks_allocated", positive=True)
        weightage = to_number(entry.get("weightage"), f"clos[{index}].weightage", required=False, minimum=0, maximum=100)
        if clo_id in seen:
            duplicates.add(clo_id)
        seen.add(clo_id)
        parsed.append({
            "clo_id": clo_id,
            "marks_allocated": marks,
            "weightage": weightage,
            "bloom_level": optional_str(entry.get("bloom_level")),
        })

    if duplicates:
        raise ValidationFailed("Duplicate CLOs in allocation", duplicate_clo_ids=sorted(duplicates))
    return parsed


def allocate_clos(session, user, assessment_id, payload):
    """
    Replaces the CLO allocation set of an assessment.
    The allocated marks must add up to the assessment's max_marks.
    """
    faculty, assessment = owned_assessment(session, user, assessment_id, "map CLOs for")

    if assessment.is_marks_finalized:
        raise MarksFinalized()
    if has_marks(session, assessment.assessment_id):
        raise LockedByMarks("Cannot change CLO allocation after marks have been entered")

    allocations = _parse_allocations((payload or {}).get("clos"))

    # 1. Sum must match the assessment maximum
    total = sum(a["marks_allocated"] for a in allocations)
    if abs(total - assessment.max_marks) > ALLOCATION_EPSILON:
        raise AllocationMismatch(
            f"Total allocated marks ({total:g}) must equal assessment max marks ({assessment.max_marks:g})",
            total_allocated=total,
            assessment_max_marks=assessment.max_marks,
            difference=assessment.max_marks - total,
        )

    # 2. Every CLO must be an active CLO of the assessment's course
    ids = [a["clo_id"] for a in allocations]
    clos = session.execute(
        select(Clo).filter(Clo.clo_id.in_(ids)).filter_by(course_id_fk=assessment.course_id_fk, is_active=True)
    ).scalars().all()
    clo_map = {c.clo_id: c for c in clos}
    invalid = [i for i in ids if i not in clo_map]
    if invalid:
        raise InvalidClos(invalid_clos=invalid)

    # 3. Replace in one transaction
    try:
        for existing in session.execute(
            select(AssessmentClo).filter_by(assessment_id_fk=assessment.assessment_id)
        ).scalars().all():
            session.delete(existing)
        session.flush()

        for a in allocations:
            weightage = a["weightage"]
            if weightage is None:
                weightage = round(a["marks_allocated"] / assessment.max_marks * 100, 2)
            session.add(AssessmentClo(
                assessment_id_fk=assessment.assessment_id,
                clo_id_fk=a["clo_id"],
                marks_allocated=a["marks_allocated"],
                weightage=weightage,
                bloom_level=a["bloom_level"] or clo_map[a["clo_id"]].bloom_level,
            ))
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(
        "Assessment %s mapped to %d CLO(s) by faculty %s",
        assessment.assessment_id, len(allocations), faculty.faculty_id,
    )
    return get_assessment_clos(session, user, assessment.assessment_id)


def get_assessment_clos(session, user, assessment_id):
    assessment = get_or_404(session, Assessment, assessment_id, message="Assessment not found")
    principal = principal_for(session, user)
    require(principal.can_view_assessment(assessment), "You do not have access to this assessment")

    allocations = {
        ac.clo_id_fk: ac
        for ac in session.execute(
            select(AssessmentClo).filter_by(assessment_id_fk=assessment.assessment_id)
        ).scalars().all()
    }
    course_clos = session.execute(
        select(Clo).filter_by(course_id_fk=assessment.course_id_fk, is_active=True).order_by(Clo.order, Clo.code)
    ).scalars().all()

    items = []
    for clo in course_clos:
        data = clo_dict(clo)
        ac = allocations.get(clo.clo_id)
        data["allocated"] = ac is not None
        data["marks_allocated"] = ac.marks_allocated if ac else 0
        data["weightage"] = ac.weightage if ac else 0
        items.append(data)

    total_allocated = sum(ac.marks_allocated for ac in allocations.values())
    return {
        "assessment": {
            "assessment_id": assessment.assessment_id,
            "title": assessment.title,
            "max_marks": assessment.max_marks,
            "course": course_brief(assessment.course),
        },
        "clos": items,
        "summary": {
            "total_clos": len(course_clos),
            "allocated_clos": len(allocations),
            "total_allocated": total_allocated,
            "max_marks": assessment.max_marks,
            "is_complete": abs(total_allocated - assessment.max_marks) <= ALLOCATION_EPSILON,
        },
    }


def get_course_clos(session, user, course_id, semester=None, year=None):
    course = get_or_404(session, Course, course_id, message="Course not found")
    require_course_access(session, user, course, semester, year)

    clos = session.execute(
        select(Clo).filter_by(course_id_fk=course.course_id, is_active=True).order_by(Clo.order, Clo.code)
    ).scalars().all()
    return {"course": course_brief(course), "clos": [clo_dict(c) for c in clos]}
