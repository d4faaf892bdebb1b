import re
from flask import current_app
from sqlalchemy import select, func, delete

from ..models import (
    Program, Department, Course, Clo, Po, Pso, CloPoMapping, CloPsoMapping,
    Faculty, CourseFaculty, Assessment, AssessmentClo, Mark, StudentCourseEnrollment,
    COURSE_TYPES, COURSE_CATEGORIES,
)
from ..authz import principal_for, require, get_or_404
from ..errors import Forbidden, ValidationFailed, LockedByMarks, NotFound, UniqueConstraintViolation, MarksCapExceeded
from ..inputs import require_fields, to_int, to_number, to_choice, optional_str, to_bool
from ..serializers import course_dict, clo_dict, faculty_brief, assignment_dict
from ..assessments.services import lock_course, max_course_marks

COURSE_FIELDS = {"name", "code", "slug", "semester", "credits", "type", "category", "description", "is_active"}
CLO_FIELDS = {"code", "statement", "bloom_level", "attainment_threshold", "order", "is_active"}
ASSIGNMENT_DETAIL_FIELDS = {"teaching_methodology", "assessment_mode"}


def slugify(name):
    s = str(name or "").strip().lower()
    s = re.sub(r"[^a-z0-9\s-]", "", s)
    s = re.sub(r"[\s-]+", "-", s).strip("-")
    return s


def caller_department(session, user, department_id=None):
    """
    Department the caller administers. HODs get their own department;
    admins name one explicitly.
    """
    principal = principal_for(session, user)
    if department_id is not None:
        department = get_or_404(session, Department, department_id, active_only=False, message="Department not found")
        require(principal.can_manage_department(department.department_id), "You do not manage this department")
        return department
    department = session.execute(
        select(Department).filter_by(hod_id_fk=user.user_id)
    ).scalars().first()
    if not department:
        raise Forbidden("No department is assigned to this HOD")
    return department


def managed_course(session, user, course_id, active_only=False):
    course = get_or_404(session, Course, course_id, active_only=active_only, message="Course not found")
    require(principal_for(session, user).can_manage_course(course), "You can only manage courses in your department")
    return course


# ==========================================
# PROGRAMS & DEPARTMENTS
# ==========================================

def _program_dict(p):
    return {
        "program_id": p.program_id,
        "parent_id": p.parent_id_fk,
        "name": p.name,
        "code": p.code,
        "slug": p.slug,
        "type": p.type,
        "level": p.level,
        "duration_years": p.duration_years,
    }


def _department_dict(d):
    return {
        "department_id": d.department_id,
        "program_id": d.program_id_fk,
        "name": d.name,
        "code": d.code,
        "slug": d.slug,
        "hod_id": d.hod_id_fk,
    }


def list_programs(session, user):
    principal = principal_for(session, user)
    if principal.role == "ADMIN":
        programs = session.execute(select(Program).order_by(Program.name)).scalars().all()
        return [_program_dict(p) for p in programs]

    department = caller_department(session, user)
    programs = []
    program = department.program
    while program is not None:
        programs.append(_program_dict(program))
        program = program.parent
    return programs


def list_departments(session, user, program_id):
    program = get_or_404(session, Program, program_id, active_only=False, message="Program not found")
    departments = session.execute(
        select(Department).filter_by(program_id_fk=program.program_id).order_by(Department.name)
    ).scalars().all()
    return [_department_dict(d) for d in departments]


# ==========================================
# COURSES
# ==========================================

def _apply_course_fields(course, payload):
    if "name" in payload:
        name = optional_str(payload.get("name"))
        if not name:
            raise ValidationFailed("name cannot be empty", field="name")
        course.name = name
    if "code" in payload:
        code = optional_str(payload.get("code"))
        if not code:
            raise ValidationFailed("code cannot be empty", field="code")
        course.code = code
    if "slug" in payload:
        slug = slugify(payload.get("slug"))
        if not slug:
            raise ValidationFailed("slug cannot be empty", field="slug")
        course.slug = slug
    if "credits" in payload:
        course.credits = to_int(payload.get("credits"), "credits", minimum=0)
    if "semester" in payload:
        course.semester = to_int(payload.get("semester"), "semester", required=False, minimum=0) or 0
    if "type" in payload:
        course.type = to_choice(payload.get("type"), "type", COURSE_TYPES)
    if "category" in payload:
        course.category = to_choice(payload.get("category"), "category", COURSE_CATEGORIES, required=False)
    if "description" in payload:
        course.description = optional_str(payload.get("description"))
    if "is_active" in payload:
        course.is_active = to_bool(payload.get("is_active"), "is_active")


def create_course(session, user, payload):
    require_fields(payload, "name", "code", "credits", "type")
    department = caller_department(session, user, to_int(payload.get("department_id"), "department_id", required=False))

    course = Course(department_id_fk=department.department_id, created_by_id_fk=user.user_id, is_active=True)
    _apply_course_fields(course, {k: v for k, v in payload.items() if k in COURSE_FIELDS})
    if not course.slug:
        course.slug = slugify(course.name)

    session.add(course)
    session.commit()
    current_app.logger.info("Course %s (%s) created in department %s", course.course_id, course.code, department.department_id)
    return course_dict(course)


def update_course(session, user, course_id, payload):
    course = managed_course(session, user, course_id)
    unknown = sorted(set(payload) - COURSE_FIELDS)
    if unknown:
        raise ValidationFailed("Unknown or read-only fields: " + ", ".join(unknown), unknown_fields=unknown)
    try:
        if "credits" in payload:
            course = lock_course(session, course.course_id)
        old_credits = course.credits
        _apply_course_fields(course, payload)
        if course.credits != old_credits:
            _check_term_totals(session, course)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return course_dict(course)


def _check_term_totals(session, course):
    """New credits must still cover the heaviest term's active assessments."""
    total = func.sum(Assessment.max_marks)
    heaviest = session.execute(
        select(Assessment.semester, Assessment.year, total.label("total"))
        .filter_by(course_id_fk=course.course_id, is_active=True)
        .group_by(Assessment.semester, Assessment.year)
        .order_by(total.desc())
    ).first()
    cap = max_course_marks(course)
    if heaviest is not None and heaviest.total > cap:
        raise MarksCapExceeded(
            f"Active assessments for semester {heaviest.semester}/{heaviest.year} total "
            f"{heaviest.total:g} marks, above the {cap:g} allowed for {course.credits} credits",
            semester=heaviest.semester,
            year=heaviest.year,
            current_total=heaviest.total,
            max_course_marks=cap,
            credits=course.credits,
        )


def get_course(session, user, course_id):
    course = managed_course(session, user, course_id)
    data = course_dict(course)
    data["clos"] = [clo_dict(c) for c in sorted(course.clos, key=lambda c: (c.order or 0, c.code))]
    data["assignments"] = [assignment_dict(a) for a in course.faculty_assignments]
    return data


def list_courses(session, user, program_id=None, department_id=None):
    department = caller_department(session, user, department_id)
    stmt = select(Course).filter_by(department_id_fk=department.department_id)
    if program_id is not None and program_id != department.program_id_fk:
        return []
    courses = session.execute(stmt.order_by(Course.semester, Course.code)).scalars().all()
    items = []
    for c in courses:
        data = course_dict(c)
        data["clo_count"] = sum(1 for clo in c.clos if clo.is_active)
        data["faculty_count"] = len(c.faculty_assignments)
        items.append(data)
    return items


def delete_course(session, user, course_id):
    """
    Hard delete. Removes CLOs, their PO/PSO mappings, assessments with their
    allocations, assignments and enrollments in one transaction.
    """
    course = managed_course(session, user, course_id)

    assessment_ids = session.execute(
        select(Assessment.assessment_id).filter_by(course_id_fk=course.course_id)
    ).scalars().all()
    clo_ids = session.execute(
        select(Clo.clo_id).filter_by(course_id_fk=course.course_id)
    ).scalars().all()

    marks = 0
    if assessment_ids:
        marks = session.execute(
            select(func.count(Mark.mark_id)).filter(Mark.assessment_id_fk.in_(assessment_ids))
        ).scalar() or 0
    if marks:
        raise LockedByMarks("Cannot delete a course whose assessments have marks", marks_count=marks)

    try:
        counts = {"po_mappings": 0, "pso_mappings": 0}
        if clo_ids:
            counts["po_mappings"] = session.execute(
                delete(CloPoMapping).where(CloPoMapping.clo_id_fk.in_(clo_ids))
            ).rowcount
            counts["pso_mappings"] = session.execute(
                delete(CloPsoMapping).where(CloPsoMapping.clo_id_fk.in_(clo_ids))
            ).rowcount
        if assessment_ids:
            session.execute(delete(AssessmentClo).where(AssessmentClo.assessment_id_fk.in_(assessment_ids)))
        counts["assessments"] = session.execute(
            delete(Assessment).where(Assessment.course_id_fk == course.course_id)
        ).rowcount
        counts["clos"] = session.execute(delete(Clo).where(Clo.course_id_fk == course.course_id)).rowcount
        counts["assignments"] = session.execute(
            delete(CourseFaculty).where(CourseFaculty.course_id_fk == course.course_id)
        ).rowcount
        counts["enrollments"] = session.execute(
            delete(StudentCourseEnrollment).where(StudentCourseEnrollment.course_id_fk == course.course_id)
        ).rowcount
        session.execute(delete(Course).where(Course.course_id == course.course_id))
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info("Course %s deleted with %s", course_id, counts)
    return {"course_id": course_id, "deleted": counts}


def next_course_code(session, user, program_id=None):
    department = caller_department(session, user)
    program_id = program_id or department.program_id_fk
    codes = session.execute(
        select(Course.code)
        .join(Department, Department.department_id == Course.department_id_fk)
        .filter(Department.program_id_fk == program_id)
    ).scalars().all()

    highest = 0
    for code in codes:
        m = re.fullmatch(r"C(\d+)", (code or "").strip().upper())
        if m:
            highest = max(highest, int(m.group(1)))
    return f"C{highest + 1:03d}"


# ==========================================
# CLOs
# ==========================================

def _apply_clo_fields(clo, payload):
    if "code" in payload:
        code = optional_str(payload.get("code"))
        if not code:
            raise ValidationFailed("code cannot be empty", field="code")
        clo.code = code
    if "statement" in payload:
        statement = optional_str(payload.get("statement"))
        if not statement:
            raise ValidationFailed("statement cannot be empty", field="statement")
        if clo.statement and statement != clo.statement:
            clo.version = (clo.version or 1) + 1
        clo.statement = statement
    if "bloom_level" in payload:
        bloom = optional_str(payload.get("bloom_level"))
        if not bloom:
            raise ValidationFailed("bloom_level cannot be empty", field="bloom_level")
        clo.bloom_level = bloom
    if "attainment_threshold" in payload:
        clo.attainment_threshold = to_number(
            payload.get("attainment_threshold"), "attainment_threshold", required=False, minimum=0, maximum=100
        )
    if "order" in payload:
        clo.order = to_int(payload.get("order"), "order", required=False, minimum=0) or 0
    if "is_active" in payload:
        clo.is_active = to_bool(payload.get("is_active"), "is_active")


def create_clo(session, user, course_id, payload):
    course = managed_course(session, user, course_id, active_only=True)
    require_fields(payload, "code", "statement", "bloom_level")

    clo = Clo(course_id_fk=course.course_id, created_by_id_fk=user.user_id, version=1, is_active=True)
    _apply_clo_fields(clo, {k: v for k, v in payload.items() if k in CLO_FIELDS})
    if "order" not in payload:
        clo.order = (session.execute(
            select(func.max(Clo.order)).filter_by(course_id_fk=course.course_id)
        ).scalar() or 0) + 1

    session.add(clo)
    session.commit()
    current_app.logger.info("CLO %s added to course %s", clo.code, course.course_id)
    return clo_dict(clo)


def list_clos(session, user, course_id):
    course = managed_course(session, user, course_id)
    clos = session.execute(
        select(Clo).filter_by(course_id_fk=course.course_id).order_by(Clo.order, Clo.code)
    ).scalars().all()
    return [clo_dict(c) for c in clos]


def update_clo(session, user, clo_id, payload):
    clo = get_or_404(session, Clo, clo_id, active_only=False, message="CLO not found")
    require(principal_for(session, user).can_manage_course(clo.course), "You can only manage courses in your department")
    unknown = sorted(set(payload) - CLO_FIELDS)
    if unknown:
        raise ValidationFailed("Unknown or read-only fields: " + ", ".join(unknown), unknown_fields=unknown)
    _apply_clo_fields(clo, payload)
    session.commit()
    return clo_dict(clo)


# ==========================================
# PO / PSO
# ==========================================

def _outcome_dict(o):
    return {
        "id": o.po_id if isinstance(o, Po) else o.pso_id,
        "program_id": o.program_id_fk,
        "code": o.code,
        "statement": o.statement,
    }


def _managed_program(session, user, program_id):
    program = get_or_404(session, Program, program_id, active_only=False, message="Program not found")
    principal = principal_for(session, user)
    if principal.role != "ADMIN":
        department = caller_department(session, user)
        if department.program_id_fk != program.program_id:
            raise Forbidden("You can only manage outcomes of your department's program")
    return program


def create_outcome(session, user, program_id, payload, model):
    program = _managed_program(session, user, program_id)
    require_fields(payload, "code", "statement")
    outcome = model(
        program_id_fk=program.program_id,
        code=str(payload.get("code")).strip(),
        statement=str(payload.get("statement")).strip(),
    )
    session.add(outcome)
    session.commit()
    return _outcome_dict(outcome)


def list_program_outcomes(session, program_id):
    pos = session.execute(select(Po).filter_by(program_id_fk=program_id).order_by(Po.code)).scalars().all()
    psos = session.execute(select(Pso).filter_by(program_id_fk=program_id).order_by(Pso.code)).scalars().all()
    return {"pos": [_outcome_dict(p) for p in pos], "psos": [_outcome_dict(p) for p in psos]}


def list_outcomes(session, user, program_id):
    program = get_or_404(session, Program, program_id, active_only=False, message="Program not found")
    return list_program_outcomes(session, program.program_id)


# ==========================================
# FACULTY & ASSIGNMENTS
# ==========================================

def list_department_faculty(session, user, department_id=None):
    department = caller_department(session, user, department_id)
    faculties = session.execute(
        select(Faculty).filter_by(department_id_fk=department.department_id, is_active=True).order_by(Faculty.name)
    ).scalars().all()
    items = []
    for f in faculties:
        data = faculty_brief(f)
        data["email"] = f.user.email if f.user else None
        data["assignment_count"] = len(f.course_assignments)
        items.append(data)
    return items


def available_faculty(session, user, course_id, semester, year):
    course = managed_course(session, user, course_id, active_only=True)
    if semester is None or year is None:
        raise ValidationFailed("semester and year are required")
    assigned = select(CourseFaculty.faculty_id_fk).filter_by(
        course_id_fk=course.course_id, semester=semester, year=year
    )
    faculties = session.execute(
        select(Faculty)
        .filter_by(department_id_fk=course.department_id_fk, is_active=True)
        .filter(Faculty.faculty_id.not_in(assigned))
        .order_by(Faculty.name)
    ).scalars().all()
    return [faculty_brief(f) for f in faculties]


def _assignable_faculty(session, course, faculty_id):
    faculty = session.get(Faculty, faculty_id)
    if faculty is None or not faculty.is_active:
        raise NotFound("Faculty not found")
    if faculty.department_id_fk != course.department_id_fk:
        raise ValidationFailed("Faculty must belong to the course's department")
    return faculty


def _ensure_not_assigned(session, course_id, faculty_id, semester, year):
    exists = session.execute(
        select(CourseFaculty.assignment_id).filter_by(
            course_id_fk=course_id, faculty_id_fk=faculty_id, semester=semester, year=year
        )
    ).first()
    if exists:
        raise UniqueConstraintViolation("Faculty is already assigned to this course for the given semester and year")


def assign_faculty(session, user, payload):
    require_fields(payload, "course_id", "faculty_id", "semester", "year")
    course = managed_course(session, user, to_int(payload.get("course_id"), "course_id"), active_only=True)
    faculty = _assignable_faculty(session, course, to_int(payload.get("faculty_id"), "faculty_id"))
    semester = to_int(payload.get("semester"), "semester", minimum=1)
    year = to_int(payload.get("year"), "year", minimum=1900)
    _ensure_not_assigned(session, course.course_id, faculty.faculty_id, semester, year)

    cf = CourseFaculty(
        course_id_fk=course.course_id,
        faculty_id_fk=faculty.faculty_id,
        semester=semester,
        year=year,
        teaching_methodology=optional_str(payload.get("teaching_methodology")),
        assessment_mode=optional_str(payload.get("assessment_mode")),
    )
    session.add(cf)
    session.commit()
    current_app.logger.info(
        "Faculty %s assigned to course %s for %s/%s", faculty.faculty_id, course.course_id, semester, year
    )
    return assignment_dict(cf)


def update_assignment(session, user, assignment_id, payload):
    """
    The assigned faculty may edit methodology/mode. The HOD may also
    reassign the course term to another faculty (delete + create).
    """
    cf = get_or_404(session, CourseFaculty, assignment_id, active_only=False, message="Assignment not found")
    principal = principal_for(session, user)
    is_hod = principal.can_manage_course(cf.course)
    is_owner = principal.faculty is not None and principal.faculty.faculty_id == cf.faculty_id_fk
    require(is_hod or is_owner, "You cannot modify this assignment")

    allowed = ASSIGNMENT_DETAIL_FIELDS | ({"faculty_id"} if is_hod else set())
    unknown = sorted(set(payload) - allowed)
    if unknown:
        if "faculty_id" in unknown and not is_hod:
            raise Forbidden("Only the HOD can reassign a course")
        raise ValidationFailed("Unknown or read-only fields: " + ", ".join(unknown), unknown_fields=unknown)

    new_faculty_id = to_int(payload.get("faculty_id"), "faculty_id", required=False)
    methodology = optional_str(payload.get("teaching_methodology")) if "teaching_methodology" in payload else cf.teaching_methodology
    mode = optional_str(payload.get("assessment_mode")) if "assessment_mode" in payload else cf.assessment_mode

    if new_faculty_id is None or new_faculty_id == cf.faculty_id_fk:
        cf.teaching_methodology = methodology
        cf.assessment_mode = mode
        session.commit()
        return assignment_dict(cf)

    # Reassignment
    course = cf.course
    faculty = _assignable_faculty(session, course, new_faculty_id)
    _ensure_not_assigned(session, course.course_id, faculty.faculty_id, cf.semester, cf.year)
    old_faculty_id = cf.faculty_id_fk
    try:
        replacement = CourseFaculty(
            course_id_fk=course.course_id,
            faculty_id_fk=faculty.faculty_id,
            semester=cf.semester,
            year=cf.year,
            teaching_methodology=methodology,
            assessment_mode=mode,
        )
        session.delete(cf)
        session.flush()
        session.add(replacement)
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(
        "Course %s (%s/%s) reassigned from faculty %s to %s",
        course.course_id, replacement.semester, replacement.year, old_faculty_id, faculty.faculty_id,
    )
    return assignment_dict(replacement)


def remove_assignment(session, user, assignment_id):
    cf = get_or_404(session, CourseFaculty, assignment_id, active_only=False, message="Assignment not found")
    require(principal_for(session, user).can_manage_course(cf.course), "You can only manage courses in your department")
    session.delete(cf)
    session.commit()
    return {"assignment_id": assignment_id}


def course_assignments(session, user, course_id):
    course = managed_course(session, user, course_id)
    rows = session.execute(
        select(CourseFaculty).filter_by(course_id_fk=course.course_id)
        .order_by(CourseFaculty.year.desc(), CourseFaculty.semester)
    ).scalars().all()
    return [assignment_dict(cf) for cf in rows]


def department_assignments(session, user, filters):
    """
    Paginated assignments of the caller's department.
    filters: semester, year, faculty_id, course_id, page, per_page
    """
    department = caller_department(session, user, filters.get("department_id"))
    page = max(filters.get("page") or 1, 1)
    per_page = min(max(filters.get("per_page") or 20, 1), 100)

    base = (
        select(CourseFaculty)
        .join(Course, Course.course_id == CourseFaculty.course_id_fk)
        .filter(Course.department_id_fk == department.department_id)
    )
    stmt = base
    for key, column in (
        ("semester", CourseFaculty.semester),
        ("year", CourseFaculty.year),
        ("faculty_id", CourseFaculty.faculty_id_fk),
        ("course_id", CourseFaculty.course_id_fk),
    ):
        if filters.get(key) is not None:
            stmt = stmt.filter(column == filters[key])

    total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0
    rows = session.execute(
        stmt.order_by(CourseFaculty.year.desc(), CourseFaculty.semester, CourseFaculty.assignment_id)
        .offset((page - 1) * per_page).limit(per_page)
    ).scalars().all()

    # Facets are computed over the whole department, ignoring filters
    everything = session.execute(base).scalars().all()
    facets = {
        "years": sorted({cf.year for cf in everything}, reverse=True),
        "semesters": sorted({cf.semester for cf in everything}),
        "faculties": sorted(
            {(cf.faculty_id_fk, cf.faculty.name) for cf in everything}, key=lambda x: x[1]
        ),
        "courses": sorted(
            {(cf.course_id_fk, cf.course.code, cf.course.name) for cf in everything}, key=lambda x: x[1]
        ),
    }
    facets["faculties"] = [{"faculty_id": i, "name": n} for i, n in facets["faculties"]]
    facets["courses"] = [{"course_id": i, "code": c, "name": n} for i, c, n in facets["courses"]]

    return {
        "assignments": [assignment_dict(cf) for cf in rows],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        },
        "filters": facets,
    }
