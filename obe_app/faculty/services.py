from datetime import date

from sqlalchemy import select, func

from ..models import Assessment, Clo, Course, CourseFaculty
from ..authz import resolve_faculty, get_or_404
from ..errors import NotAssigned
from ..serializers import course_brief, clo_dict, faculty_brief, assignment_dict
from ..hod.stats import workload_for


def current_term(today=None):
    """(year, semester) for a date: Jan-Jun is semester 2, Jul-Dec semester 1."""
    today = today or date.today()
    semester = 2 if today.month <= 6 else 1
    return today.year, semester


def _department_dict(department):
    if department is None:
        return None
    program = department.program
    return {
        "department_id": department.department_id,
        "name": department.name,
        "code": department.code,
        "program": {"program_id": program.program_id, "name": program.name, "code": program.code} if program else None,
    }


def _assignments(session, faculty, year=None, semester=None):
    stmt = select(CourseFaculty).filter_by(faculty_id_fk=faculty.faculty_id)
    if year is not None:
        stmt = stmt.filter(CourseFaculty.year == year)
    if semester is not None:
        stmt = stmt.filter(CourseFaculty.semester == semester)
    return session.execute(stmt.order_by(CourseFaculty.year.desc(), CourseFaculty.semester)).scalars().all()


def profile(session, user):
    faculty = resolve_faculty(session, user)
    data = faculty_brief(faculty)
    data["email"] = user.email
    data["department"] = _department_dict(faculty.department)
    data["assignments"] = [assignment_dict(cf) for cf in _assignments(session, faculty)]
    return data


def current_assignments(session, user, today=None):
    faculty = resolve_faculty(session, user)
    year, semester = current_term(today)
    items = []
    for cf in _assignments(session, faculty, year, semester):
        data = assignment_dict(cf)
        data["course"]["clos"] = [
            {"code": c.code, "statement": c.statement} for c in cf.course.clos if c.is_active
        ]
        items.append(data)
    return {
        "faculty": {"name": faculty.name, "designation": faculty.designation},
        "current_year": year,
        "current_semester": semester,
        "assignments": items,
    }


def all_assignments(session, user, year=None, semester=None):
    faculty = resolve_faculty(session, user)
    return [assignment_dict(cf) for cf in _assignments(session, faculty, year, semester)]


def department_info(session, user):
    faculty = resolve_faculty(session, user)
    data = _department_dict(faculty.department)
    data["faculty_count"] = sum(1 for f in faculty.department.faculties if f.is_active)
    data["course_count"] = sum(1 for c in faculty.department.courses if c.is_active)
    return data


def course_detail(session, user, course_id):
    faculty = resolve_faculty(session, user)
    course = get_or_404(session, Course, course_id, message="Course not found")
    terms = _assignments_for_course(session, faculty, course)
    if not terms:
        raise NotAssigned("You are not assigned to this course")

    clos = session.execute(
        select(Clo).filter_by(course_id_fk=course.course_id, is_active=True).order_by(Clo.order, Clo.code)
    ).scalars().all()
    data = course_brief(course)
    data["description"] = course.description
    data["category"] = course.category
    data["clos"] = [clo_dict(c) for c in clos]
    data["assignments"] = [
        {"assignment_id": cf.assignment_id, "semester": cf.semester, "year": cf.year,
         "teaching_methodology": cf.teaching_methodology, "assessment_mode": cf.assessment_mode}
        for cf in terms
    ]
    return data


def _assignments_for_course(session, faculty, course):
    return session.execute(
        select(CourseFaculty).filter_by(faculty_id_fk=faculty.faculty_id, course_id_fk=course.course_id)
    ).scalars().all()


def dashboard(session, user, today=None):
    faculty = resolve_faculty(session, user)
    year, semester = current_term(today)

    def _count(*criteria):
        return session.execute(
            select(func.count(Assessment.assessment_id)).filter(
                Assessment.faculty_id_fk == faculty.faculty_id,
                Assessment.is_active.is_(True),
                *criteria,
            )
        ).scalar() or 0

    finalized = _count(Assessment.is_marks_finalized.is_(True))
    total = _count()
    course_count = session.execute(
        select(func.count(func.distinct(CourseFaculty.course_id_fk))).filter_by(faculty_id_fk=faculty.faculty_id)
    ).scalar() or 0
    return {
        "faculty": faculty_brief(faculty),
        "current_year": year,
        "current_semester": semester,
        "total_courses": course_count,
        "current_term_courses": len(_assignments(session, faculty, year, semester)),
        "total_assessments": total,
        "finalized_assessments": finalized,
        "pending_finalization": total - finalized,
        "workload": workload_for(session, faculty),
    }
