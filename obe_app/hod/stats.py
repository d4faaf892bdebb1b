from datetime import date

from sqlalchemy import select, func

from ..models import Course, Clo, Po, Pso, Faculty, CourseFaculty
from ..authz import principal_for, require, get_or_404
from ..serializers import course_brief, faculty_brief
from .services import caller_department

TOP_N = 5


def dashboard_stats(session, user, department_id=None):
    department = caller_department(session, user, department_id)
    dept_id = department.department_id

    courses = session.execute(
        select(func.count(Course.course_id)).filter_by(department_id_fk=dept_id, is_active=True)
    ).scalar() or 0
    clos = session.execute(
        select(func.count(Clo.clo_id))
        .join(Course, Course.course_id == Clo.course_id_fk)
        .filter(Course.department_id_fk == dept_id, Course.is_active.is_(True), Clo.is_active.is_(True))
    ).scalar() or 0
    faculty = session.execute(
        select(func.count(Faculty.faculty_id)).filter_by(department_id_fk=dept_id, is_active=True)
    ).scalar() or 0
    pos = session.execute(
        select(func.count(Po.po_id)).filter_by(program_id_fk=department.program_id_fk)
    ).scalar() or 0
    psos = session.execute(
        select(func.count(Pso.pso_id)).filter_by(program_id_fk=department.program_id_fk)
    ).scalar() or 0

    program = department.program
    return {
        "department": {"department_id": dept_id, "name": department.name, "code": department.code},
        "program": {"program_id": program.program_id, "name": program.name, "code": program.code} if program else None,
        "total_courses": courses,
        "total_clos": clos,
        "total_faculty": faculty,
        "total_programs": 1 if program else 0,
        "total_pos": pos,
        "total_psos": psos,
    }


def assignment_stats(session, user, year=None, department_id=None):
    department = caller_department(session, user, department_id)
    year = year or date.today().year

    rows = session.execute(
        select(CourseFaculty)
        .join(Course, Course.course_id == CourseFaculty.course_id_fk)
        .filter(Course.department_id_fk == department.department_id)
    ).scalars().all()
    in_year = [cf for cf in rows if cf.year == year]

    by_semester = {}
    faculty_counts = {}
    course_counts = {}
    for cf in in_year:
        by_semester[cf.semester] = by_semester.get(cf.semester, 0) + 1
        faculty_counts[cf.faculty_id_fk] = faculty_counts.get(cf.faculty_id_fk, 0) + 1
        course_counts[cf.course_id_fk] = course_counts.get(cf.course_id_fk, 0) + 1

    top_faculty = sorted(faculty_counts.items(), key=lambda x: (-x[1], x[0]))[:TOP_N]
    top_courses = sorted(course_counts.items(), key=lambda x: (-x[1], x[0]))[:TOP_N]

    return {
        "year": year,
        "total_assignments": len(rows),
        "current_year_assignments": len(in_year),
        "by_semester": [{"semester": s, "count": c} for s, c in sorted(by_semester.items())],
        "top_faculty": [
            dict(faculty_brief(session.get(Faculty, fid)), assignment_count=count)
            for fid, count in top_faculty
        ],
        "top_courses": [
            dict(course_brief(session.get(Course, cid)), faculty_count=count)
            for cid, count in top_courses
        ],
    }


def workload_for(session, faculty):
    """Assignments grouped by (year, semester), newest term first."""
    rows = session.execute(
        select(CourseFaculty).filter_by(faculty_id_fk=faculty.faculty_id)
    ).scalars().all()

    terms = {}
    for cf in rows:
        term = terms.setdefault((cf.year, cf.semester), {
            "year": cf.year,
            "semester": cf.semester,
            "courses": [],
            "total_credits": 0,
        })
        term["courses"].append(course_brief(cf.course))
        term["total_credits"] += cf.course.credits or 0

    workload = [terms[k] for k in sorted(terms, reverse=True)]
    for term in workload:
        term["course_count"] = len(term["courses"])
    return workload


def faculty_workload(session, user, faculty_id):
    faculty = get_or_404(session, Faculty, faculty_id, message="Faculty not found")
    principal = principal_for(session, user)
    is_self = principal.faculty is not None and principal.faculty.faculty_id == faculty.faculty_id
    require(is_self or principal.can_manage_faculty(faculty), "You cannot view this faculty's workload")

    workload = workload_for(session, faculty)
    return {
        "faculty": faculty_brief(faculty),
        "workload": workload,
        "total_assignments": sum(t["course_count"] for t in workload),
        "total_credits": sum(t["total_credits"] for t in workload),
    }
