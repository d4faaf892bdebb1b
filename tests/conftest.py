from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from obe_app import create_app, db
from obe_app.models import (
    Program, Department, User, Faculty, Student, Course, Clo, Po, Pso,
    CourseFaculty, StudentCourseEnrollment,
)

PASSWORD = "secret"
SEMESTER = 5
YEAR = 2025


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "RATELIMIT_ENABLED": False,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def _user(email, role, name=None, active=True):
    u = User(
        email=email,
        name=name or email.split("@")[0],
        role=role,
        password_hash=generate_password_hash(PASSWORD),
        is_active=active,
    )
    db.session.add(u)
    db.session.flush()
    return u


def _student(roll, dept):
    u = _user(f"{roll.lower()}@test.edu", "STUDENT", name=f"Student {roll}")
    s = Student(user_id_fk=u.user_id, department_id_fk=dept.department_id, roll_number=roll, current_semester=SEMESTER)
    db.session.add(s)
    db.session.flush()
    return s


@pytest.fixture()
def world(app):
    """
    Two departments in two programs. The CS department has a 4-credit course
    (cap 100) with two CLOs, faculty f1 assigned for the term, f2 unassigned,
    two enrolled students and one that is not enrolled.
    """
    with app.app_context():
        ug = Program(name="Undergraduate", code="UG", slug="ug", type="LEVEL", level="UG")
        db.session.add(ug)
        db.session.flush()
        bsc = Program(name="BSc Computer Science", code="BSC-CS", slug="bsc-cs", type="DEGREE", parent_id_fk=ug.program_id)
        bcom = Program(name="BCom", code="BCOM", slug="bcom", type="DEGREE", parent_id_fk=ug.program_id)
        db.session.add_all([bsc, bcom])
        db.session.flush()

        hod = _user("hod@test.edu", "HOD")
        other_hod = _user("hod2@test.edu", "HOD")
        admin = _user("admin@test.edu", "ADMIN")
        dept = Department(program_id_fk=bsc.program_id, name="Computer Science", code="CS", slug="cs", hod_id_fk=hod.user_id)
        other_dept = Department(program_id_fk=bcom.program_id, name="Commerce", code="COM", slug="commerce", hod_id_fk=other_hod.user_id)
        db.session.add_all([dept, other_dept])
        db.session.flush()

        f1_user = _user("f1@test.edu", "FACULTY")
        f2_user = _user("f2@test.edu", "FACULTY")
        fo_user = _user("fother@test.edu", "FACULTY")
        _user("noprofile@test.edu", "FACULTY")
        f1 = Faculty(user_id_fk=f1_user.user_id, department_id_fk=dept.department_id, name="Faculty One", designation="Assistant Professor")
        f2 = Faculty(user_id_fk=f2_user.user_id, department_id_fk=dept.department_id, name="Faculty Two")
        fo = Faculty(user_id_fk=fo_user.user_id, department_id_fk=other_dept.department_id, name="Faculty Other")
        db.session.add_all([f1, f2, fo])
        db.session.flush()

        course = Course(
            department_id_fk=dept.department_id, code="DS101", name="Data Science", slug="data-science",
            semester=SEMESTER, credits=4, type="THEORY", category="CORE", is_active=True,
        )
        other_course = Course(
            department_id_fk=other_dept.department_id, code="AC101", name="Accounting", slug="accounting",
            semester=1, credits=3, type="THEORY", is_active=True,
        )
        db.session.add_all([course, other_course])
        db.session.flush()

        clo1 = Clo(course_id_fk=course.course_id, code="CLO1", statement="Explain data pipelines", bloom_level="Understand", order=1)
        clo2 = Clo(course_id_fk=course.course_id, code="CLO2", statement="Apply regression", bloom_level="Apply", order=2)
        other_clo = Clo(course_id_fk=other_course.course_id, code="CLO1", statement="Journal entries", bloom_level="Apply", order=1)
        po1 = Po(program_id_fk=bsc.program_id, code="PO1", statement="Knowledge")
        po2 = Po(program_id_fk=bsc.program_id, code="PO2", statement="Problem analysis")
        pso1 = Pso(program_id_fk=bsc.program_id, code="PSO1", statement="Data skills")
        other_po = Po(program_id_fk=bcom.program_id, code="PO1", statement="Commerce knowledge")
        db.session.add_all([clo1, clo2, other_clo, po1, po2, pso1, other_po])
        db.session.flush()

        db.session.add(CourseFaculty(course_id_fk=course.course_id, faculty_id_fk=f1.faculty_id, semester=SEMESTER, year=YEAR))

        s1 = _student("CS001", dept)
        s2 = _student("CS002", dept)
        s3 = _student("CS003", dept)
        for s in (s1, s2):
            db.session.add(StudentCourseEnrollment(
                student_id_fk=s.student_id, course_id_fk=course.course_id, semester=SEMESTER, year=YEAR, status="ENROLLED"
            ))
        db.session.add(StudentCourseEnrollment(
            student_id_fk=s3.student_id, course_id_fk=course.course_id, semester=SEMESTER, year=YEAR, status="DROPPED"
        ))
        db.session.commit()

        return SimpleNamespace(
            ug=ug.program_id, bsc=bsc.program_id, bcom=bcom.program_id,
            dept=dept.department_id, other_dept=other_dept.department_id,
            f1=f1.faculty_id, f2=f2.faculty_id, fo=fo.faculty_id,
            course=course.course_id, other_course=other_course.course_id,
            clo1=clo1.clo_id, clo2=clo2.clo_id, other_clo=other_clo.clo_id,
            po1=po1.po_id, po2=po2.po_id, pso1=pso1.pso_id, other_po=other_po.po_id,
            s1=s1.student_id, s2=s2.student_id, s3=s3.student_id,
            semester=SEMESTER, year=YEAR,
        )


@pytest.fixture()
def login(app):
    """Factory: a fresh test client logged in as the given email."""
    def _login(email):
        c = app.test_client()
        resp = c.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return c
    return _login


@pytest.fixture()
def make_assessment(world):
    def _make(c, **overrides):
        body = {
            "course_id": world.course,
            "title": "Mid Term",
            "max_marks": 20,
            "type": "theory",
            "semester": world.semester,
            "year": world.year,
        }
        body.update(overrides)
        return c.post("/assessments/", json=body)
    return _make


@pytest.fixture()
def allocated_assessment(world, login, make_assessment):
    """Assessment of 20 marks split CLO1=12, CLO2=8, owned by f1. Returns (client, assessment_id)."""
    c = login("f1@test.edu")
    resp = make_assessment(c, max_marks=20)
    assert resp.status_code == 201, resp.get_json()
    aid = resp.get_json()["data"]["assessment_id"]
    resp = c.post(f"/assessments/{aid}/clos", json={"clos": [
        {"clo_id": world.clo1, "marks_allocated": 12},
        {"clo_id": world.clo2, "marks_allocated": 8},
    ]})
    assert resp.status_code == 200, resp.get_json()
    return c, aid
