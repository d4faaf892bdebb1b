from sqlalchemy import select

from obe_app import db
from obe_app.authz import (
    principal_for, AdminPrincipal, HodPrincipal, FacultyPrincipal, StudentPrincipal,
)
from obe_app.models import User, Course, Faculty, Assessment


def _user(email):
    return db.session.execute(select(User).filter_by(email=email)).scalars().one()


def test_principal_classes(app, world):
    with app.app_context():
        assert isinstance(principal_for(db.session, _user("admin@test.edu")), AdminPrincipal)
        assert isinstance(principal_for(db.session, _user("hod@test.edu")), HodPrincipal)
        assert isinstance(principal_for(db.session, _user("f1@test.edu")), FacultyPrincipal)
        assert isinstance(principal_for(db.session, _user("cs001@test.edu")), StudentPrincipal)


def test_department_management(app, world):
    with app.app_context():
        course = db.session.get(Course, world.course)
        f1 = db.session.get(Faculty, world.f1)
        assert principal_for(db.session, _user("hod@test.edu")).can_manage_course(course)
        assert not principal_for(db.session, _user("hod2@test.edu")).can_manage_course(course)
        assert principal_for(db.session, _user("admin@test.edu")).can_manage_faculty(f1)
        assert not principal_for(db.session, _user("f1@test.edu")).can_manage_course(course)


def test_assignment_checks(app, world):
    with app.app_context():
        f1 = principal_for(db.session, _user("f1@test.edu"))
        assert f1.is_assigned(world.course, world.semester, world.year)
        assert not f1.is_assigned(world.course, world.semester, world.year + 1)
        assert f1.is_assigned_any(world.course)

        no_profile = principal_for(db.session, _user("noprofile@test.edu"))
        assert no_profile.faculty is None
        assert not no_profile.is_assigned(world.course, world.semester, world.year)


def test_assessment_capabilities(app, world):
    with app.app_context():
        assessment = Assessment(
            course_id_fk=world.course, faculty_id_fk=world.f2, title="Quiz", max_marks=10,
            type="theory", semester=world.semester, year=world.year, is_active=True,
        )
        db.session.add(assessment)
        db.session.commit()

        creator = principal_for(db.session, _user("f2@test.edu"))
        assigned = principal_for(db.session, _user("f1@test.edu"))
        hod = principal_for(db.session, _user("hod@test.edu"))

        assert creator.can_manage_assessment(assessment)
        assert not assigned.can_manage_assessment(assessment)
        # assigned faculty may enter marks on a colleague's assessment
        assert assigned.can_enter_marks(assessment)
        assert not hod.can_enter_marks(assessment)
        assert hod.can_view_assessment(assessment)

        student = principal_for(db.session, _user("cs001@test.edu"))
        assert not student.can_view_assessment(assessment)
        assert student.can_view_student_marks(assessment, world.s1)
        assert not student.can_view_student_marks(assessment, world.s2)
